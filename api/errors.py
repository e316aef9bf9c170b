from fastapi import HTTPException, status

from services.errors import (
    AlreadyConfirmedError,
    ConcurrencyConflictError,
    InvalidStateError,
    NotFoundError,
    StoreError,
)

CONFLICTS = (AlreadyConfirmedError, InvalidStateError, ConcurrencyConflictError)


def http_error(e: StoreError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, CONFLICTS):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    # stock, variant, referral code and payout amount problems
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
