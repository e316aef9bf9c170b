import hashlib
import hmac
import random
import secrets
import string


class RefLink:
    def __init__(self):
        self.alphabet = string.ascii_uppercase + string.digits

    def _random_ref_code(self, size: int) -> str:
        return ''.join(random.choices(self.alphabet, k=size))

    def generate_ref_code(self, user_id: str, display_name: str, size: int = 3) -> str:
        # NAME prefix + random part + tail of the user id, e.g. "TAR4KZ9f1c"
        return f"{display_name[:3].upper()}{self._random_ref_code(size)}{user_id[-4:]}"


class VisitorToken:
    """
    Opaque visitor identity handed out on the first referral-link visit.
    The id is server-generated and HMAC-signed so a browser cannot claim
    someone else's clicks by rewriting its stored id.
    """
    def __init__(self, secret: str):
        self.secret = secret.encode()

    def _sign(self, visitor_id: str) -> str:
        return hmac.new(self.secret, visitor_id.encode(), hashlib.sha256).hexdigest()[:32]

    def issue(self) -> str:
        visitor_id = secrets.token_urlsafe(16)
        return f"{visitor_id}.{self._sign(visitor_id)}"

    def verify(self, token: str | None) -> str | None:
        if not token or "." not in token:
            return None
        visitor_id, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(signature, self._sign(visitor_id)):
            return None
        return visitor_id
