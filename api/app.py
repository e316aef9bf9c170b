import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
import uvicorn
from api.database import async_session_maker
from api.routers.system import routes as SystemRoutes
from api.routers.orders import routes as OrderRoutes
from api.routers.affiliates import routes as AffiliateRoutes
from api.routers.affiliate_admin import routes as AffiliateAdminRoutes
from api.routers.currency import routes as CurrencyRoutes
from api.security import require_admin
from services.affiliate import AffiliateService
from services.storage import get_storage
from starlette.concurrency import run_in_threadpool


class FastAPIManager:
    def __init__(self):
        # version format: version.subversion:month.year.day:stage (beta, stable)
        self.api = FastAPI(
            version="1.0:10.26.19:beta",
            title="Storefront back office",
            description=(
                "Orders and affiliate program for a small web storefront. "
                "Confirms orders against product and variant stock in one optimistic transaction, "
                "tracks referral clicks, registrations and attributed orders, keeps the commission "
                "and payout ledger, and streams row changes to the storefront and admin panel over SSE."
            ),
            lifespan=self.lifespan,
        )
        self.add_routers()

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        async with async_session_maker() as session:
            settings = await AffiliateService(session).initialize_settings()
        logging.info(f"Affiliate settings ready: rate={settings.default_commission_rate}%")
        storage = get_storage()
        await run_in_threadpool(storage.ensure_bucket)
        logging.info(f"Payment proof bucket {storage.bucket} ready")
        yield

    def add_routers(self):
        self.api.include_router(
            SystemRoutes.router
        )
        self.api.include_router(
            OrderRoutes.router,
            prefix="/orders",
            tags=["Orders"]
        )
        self.api.include_router(
            OrderRoutes.products_router,
            prefix="/products",
            tags=["Products"]
        )
        self.api.include_router(
            AffiliateRoutes.router,
            prefix="/affiliates",
            tags=["Affiliate program"]
        )
        self.api.include_router(
            AffiliateAdminRoutes.router,
            prefix="/admin/affiliates",
            dependencies=[Depends(require_admin)],
            tags=["Affiliate administration"]
        )
        self.api.include_router(
            CurrencyRoutes.router,
            prefix="/currency",
            tags=["Currency"]
        )

    def start_server(self):
        uvicorn.run(self.api, host="0.0.0.0", port=8000)

    def get_app(self) -> FastAPI:
        return self.api
