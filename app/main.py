from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.accounting.router import router as accounting_router
from app.api.v1.fees.router import router as fees_router
from app.core.config import settings
from app.core.logging_config import configure_logging


def create_app() -> FastAPI:
    configure_logging(settings)
    app = FastAPI(title="Fee Structure Service")

    # CORS: allow the dashboard to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(fees_router)
    app.include_router(accounting_router)

    return app


app = create_app()
