from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from billing.api.endpoints import admin, payment
from billing.core.database import Base, engine
from billing.core.logging import configure_logging
from billing.core.settings import settings

# register tables on Base.metadata
from billing.models import credit_transaction, reconciliation_alert, user  # noqa: F401

configure_logging(settings.log_level)

app = FastAPI(
    title="Email Credits Billing API",
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

# Configure CORS
origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def startup() -> None:
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)


# API Routes
app.include_router(payment.router, prefix="/api", tags=["payment"])
app.include_router(admin.router, prefix="/api", tags=["admin"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
