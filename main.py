import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from app.api.endpoints import (
    coupons,
    health,
    secret,
    session,
    user,
)
from app.core.chain import check_network
from app.core.config import settings
from app.core.encryption import secret_codec
from app.core.errors import register_exception_handlers
from app.services.payment_gate import PAYMENT_RESPONSE_HEADER
from app.db.session import init_db

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # a missing or short ENCRYPTION_SECRET must stop the boot, not the first purchase
    secret_codec.check_key()
    check_network()
    if settings.AUTO_CREATE_TABLES:
        init_db()
    yield


# Define the FastAPI application instance
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)

register_exception_handlers(app)

# CORS middleware, credentials are needed for the session cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[PAYMENT_RESPONSE_HEADER],
)

# Include your API routers
app.include_router(health.router)
app.include_router(session.router, prefix="/session")
app.include_router(coupons.router, prefix="/coupons")
app.include_router(secret.router, prefix="/secret")
app.include_router(user.router, prefix="/user")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        ssl_keyfile=settings.SSL_KEY,
        ssl_certfile=settings.SSL_CERT,
        reload=settings.DEBUG
    )
