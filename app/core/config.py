from dotenv import load_dotenv
from pydantic import model_validator
from pydantic_settings import BaseSettings

load_dotenv(override=True)

class Settings(BaseSettings):
    PROJECT_NAME: str = "Promox"
    # Application settings
    PORT: int = 8000
    HOST: str = "127.0.0.1"
    VERSION: str | None = "0.1.0"
    ENVIRONMENT: str = "development"

    # SSL settings
    SSL_KEY: str | None = None
    SSL_CERT: str | None = None

    # SQLAlchemy database URL
    DATABASE_URL: str = "sqlite:///./promox.db"
    AUTO_CREATE_TABLES: bool = False

    # Secrets
    ENCRYPTION_SECRET: str | None = None  # coupon codes at rest, >= 32 chars
    JWT_SECRET: str | None = None  # session signing, falls back to ENCRYPTION_SECRET

    # Login configuration
    ENCODE_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 7 * 24 * 60 * 60 # 7 days
    NONCE_EXPIRY_SECONDS: int = 300 # 5 minutes
    HEADER_AUTH_MAX_AGE_SECONDS: int = 7 * 24 * 60 * 60
    SIWE_DOMAIN: str | None = None  # defaults to the request Host header
    CORS_ORIGINS: str = ""  # comma-separated browser origins allowed to send the session cookie

    # Redis settings (nonce store), empty host -> in-memory
    REDIS_HOST: str | None = None
    REDIS_PORT: int | None = 6379
    REDIS_MAX_CONNECTIONS: int | None = 20
    REDIS_SSL: bool | None = False
    REDIS_RECHECK_INTERVAL: int = 30 * 60  # 30 minutes in seconds

    # Chain / x402 settings
    NETWORK: str = "base-sepolia"
    RPC_URL: str | None = None
    RPC_TIMEOUT_SECONDS: float = 10.0
    FACILITATOR_URL: str = "https://x402.org/facilitator"
    FACILITATOR_TIMEOUT_SECONDS: float = 30.0
    PAYMENT_MAX_TIMEOUT_SECONDS: int = 60

    # Debug settings
    DEBUG: bool = False

    @model_validator(mode="after")
    def _default_jwt_secret(self) -> "Settings":
        if not self.JWT_SECRET:
            self.JWT_SECRET = self.ENCRYPTION_SECRET
        return self

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip().rstrip("/") for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.strip().lower() == "production"

    class Config:
        env_file = ".env"
        extra = "ignore"

# Instantiate the settings
settings = Settings()
