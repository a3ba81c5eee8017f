import pytest

from app.core.config import Settings
from app.core.errors import ConfigurationError
from app.core.jwt_utils import MIN_SECRET_BYTES, check_signing_secret


class TestSettings:
    def test_jwt_secret_falls_back_to_encryption_secret(self):
        config = Settings(_env_file=None, ENCRYPTION_SECRET="e" * 32, JWT_SECRET=None)

        assert config.JWT_SECRET == "e" * 32

    def test_explicit_jwt_secret_wins(self):
        config = Settings(_env_file=None, ENCRYPTION_SECRET="e" * 32, JWT_SECRET="j" * 32)

        assert config.JWT_SECRET == "j" * 32

    def test_is_production(self):
        assert Settings(_env_file=None, ENVIRONMENT=" Production ").is_production
        assert not Settings(_env_file=None, ENVIRONMENT="development").is_production

    def test_defaults(self):
        config = Settings(_env_file=None)

        assert config.ACCESS_TOKEN_EXPIRE_SECONDS == 7 * 24 * 60 * 60
        assert config.NONCE_EXPIRY_SECONDS == 300
        assert config.HEADER_AUTH_MAX_AGE_SECONDS == 7 * 24 * 60 * 60
        assert config.FACILITATOR_URL == "https://x402.org/facilitator"

    def test_cors_origins(self):
        config = Settings(_env_file=None, CORS_ORIGINS="https://promox.example/, http://localhost:3000,,")

        assert config.cors_origins == ["https://promox.example", "http://localhost:3000"]
        assert Settings(_env_file=None, CORS_ORIGINS="").cors_origins == []


class TestSigningSecret:
    """Session tokens are only signed with a key of at least 32 bytes"""

    @pytest.mark.parametrize("secret", [None, "", "short", "x" * (MIN_SECRET_BYTES - 1)])
    def test_rejected(self, secret):
        with pytest.raises(ConfigurationError):
            check_signing_secret(secret)

    def test_accepted(self):
        assert check_signing_secret("x" * MIN_SECRET_BYTES) == "x" * MIN_SECRET_BYTES

    def test_length_counts_bytes(self):
        # 16 two-byte characters
        assert check_signing_secret("é" * 16) == "é" * 16
