import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

WEBHOOK_POLICY_REJECT = "reject"
WEBHOOK_POLICY_ACKNOWLEDGE = "acknowledge"
WEBHOOK_POLICIES = {WEBHOOK_POLICY_REJECT, WEBHOOK_POLICY_ACKNOWLEDGE}


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 10)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def JWT_SECRET(self) -> str:
        return os.getenv("JWT_SECRET", "change-me-in-production")

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def JWT_EXPIRE_MINUTES(self) -> int:
        return self._get_int("JWT_EXPIRE_MINUTES", 60)

    @property
    def STRIPE_SECRET_KEY(self) -> str:
        return os.getenv("STRIPE_SECRET_KEY", "")

    @property
    def STRIPE_WEBHOOK_SECRET(self) -> str:
        return os.getenv("STRIPE_WEBHOOK_SECRET", "")

    @property
    def STRIPE_CURRENCY(self) -> str:
        return os.getenv("STRIPE_CURRENCY", "usd")

    @property
    def STRIPE_WEBHOOK_TOLERANCE_SECONDS(self) -> int:
        return self._get_int("STRIPE_WEBHOOK_TOLERANCE_SECONDS", 300)

    @property
    def BKASH_BASE_URL(self) -> str:
        return os.getenv("BKASH_BASE_URL", "").rstrip("/")

    @property
    def BKASH_APP_KEY(self) -> str:
        return os.getenv("BKASH_APP_KEY", "")

    @property
    def BKASH_APP_SECRET(self) -> str:
        return os.getenv("BKASH_APP_SECRET", "")

    @property
    def BKASH_USERNAME(self) -> str:
        return os.getenv("BKASH_USERNAME", "")

    @property
    def BKASH_PASSWORD(self) -> str:
        return os.getenv("BKASH_PASSWORD", "")

    @property
    def BKASH_CALLBACK_URL(self) -> str:
        return os.getenv("BKASH_CALLBACK_URL", "http://localhost:8000/api/payments/bkash/callback")

    @property
    def BKASH_CURRENCY(self) -> str:
        return os.getenv("BKASH_CURRENCY", "BDT")

    @property
    def BKASH_TOKEN_REFRESH_MARGIN_SECONDS(self) -> int:
        return self._get_int("BKASH_TOKEN_REFRESH_MARGIN_SECONDS", 300)

    @property
    def BKASH_HTTP_TIMEOUT_SECONDS(self) -> int:
        return self._get_int("BKASH_HTTP_TIMEOUT_SECONDS", 30)

    @property
    def WEBHOOK_SETTLEMENT_ERROR_POLICY(self) -> str:
        return os.getenv("WEBHOOK_SETTLEMENT_ERROR_POLICY", WEBHOOK_POLICY_REJECT).strip().lower()

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")


settings = Settings()

# Validate critical settings
if settings.JWT_SECRET == "change-me-in-production":
    import warnings
    warnings.warn("JWT_SECRET is using default value. Change it in production!", UserWarning)
