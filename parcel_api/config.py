import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env then .env.local (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")
load_dotenv(dotenv_path=BASE_DIR / ".env.local")


class Settings:
    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./parcels.db")

        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY")
        self.stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
        self.stripe_timeout = float(os.getenv("STRIPE_TIMEOUT", "10"))
        self.site_domain = os.getenv("SITE_DOMAIN", "http://localhost:5173").rstrip("/")

        self.jwt_secret = os.getenv("JWT_SECRET")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")

        # source-currency units per settlement unit
        self.exchange_rate = float(os.getenv("EXCHANGE_RATE", "110"))
        self.settlement_currency = os.getenv("SETTLEMENT_CURRENCY", "usd").lower()

        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.cors_origins = [
            origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
        ]

    @property
    def success_url(self) -> str:
        return f"{self.site_domain}/dashboard/payment-success?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def cancel_url(self) -> str:
        return f"{self.site_domain}/dashboard/payment-cancelled"


settings = Settings()
