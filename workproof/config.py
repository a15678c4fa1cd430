# workproof/config.py
import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    database_url: str = "sqlite+aiosqlite:///./workproof.db"

    # Supabase (identity)
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_currency: str = "usd"
    stripe_timeout_seconds: float = Field(default=20.0, gt=0)
    stripe_webhook_tolerance: int = Field(default=300, gt=0)

    cors_origins: List[str] = ["*"]

    @property
    def supabase_issuer(self) -> Optional[str]:
        if not self.supabase_url:
            return None
        return f"{self.supabase_url.rstrip('/')}/auth/v1"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        values = {
            "database_url": env.get("DATABASE_URL") or env.get("SUPABASE_DB_URL"),
            "supabase_url": env.get("SUPABASE_URL"),
            "supabase_service_role_key": env.get("SUPABASE_SERVICE_ROLE_KEY") or env.get("SUPABASE_SERVICE_ROLE"),
            "supabase_jwt_secret": env.get("SUPABASE_JWT_SECRET"),
            "stripe_secret_key": env.get("STRIPE_SECRET_KEY"),
            "stripe_webhook_secret": env.get("STRIPE_WEBHOOK_SECRET"),
            "stripe_currency": env.get("STRIPE_CURRENCY"),
            "stripe_timeout_seconds": env.get("STRIPE_TIMEOUT_SECONDS"),
            "stripe_webhook_tolerance": env.get("STRIPE_WEBHOOK_TOLERANCE"),
        }
        origins = env.get("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        # unset keys fall back to the model defaults
        return cls(**{k: v for k, v in values.items() if v is not None})


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
