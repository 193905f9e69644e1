"""
Runtime configuration, read from environment variables.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    environment: str = "dev"
    port: int = 8080
    database_url: str | None = None  # None = in-memory store
    base_currency: str = "BRL"
    rates_url: str | None = None
    rates_timeout: float = 10
    compliance_window_days: int = 30
    log_level: str = "INFO"

    @property
    def exchange_rates_url(self) -> str:
        return self.rates_url or f"https://api.exchangerate-api.com/v4/latest/{self.base_currency}"

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            environment=env.get("ENVIRONMENT", "dev"),
            port=int(env.get("PORT", 8080)),
            database_url=env.get("DATABASE_URL") or None,
            base_currency=env.get("BASE_CURRENCY", "BRL").upper(),
            rates_url=env.get("RATES_URL") or None,
            rates_timeout=float(env.get("RATES_TIMEOUT", 10)),
            compliance_window_days=int(env.get("COMPLIANCE_WINDOW_DAYS", 30)),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
