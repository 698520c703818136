"""
Runtime configuration for the Zuree store API.

Everything is read from environment variables once, at startup, and handed to
the components that need it. Nothing below reads the environment on its own.
"""
import logging
import os
from functools import lru_cache
from decimal import Decimal
from typing import Optional

import structlog
from pydantic import BaseModel, Field


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    port: int = 8000

    # Pricing
    tax_rate: Decimal = Field(Decimal("0.18"), ge=0)
    free_shipping_threshold: Decimal = Field(Decimal("999"), ge=0)
    flat_shipping_fee: Decimal = Field(Decimal("99"), ge=0)

    # Intake
    min_bulk_quantity: int = Field(10, ge=1)

    # Mail
    mail_host: Optional[str] = None
    mail_port: int = 587
    mail_user: Optional[str] = None
    mail_password: Optional[str] = None
    mail_from: str = "Contact@zuree.in"
    admin_email: Optional[str] = None

    log_level: str = "INFO"
    log_format: str = "console"


def load_settings() -> Settings:
    env = {
        "database_url": os.getenv("DATABASE_URL"),
        "database_name": os.getenv("DATABASE_NAME"),
        "port": os.getenv("PORT"),
        "tax_rate": os.getenv("TAX_RATE"),
        "free_shipping_threshold": os.getenv("FREE_SHIPPING_THRESHOLD"),
        "flat_shipping_fee": os.getenv("FLAT_SHIPPING_FEE"),
        "min_bulk_quantity": os.getenv("MIN_BULK_QUANTITY"),
        "mail_host": os.getenv("MAIL_HOST"),
        "mail_port": os.getenv("MAIL_PORT"),
        "mail_user": os.getenv("MAIL_USER"),
        "mail_password": os.getenv("MAIL_PASSWORD"),
        "mail_from": os.getenv("MAIL_FROM"),
        "admin_email": os.getenv("ADMIN_EMAIL"),
        "log_level": os.getenv("LOG_LEVEL"),
        "log_format": os.getenv("LOG_FORMAT"),
    }
    # Unset variables fall back to the model defaults
    return Settings(**{k: v for k, v in env.items() if v not in (None, "")})


@lru_cache(maxsize=1)
def runtime_settings() -> Settings:
    """Settings for this process, read from the environment on first use."""
    return load_settings()


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
