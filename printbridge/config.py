from pydantic_settings import BaseSettings
from pydantic import field_validator, ValidationError
from typing import Optional, List
from functools import lru_cache

from printbridge.core.exceptions import ConfigurationError


class BaseAppSettings(BaseSettings):
    """Application metadata and logging; loadable without any credentials."""

    # App Settings
    APP_NAME: str = "Printbridge Fulfillment Automation"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


class Settings(BaseAppSettings):
    """Application settings loaded from environment variables."""

    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Vendure Admin API (Order System)
    VENDURE_ADMIN_API_URL: str
    VENDURE_ADMIN_EMAIL: str
    VENDURE_ADMIN_PASSWORD: str
    VENDURE_SHOP_API_URL: str = "http://localhost:3000/shop-api"

    # Fulfillment job
    FULFILLMENT_HANDLER_CODE: str = "manual-fulfillment"
    FULFILLMENT_METHOD: str = "Printify"
    FULFILLMENT_MAX_ORDERS: int = 20  # Upper bound of orders pulled per run
    FULFILLMENT_DRY_RUN: bool = False
    FULFILLMENT_ORDER_STATES: str = "PaymentSettled,PartiallyFulfilled"  # Comma-separated
    AUTOMATION_JOB_SECRET: Optional[str] = None  # Protects trigger endpoints

    # Telegram notifications
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""
    TELEGRAM_API_URL: str = "https://api.telegram.org"

    # Printify Integration (Fulfillment Partner)
    PRINTIFY_API_TOKEN: str = ""
    PRINTIFY_SHOP_ID: str = ""
    PRINTIFY_API_BASE_URL: str = "https://api.printify.com/v1"
    PRINTIFY_API_MOCK: bool = False  # Return mock orders instead of calling Printify
    PRINTIFY_SHIPPING_METHOD: Optional[int] = None
    PRINTIFY_SEND_SHIPPING_NOTIFICATION: bool = False
    PRINTIFY_WEBHOOK_SECRET: Optional[str] = None  # For webhook verification
    PRINTIFY_WEBHOOK_ALLOW_UNSIGNED: bool = True  # Accept webhooks when no secret is set
    PRINTIFY_PRODUCT_MAPPING_CSV: Optional[str] = None  # sku,productId,variantId
    PRINTIFY_PRODUCT_MAPPING: str = "{}"  # JSON: {"SKU": {"productId": 1, "variantId": 2}}

    # Google Merchant Center
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REFRESH_TOKEN: str = ""
    GMC_MERCHANT_ID: str = ""
    GMC_PRODUCT_CATEGORY: Optional[str] = None
    STOREFRONT_BASE_URL: str = ""
    DEFAULT_BRAND: Optional[str] = None
    CONTENT_LANGUAGE: str = "vi"
    TARGET_COUNTRY: str = "VN"

    @field_validator("FULFILLMENT_MAX_ORDERS")
    @classmethod
    def validate_max_orders(cls, v):
        if v <= 0:
            raise ValueError("FULFILLMENT_MAX_ORDERS must be a positive number if provided")
        return v

    @field_validator("PRINTIFY_SHIPPING_METHOD", "PRINTIFY_PRODUCT_MAPPING_CSV", "AUTOMATION_JOB_SECRET",
                     "PRINTIFY_WEBHOOK_SECRET", "GMC_PRODUCT_CATEGORY", "DEFAULT_BRAND", mode="before")
    @classmethod
    def empty_string_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def order_states(self) -> List[str]:
        """Order states eligible for the fulfillment job."""
        return [state.strip() for state in self.FULFILLMENT_ORDER_STATES.split(",") if state.strip()]

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.TELEGRAM_BOT_TOKEN and self.TELEGRAM_CHAT_ID)

    @property
    def printify_enabled(self) -> bool:
        return self.PRINTIFY_API_MOCK or bool(self.PRINTIFY_API_TOKEN and self.PRINTIFY_SHOP_ID)

    @property
    def gmc_configured(self) -> bool:
        return all([
            self.GOOGLE_CLIENT_ID,
            self.GOOGLE_CLIENT_SECRET,
            self.GOOGLE_REFRESH_TOKEN,
            self.GMC_MERCHANT_ID,
        ])


@lru_cache()
def get_app_settings() -> BaseAppSettings:
    return BaseAppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Raises ConfigurationError when required variables are missing or invalid.
    """
    try:
        return Settings()
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
