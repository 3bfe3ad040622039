"""
Application configuration settings.
Handles environment variables and application-wide settings.
"""
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application settings
    app_name: str = Field(default="Storefront Orders API")
    app_version: str = Field(default="1.0.0")
    app_description: str = Field(
        default="Order, payment and revenue lifecycle for the storefront backend"
    )
    debug: bool = Field(default=False)

    # Server settings
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    reload: bool = Field(default=True)

    # Database settings
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    database_name: str = Field(default="storefront_db")

    # MongoDB connection settings
    server_selection_timeout_ms: int = Field(default=30000, validation_alias="MONGODB_SERVER_SELECTION_TIMEOUT_MS")
    connect_timeout_ms: int = Field(default=30000, validation_alias="MONGODB_CONNECT_TIMEOUT_MS")
    socket_timeout_ms: int = Field(default=30000, validation_alias="MONGODB_SOCKET_TIMEOUT_MS")
    max_pool_size: int = Field(default=10, validation_alias="MONGODB_MAX_POOL_SIZE")
    min_pool_size: int = Field(default=1, validation_alias="MONGODB_MIN_POOL_SIZE")
    retry_writes: bool = Field(default=True, validation_alias="MONGODB_RETRY_WRITES")
    direct_connection: bool = Field(default=False, validation_alias="MONGODB_DIRECT_CONNECTION")

    # Logging settings
    log_level: str = Field(default="INFO")

    # API settings
    api_prefix: str = Field(default="/api")

    # Pagination defaults
    default_page_size: int = Field(default=10)
    max_page_size: int = Field(default=100)

    # Auth settings
    jwt_secret: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_minutes: int = Field(default=60 * 24 * 7)

    # Explicit admin provisioning
    admin_bootstrap_email: Optional[str] = Field(default=None)
    admin_bootstrap_name: str = Field(default="Administrator")

    # Razorpay
    razorpay_key_id: str = Field(default="")
    razorpay_key_secret: str = Field(default="")
    razorpay_webhook_secret: str = Field(default="")
    razorpay_base_url: str = Field(default="https://api.razorpay.com/v1")

    # Cashfree
    cashfree_app_id: str = Field(default="")
    cashfree_secret_key: str = Field(default="")
    cashfree_mode: str = Field(default="sandbox")
    cashfree_api_version: str = Field(default="2023-08-01")
    frontend_url: str = Field(default="http://localhost:5173")
    backend_url: str = Field(default="http://localhost:8000")

    # Outbound gateway calls
    gateway_timeout_seconds: float = Field(default=15.0)

    # Order identity
    order_number_prefix: str = Field(default="VB")
    tracking_number_prefix: str = Field(default="TRK")

    @property
    def cashfree_base_url(self) -> str:
        if self.cashfree_mode == "production":
            return "https://api.cashfree.com/pg"
        return "https://sandbox.cashfree.com/pg"

    @property
    def webhook_secret(self) -> str:
        """Webhook secret, falling back to the Razorpay key secret when unset."""
        return self.razorpay_webhook_secret or self.razorpay_key_secret


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
