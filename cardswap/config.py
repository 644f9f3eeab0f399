from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "CardSwap"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/cardswap"

    shipping_api_url: str = "https://api.goshippo.com"
    shipping_api_key: str = ""
    shipping_timeout_seconds: float = 30.0

    # Quotes are only purchasable while the rate session that produced them is alive
    rate_session_ttl_seconds: int = 900

    # Carrier service-level token -> generic tier.
    # Quotes whose token is not listed here are never offered.
    allowed_service_levels: dict[str, str] = {
        "usps_ground_advantage": "economy",
        "usps_priority": "priority",
        "usps_priority_express": "express",
    }


settings = Settings()
