"""Configuration management using Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Morpho API
    morpho_graphql_url: str = Field(
        default="https://api.morpho.org/graphql",
        description="Morpho GraphQL API endpoint",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="HTTP timeout for a single GraphQL request",
    )
    max_concurrent_requests: int = Field(
        default=5,
        description="Maximum number of in-flight GraphQL requests",
    )
    request_delay_ms: int = Field(
        default=0,
        description="Minimum delay between requests in milliseconds",
    )

    # Vault
    default_chain_id: int = Field(
        default=1,
        description="Chain id used when none is given (1 = Ethereum mainnet)",
    )
    default_vault_address: str = Field(
        default="0xdd0f28e19c1780eb6396170735d45153d261490d",
        description="Vault address used when none is given",
    )

    # Risk data
    positions_page_size: int = Field(
        default=200,
        description="Page size for market position queries",
    )
    liquidations_page_size: int = Field(
        default=100,
        description="Page size for liquidation transaction queries",
    )
    collateral_at_risk_points: int = Field(
        default=24,
        description="Number of stress points requested per collateral-at-risk curve",
    )
    risk_lookback_days: int = Field(
        default=90,
        description="Liquidation and market-supply lookback, independent of the chart range",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )


# Global settings instance
settings = Settings()
