"""Application settings and configuration.

This module defines all configuration options for the BeeFunded backend.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ContractAddresses(BaseModel):
    """Deployed contract addresses on a single chain."""

    bee_funded_core: str = Field(alias="BeeFundedCore")
    donation_manager: str = Field(alias="DonationManager")
    subscription_manager: str = Field(alias="SubscriptionManager")
    automation_upkeep: str = Field(alias="AutomationUpkeep")

    model_config = ConfigDict(populate_by_name=True)


class ChainConfig(BaseModel):
    """Connection details for one configured chain."""

    chain_id: int
    chain_name: str
    ws_url: str
    rpc_url: str
    explorer_url: str
    contracts: ContractAddresses


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="BeeFunded API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./beefunded.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis holds nonces, the refresh allow-set and the access denylist
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # JWT session credentials
    jwt_secret: str = Field(alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_ttl_seconds: int = Field(default=60 * 15, alias="ACCESS_TOKEN_TTL_SECONDS")
    refresh_token_ttl_seconds: int = Field(
        default=60 * 60 * 24 * 7,
        alias="REFRESH_TOKEN_TTL_SECONDS",
    )
    refresh_rotation_threshold_seconds: int = Field(
        default=60 * 60 * 24,
        alias="REFRESH_ROTATION_THRESHOLD_SECONDS",
    )
    cookie_secure: bool = Field(default=True, alias="COOKIE_SECURE")

    # Sign-In-With-Ethereum
    nonce_ttl_seconds: int = Field(default=300, alias="NONCE_TTL_SECONDS")
    siwe_domain: str | None = Field(default=None, alias="SIWE_DOMAIN")

    # Chain listeners
    chains: list[ChainConfig] = Field(default_factory=list, alias="CHAINS")
    chain_listener_enabled: bool = Field(default=False, alias="CHAIN_LISTENER_ENABLED")
    chain_reconnect_initial_delay: float = Field(
        default=1.0,
        alias="CHAIN_RECONNECT_INITIAL_DELAY",
    )
    chain_reconnect_max_delay: float = Field(default=60.0, alias="CHAIN_RECONNECT_MAX_DELAY")

    # Notifications
    sse_keepalive_seconds: float = Field(default=15.0, alias="SSE_KEEPALIVE_SECONDS")
    notification_page_max_limit: int = Field(default=20, alias="NOTIFICATION_PAGE_MAX_LIMIT")
    mail_from: str = Field(default="no-reply@beefunded.local", alias="MAIL_FROM")
    donation_pool_base_path: str = Field(default="/donation-pool", alias="DONATION_POOL_BASE_PATH")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["http://localhost:5173"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "PATCH", "DELETE"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["Content-Type", "Authorization"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    def get_chain(self, chain_id: int) -> ChainConfig:
        """Return the configured chain with ``chain_id``.

        Raises:
            KeyError: If the chain is not configured.
        """
        for chain in self.chains:
            if chain.chain_id == chain_id:
                return chain
        raise KeyError(f"Chain {chain_id} not found")


settings = Settings()  # type: ignore[call-arg]
