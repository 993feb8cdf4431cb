from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "VibeScan API"
    DEBUG: bool = False

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "vibescan"
    POSTGRES_PASSWORD: str = "vibescan_secret"
    POSTGRES_DB: str = "vibescan"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # Collection
    COLLECTION_SLUG: str = "good-vibes-club"
    CONTRACT_ADDRESS: str = "0xb8ea78fcacef50d41375e44e6814ebba36bb33c4"
    STRATEGY_TOKEN_ADDRESS: str = "0xd0cc2b0efb168bfe1f94a948d8df70fa10257196"
    COLLECTION_DEPLOYMENT_BLOCK: int = 18000000
    STRATEGY_DEPLOYMENT_BLOCK: int = 18000000

    # Provider endpoints and keys
    ETHERSCAN_API_KEY: str = ""
    ETHERSCAN_BASE_URL: str = "https://api.etherscan.io/v2/api"
    ETHERSCAN_CHAIN_ID: int = 1
    OPENSEA_API_KEY: str = ""
    OPENSEA_BASE_URL: str = "https://api.opensea.io/api/v2"
    COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"

    # Rate limiting (calls per second, before the safety margin)
    ETHERSCAN_RATE_LIMIT: float = 3.0
    OPENSEA_RATE_LIMIT: float = 4.0
    COINGECKO_RATE_LIMIT: float = 0.5
    RATE_LIMIT_SAFETY_MARGIN: float = 0.15

    # Outbound HTTP
    HTTP_TIMEOUT_SEC: float = 5.0
    HTTP_MAX_RETRIES: int = 3
    HTTP_BACKOFF_BASE_SEC: float = 1.0
    HTTP_BACKOFF_MAX_SEC: float = 3.0

    # Chain reader
    LOG_BATCH_SIZE_BLOCKS: int = 10000
    LOG_BATCH_DELAY_SEC: float = 0.35
    BLOCKS_PER_DAY: int = 7200

    # Price enrichment
    ENRICHMENT_MAX_PAGES: int = 250
    ENRICHMENT_PAGE_SIZE: int = 200
    ENRICHMENT_PAGE_DELAY_SEC: float = 0.15
    PRICE_CACHE_MEMORY_SIZE: int = 1000

    # Cache
    CACHE_BACKEND: str = "postgres"  # memory | postgres | redis
    CACHE_STALE_GRACE_SEC: int = 7 * 24 * 3600
    CACHE_TTL_COLLECTION_STATS: int = 7200
    CACHE_TTL_RECENT_EVENTS: int = 900
    CACHE_TTL_PRICE_HISTORY: int = 21600
    CACHE_TTL_PRICE_HISTORY_SHORT: int = 1800  # windows of 7 days or less
    CACHE_TTL_MARKET_INDICATORS: int = 300
    CACHE_TTL_TRADER_ANALYSIS: int = 600
    CACHE_TTL_MARKET_DEPTH: int = 120
    CACHE_TTL_STRATEGY: int = 300
    CACHE_TTL_HOLDERS: int = 21600

    # Endpoint handlers
    REQUEST_TIMEOUT_SEC: float = 25.0

    # Background jobs
    ENABLE_BACKGROUND_SYNC: bool = True
    SYNC_INTERVAL_SEC: int = 900
    CACHE_CLEANUP_INTERVAL_SEC: int = 3600

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
