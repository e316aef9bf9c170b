from pydantic_settings import BaseSettings, SettingsConfigDict


class ENV(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False

    # DATABASE_URL wins over the POSTGRES_* parts when set
    DATABASE_URL: str | None = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_NAME: str = "storefront"
    POSTGRES_USER: str = "storefront"
    POSTGRES_PASS: str = "storefront"

    redis_url: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    CELERY_TIMEZONE: str = "Asia/Tokyo"

    s3_endpoint_url: str = "https://storage.yandexcloud.net"
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_bucket: str = "storefront"
    s3_public_base: str | None = None

    admin_api_token: str = ""
    visitor_token_secret: str = "change-me"

    TRANSACTION_MAX_ATTEMPTS: int = 5

    EXCHANGE_PRIMARY_URL: str = "https://api.exchangerate.host/latest?base=JPY&symbols=IDR"
    EXCHANGE_BACKUP_URL: str = "https://open.er-api.com/v6/latest/JPY"
    EXCHANGE_RATE_TTL: int = 3600
    EXCHANGE_FALLBACK_RATE: float = 100.0


class Settings():
    def __init__(self):
        self.env = ENV()

    def generate_postgres_url(self) -> str:
        if self.env.DATABASE_URL:
            return self.env.DATABASE_URL
        return f"postgresql+asyncpg://{self.env.POSTGRES_USER}:{self.env.POSTGRES_PASS}@{self.env.POSTGRES_HOST}:{self.env.POSTGRES_PORT}/{self.env.POSTGRES_NAME}"

    def public_storage_base(self) -> str:
        if self.env.s3_public_base:
            return self.env.s3_public_base.rstrip("/")
        return f"{self.env.s3_endpoint_url.rstrip('/')}/{self.env.s3_bucket}"
