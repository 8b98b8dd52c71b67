from pydantic_settings import BaseSettings
from typing import Optional
from urllib.parse import quote_plus

class Settings(BaseSettings):
    ENV: str = "local"

    # Postgres is used when postgres_db is set, sqlite otherwise
    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_db: Optional[str] = None
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    sqlite_path: str = "./bookstore.db"

    # pricing
    free_shipping_threshold: float = 500000
    flat_shipping_fee: float = 25000

    # local cart storage
    cart_storage_path: str = "./cart_storage.json"
    cart_storage_key: str = "digibook_cart"

    # remote cart mirror
    cart_sync_max_retries: int = 3
    cart_sync_backoff_base: float = 0.5
    default_merge_strategy: str = "remote_wins"

    stock_check_timeout: float = 5.0

    # shopper sessions held in memory by the API
    session_idle_ttl: float = 1800
    max_sessions: int = 10000

    @property
    def database_url(self):
        if not self.postgres_db:
            return f"sqlite:///{self.sqlite_path}"

        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"

settings = Settings()
