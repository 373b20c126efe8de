from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional
from urllib.parse import quote_plus


DATABASE_NAME = "pms"


class Settings(BaseSettings):
    # Core
    environment: str = Field(default="dev")
    app_name: str = Field(default="PMS API")
    base_path: str = Field(default="", alias="BASE_PATH")
    client_url: str = Field(default="*", alias="CLIENT_URL")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default=f"sqlite:///./var/{DATABASE_NAME}.db",
        alias="DATABASE_URL",
        description=f"e.g., postgresql+psycopg2://host:5432/{DATABASE_NAME}",
    )
    database_username: Optional[str] = Field(default=None, alias="DATABASE_USERNAME")
    database_password: Optional[str] = Field(default=None, alias="DATABASE_PASSWORD")
    auto_create_db: bool = Field(default=True, alias="AUTO_CREATE_DB")
    database_pool_size: int = Field(default=5, alias="DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(default=10, alias="DATABASE_MAX_OVERFLOW")

    # JWT
    jwt_secret: str = Field(default="change-me", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256")
    jwt_ttl_seconds: int = Field(default=60 * 30, alias="JWT_TTL")  # 30 minutes
    refresh_ttl_seconds: int = Field(default=60 * 60 * 24 * 3, alias="REFRESH_TTL")  # 3d

    # Storage
    files_dir: str = Field(default="./files", alias="FILES_DIR")

    # Progress curve day bucketing; empty means the server's local offset
    progress_timezone: Optional[str] = Field(default=None, alias="PROGRESS_TIMEZONE")

    # Rate limit
    rate_limit: str = Field(default="100/minute", alias="RATE_LIMIT")

    # Logging; LOG_FORMAT is "json" or "console"
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def resolved_database_url(self) -> str:
        """Database URL with DATABASE_USERNAME/DATABASE_PASSWORD injected when both are set."""
        url = self.database_url
        if not (self.database_username and self.database_password) or "://" not in url:
            return url
        scheme, rest = url.split("://", 1)
        if "@" in rest.split("/", 1)[0]:
            return url
        creds = f"{quote_plus(self.database_username)}:{quote_plus(self.database_password)}"
        return f"{scheme}://{creds}@{rest}"


settings = Settings()
