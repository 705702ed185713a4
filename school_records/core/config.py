from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(7 * 24 * 60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Upserts per transaction when committing bulk marks/monitoring imports.
    bulk_chunk_size: int = Field(500, alias="BULK_CHUNK_SIZE")
    default_graduate_at: int = Field(11, alias="DEFAULT_GRADUATE_AT")
    student_options_limit: int = Field(2000, alias="STUDENT_OPTIONS_LIMIT")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    # Create missing tables at startup. Disable when the schema is managed externally.
    auto_create_tables: bool = Field(True, alias="AUTO_CREATE_TABLES")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
