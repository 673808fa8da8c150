from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Roll-up fan-in: this many unparented siblings collapse into one summary
    AGGREGATION_FACTOR: int = Field(5, ge=2)
    SNIPPET_LENGTH: int = Field(10, ge=1)
    SUMMARY_MAX_LENGTH: int = Field(100, ge=1)

    NODE_STORE: str = Field("memory", pattern="^(memory|sql)$")
    DATABASE_URL: str = "sqlite+aiosqlite:///./logtree.db"

    SUBSCRIBER_QUEUE_SIZE: int = Field(100, ge=1)

    CORS_ORIGINS: str = "*"
    HOST: str = "0.0.0.0"
    PORT: int = 52381
    LOG_LEVEL: str = Field("INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    model_config = {"env_file": ".env", "extra": "ignore"}

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _fix_database_url(self):
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if self.DATABASE_URL.startswith("postgresql://"):
            self.DATABASE_URL = self.DATABASE_URL.replace(
                "postgresql://", "postgresql+asyncpg://", 1,
            )
        return self


settings = Settings()
