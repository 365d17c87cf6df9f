from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings
from typing import Optional, Any


class Settings(BaseSettings):
    # Database
    DB_USER: str = "user"
    DB_PASSWORD: str = "password"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "explorer"
    DATABASE_URL: Optional[str] = Field(default=None, validate_default=True)

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> Any:
        if isinstance(v, str):
            return v
        values = info.data
        return (
            f"postgresql+psycopg2://{values.get('DB_USER')}:{values.get('DB_PASSWORD')}@"
            f"{values.get('DB_HOST')}:{values.get('DB_PORT')}/{values.get('DB_NAME')}"
        )

    # Performance
    DB_POOL_SIZE: int = 5  # must cover FETCHER_MAX_CONCURRENCY + the enumerator
    QUERY_TIMEOUT: int = 30

    # Buffered task (batch engine) defaults
    FETCHER_FLUSH_INTERVAL: float = 3.0  # seconds
    FETCHER_MAX_BATCH_SIZE: int = 50
    FETCHER_MAX_CONCURRENCY: int = 2
    FETCHER_TASK_SUPERVISOR: str = "InternalTransactionsBlockNumber.TaskSupervisor"
    FETCHER_STREAM_CHUNK_SIZE: int = 500

    # Error handling
    MAX_RETRIES: Optional[int] = None  # None retries failed batches forever

    # Monitoring
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
