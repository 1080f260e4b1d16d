# formx/core/config.py
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "formx engine"
    LOG_LEVEL: str = "INFO"

    # Persisted form schema
    SCHEMA_VERSION: str = "1"
    DEFAULT_LOCALE: str = "en-US"

    # Runtime
    FORM_MODE: bool = True
    MAX_EVALUATION_PASSES: int = 10
    EXPRESSION_CACHE_SIZE: int = 512

    # Remote dataviews
    DATAVIEW_BASE_URL: str = ""
    HTTP_TIMEOUT_SECONDS: float = 10.0
    HTTP_RETRIES: int = 2
    DATA_CACHE_TTL_SECONDS: int = 3600

    class Config:
        env_prefix = "FORMX_"
        env_file = ".env"
        extra = "ignore"


settings = Settings()
