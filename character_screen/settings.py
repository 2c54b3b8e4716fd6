from typing import Optional

from pydantic_settings import BaseSettings

from .state import StalePolicy


class Settings(BaseSettings):
    # Upstream (override via env)
    API_BASE_URL: str = "https://rickandmortyapi.com/api"
    REQUEST_TIMEOUT: Optional[float] = None  # None -> httpx default applies

    # Screen
    STALE_RESULT_POLICY: StalePolicy = "latest_issued"
    INITIAL_FETCH_ON_STARTUP: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
