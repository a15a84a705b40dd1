"""
Builder configuration.

Settings are read from the environment (and an optional .env file):
- STEP_STORE_BASE_URL -> root of the validation REST API
- STEP_STORE_TOKEN    -> bearer token sent with every request (optional)
- STEP_STORE_TIMEOUT  -> per-request timeout in seconds
- LOG_LEVEL           -> logging level name
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class StoreSettings(BaseModel):
    """Remote step store connection settings"""

    base_url: str = os.getenv('STEP_STORE_BASE_URL', 'http://localhost:8000/api')
    token: Optional[str] = os.getenv('STEP_STORE_TOKEN')
    timeout_seconds: float = float(os.getenv('STEP_STORE_TIMEOUT', '20'))


class Settings(BaseModel):
    """Application Settings"""

    app_name: str = os.getenv('APP_NAME', 'workflow-builder')
    log_level: str = os.getenv('LOG_LEVEL', 'INFO')

    store: StoreSettings = StoreSettings()


settings = Settings()


def get_settings() -> Settings:
    return settings
