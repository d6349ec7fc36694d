import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, ValidationError


class Settings(BaseModel):
    database_url: str = Field(alias="DATABASE_URL")
    database_name: str = Field(default="carhub", alias="DATABASE_NAME")
    # Identity provider: "firebase" (service account JSON) or "supabase"
    identity_provider: str = Field(default="firebase", alias="IDENTITY_PROVIDER")
    firebase_service_account: Optional[str] = Field(default=None, alias="FIREBASE_SERVICE_ACCOUNT")
    supabase_url: Optional[HttpUrl] = Field(default=None, alias="SUPABASE_URL")
    supabase_key: Optional[str] = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    env: str = Field(default="local", alias="APP_ENV")
    port: int = Field(default=8000, alias="PORT")

    # Mongo pool and timeouts
    max_pool_size: int = Field(default=5, alias="MONGO_MAX_POOL_SIZE")
    min_pool_size: int = Field(default=1, alias="MONGO_MIN_POOL_SIZE")
    max_idle_time_ms: int = Field(default=30000, alias="MONGO_MAX_IDLE_TIME_MS")
    server_selection_timeout_ms: int = Field(default=30000, alias="MONGO_SERVER_SELECTION_TIMEOUT_MS")
    socket_timeout_ms: int = Field(default=45000, alias="MONGO_SOCKET_TIMEOUT_MS")


def _load_dotenv():
    # Load from the project root if present, otherwise rely on environment variables.
    root_env = Path(__file__).resolve().parent / ".env"
    if root_env.exists():
        load_dotenv(root_env)
    else:
        load_dotenv()


@lru_cache()
def get_settings() -> Settings:
    _load_dotenv()
    try:
        return Settings(**os.environ)
    except ValidationError as exc:
        missing = [e["loc"][0] for e in exc.errors() if e["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid configuration: {exc}") from exc
        detail = f"Missing required environment variables: {', '.join(missing)}"
        raise RuntimeError(detail) from exc
