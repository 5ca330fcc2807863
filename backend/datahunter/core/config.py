import json
from functools import lru_cache
from typing import Annotated, List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central settings object.
    Render will provide env vars; locally you can use backend/.env.
    Loaded once (see get_settings) and handed to the pipeline constructors.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", frozen=True)

    # API keys
    GEMINI_API_KEY: str = ""
    SERPAPI_API_KEY: str = Field(
        default="",
        validation_alias=AliasChoices("SERPAPI_API_KEY", "SERPAPI_KEY"),
    )

    # Model ladders, most capable first
    GEMINI_MODELS: Annotated[List[str], NoDecode] = [
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
        "gemini-1.5-flash",
    ]
    GEMINI_GROUNDED_MODELS: Annotated[List[str], NoDecode] = [
        "gemini-2.5-flash",
        "gemini-2.0-flash",
    ]
    GEMINI_TIMEOUT_SECONDS: float = 30
    GEMINI_MAX_RETRIES: int = 0
    GEMINI_MAX_BACKOFF_SECONDS: float = 20

    # Evidence gathering
    SERPAPI_TIMEOUT_SECONDS: float = 30
    PAGE_FETCH_TIMEOUT_SECONDS: float = 10
    IMAGE_CANDIDATE_LIMIT: int = 5
    IMAGE_MAX_BYTES: int = 5 * 1024 * 1024
    PAGE_TEXT_LIMIT: int = 4000
    JSON_LD_BLOCK_LIMIT: int = 2000
    RESPONSE_BODY_LIMIT: int = 400

    # Pacing hint for batch callers (one identifier at a time)
    REQUEST_COOLDOWN_SECONDS: float = 10

    # "evidence" (search + scrape + JSON) or "grounded" (model searches itself)
    DEFAULT_VARIANT: str = "evidence"

    LOG_LEVEL: str = "INFO"

    # Versioning
    APP_VERSION: str = "0.1.0"
    BUILD_ID: str = "dev"

    @field_validator("GEMINI_MODELS", "GEMINI_GROUNDED_MODELS", mode="before")
    @classmethod
    def _split_models(cls, v):
        # Accept "a,b,c" or a JSON list from the environment
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                return [str(m).strip() for m in json.loads(s) if str(m).strip()]
            return [m.strip() for m in s.split(",") if m.strip()]
        return v

    @field_validator("GEMINI_API_KEY", "SERPAPI_API_KEY", mode="before")
    @classmethod
    def _strip_key(cls, v):
        return (v or "").strip()

    @field_validator("DEFAULT_VARIANT")
    @classmethod
    def _check_variant(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("evidence", "grounded"):
            raise ValueError("DEFAULT_VARIANT must be 'evidence' or 'grounded'")
        return v

    @property
    def has_gemini_key(self) -> bool:
        return bool(self.GEMINI_API_KEY)

    @property
    def has_serpapi_key(self) -> bool:
        return bool(self.SERPAPI_API_KEY)


@lru_cache
def get_settings() -> Settings:
    return Settings()
