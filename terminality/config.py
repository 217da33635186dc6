from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Trace meter defaults used when a system's security rules omit a value.
    DEFAULT_MAX_TRACE: float = 100.0
    DEFAULT_NERVOUS_THRESHOLD: float = 60.0
    DEFAULT_PANIC_THRESHOLD: float = 85.0
    # Systems without securityRules do not accumulate trace unless enabled.
    TRACE_WITHOUT_SECURITY_RULES: bool = False

    # Directories without a recorded children list list nothing when strict.
    STRICT_CHILD_LISTING: bool = False

    SNAPSHOT_VERSION: int = 1
    SNAPSHOT_STORY_KEY: str = "terminal"

    MAIL_SENDER: str = "ops@atlasnet"

    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    model_config = {"env_prefix": "TERMINALITY_"}


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
