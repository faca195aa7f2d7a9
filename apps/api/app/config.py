from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ALLOWED_APP_MODES = {"demo", "pilot", "production"}


class Settings(BaseSettings):
    app_name: str = "Agricart Orders Service"

    database_url: str = Field(
        default="sqlite+pysqlite:///./test.db",
        validation_alias="AGRICART_DATABASE_URL",
    )
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    testing: bool = Field(default=False, validation_alias="AGRICART_TESTING")
    app_mode: str = Field(default="pilot", validation_alias="AGRICART_APP_MODE")
    auto_create_schema: bool = Field(default=False, validation_alias="AGRICART_AUTO_CREATE_SCHEMA")

    # Tier 1: other active orders within this many seconds either side of a new order.
    sibling_window_s: int = Field(default=5 * 60, validation_alias="AGRICART_SIBLING_WINDOW_S")
    # Tier 2: a new order within this many seconds after a merged & approved order.
    follow_up_window_s: int = Field(
        default=10 * 60, validation_alias="AGRICART_FOLLOW_UP_WINDOW_S"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"AGRICART_APP_MODE must be one of: {allowed}")
        return mode

    @field_validator("sibling_window_s", "follow_up_window_s")
    @classmethod
    def validate_positive_window(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("detection windows must be positive")
        return value

    @model_validator(mode="after")
    def validate_window_order(self) -> "Settings":
        if self.follow_up_window_s < self.sibling_window_s:
            raise ValueError(
                "AGRICART_FOLLOW_UP_WINDOW_S must not be shorter than AGRICART_SIBLING_WINDOW_S"
            )
        return self


settings = Settings()


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime uses test-only defaults."""
    if not settings.testing and _is_sqlite_url(settings.database_url):
        raise RuntimeError("AGRICART_DATABASE_URL must use postgres when AGRICART_TESTING is false")
    if is_production_mode() and settings.auto_create_schema:
        raise RuntimeError("AGRICART_AUTO_CREATE_SCHEMA must be disabled in production mode")


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
