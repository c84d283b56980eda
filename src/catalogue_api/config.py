"""Runtime configuration, read from the environment (and a local .env file)."""
import os
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from .locales import DEFAULT_LOCALE, SUPPORTED_LOCALES


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseModel):
    """Application settings.

    Built once at process start and passed explicitly to the database handle,
    the FastAPI app factory and the CLI commands.
    """

    database_url: str = "postgresql://postgres@localhost:5432/catalogue"
    echo_sql: bool = False

    locales: List[str] = Field(default_factory=lambda: list(SUPPORTED_LOCALES))
    default_locale: str = DEFAULT_LOCALE

    log_level: str = "INFO"
    log_json: bool = True

    # Identity provider (Supabase auth). Left empty, only static tokens work.
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    # token -> role, for service accounts and local development
    api_tokens: Dict[str, str] = Field(default_factory=dict)
    # empty means any authenticated user may use the admin routes
    admin_roles: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _default_locale_is_supported(self) -> "Settings":
        if self.default_locale not in self.locales:
            raise ValueError(
                f"Default locale '{self.default_locale}' is not one of {self.locales}"
            )
        return self


def _parse_tokens(value: Optional[str]) -> Dict[str, str]:
    """Parse ``token[:role],token[:role]`` pairs; role defaults to ``admin``."""
    tokens = {}
    for entry in _split_csv(value):
        token, _, role = entry.partition(":")
        tokens[token] = role or "admin"
    return tokens


def load_settings(**overrides) -> Settings:
    """Build settings from environment variables, then apply overrides."""
    load_dotenv()

    values = {
        "database_url": os.getenv("POSTGRES_URI", Settings.model_fields["database_url"].default),
        "echo_sql": os.getenv("CATALOGUE_ECHO_SQL", "false").lower() in ("1", "true", "yes"),
        "log_level": os.getenv("CATALOGUE_LOG_LEVEL", "INFO").upper(),
        "log_json": os.getenv("CATALOGUE_LOG_JSON", "true").lower() in ("1", "true", "yes"),
        "supabase_url": os.getenv("SUPABASE_URL"),
        "supabase_anon_key": os.getenv("SUPABASE_ANON_KEY"),
        "api_tokens": _parse_tokens(os.getenv("CATALOGUE_API_TOKENS")),
        "admin_roles": _split_csv(os.getenv("CATALOGUE_ADMIN_ROLES")),
    }

    locales = _split_csv(os.getenv("CATALOGUE_LOCALES"))
    if locales:
        values["locales"] = locales
    default_locale = os.getenv("CATALOGUE_DEFAULT_LOCALE")
    if default_locale:
        values["default_locale"] = default_locale.strip()

    values.update(overrides)
    return Settings(**values)


__all__ = ["Settings", "load_settings"]
