import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from langredirect.exceptions import ConfigurationError
from langredirect.i18n.currency import CURRENCY_BY_COUNTRY
from langredirect.routing.matcher import PlaceholderRule, RouteRule, compile_route

load_dotenv()

DEFAULT_SUPPORTED_LANGUAGES = ["de", "es", "fr", "de", "pt", "it", "nl", "ro", "hu", "lt", "pl", "en"]

DEFAULT_MEDIA_PATH_PATTERN = (
    r"\.(jpe?g|png|gif|webp|avif|svg|ico|bmp|tiff?|mp4|webm|mov|avi|mkv|m4v|ogv|mp3|ogg|wav|flac)$"
)
DEFAULT_ADMIN_PATH_PATTERN = r"^/(wp-admin|wp-login\.php|wp-json|admin)(/|$)"


class PlaceholderSettings(BaseModel):
    regex: str | None = None


class RoutePatternSettings(BaseModel):
    pattern: str
    rules: dict[str, PlaceholderSettings] = {}


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Language Redirector"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Origin settings
    origin_url: str = "http://localhost:8080"
    origin_timeout: float = 10.0
    preserve_host: bool = True

    # Paths under this prefix are served by the redirector itself
    internal_prefix: str = "/__edge"

    # Cache settings
    redis_url: str | None = None
    cache_enabled: bool = True
    cache_ttl: int = 3600
    cache_prefix: str = "langredirect:"
    cache_max_entries: int = 10_000

    # Language redirection
    default_language: str = "en"
    supported_languages: list[str] = DEFAULT_SUPPORTED_LANGUAGES
    listen_on_paths: list[str | RoutePatternSettings] = ["/*"]
    listen_on_all_paths: bool = False
    always_on_not_found: bool = False
    # DANGEROUS: handles /<language>/... paths again, which can loop redirects
    listen_on_prefixed_paths: bool = False
    media_path_pattern: str = DEFAULT_MEDIA_PATH_PATTERN
    admin_path_pattern: str = DEFAULT_ADMIN_PATH_PATTERN
    redirect_max_age: int = 3600

    # Currency
    currency_enabled: bool = False
    default_currency: str = "EUR"
    currency_cookie_name: str = "woocs_curr"
    currency_cookie_max_age: int = 60 * 60 * 24 * 30
    country_header: str = "CF-IPCountry"
    currency_overrides: dict[str, str] = {}
    cache_currency_passthrough: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("internal_prefix")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return "/" + value.strip("/")

    def to_redirector_config(self) -> "RedirectorConfig":
        """Build the immutable runtime configuration.

        Raises:
            ConfigurationError: a route pattern or path regex is malformed.
        """
        return RedirectorConfig.from_settings(self)


@dataclass(frozen=True)
class CurrencyConfig:
    default_currency: str
    cookie_name: str
    cookie_max_age: int
    country_header: str
    mapping: Mapping[str, str]
    cache_passthrough: bool


@dataclass(frozen=True)
class RedirectorConfig:
    """Runtime configuration shared read-only by every request."""

    default_language: str
    supported_languages: tuple[str, ...]
    routes: tuple[RouteRule, ...]
    listen_on_all_paths: bool = False
    always_on_not_found: bool = False
    listen_on_prefixed_paths: bool = False
    media_path_pattern: re.Pattern[str] = re.compile(DEFAULT_MEDIA_PATH_PATTERN, re.IGNORECASE)
    admin_path_pattern: re.Pattern[str] = re.compile(DEFAULT_ADMIN_PATH_PATTERN, re.IGNORECASE)
    internal_prefix: str = "/__edge"
    redirect_max_age: int = 3600
    cache_ttl: int = 3600
    cache_prefix: str = "langredirect:"
    currency: CurrencyConfig | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedirectorConfig":
        supported = tuple(dict.fromkeys(language.strip().lower() for language in settings.supported_languages))
        if not supported:
            raise ConfigurationError("At least one supported language is required", setting="supported_languages")

        routes = []
        for entry in settings.listen_on_paths:
            if isinstance(entry, str):
                routes.append(compile_route(entry))
            else:
                rules = {name: PlaceholderRule(regex=rule.regex) for name, rule in entry.rules.items()}
                routes.append(compile_route(entry.pattern, rules))

        currency = None
        if settings.currency_enabled:
            mapping = dict(CURRENCY_BY_COUNTRY)
            mapping.update({country.upper(): code.upper() for country, code in settings.currency_overrides.items()})
            currency = CurrencyConfig(
                default_currency=settings.default_currency.upper(),
                cookie_name=settings.currency_cookie_name,
                cookie_max_age=settings.currency_cookie_max_age,
                country_header=settings.country_header,
                mapping=MappingProxyType(mapping),
                cache_passthrough=settings.cache_currency_passthrough,
            )

        return cls(
            default_language=settings.default_language.strip().lower(),
            supported_languages=supported,
            routes=tuple(routes),
            listen_on_all_paths=settings.listen_on_all_paths,
            always_on_not_found=settings.always_on_not_found,
            listen_on_prefixed_paths=settings.listen_on_prefixed_paths,
            media_path_pattern=_compile_path_regex(settings.media_path_pattern, "media_path_pattern"),
            admin_path_pattern=_compile_path_regex(settings.admin_path_pattern, "admin_path_pattern"),
            internal_prefix=settings.internal_prefix,
            redirect_max_age=settings.redirect_max_age,
            cache_ttl=settings.cache_ttl,
            cache_prefix=settings.cache_prefix,
            currency=currency,
        )


def _compile_path_regex(pattern: str, setting: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise ConfigurationError(f"Invalid regular expression for {setting}: {e}", setting=setting) from e


settings = Settings()
