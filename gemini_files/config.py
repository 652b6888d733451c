import os
from pathlib import Path
from typing import Annotated, Any, Mapping, Optional, Tuple

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict, SettingsError

from gemini_files.errors import ConfigError

API_KEY_ENV_VAR = "GEMINI_API_KEY"
ENV_PREFIX = "GEMINI_FILES_"

API_ROOT_URL = "https://generativelanguage.googleapis.com/v1beta"
UPLOAD_ROOT_URL = "https://generativelanguage.googleapis.com/upload/v1beta"

DEFAULT_MODEL = "gemini-2.0-flash-lite"
DEFAULT_MIME_TYPE = "application/octet-stream"
DEFAULT_MAX_OUTPUT_TOKENS = 8192

DEFAULT_PAGE_SIZE = 100
DEFAULT_PAGE_PAUSE = 0.1
DEFAULT_DELETE_DELAY = 0.5
DEFAULT_VERIFY_DELAYS: Tuple[float, ...] = (5, 10, 20, 60)
DEFAULT_WORKERS = 1

# Fixed sampling parameters sent with every generation request.
SAMPLING_PARAMS = {"temperature": 0.5, "topP": 0.95, "topK": 40}


class Settings(BaseSettings):
    """Runtime knobs, each overridable with a GEMINI_FILES_* variable."""

    api_root: str = Field(default=API_ROOT_URL)
    upload_root: str = Field(default=UPLOAD_ROOT_URL)
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    default_mime_type: str = Field(default=DEFAULT_MIME_TYPE)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    page_pause: float = Field(default=DEFAULT_PAGE_PAUSE, ge=0)
    delete_delay: float = Field(default=DEFAULT_DELETE_DELAY, ge=0)
    verify_delays: Annotated[Tuple[Annotated[float, Field(ge=0)], ...], NoDecode] = Field(
        default=DEFAULT_VERIFY_DELAYS
    )
    workers: int = Field(default=DEFAULT_WORKERS, ge=1)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        frozen=True,
    )

    @field_validator("api_root", "upload_root", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("model", mode="before")
    @classmethod
    def strip_model(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("verify_delays", mode="before")
    @classmethod
    def split_delays(cls, v: Any) -> Any:
        # "5, 10,20" -> ["5", "10", "20"]
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from defaults plus GEMINI_FILES_* overrides.
    When `env` is given it is the only override source; the process
    environment is ignored.
    """
    try:
        if env is None:
            return Settings()
        overrides = {name: info.default for name, info in Settings.model_fields.items()}
        for key, value in env.items():
            field = key[len(ENV_PREFIX):].lower()
            if key.startswith(ENV_PREFIX) and value and field in Settings.model_fields:
                overrides[field] = value
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(_describe_validation_error(e)) from None
    except SettingsError as e:
        raise ConfigError(f"Invalid {ENV_PREFIX}* setting: {e}") from None


def resolve_api_key(keyfile: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> str:
    """
    Return the API key. Priority: --keyfile > GEMINI_API_KEY.
    All whitespace is stripped from the key.
    """
    env = os.environ if env is None else env
    if keyfile is not None:
        if not keyfile.is_file():
            raise ConfigError(f"Keyfile not found: {keyfile}")
        try:
            content = keyfile.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read keyfile {keyfile}: {e}") from None
        key = "".join(content.split())
        if not key:
            raise ConfigError(f"Keyfile is empty: {keyfile}")
        return key

    raw = env.get(API_KEY_ENV_VAR)
    if raw is None:
        raise ConfigError(f"API key not found. Use --keyfile or set {API_KEY_ENV_VAR}.")
    key = "".join(raw.split())
    if not key:
        raise ConfigError(f"API key is empty ({API_KEY_ENV_VAR}).")
    return key


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        field = str(item["loc"][0]) if item.get("loc") else "?"
        problems.append(f"{ENV_PREFIX}{field.upper()}: {item['msg']} (got {item.get('input')!r})")
    return "Invalid settings: " + "; ".join(problems)
