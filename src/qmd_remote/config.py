"""Configuration for qmd-remote.

Two layers live here:

- QmdRemoteSettings: environment driven settings (QMD_* variables), cached
  through get_settings().
- ConfigStore: the persisted JSON document at <config_dir>/config.json that
  is shared with the rest of qmd. This module owns only the "remote" and
  "qmdDir" keys and always does read-merge-write so other keys survive.

A missing or corrupt config file is treated as "no config", never as an error.
"""

import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from qmd_remote.errors import ConfigCorruptError

DEFAULT_CONFIG_DIR = Path.home() / ".cache" / "qmd"
CONFIG_FILE_NAME = "config.json"

REMOTE_KEY = "remote"
QMD_DIR_KEY = "qmdDir"


class RemoteLLMConfig(BaseModel):
    """Base URLs of the remote llama.cpp style servers.

    Any URL may be absent; the matching capability then degrades to its
    fallback instead of failing.
    """

    model_config = ConfigDict(populate_by_name=True)

    embed_url: Optional[str] = Field(
        default=None, alias="embedUrl", description="Embedding server, e.g. http://host:8081"
    )
    rerank_url: Optional[str] = Field(
        default=None, alias="rerankUrl", description="Rerank server, e.g. http://host:8082"
    )
    generate_url: Optional[str] = Field(
        default=None, alias="generateUrl", description="Completion server, e.g. http://host:8083"
    )

    @field_validator("embed_url", "rerank_url", "generate_url", mode="before")
    @classmethod
    def normalize_url(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip().rstrip("/")
        return value or None

    @property
    def is_configured(self) -> bool:
        """Whether any remote capability has a URL."""
        return bool(self.embed_url or self.rerank_url or self.generate_url)

    def merged_over(self, fallback: "RemoteLLMConfig") -> "RemoteLLMConfig":
        """Return a config where our values win and fallback fills the gaps."""
        return RemoteLLMConfig(
            embed_url=self.embed_url or fallback.embed_url,
            rerank_url=self.rerank_url or fallback.rerank_url,
            generate_url=self.generate_url or fallback.generate_url,
        )

    def to_document(self) -> dict[str, str]:
        """Serialize using the camelCase keys of the shared config file."""
        return self.model_dump(by_alias=True, exclude_none=True)


class QmdRemoteSettings(BaseSettings):
    """Settings loaded from QMD_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="QMD_", case_sensitive=False, extra="ignore")

    config_dir: Path = Field(
        default=DEFAULT_CONFIG_DIR, description="Directory holding the shared config.json"
    )

    # Explicit endpoint overrides; persisted config fills whatever is unset
    embed_url: Optional[str] = Field(default=None, description="Embedding server URL")
    rerank_url: Optional[str] = Field(default=None, description="Rerank server URL")
    generate_url: Optional[str] = Field(default=None, description="Completion server URL")

    connect_timeout: float = Field(default=10.0, description="Seconds to establish a connection")
    request_timeout: float = Field(
        default=30.0, description="Seconds for read/write/pool phases of a request"
    )

    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    def remote_overrides(self) -> RemoteLLMConfig:
        return RemoteLLMConfig(
            embed_url=self.embed_url,
            rerank_url=self.rerank_url,
            generate_url=self.generate_url,
        )


_settings: Optional[QmdRemoteSettings] = None


def get_settings() -> QmdRemoteSettings:
    """Get the cached settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = QmdRemoteSettings()
    return _settings


def reload_settings() -> QmdRemoteSettings:
    """Drop the cached settings and load them again from the environment."""
    global _settings
    _settings = None
    return get_settings()


def init_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure loguru sinks for a CLI entrypoint.

    Library code only logs; sinks are configured once by whoever owns the
    process.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    logger.remove()
    logger.add(sys.stderr, level=level, format="<level>{level: <8}</level> | {message}")
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB", retention="7 days")


class ConfigStore:
    """Read and write this package's keys in the shared qmd config file."""

    def __init__(self, config_dir: Optional[Path | str] = None) -> None:
        if config_dir is None:
            config_dir = QmdRemoteSettings().config_dir
        self.config_dir = Path(config_dir).expanduser()
        self.config_file = self.config_dir / CONFIG_FILE_NAME

    # --- document helpers ---

    def _parse_document(self, raw: bytes) -> dict[str, Any]:
        try:
            data = json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            raise ConfigCorruptError(f"Invalid JSON in {self.config_file}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigCorruptError(f"Expected a JSON object in {self.config_file}")
        return data

    def _read_document(self) -> dict[str, Any]:
        """Read the whole document, treating missing or corrupt files as empty."""
        if not self.config_file.exists():
            return {}
        try:
            return self._parse_document(self.config_file.read_bytes())
        except (OSError, ConfigCorruptError) as exc:
            logger.debug(f"Ignoring unreadable config file: {exc}")
            return {}

    def _write_document(self, data: dict[str, Any]) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def _set_key(self, key: str, value: Any) -> None:
        try:
            data = self._read_document()
            data[key] = value
            self._write_document(data)
        except OSError as exc:
            logger.error(f"Failed to save {key} config: {exc}")

    def _delete_key(self, key: str) -> None:
        if not self.config_file.exists():
            return
        try:
            data = self._read_document()
            data.pop(key, None)
            self._write_document(data)
        except OSError as exc:
            logger.error(f"Failed to clear {key} config: {exc}")

    # --- remote endpoints ---

    def load(self) -> RemoteLLMConfig:
        """Load the persisted endpoint config; empty if absent or invalid."""
        remote = self._read_document().get(REMOTE_KEY) or {}
        try:
            return RemoteLLMConfig.model_validate(remote)
        except ValidationError as exc:
            logger.debug(f"Ignoring invalid remote config: {exc}")
            return RemoteLLMConfig()

    def save(self, config: RemoteLLMConfig) -> None:
        self._set_key(REMOTE_KEY, config.to_document())
        logger.debug(f"Saved remote config to {self.config_file}")

    def clear(self) -> None:
        self._delete_key(REMOTE_KEY)

    # --- qmd directory ---

    def load_path(self) -> Optional[str]:
        value = self._read_document().get(QMD_DIR_KEY)
        return value if isinstance(value, str) and value else None

    def save_path(self, path: Path | str) -> None:
        self._set_key(QMD_DIR_KEY, str(path))

    def clear_path(self) -> None:
        self._delete_key(QMD_DIR_KEY)


def load_remote_config(config_dir: Optional[Path | str] = None) -> RemoteLLMConfig:
    return ConfigStore(config_dir).load()


def save_remote_config(config: RemoteLLMConfig, config_dir: Optional[Path | str] = None) -> None:
    ConfigStore(config_dir).save(config)


def clear_remote_config(config_dir: Optional[Path | str] = None) -> None:
    ConfigStore(config_dir).clear()


def load_qmd_dir_config(config_dir: Optional[Path | str] = None) -> Optional[str]:
    return ConfigStore(config_dir).load_path()


def save_qmd_dir_config(qmd_dir: Path | str, config_dir: Optional[Path | str] = None) -> None:
    ConfigStore(config_dir).save_path(qmd_dir)


def clear_qmd_dir_config(config_dir: Optional[Path | str] = None) -> None:
    ConfigStore(config_dir).clear_path()


def is_remote_configured(config_dir: Optional[Path | str] = None) -> bool:
    """Check whether any remote endpoint has been persisted."""
    return load_remote_config(config_dir).is_configured
