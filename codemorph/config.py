"""Configuration loading for codemorph (.codemorph.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .constants import DEFAULT_TARGET_FRAMEWORK, DEFAULT_TARGET_LANGUAGE

CONFIG_FILENAME = ".codemorph.yml"

ENV_API_KEY_KEYS = ("CODEMORPH_API_KEY", "GEMINI_API_KEY", "API_KEY")
ENV_BASE_URL_KEYS = ("CODEMORPH_BASE_URL",)
ENV_GITHUB_TOKEN_KEYS = ("CODEMORPH_GITHUB_TOKEN", "GITHUB_TOKEN")


class ConfigError(RuntimeError):
    """Raised when the configuration is unreadable or a required value is missing."""


@dataclass
class OracleModels:
    """Model identifiers per oracle operation."""

    analyze: str = "gemini-3-flash-preview"
    plan: str = "gemini-3-pro-preview"
    translate: str = "gemini-3-pro-preview"
    review: str = "gemini-3-flash-preview"


@dataclass
class OracleConfig:
    """Translation oracle endpoint settings."""

    base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai"
    api_key: Optional[str] = None
    request_timeout: Optional[float] = 120.0
    temperature: Optional[float] = 0.2
    models: OracleModels = field(default_factory=OracleModels)

    def require_api_key(self) -> str:
        """Return the API key or fail fast with a configuration error."""
        if not self.api_key:
            raise ConfigError(
                "An oracle API key is required. Set oracle.api_key in .codemorph.yml "
                f"or one of {', '.join(ENV_API_KEY_KEYS)}."
            )
        return self.api_key


@dataclass
class MigrationConfig:
    """Run-level defaults for the stage orchestrator."""

    target_language: str = DEFAULT_TARGET_LANGUAGE
    target_framework: str = DEFAULT_TARGET_FRAMEWORK
    analyze_file_limit: int = 50
    review_files: bool = False
    max_buffer_chars: Optional[int] = 1_000_000


@dataclass
class RepositoryConfig:
    """Hosted-git ingestion settings."""

    api_base: str = "https://api.github.com"
    default_branch: str = "main"
    fallback_branch: str = "master"
    max_files: int = 10
    extensions: List[str] = field(
        default_factory=lambda: [".py", ".js", ".java", ".ts", ".cpp"]
    )
    excluded_dirs: List[str] = field(
        default_factory=lambda: ["node_modules", ".git", "dist"]
    )
    token: Optional[str] = None
    request_timeout: Optional[float] = 30.0


@dataclass
class CodeMorphConfig:
    """Represents the settings defined in .codemorph.yml plus environment overrides."""

    root: Path
    oracle: OracleConfig = field(default_factory=OracleConfig)
    migration: MigrationConfig = field(default_factory=MigrationConfig)
    repository: RepositoryConfig = field(default_factory=RepositoryConfig)


def load_config(
    config_path: Path | None = None, *, environ: Mapping[str, str] | None = None
) -> CodeMorphConfig:
    """Load configuration from disk and apply environment overrides."""
    env = os.environ if environ is None else environ
    config_file = _resolve_config_path(config_path or Path.cwd())
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    config = CodeMorphConfig(
        root=root,
        oracle=_parse_oracle(_as_dict(data.get("oracle"))),
        migration=_parse_migration(_as_dict(data.get("migration"))),
        repository=_parse_repository(_as_dict(data.get("repository"))),
    )
    _apply_env(config, env)
    return config


def _parse_oracle(data: Dict[str, Any]) -> OracleConfig:
    oracle = OracleConfig()
    if not data:
        return oracle
    oracle.base_url = _as_str(data.get("base_url")) or oracle.base_url
    oracle.api_key = _as_str(data.get("api_key"))
    if "request_timeout" in data:
        oracle.request_timeout = _as_float(data.get("request_timeout"))
    if "temperature" in data:
        oracle.temperature = _as_float(data.get("temperature"))

    models_data = _as_dict(data.get("models"))
    for name in ("analyze", "plan", "translate", "review"):
        value = _as_str(models_data.get(name))
        if value:
            setattr(oracle.models, name, value)
    return oracle


def _parse_migration(data: Dict[str, Any]) -> MigrationConfig:
    migration = MigrationConfig()
    if not data:
        return migration
    migration.target_language = _as_str(data.get("target_language")) or migration.target_language
    migration.target_framework = (
        _as_str(data.get("target_framework")) or migration.target_framework
    )
    limit = _as_int(data.get("analyze_file_limit"))
    if limit is not None:
        if limit < 1:
            raise ConfigError("migration.analyze_file_limit must be at least 1")
        migration.analyze_file_limit = limit
    review = _as_bool(data.get("review_files"))
    if review is not None:
        migration.review_files = review
    if "max_buffer_chars" in data:
        migration.max_buffer_chars = _as_int(data.get("max_buffer_chars"))
    return migration


def _parse_repository(data: Dict[str, Any]) -> RepositoryConfig:
    repository = RepositoryConfig()
    if not data:
        return repository
    repository.api_base = (_as_str(data.get("api_base")) or repository.api_base).rstrip("/")
    repository.default_branch = _as_str(data.get("default_branch")) or repository.default_branch
    repository.fallback_branch = (
        _as_str(data.get("fallback_branch")) or repository.fallback_branch
    )
    max_files = _as_int(data.get("max_files"))
    if max_files is not None:
        if max_files < 1:
            raise ConfigError("repository.max_files must be at least 1")
        repository.max_files = max_files
    if "extensions" in data:
        repository.extensions = [
            ext if ext.startswith(".") else f".{ext}"
            for ext in _as_str_list(data.get("extensions"))
        ]
    if "excluded_dirs" in data:
        repository.excluded_dirs = [
            name.strip("/") for name in _as_str_list(data.get("excluded_dirs"))
        ]
    repository.token = _as_str(data.get("token"))
    if "request_timeout" in data:
        repository.request_timeout = _as_float(data.get("request_timeout"))
    return repository


def _apply_env(config: CodeMorphConfig, env: Mapping[str, str]) -> None:
    api_key = _first_env_value(env, ENV_API_KEY_KEYS)
    if api_key:
        config.oracle.api_key = api_key
    base_url = _first_env_value(env, ENV_BASE_URL_KEYS)
    if base_url:
        config.oracle.base_url = base_url
    token = _first_env_value(env, ENV_GITHUB_TOKEN_KEYS)
    if token:
        config.repository.token = token


def _first_env_value(env: Mapping[str, str], keys: Sequence[str]) -> str | None:
    for key in keys:
        value = env.get(key)
        if value:
            return value
    return None


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "CodeMorphConfig",
    "ConfigError",
    "MigrationConfig",
    "OracleConfig",
    "OracleModels",
    "RepositoryConfig",
    "load_config",
]
