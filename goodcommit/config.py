"""Configuration management for goodcommit."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .budget import TokenBudget
from .exceptions import ConfigError
from .retry import RetryPolicy

CONFIG_DIR_NAME = ".goodcommit"
CONFIG_FILE_NAME = "config.json"
ENV_PREFIX = "GOODCOMMIT_"

PROVIDERS = ("openai", "ollama")
OPENAI_MODES = ("auto", "chat", "responses")
SUMMARY_MODES = ("local", "model")

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "ollama": "qwen2.5-coder:1.5b",
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Config:
    """Resolved runtime configuration, threaded read-only through a run."""

    provider: str = "ollama"
    model: str = DEFAULT_MODELS["ollama"]
    openai_mode: str = "auto"
    openai_base_url: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"
    # Explicit key wins over api_key_env; never persisted.
    api_key: Optional[str] = field(default=None, repr=False)
    ollama_endpoint: str = "http://localhost:11434/api/chat"
    conventional: bool = True
    one_line: bool = True
    emoji: bool = False
    lang: Optional[str] = None
    temperature: float = 0.2
    timeout_secs: float = 20.0
    overall_timeout_secs: float = 120.0
    max_input_tokens: int = 6000
    max_output_tokens: int = 2048
    max_file_lines: int = 2000
    max_files: int = 40
    summary_concurrency: int = 4
    summary_mode: str = "local"
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.2
    retry_max_delay: float = 2.0
    ignore: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.provider not in PROVIDERS:
            raise ConfigError(
                f"Unsupported provider: {self.provider!r} "
                f"(expected one of {', '.join(PROVIDERS)})"
            )
        if self.openai_mode not in OPENAI_MODES:
            raise ConfigError(f"Unknown openai mode: {self.openai_mode!r}")
        if self.summary_mode not in SUMMARY_MODES:
            raise ConfigError(f"Unknown summary mode: {self.summary_mode!r}")
        if not self.model:
            raise ConfigError("Model identifier must not be empty")
        for name in ("timeout_secs", "overall_timeout_secs"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        for name in ("max_file_lines", "max_files", "summary_concurrency"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be at least 1")
        # Validates the budget and the policy eagerly.
        self.token_budget()
        self.retry_policy()

    def token_budget(self) -> TokenBudget:
        return TokenBudget(
            max_input_tokens=self.max_input_tokens,
            max_output_tokens=self.max_output_tokens,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )

    def resolve_api_key(self) -> Optional[str]:
        """Return the explicit key or the one from ``api_key_env``."""
        if self.api_key:
            return self.api_key
        value = os.environ.get(self.api_key_env, "").strip()
        return value or None

    def to_dict(self) -> Dict[str, Any]:
        """Serialise configuration for persistence (without the key)."""
        data = asdict(self)
        data.pop("api_key", None)
        data["ignore"] = list(self.ignore)
        return data


def _coerce(name: str, raw: Any, current: Any) -> Any:
    """Convert ``raw`` (env string or JSON value) to the type of ``current``."""
    if name == "ignore":
        if isinstance(raw, str):
            return tuple(p.strip() for p in raw.split(",") if p.strip())
        return tuple(str(p) for p in raw)
    if name in {"lang", "api_key"}:
        return str(raw) if raw not in (None, "") else None
    if isinstance(current, bool):
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUTHY:
            return True
        if text in _FALSY:
            return False
        raise ConfigError(f"Invalid boolean for {name}: {raw!r}")
    try:
        if isinstance(current, int):
            return int(raw)
        if isinstance(current, float):
            return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from exc
    return str(raw)


def _config_file(repo_root: Optional[Path] = None) -> Path:
    root = Path(repo_root) if repo_root else Path.cwd()
    return root.expanduser().resolve(strict=False) / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def load_persisted_config(repo_root: Optional[Path] = None) -> Dict[str, Any]:
    """Return raw values from ``.goodcommit/config.json`` (empty when absent)."""
    cfg_path = _config_file(repo_root)
    if not cfg_path.exists():
        return {}
    try:
        data = json.loads(cfg_path.read_text())
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Unreadable config file {cfg_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {cfg_path} must hold a JSON object")
    data.pop("api_key", None)
    return data


def save_config(config: Config, repo_root: Optional[Path] = None) -> Path:
    """Persist configuration JSON within the repository."""
    cfg_path = _config_file(repo_root)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    cfg_path.write_text(json.dumps(config.to_dict(), indent=2))
    return cfg_path


def load_config(
    *,
    repo_root: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Config:
    """Build configuration from defaults, config file, environment and overrides.

    Later sources win. Environment variables are named ``GOODCOMMIT_<FIELD>``
    (for example ``GOODCOMMIT_MAX_INPUT_TOKENS``). Switching provider without
    naming a model picks that provider's default model.
    """
    env_map: Mapping[str, str] = os.environ if env is None else env
    base = Config()
    known = {f.name for f in fields(Config)}
    values: Dict[str, Any] = {}

    persisted = load_persisted_config(repo_root)
    sources = [
        persisted,
        {
            name: env_map[ENV_PREFIX + name.upper()]
            for name in known
            if env_map.get(ENV_PREFIX + name.upper()) not in (None, "")
        },
        {k: v for k, v in (overrides or {}).items() if v is not None},
    ]
    for source in sources:
        for name, raw in source.items():
            if name not in known:
                raise ConfigError(f"Unknown configuration key: {name}")
            values[name] = _coerce(name, raw, getattr(base, name))

    provider = values.get("provider", base.provider)
    if "model" not in values and provider in DEFAULT_MODELS:
        values["model"] = DEFAULT_MODELS[provider]
    return replace(base, **values)
