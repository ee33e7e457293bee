"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from codr.errors import ConfigError
from codr.tools.base import ToolRisk

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = (
    Path("codr.yaml"),
    Path("codr.yml"),
    Path("~/.config/codr/config.yaml"),
)


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMConfig:
    base_url: str = ""
    api_key: str = ""
    model: str = ""
    timeout_seconds: float = 120.0


@dataclass
class PromptConfig:
    system_prompt: str = ""
    system_prompt_path: str = ""


@dataclass
class ToolsConfig:
    disabled: list[str] = field(default_factory=list)
    max_risk: str = "WRITE"
    root: str = ""


@dataclass
class SessionConfig:
    stream: bool = True
    max_rounds: int = 50
    channel_capacity: int = 100


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class CodrConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    prompt: PromptConfig = field(default_factory=PromptConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)
    source: str | None = field(default=None, repr=False)

    @property
    def tool_max_risk(self) -> ToolRisk:
        try:
            return ToolRisk[self.tools.max_risk.upper()]
        except KeyError:
            raise ConfigError(
                f"Unknown tools.max_risk: {self.tools.max_risk!r} "
                f"(expected one of {', '.join(r.name for r in ToolRisk)})",
                code="invalid_value",
            ) from None

    def validate(self) -> None:
        """Raise ``ConfigError`` naming every missing or invalid value."""
        problems = []
        if not self.llm.base_url:
            problems.append("llm.base_url (CODR_BASE_URL)")
        if not self.llm.api_key:
            problems.append("llm.api_key (CODR_API_KEY)")
        if not self.llm.model:
            problems.append("llm.model (CODR_MODEL)")
        if problems:
            raise ConfigError(
                "Missing required configuration: " + ", ".join(problems),
                code="missing_value",
            )
        if self.llm.timeout_seconds <= 0:
            raise ConfigError("llm.timeout_seconds must be positive", code="invalid_value")
        if self.session.max_rounds < 0:
            raise ConfigError("session.max_rounds must not be negative", code="invalid_value")
        if self.session.channel_capacity < 1:
            raise ConfigError("session.channel_capacity must be at least 1", code="invalid_value")
        if self.tools.max_risk.upper() not in ToolRisk.__members__:
            raise ConfigError(f"Unknown tools.max_risk: {self.tools.max_risk!r}", code="invalid_value")

    def to_dict(self, *, redact: bool = True) -> dict:
        d = asdict(self)
        d.pop("source", None)
        if redact and d["llm"]["api_key"]:
            d["llm"]["api_key"] = "***"
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.strip().lower() in ("1", "true", "yes", "on")
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    try:
        return target_type(value)
    except ValueError as e:
        raise ConfigError(f"Invalid {target_type.__name__} value: {value!r}", code="invalid_value") from e


def _build_section(cls: type, raw: Any) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section for {cls.__name__} must be a mapping", code="invalid_file")
    valid_fields = {f.name for f in fields(cls)}
    unknown = set(raw) - valid_fields
    if unknown:
        logger.warning("Ignoring unknown config keys for %s: %s", cls.__name__, sorted(unknown))
    return cls(**{k: v for k, v in raw.items() if k in valid_fields})


def find_config_file() -> Path | None:
    for candidate in DEFAULT_CONFIG_PATHS:
        p = candidate.expanduser()
        if p.is_file():
            return p
    return None


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "CODR_BASE_URL":           ("llm.base_url", str),
    "CODR_API_KEY":            ("llm.api_key", str),
    "CODR_MODEL":              ("llm.model", str),
    "CODR_TIMEOUT":            ("llm.timeout_seconds", float),
    "CODR_SYSTEM_PROMPT_PATH": ("prompt.system_prompt_path", str),
    "CODR_STREAM":             ("session.stream", bool),
    "CODR_MAX_ROUNDS":         ("session.max_rounds", int),
    "CODR_TOOLS_DISABLED":     ("tools.disabled", list),
    "CODR_TOOLS_MAX_RISK":     ("tools.max_risk", str),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
    search: bool = True,
) -> CodrConfig:
    """
    Build a CodrConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional; an explicit path must exist)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides; ``None`` values are skipped
    search : look in the default locations when no path is given
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p: Path | None = Path(config_path).expanduser()
        if not p.is_file():
            raise ConfigError(f"Config file not found: {p}", code="missing_file")
    else:
        p = find_config_file() if search else None

    if p is not None:
        try:
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {p}: {e}", code="invalid_file") from e
        if not isinstance(file_data, dict):
            raise ConfigError(f"Config file {p} must contain a mapping", code="invalid_file")
        logger.debug("Loaded config from %s", p)
        raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile:
        profile_data = (raw.get("profiles") or {}).get(profile)
        if profile_data is None:
            raise ConfigError(f"Unknown profile: {profile}", code="unknown_profile")
        raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = CodrConfig(
        llm=_build_section(LLMConfig, raw.get("llm")),
        prompt=_build_section(PromptConfig, raw.get("prompt")),
        tools=_build_section(ToolsConfig, raw.get("tools")),
        session=_build_section(SessionConfig, raw.get("session")),
        profiles=raw.get("profiles") or {},
        source=str(p) if p is not None else None,
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            if value is not None:
                _apply_dotpath(cfg, dotpath, value)

    return cfg
