"""Client configuration: layering, env interpolation and redaction.

Provides:
- Layered config: built-in defaults < YAML file < SKALD_* environment < explicit overrides
- {env:VAR} interpolation with an allowlist (SKALD_* only)
- Deep merge for layered config
- Redaction for safe logging (never leak the API key)
"""

from __future__ import annotations

import copy
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger("skald.config")

DEFAULT_BASE_URL = "https://api.useskald.com"

# Redaction sentinel
REDACTED = "***REDACTED***"

DEFAULTS: Dict[str, Any] = {
    "api_key": None,
    "base_url": DEFAULT_BASE_URL,
    "timeout": 60.0,
    "stream": {
        "idle_timeout": 30.0,
    },
}

# Environment variable → dotted config key
ENV_KEYS = {
    "SKALD_API_KEY": "api_key",
    "SKALD_BASE_URL": "base_url",
    "SKALD_TIMEOUT": "timeout",
    "SKALD_STREAM_IDLE_TIMEOUT": "stream.idle_timeout",
}

CONFIG_PATH_ENV = "SKALD_CONFIG"

_ENV_ALLOWED_RE = re.compile(r"^SKALD_")

# Regex for interpolation tokens: {env:VAR}
_INTERP_RE = re.compile(r"\{env:([^}]+)\}")

# Patterns that indicate sensitive keys (for redaction)
_SENSITIVE_KEY_RE = re.compile(
    r"(auth|key|secret|token|password|credential|bearer)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ClientConfig:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: Optional[float] = 60.0
    stream_idle_timeout: Optional[float] = 30.0


# ── Interpolation ─────────────────────────────────────────────────────


def interpolate_value(value: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Resolve {env:VAR_NAME} tokens in a string value."""
    env = os.environ if environ is None else environ

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if not _ENV_ALLOWED_RE.search(var_name):
            raise ConfigError(
                f"Environment variable '{var_name}' is not in the allowlist. "
                f"Allowed: ^SKALD_.*"
            )
        val = env.get(var_name)
        if val is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return val

    return _INTERP_RE.sub(_replace, value)


def interpolate_config(
    config: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Recursively interpolate all string values in a config dict.

    Returns a new dict with resolved values.
    """
    result = {}
    for key, value in config.items():
        if isinstance(value, str) and _INTERP_RE.search(value):
            result[key] = interpolate_value(value, environ)
        elif isinstance(value, dict):
            result[key] = interpolate_config(value, environ)
        else:
            result[key] = value
    return result


# ── Deep merge ────────────────────────────────────────────────────────


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base. Overlay values win.

    Returns a new dict (base and overlay are not modified).
    """
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _nest(dotted: str, value: Any) -> Dict[str, Any]:
    head, _, rest = dotted.partition(".")
    return {head: _nest(rest, value) if rest else value}


def env_layer(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Build the config layer contributed by SKALD_* environment variables."""
    env = os.environ if environ is None else environ
    layer: Dict[str, Any] = {}
    for var_name, dotted in ENV_KEYS.items():
        raw = env.get(var_name)
        if raw:
            layer = deep_merge(layer, _nest(dotted, raw))
    return layer


def file_layer(path: Optional[str]) -> Dict[str, Any]:
    """Read a YAML config file shaped like DEFAULTS. No path, no layer."""
    if not path:
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


# ── Loading ───────────────────────────────────────────────────────────


def _as_timeout(value: Any, name: str) -> Optional[float]:
    if value is None:
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number of seconds, got {value!r}")
    if timeout <= 0:
        raise ConfigError(f"{name} must be positive, got {timeout}")
    return timeout


def load_config(
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
) -> ClientConfig:
    """Resolve the client configuration.

    Overrides use the same shape as DEFAULTS; None values in overrides are
    ignored so callers can pass optional keyword arguments straight through.
    config_path defaults to $SKALD_CONFIG.
    """
    env = os.environ if environ is None else environ
    explicit = {k: v for k, v in (overrides or {}).items() if v is not None}
    merged = DEFAULTS
    for layer in (file_layer(config_path or env.get(CONFIG_PATH_ENV)), env_layer(env), explicit):
        merged = deep_merge(merged, layer)
    logger.debug("Resolved config: %s", redact_config(merged))
    merged = interpolate_config(merged, environ)

    api_key = merged.get("api_key")
    if not api_key:
        raise ConfigError("No API key: pass api_key or set SKALD_API_KEY")

    base_url = str(merged.get("base_url") or DEFAULT_BASE_URL).rstrip("/")

    stream = merged.get("stream")
    if not isinstance(stream, dict):
        raise ConfigError(f"stream must be a mapping, got {stream!r}")

    return ClientConfig(
        api_key=api_key,
        base_url=base_url,
        timeout=_as_timeout(merged.get("timeout"), "timeout"),
        stream_idle_timeout=_as_timeout(stream.get("idle_timeout"), "stream.idle_timeout"),
    )


# ── Redaction ─────────────────────────────────────────────────────────


def redact_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Create a redacted copy of config for display/logging.

    Values sourced from {env:} show '***REDACTED***'.
    Keys matching sensitive patterns are also redacted.
    """
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = redact_config(value)
        elif isinstance(value, str) and _INTERP_RE.search(value):
            sources = _INTERP_RE.findall(value)
            annotations = ", ".join(f"env:{r}" for r in sources)
            result[key] = f"{REDACTED} (from {annotations})"
        elif _SENSITIVE_KEY_RE.search(key) and value is not None:
            result[key] = REDACTED
        else:
            result[key] = value
    return result


def redact_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Return a copy of headers with sensitive values redacted."""
    redacted = {}
    for key, value in headers.items():
        if _SENSITIVE_KEY_RE.search(key):
            redacted[key] = REDACTED
        else:
            redacted[key] = value
    return redacted


def redact_string(
    value: str,
    environ: Optional[Mapping[str, str]] = None,
    secrets: Iterable[str] = (),
) -> str:
    """Redact the API key and bearer tokens from a string.

    secrets adds resolved keys that did not come from SKALD_API_KEY
    (config file, explicit argument).
    """
    env = os.environ if environ is None else environ
    result = value

    for secret in (env.get("SKALD_API_KEY"), *secrets):
        if secret and secret in result:
            result = result.replace(secret, REDACTED)

    return re.sub(
        r"(Authorization:\s*Bearer\s+)\S+", rf"\1{REDACTED}", result, flags=re.IGNORECASE
    )
