# settings.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Optional
import os

# Resolve on-disk paths relative to this file (not the process CWD).
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))

TRANSPORTS = ("http", "simulated")


class SettingsError(ValueError):
    pass


@dataclass
class ServerSettings:
    config_dir: str = os.path.join(_BASE_DIR, "config")
    static_dir: str = os.path.join(_BASE_DIR, "public")
    transport: str = "http"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    read_timeout: float = 5.0
    write_timeout: float = 10.0


def _number(env: Mapping[str, str], name: str, default: float, cast=float):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError as e:
        raise SettingsError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise SettingsError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> ServerSettings:
    """Build server settings from environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ
    defaults = ServerSettings()

    transport = (env.get("BITAXE_DASHBOARD_TRANSPORT") or defaults.transport).strip().lower()
    if transport not in TRANSPORTS:
        raise SettingsError(
            f"BITAXE_DASHBOARD_TRANSPORT must be one of {', '.join(TRANSPORTS)}, got {transport!r}"
        )

    origins_raw = env.get("BITAXE_DASHBOARD_CORS_ORIGINS")
    if origins_raw:
        origins = [o.strip() for o in origins_raw.split(",") if o.strip()]
    else:
        origins = defaults.cors_origins

    return ServerSettings(
        config_dir=env.get("BITAXE_DASHBOARD_CONFIG_DIR") or defaults.config_dir,
        static_dir=env.get("BITAXE_DASHBOARD_STATIC_DIR") or defaults.static_dir,
        transport=transport,
        host=env.get("HOST") or defaults.host,
        port=_number(env, "PORT", defaults.port, cast=int),
        log_level=(env.get("LOG_LEVEL") or defaults.log_level).upper(),
        cors_origins=origins,
        read_timeout=_number(env, "BITAXE_DASHBOARD_READ_TIMEOUT", defaults.read_timeout),
        write_timeout=_number(env, "BITAXE_DASHBOARD_WRITE_TIMEOUT", defaults.write_timeout),
    )
