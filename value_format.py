# value_format.py
"""
Human-readable rendering of raw telemetry values.

Everything in here is pure and total: any value/type/unit combination yields a
string, unknown or missing values render as "N/A".
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple
import json
import math

NOT_AVAILABLE = "N/A"

HASHRATE_UNITS = ["H/s", "KH/s", "MH/s", "GH/s", "TH/s", "PH/s"]
DIFFICULTY_UNITS = ["", "K", "M", "G", "T"]
# Pool / network wide figures get one or two more steps.
POOL_HASHRATE_UNITS = HASHRATE_UNITS + ["EH/s"]
POOL_DIFFICULTY_UNITS = DIFFICULTY_UNITS + ["P", "E"]


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_float(value: Any) -> Optional[float]:
    """Finite float for numeric input, None for anything else (nan/inf included)."""
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            num = float(value)
        elif isinstance(value, str):
            num = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return num if math.isfinite(num) else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _plain(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _scale(value: float, units: List[str]) -> Tuple[float, str]:
    idx = 0
    while value >= 1000 and idx < len(units) - 1:
        value /= 1000
        idx += 1
    # 999.996 would print as "1000.00"; step up so the shown number stays below 1000
    if round(value, 2) >= 1000 and idx < len(units) - 1:
        value /= 1000
        idx += 1
    return value, units[idx]


def format_hashrate(value: Any, extended: bool = False) -> str:
    num = _to_float(value)
    if num is None:
        return _plain(value)
    scaled, unit = _scale(num, POOL_HASHRATE_UNITS if extended else HASHRATE_UNITS)
    return f"{scaled:.2f} {unit}"


def format_difficulty(value: Any, extended: bool = False) -> str:
    num = _to_float(value)
    if num is None:
        return _plain(value)
    scaled, unit = _scale(num, POOL_DIFFICULTY_UNITS if extended else DIFFICULTY_UNITS)
    return f"{scaled:.2f}{unit}"


def format_uptime(seconds: Any) -> str:
    """Greedy d/h/m/s decomposition, zero components omitted: 90061 -> "1d 1h 1m 1s"."""
    num = _to_float(seconds)
    if num is None:
        return _plain(seconds)
    total = int(num)
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_voltage(value: Any) -> str:
    # Lossy guess: anything above 100 is taken to be millivolts. A genuine
    # reading above 100 V, or a millivolt reading at or below 100 mV, is
    # rendered wrong.
    num = _to_float(value)
    if num is None:
        return _plain(value)
    volts = num / 1000 if num > 100 else num
    return f"{volts:.2f} V"


def format_temperature(value: Any) -> str:
    num = _to_float(value)
    if num is None:
        return _plain(value)
    return f"{num:.1f}°C"


def format_number(value: Any) -> str:
    if _is_number(value) and isinstance(value, int):
        return f"{value:,}"
    num = _to_float(value)
    if num is None:
        return _plain(value)
    if num.is_integer():
        return f"{int(num):,}"
    return f"{num:,.3f}".rstrip("0").rstrip(".")


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if _is_number(value):
        # epoch milliseconds, the way browser clients send timestamps
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def format_datetime(value: Any) -> str:
    """Local time as "M/D/YYYY, h:mm:ss AM"."""
    parsed = _parse_datetime(value)
    if parsed is None:
        return _plain(value)
    local = parsed.astimezone()
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return (
        f"{local.month}/{local.day}/{local.year}, "
        f"{hour}:{local.minute:02d}:{local.second:02d} {meridiem}"
    )


def format_currency(value: Any, unit: Optional[str] = None) -> str:
    num = _to_float(value)
    if num is None:
        return _plain(value)
    return f"{num:.8f} {unit or 'BTC'}"


def _sniff(value: Any, type_name: str, unit: str) -> str:
    """Fallback for types the table doesn't know: guess from the type name or unit."""
    if _is_number(value):
        lowered = type_name.lower()
        if "temp" in lowered:
            return format_temperature(value)
        if "voltage" in lowered or unit == "V":
            return format_voltage(value)
        if "rpm" in lowered or unit == "RPM":
            return f"{_plain(value)} RPM"
        if "rssi" in lowered or unit == "dBm":
            return f"{_plain(value)} dBm"
    if unit:
        return f"{_plain(value)} {unit}"
    return _plain(value)


def format_value(
    value: Any,
    value_type: Optional[str] = None,
    unit: Optional[str] = None,
    extended_units: bool = False,
) -> str:
    if value is None:
        return NOT_AVAILABLE
    if isinstance(value, bool):
        return "Yes" if value else "No"

    value_type = value_type or ""
    unit = unit or ""

    if value_type == "hashrate":
        return format_hashrate(value, extended=extended_units)
    if value_type == "difficulty":
        return format_difficulty(value, extended=extended_units)
    if value_type == "voltage":
        return format_voltage(value)
    if value_type == "power":
        num = _to_float(value)
        return f"{num:.1f} W" if num is not None else _plain(value)
    if value_type == "frequency":
        return f"{_plain(value)} MHz"
    if value_type == "temperature":
        return format_temperature(value)
    if value_type == "percentage":
        return f"{_plain(value)}%"
    if value_type == "uptime":
        return format_uptime(value)
    if value_type == "number":
        return format_number(value)
    if value_type == "currency":
        return format_currency(value, unit)
    if value_type == "datetime":
        return format_datetime(value)
    if value_type == "string":
        return _plain(value)
    return _sniff(value, value_type, unit)
