# axeos.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import copy
import logging
import random
import time

import requests

from errors import UpstreamUnavailable
from value_format import utcnow_iso

LOGGER = logging.getLogger(__name__)

STATUS_AVAILABLE = "available"
STATUS_UNAVAILABLE = "unavailable"


def _base_url(device_url: str) -> str:
    base = device_url.strip().rstrip("/")
    if not base.startswith("http://") and not base.startswith("https://"):
        base = "http://" + base
    return base


def _json_object(r: requests.Response, what: str) -> Dict[str, Any]:
    try:
        data = r.json()
    except ValueError as e:
        raise UpstreamUnavailable(f"Failed to {what}: invalid JSON response") from e
    if not isinstance(data, dict):
        raise UpstreamUnavailable(f"Failed to {what}: unexpected response type")
    return data


class HttpDeviceTransport:
    """
    Talks to the AxeOS HTTP API of a device. Every failure, whether network,
    HTTP status or payload, surfaces as UpstreamUnavailable.
    """

    def __init__(self, read_timeout: float = 5.0, write_timeout: float = 10.0):
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout

    def get_info(self, device_url: str) -> Dict[str, Any]:
        url = f"{_base_url(device_url)}/api/system/info"
        started = time.monotonic()
        try:
            r = requests.get(url, timeout=self.read_timeout)
            r.raise_for_status()
        except (requests.exceptions.RequestException, ValueError) as e:
            LOGGER.warning("Failed to fetch data from %s: %s", device_url, e)
            raise UpstreamUnavailable(f"Failed to fetch device data: {e}") from e
        data = _json_object(r, "fetch device data")
        data.update(
            {
                "status": STATUS_AVAILABLE,
                "lastUpdate": utcnow_iso(),
                "responseTime": int((time.monotonic() - started) * 1000),
            }
        )
        return data

    def restart(self, device_url: str) -> Dict[str, Any]:
        try:
            r = requests.post(
                f"{_base_url(device_url)}/api/system/restart", json={}, timeout=self.write_timeout
            )
            r.raise_for_status()
        except (requests.exceptions.RequestException, ValueError) as e:
            LOGGER.warning("Failed to restart device %s: %s", device_url, e)
            raise UpstreamUnavailable(f"Failed to restart device: {e}") from e
        LOGGER.info("Restart requested for %s", device_url)
        return {"success": True}

    def get_config(self, device_url: str) -> Dict[str, Any]:
        try:
            r = requests.get(f"{_base_url(device_url)}/api/system", timeout=self.read_timeout)
            r.raise_for_status()
        except (requests.exceptions.RequestException, ValueError) as e:
            LOGGER.warning("Failed to get device config from %s: %s", device_url, e)
            raise UpstreamUnavailable(f"Failed to get device configuration: {e}") from e
        return _json_object(r, "get device configuration")

    def update_config(self, device_url: str, blob: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = requests.post(
                f"{_base_url(device_url)}/api/system", json=blob, timeout=self.write_timeout
            )
            r.raise_for_status()
        except (requests.exceptions.RequestException, ValueError) as e:
            LOGGER.warning("Failed to update device config %s: %s", device_url, e)
            raise UpstreamUnavailable(f"Failed to update device configuration: {e}") from e
        LOGGER.info("Updated configuration of %s (%s)", device_url, ", ".join(sorted(blob)))
        return {"success": True}


DEMO_TELEMETRY: Dict[str, Any] = {
    # Mining Metrics
    "hashRate": 1540000000000,
    "expectedHashrate": 1600000000000,
    "bestDiff": 4567890123456,
    "bestSessionDiff": 1234567890,
    "poolDifficulty": 65536,
    "sharesAccepted": 42876,
    "sharesRejected": 128,
    "sharesRejectedReasons": "low difficulty: 45, duplicate: 83",
    # General Information
    "hostname": "bitaxe1",
    "power": 18.5,
    "voltage": 1200,  # mV
    "coreVoltageActual": 0.85,
    "frequency": 575,
    "temp": 62.5,
    "vrTemp": 58.3,
    "fanspeed": 75,
    "minFanSpeed": 25,
    "fanrpm": 3250,
    "temptarget": 80,
    "overheat_mode": 0,
    "uptimeSeconds": 86400 * 3 + 3600 * 5 + 60 * 23 + 45,
    "coreVoltage": 850,  # mV
    "current": 1.25,
    "wifiRSSI": -45,
    "stratumURL": "solo.ckpool.org",
    "stratumUser": "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh.bitaxe1",
    "stratumPort": 3333,
    "isUsingFallbackStratum": False,
    "axeOSVersion": "2.0.10",
    "idfVersion": "5.1.2",
    "boardVersion": "v1.3",
    "ASICModel": "BM1366",
}

DEMO_DEVICE_CONFIG: Dict[str, Any] = {
    "hostname": "bitaxe1",
    "coreVoltage": 1200,
    "frequency": 575,
    "fanspeed": 75,
    "autofanspeed": 1,
    "temptarget": 80,
    "overheat_mode": 0,
    "stratumURL": "solo.ckpool.org",
    "stratumPort": 3333,
    "stratumUser": "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh.bitaxe1",
    "fallbackStratumURL": "",
    "fallbackStratumPort": 3333,
    "fallbackStratumUser": "",
}


class SimulatedDeviceTransport:
    """Plausible demo data for every device; never touches the network."""

    def __init__(self):
        self._configs: Dict[str, Dict[str, Any]] = {}

    def get_info(self, device_url: str) -> Dict[str, Any]:
        data = copy.deepcopy(DEMO_TELEMETRY)
        data.update(
            {
                "status": STATUS_AVAILABLE,
                "lastUpdate": utcnow_iso(),
                "responseTime": 25,
                "_mockData": True,
            }
        )
        return data

    def restart(self, device_url: str) -> Dict[str, Any]:
        LOGGER.info("Simulated restart of %s", device_url)
        return {"success": True}

    def get_config(self, device_url: str) -> Dict[str, Any]:
        return copy.deepcopy(self._configs.get(device_url, DEMO_DEVICE_CONFIG))

    def update_config(self, device_url: str, blob: Dict[str, Any]) -> Dict[str, Any]:
        current = self.get_config(device_url)
        current.update(blob)
        self._configs[device_url] = current
        return {"success": True}


def device_key(device: Dict[str, Any]) -> str:
    return device.get("id") or device.get("name")


def fetch_statuses(devices: List[Dict[str, Any]], transport, max_workers: int = 16) -> List[Dict[str, Any]]:
    """
    Poll every configured device concurrently. A device that fails comes back
    as status "unavailable" with its error; the others are unaffected.
    Results keep configuration order.
    """
    if not devices:
        return []

    def work(idx: int, device: Dict[str, Any]) -> Dict[str, Any]:
        entry = {"id": device_key(device), "name": device.get("name"), "url": device.get("url")}
        try:
            data = transport.get_info(device["url"])
        except UpstreamUnavailable as e:
            entry.update({"status": STATUS_UNAVAILABLE, "error": str(e), "lastUpdate": utcnow_iso()})
            return {"idx": idx, "entry": entry}
        except Exception as e:
            # anything else still only fails this device
            LOGGER.exception("Unexpected error polling %s", device.get("url"))
            entry.update({"status": STATUS_UNAVAILABLE, "error": str(e), "lastUpdate": utcnow_iso()})
            return {"idx": idx, "entry": entry}
        entry.update({"status": data.get("status", STATUS_AVAILABLE), "lastUpdate": data.get("lastUpdate")})
        return {"idx": idx, "entry": entry}

    results: List[Dict[str, Any]] = []
    with ThreadPoolExecutor(max_workers=min(max_workers, len(devices))) as ex:
        futures = [ex.submit(work, idx, d) for idx, d in enumerate(devices)]
        for f in as_completed(futures):
            results.append(f.result())

    results.sort(key=lambda r: r["idx"])
    return [r["entry"] for r in results]


def build_chart_data(
    device_id: str,
    hours: int = 24,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """Demo hashrate (GH/s) / ASIC temperature series, oldest point first."""
    now = now or datetime.now(timezone.utc)
    rng = rng or random.Random()
    interval_minutes = max(5, (hours * 60) // 100)

    base_hashrate = 1540.0
    base_temp = 62.0

    points = []
    for i in range((hours * 60) // interval_minutes, -1, -1):
        ts = now - timedelta(minutes=i * interval_minutes)
        hashrate = base_hashrate + (rng.random() - 0.5) * 0.2 * base_hashrate
        asic_temp = base_temp + (rng.random() - 0.5) * 16
        points.append(
            {
                "timestamp": ts.isoformat(),
                "hashrate": max(0.0, hashrate),
                "asicTemp": max(20.0, min(90.0, asic_temp)),
            }
        )

    return {
        "deviceId": device_id,
        "deviceName": device_id,
        "hours": hours,
        "dataPoints": points,
        "generatedAt": now.isoformat(),
        "interval": f"{interval_minutes} minutes",
        "totalPoints": len(points),
    }
