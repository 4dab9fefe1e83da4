# mining_core.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
import copy
import logging

import requests

from errors import UpstreamUnavailable
from value_format import utcnow_iso

LOGGER = logging.getLogger(__name__)

# Miningcore networkStats name -> record key
NETWORK_FIELDS = {
    "networkHashrate": "networkHashrate",
    "networkDifficulty": "networkDifficulty",
    "lastNetworkBlockTime": "lastBlockTime",
    "blockHeight": "blockHeight",
    "connectedPeers": "connectedPeers",
    "nodeVersion": "nodeVersion",
}
POOL_STATS_FIELDS = ("connectedMiners", "poolHashrate")
POOL_FIELDS = (
    "totalPaid",
    "totalBlocks",
    "totalConfirmedBlocks",
    "totalPendingBlocks",
    "lastPoolBlockTime",
    "blockReward",
)


def _pool_summary(pool: Dict[str, Any]) -> Dict[str, Any]:
    coin = pool.get("coin") if isinstance(pool.get("coin"), dict) else {}
    out: Dict[str, Any] = {"name": coin.get("name") or pool.get("id") or "pool"}
    stats = pool.get("poolStats") if isinstance(pool.get("poolStats"), dict) else {}
    for key in POOL_STATS_FIELDS:
        if key in stats:
            out[key] = stats[key]
    for key in POOL_FIELDS:
        if key in pool:
            out[key] = pool[key]
    return out


def flatten_pools_response(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn a Miningcore /api/pools payload into one pool-status record: network
    figures of the first pool at the top level, one summary per pool in
    "pools", and the first pool's figures copied to the top level as well.
    """
    pools_raw = payload.get("pools")
    if not isinstance(pools_raw, list):
        raise UpstreamUnavailable("Failed to fetch mining core data: response has no pool list")

    pools: List[Dict[str, Any]] = [_pool_summary(p) for p in pools_raw if isinstance(p, dict)]
    record: Dict[str, Any] = {}

    if pools_raw and isinstance(pools_raw[0], dict):
        network = pools_raw[0].get("networkStats")
        if isinstance(network, dict):
            for src, dst in NETWORK_FIELDS.items():
                if src in network:
                    record[dst] = network[src]
    if pools:
        for key, value in pools[0].items():
            if key != "name":
                record.setdefault(key, value)

    record["pools"] = pools
    return record


class HttpMiningCoreTransport:
    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    def get_pool_status(self, base_url: str) -> Dict[str, Any]:
        url = f"{base_url.strip().rstrip('/')}/api/pools"
        try:
            r = requests.get(url, timeout=self.timeout)
            r.raise_for_status()
        except (requests.exceptions.RequestException, ValueError) as e:
            LOGGER.warning("Failed to fetch mining core data from %s: %s", base_url, e)
            raise UpstreamUnavailable(f"Failed to fetch mining core data: {e}") from e
        try:
            payload = r.json()
        except ValueError as e:
            LOGGER.warning("Mining core at %s returned invalid JSON", base_url)
            raise UpstreamUnavailable("Failed to fetch mining core data: invalid JSON response") from e
        if not isinstance(payload, dict):
            raise UpstreamUnavailable("Failed to fetch mining core data: unexpected response type")

        record = flatten_pools_response(payload)
        record.update({"status": "available", "lastUpdate": utcnow_iso()})
        return record


class SimulatedMiningCoreTransport:
    def get_pool_status(self, base_url: str) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        pool = {
            "name": "Bitcoin Pool",
            "connectedMiners": 245,
            "poolHashrate": 125000000000000,
            "totalPaid": 1.2543,
            "totalBlocks": 142,
            "totalConfirmedBlocks": 140,
            "totalPendingBlocks": 2,
            "lastPoolBlockTime": (now - timedelta(hours=2)).isoformat(),
            "blockReward": 6.25,
        }
        record = {
            "status": "available",
            "lastUpdate": now.isoformat(),
            "networkHashrate": 450000000000000000,
            "networkDifficulty": 35000000000000,
            "lastBlockTime": (now - timedelta(minutes=10)).isoformat(),
            "blockHeight": 810000,
            "connectedPeers": 8,
            "nodeVersion": "25.0.0",
            "pools": [copy.deepcopy(pool)],
            "_mockData": True,
        }
        for key, value in pool.items():
            if key != "name":
                record.setdefault(key, value)
        return record
