# field_mappings.py
"""
Mapping catalog (which telemetry fields are shown, grouped into categories) and
the type table (display name / value type / unit per field key).

Both are stored as JSON documents and seeded with the built-in defaults the
first time they are missing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List
import copy
import logging

from errors import MappingConfigError

LOGGER = logging.getLogger(__name__)

DEVICE_MAPPINGS_DOC = "device-mappings"
MINING_MAPPINGS_DOC = "mining-mappings"


@dataclass(frozen=True)
class FieldMapping:
    key: str
    display_name: str


@dataclass(frozen=True)
class Category:
    name: str
    fields: List[FieldMapping] = field(default_factory=list)


@dataclass(frozen=True)
class FieldType:
    display_name: str
    type: str = "string"
    unit: str = ""


MappingCatalog = List[Category]
TypeTable = Dict[str, FieldType]


DEFAULT_DEVICE_MAPPINGS: List[Dict[str, Any]] = [
    {
        "name": "Mining Metrics",
        "fields": [
            {"key": "hashRate", "displayName": "Hashrate"},
            {"key": "expectedHashrate", "displayName": "Expect Hashrate"},
            {"key": "bestDiff", "displayName": "Best Difficulty"},
            {"key": "bestSessionDiff", "displayName": "Best Session Difficulty"},
            {"key": "poolDifficulty", "displayName": "Pool Difficulty"},
            {"key": "sharesAccepted", "displayName": "Shares Accepted"},
            {"key": "sharesRejected", "displayName": "Shares Rejected"},
            {"key": "sharesRejectedReasons", "displayName": "Shares Rejected Reasons"},
            {"key": "responseTime", "displayName": "Response Time"},
        ],
    },
    {
        "name": "General Information",
        "fields": [
            {"key": "hostname", "displayName": "Hostname"},
            {"key": "power", "displayName": "Power"},
            {"key": "voltage", "displayName": "Voltage"},
            {"key": "coreVoltageActual", "displayName": "ASIC Voltage"},
            {"key": "frequency", "displayName": "Frequency"},
            {"key": "temp", "displayName": "ASIC Temp"},
            {"key": "vrTemp", "displayName": "VR Temp"},
            {"key": "fanspeed", "displayName": "Fan Speed"},
            {"key": "minFanSpeed", "displayName": "Min Fan Speed"},
            {"key": "fanrpm", "displayName": "Fan RPM"},
            {"key": "temptarget", "displayName": "Target Temp"},
            {"key": "overheat_mode", "displayName": "Over Heat Mode"},
            {"key": "uptimeSeconds", "displayName": "Uptime"},
            {"key": "coreVoltage", "displayName": "Core Voltage"},
            {"key": "current", "displayName": "Current"},
            {"key": "wifiRSSI", "displayName": "Wifi RSSI"},
            {"key": "stratumURL", "displayName": "Stratum URL"},
            {"key": "stratumUser", "displayName": "Stratum User"},
            {"key": "stratumPort", "displayName": "Stratum Port"},
            {"key": "isUsingFallbackStratum", "displayName": "Using Fallback Stratum"},
            {"key": "axeOSVersion", "displayName": "AxeOS Version"},
            {"key": "idfVersion", "displayName": "IDF Version"},
            {"key": "boardVersion", "displayName": "Board Version"},
            {"key": "ASICModel", "displayName": "ASIC Chip"},
        ],
    },
]


DEFAULT_MINING_MAPPINGS: Dict[str, Dict[str, str]] = {
    "networkHashrate": {"displayName": "Network Hashrate", "type": "hashrate", "unit": "H/s"},
    "networkDifficulty": {"displayName": "Network Difficulty", "type": "difficulty", "unit": ""},
    "lastBlockTime": {"displayName": "Last Block Time", "type": "datetime", "unit": ""},
    "blockHeight": {"displayName": "Block Height", "type": "number", "unit": ""},
    "connectedPeers": {"displayName": "Connected Peers", "type": "number", "unit": ""},
    "nodeVersion": {"displayName": "Node Version", "type": "string", "unit": ""},
    "connectedMiners": {"displayName": "Connected Miners", "type": "number", "unit": ""},
    "poolHashrate": {"displayName": "Pool Hashrate", "type": "hashrate", "unit": "H/s"},
    "totalPaid": {"displayName": "Total Paid", "type": "currency", "unit": "BTC"},
    "totalBlocks": {"displayName": "Total Blocks", "type": "number", "unit": ""},
    "totalConfirmedBlocks": {"displayName": "Total Confirmed Blocks", "type": "number", "unit": ""},
    "totalPendingBlocks": {"displayName": "Total Pending Blocks", "type": "number", "unit": ""},
    "lastPoolBlockTime": {"displayName": "Last Pool Block Time", "type": "datetime", "unit": ""},
    "blockReward": {"displayName": "Block Reward", "type": "currency", "unit": "BTC"},
}


def _parse_field(entry: Any, category: str) -> FieldMapping:
    if not isinstance(entry, dict):
        raise MappingConfigError(f"Field mapping in category {category!r} must be an object")

    if "key" in entry or "displayName" in entry:
        key = entry.get("key")
        label = entry.get("displayName")
    elif len(entry) == 1:
        # legacy form: {"hashRate": "Hashrate"}
        key, label = next(iter(entry.items()))
    else:
        raise MappingConfigError(f"Unrecognised field mapping in category {category!r}: {entry!r}")

    if not isinstance(key, str) or not key.strip():
        raise MappingConfigError(f"Field mapping in category {category!r} has no key")
    if label is None:
        label = key
    return FieldMapping(key=key, display_name=str(label))


def parse_catalog(raw: Any) -> MappingCatalog:
    """
    Accepts either the explicit form
        [{"name": "Mining Metrics", "fields": [{"key": "hashRate", "displayName": "Hashrate"}]}]
    or the legacy dynamic-key form
        [{"Mining Metrics": [{"hashRate": "Hashrate"}]}]
    """
    if not isinstance(raw, list):
        raise MappingConfigError("Device mapping catalog must be a list of categories")

    catalog: MappingCatalog = []
    seen = set()
    for entry in raw:
        if not isinstance(entry, dict):
            raise MappingConfigError(f"Category must be an object, got {type(entry).__name__}")
        if "name" in entry and "fields" in entry:
            name, fields_raw = entry["name"], entry["fields"]
        elif len(entry) == 1:
            name, fields_raw = next(iter(entry.items()))
        else:
            raise MappingConfigError(f"Unrecognised category entry: {sorted(entry)}")

        if not isinstance(name, str) or not name.strip():
            raise MappingConfigError("Category has no name")
        if name in seen:
            raise MappingConfigError(f"Duplicate category {name!r}")
        if not isinstance(fields_raw, list) or not fields_raw:
            raise MappingConfigError(f"Category {name!r} has no fields")

        seen.add(name)
        catalog.append(Category(name=name, fields=[_parse_field(f, name) for f in fields_raw]))
    return catalog


def catalog_to_json(catalog: MappingCatalog) -> List[Dict[str, Any]]:
    return [
        {
            "name": c.name,
            "fields": [{"key": f.key, "displayName": f.display_name} for f in c.fields],
        }
        for c in catalog
    ]


def parse_type_table(raw: Any) -> TypeTable:
    if not isinstance(raw, dict):
        raise MappingConfigError("Mining mapping table must be an object keyed by field name")
    table: TypeTable = {}
    for key, spec in raw.items():
        if not isinstance(spec, dict):
            raise MappingConfigError(f"Mining mapping for {key!r} must be an object")
        table[key] = FieldType(
            display_name=str(spec.get("displayName") or key),
            type=str(spec.get("type") or "string"),
            unit=str(spec.get("unit") or ""),
        )
    return table


def type_table_to_json(table: TypeTable) -> Dict[str, Dict[str, str]]:
    return {
        key: {"displayName": t.display_name, "type": t.type, "unit": t.unit}
        for key, t in table.items()
    }


class MappingStore:
    """Loads both mapping documents, seeding defaults on first absence."""

    def __init__(self, documents):
        self.documents = documents
        self.catalog: MappingCatalog = []
        self.type_table: TypeTable = {}
        self.load()

    def load(self) -> None:
        raw_catalog = self.documents.read_document(DEVICE_MAPPINGS_DOC)
        if raw_catalog is None:
            LOGGER.info("No device mappings found, writing built-in defaults")
            raw_catalog = copy.deepcopy(DEFAULT_DEVICE_MAPPINGS)
            self.documents.write_document(DEVICE_MAPPINGS_DOC, raw_catalog)

        raw_types = self.documents.read_document(MINING_MAPPINGS_DOC)
        if raw_types is None:
            LOGGER.info("No mining mappings found, writing built-in defaults")
            raw_types = copy.deepcopy(DEFAULT_MINING_MAPPINGS)
            self.documents.write_document(MINING_MAPPINGS_DOC, raw_types)

        self.catalog = parse_catalog(raw_catalog)
        self.type_table = parse_type_table(raw_types)
        LOGGER.debug(
            "Loaded %d categories and %d typed fields",
            len(self.catalog),
            len(self.type_table),
        )
