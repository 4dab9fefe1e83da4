import json
import random
from pathlib import Path

import pytest

from config_store import JsonDocumentStore
from errors import MappingConfigError
from field_mappings import (
    DEFAULT_DEVICE_MAPPINGS,
    DEFAULT_MINING_MAPPINGS,
    MappingStore,
    catalog_to_json,
    parse_catalog,
    parse_type_table,
)
from telemetry import categories_to_json, process_telemetry, project_pool_status

CATALOG = parse_catalog(
    [
        {
            "name": "Mining Metrics",
            "fields": [
                {"key": "hashRate", "displayName": "Hashrate"},
                {"key": "bestDiff", "displayName": "Best Difficulty"},
                {"key": "sharesAccepted", "displayName": "Shares Accepted"},
            ],
        },
        {
            "name": "General Information",
            "fields": [
                {"key": "hostname", "displayName": "Hostname"},
                {"key": "temp", "displayName": "ASIC Temp"},
                {"key": "uptimeSeconds", "displayName": "Uptime"},
                {"key": "isUsingFallbackStratum", "displayName": "Using Fallback Stratum"},
            ],
        },
    ]
)

TYPES = parse_type_table(
    {
        "hashRate": {"displayName": "Hashrate", "type": "hashrate", "unit": "H/s"},
        "bestDiff": {"displayName": "Best Difficulty", "type": "difficulty", "unit": ""},
        "temp": {"displayName": "ASIC Temp", "type": "temperature", "unit": ""},
        "uptimeSeconds": {"displayName": "Uptime", "type": "uptime", "unit": ""},
    }
)

TELEMETRY = {
    "hashRate": 1540000000000,
    "bestDiff": 4567890123456,
    "sharesAccepted": 42876,
    "hostname": "bitaxe1",
    "temp": 62.5,
    "uptimeSeconds": 90061,
    "isUsingFallbackStratum": False,
    "status": "available",
}


def _layout(result):
    return [(name, [r.key for r in records]) for name, records in result.items()]


def test_output_follows_catalog_order() -> None:
    result = process_telemetry(TELEMETRY, CATALOG, TYPES)

    assert _layout(result) == [
        ("Mining Metrics", ["hashRate", "bestDiff", "sharesAccepted"]),
        ("General Information", ["hostname", "temp", "uptimeSeconds", "isUsingFallbackStratum"]),
    ]


def test_order_ignores_telemetry_key_order() -> None:
    expected = _layout(process_telemetry(TELEMETRY, CATALOG, TYPES))
    items = list(TELEMETRY.items())
    rng = random.Random(7)
    for _ in range(25):
        rng.shuffle(items)
        assert _layout(process_telemetry(dict(items), CATALOG, TYPES)) == expected


def test_absent_fields_are_skipped_without_placeholder() -> None:
    partial = {"temp": 70.0, "hostname": "axe"}

    result = process_telemetry(partial, CATALOG, TYPES)

    assert result["Mining Metrics"] == []
    assert [r.key for r in result["General Information"]] == ["hostname", "temp"]


def test_records_carry_formatting_and_metadata() -> None:
    result = categories_to_json(process_telemetry(TELEMETRY, CATALOG, TYPES))
    mining = {r["key"]: r for r in result["Mining Metrics"]}
    general = {r["key"]: r for r in result["General Information"]}

    assert mining["hashRate"] == {
        "key": "hashRate",
        "raw": 1540000000000,
        "formatted": "1.54 TH/s",
        "displayName": "Hashrate",
        "type": "hashrate",
        "unit": "H/s",
    }
    assert mining["bestDiff"]["formatted"] == "4.57T"
    # untyped fields default to string
    assert mining["sharesAccepted"]["type"] == "string"
    assert mining["sharesAccepted"]["unit"] == ""
    assert mining["sharesAccepted"]["formatted"] == "42876"
    assert general["uptimeSeconds"]["formatted"] == "1d 1h 1m 1s"
    assert general["isUsingFallbackStratum"]["formatted"] == "No"


def test_display_name_comes_from_catalog_not_type_table() -> None:
    types = parse_type_table({"temp": {"displayName": "Chip", "type": "temperature"}})
    result = process_telemetry({"temp": 50}, CATALOG, types)

    record = result["General Information"][0]
    assert record.display_name == "ASIC Temp"
    assert record.formatted == "50.0°C"


def test_legacy_catalog_shape_parses_to_same_catalog() -> None:
    legacy = [
        {"Mining Metrics": [{"hashRate": "Hashrate"}, {"bestDiff": "Best Difficulty"}]},
        {"General Information": [{"hostname": "Hostname"}]},
    ]

    catalog = parse_catalog(legacy)

    assert catalog_to_json(catalog) == [
        {
            "name": "Mining Metrics",
            "fields": [
                {"key": "hashRate", "displayName": "Hashrate"},
                {"key": "bestDiff", "displayName": "Best Difficulty"},
            ],
        },
        {"name": "General Information", "fields": [{"key": "hostname", "displayName": "Hostname"}]},
    ]


@pytest.mark.parametrize(
    "raw",
    [
        {"not": "a list"},
        [{"name": "Empty", "fields": []}],
        [{"Empty": []}],
        [{"name": "Bad", "fields": [{"displayName": "No key"}]}],
        [{"name": "Bad", "fields": [{"key": "", "displayName": "Blank"}]}],
        [{"name": "Dup", "fields": [{"key": "a"}]}, {"name": "Dup", "fields": [{"key": "b"}]}],
        ["just a string"],
    ],
)
def test_malformed_catalog_is_rejected_at_load(raw) -> None:
    with pytest.raises(MappingConfigError):
        parse_catalog(raw)


def test_malformed_type_table_is_rejected() -> None:
    with pytest.raises(MappingConfigError):
        parse_type_table([])
    with pytest.raises(MappingConfigError):
        parse_type_table({"hashRate": "hashrate"})


def test_mapping_store_seeds_defaults(tmp_path: Path) -> None:
    documents = JsonDocumentStore(str(tmp_path))

    mappings = MappingStore(documents)

    assert catalog_to_json(mappings.catalog) == DEFAULT_DEVICE_MAPPINGS
    assert list(mappings.type_table) == list(DEFAULT_MINING_MAPPINGS)
    on_disk = json.loads((tmp_path / "device-mappings.json").read_text(encoding="utf-8"))
    assert on_disk == DEFAULT_DEVICE_MAPPINGS
    assert (tmp_path / "mining-mappings.json").exists()


def test_mapping_store_keeps_existing_documents(tmp_path: Path) -> None:
    documents = JsonDocumentStore(str(tmp_path))
    documents.write_document("device-mappings", [{"Custom": [{"temp": "Chip Temp"}]}])
    documents.write_document("mining-mappings", {"temp": {"displayName": "T", "type": "temperature", "unit": ""}})

    mappings = MappingStore(documents)

    assert [c.name for c in mappings.catalog] == ["Custom"]
    assert mappings.type_table["temp"].type == "temperature"


def test_mapping_store_refuses_broken_catalog(tmp_path: Path) -> None:
    documents = JsonDocumentStore(str(tmp_path))
    documents.write_document("device-mappings", [{"Broken": []}])

    with pytest.raises(MappingConfigError):
        MappingStore(documents)


def test_pool_projection_uses_table_order_and_extended_units() -> None:
    table = parse_type_table(DEFAULT_MINING_MAPPINGS)
    record = {
        "blockHeight": 810000,
        "networkHashrate": 450000000000000000,
        "networkDifficulty": 35000000000000,
        "somethingElse": 1,
    }

    projected = project_pool_status(record, table)

    assert list(projected) == ["networkHashrate", "networkDifficulty", "blockHeight"]
    assert projected["networkHashrate"] == {
        "raw": 450000000000000000,
        "formatted": "450.00 PH/s",
        "displayName": "Network Hashrate",
        "type": "hashrate",
    }
    assert projected["networkDifficulty"]["formatted"] == "35.00T"
    assert projected["blockHeight"]["formatted"] == "810,000"
