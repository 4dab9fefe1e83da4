# telemetry.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping
import math

from field_mappings import FieldType, MappingCatalog, TypeTable
from value_format import format_value

_UNTYPED = FieldType(display_name="", type="string", unit="")


@dataclass(frozen=True)
class DisplayRecord:
    key: str
    raw: Any
    formatted: str
    display_name: str
    type: str
    unit: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "raw": self.raw,
            "formatted": self.formatted,
            "displayName": self.display_name,
            "type": self.type,
            "unit": self.unit,
        }


def process_telemetry(
    telemetry: Mapping[str, Any],
    catalog: MappingCatalog,
    type_table: TypeTable,
) -> Dict[str, List[DisplayRecord]]:
    """
    Join one telemetry record against the catalog.

    Categories and the fields inside them come out in catalog order, whatever
    order the telemetry keys arrived in. Catalog fields missing from the record
    are skipped; every category is present, possibly empty.
    """
    out: Dict[str, List[DisplayRecord]] = {}
    for category in catalog:
        records: List[DisplayRecord] = []
        for mapping in category.fields:
            if mapping.key not in telemetry:
                continue
            raw = telemetry[mapping.key]
            meta = type_table.get(mapping.key, _UNTYPED)
            records.append(
                DisplayRecord(
                    key=mapping.key,
                    raw=raw,
                    formatted=format_value(raw, meta.type, meta.unit),
                    display_name=mapping.display_name,
                    type=meta.type,
                    unit=meta.unit,
                )
            )
        out[category.name] = records
    return out


def categories_to_json(categories: Dict[str, List[DisplayRecord]]) -> Dict[str, List[Dict[str, Any]]]:
    return {name: [r.to_dict() for r in records] for name, records in categories.items()}


def project_pool_status(record: Mapping[str, Any], type_table: TypeTable) -> Dict[str, Dict[str, Any]]:
    """Mining-core projection: every type-table key present in the record, in table order."""
    out: Dict[str, Dict[str, Any]] = {}
    for key, meta in type_table.items():
        if key not in record:
            continue
        raw = record[key]
        out[key] = {
            "raw": raw,
            "formatted": format_value(raw, meta.type, meta.unit, extended_units=True),
            "displayName": meta.display_name,
            "type": meta.type,
        }
    return out


def json_safe(value: Any) -> Any:
    """Copy of an upstream payload with NaN/Infinity replaced by None; JSON has no spelling for them."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value
