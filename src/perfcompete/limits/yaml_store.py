"""YAML limits documents.

Document layout::

    competitions:
      StringBenchmarks:
        concat:
        - metric: relative_time
          min: 1.85
          max: 2.15
        - metric: time
          min: 1.2
          max: 3.4
          unit: ms

Absent ``min``/``max`` keys follow the same rules as the structured XML
entries: an absent maximum is ignored and an absent minimum is derived
from the metric's default-min policy.
"""

from __future__ import annotations

import math
from typing import Any, Iterable

import yaml

from perfcompete.limits.store import (
    LimitsDocument,
    LimitsStore,
    LimitsStoreError,
    StoredMetricEntry,
    parse_number,
    stored_bounds,
)
from perfcompete.metrics.values import MetricValue, TargetKey

COMPETITIONS_KEY = "competitions"


def _yaml_number(value: float) -> float | int:
    if math.isinf(value):
        return value
    value = round(value, 12)
    return int(value) if value.is_integer() else value


class YamlLimitsDocument(LimitsDocument):
    """An in-memory YAML limits mapping."""

    def __init__(self, data: dict[str, Any], origin: str = "<memory>") -> None:
        competitions = data.setdefault(COMPETITIONS_KEY, {})
        if competitions is None:
            competitions = data[COMPETITIONS_KEY] = {}
        if not isinstance(competitions, dict):
            raise LimitsStoreError(
                f"{origin}: '{COMPETITIONS_KEY}' must be a mapping of type name -> methods."
            )
        self.data = data
        self.origin = origin

    @classmethod
    def parse(cls, content: bytes | str, origin: str = "<memory>") -> YamlLimitsDocument:
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise LimitsStoreError(f"{origin}: malformed YAML: {exc}") from None
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise LimitsStoreError(
                f"{origin}: limits document must be a YAML mapping, got {type(data).__name__}."
            )
        return cls(data, origin)

    @property
    def competitions(self) -> dict[str, Any]:
        return self.data[COMPETITIONS_KEY]

    def keys(self) -> list[TargetKey]:
        keys: list[TargetKey] = []
        for type_name, methods in self.competitions.items():
            if isinstance(methods, dict):
                keys.extend(TargetKey(str(type_name), str(m)) for m in methods)
        return keys

    def _methods(self, type_name: str) -> dict[str, Any] | None:
        methods = self.competitions.get(type_name)
        if methods is None:
            return None
        if not isinstance(methods, dict):
            raise LimitsStoreError(
                f"{self.origin}: {type_name}: expected a mapping of method -> entries."
            )
        return methods

    def read_entries(self, key: TargetKey) -> list[StoredMetricEntry] | None:
        methods = self._methods(key.type_name)
        if methods is None or key.method_name not in methods:
            return None
        items = methods[key.method_name] or []
        if not isinstance(items, list):
            raise LimitsStoreError(f"{self.origin}: {key}: expected a list of metric entries.")

        entries: list[StoredMetricEntry] = []
        for index, item in enumerate(items):
            where = f"{self.origin}: {key.type_name}/{key.method_name}[{index}]"
            if not isinstance(item, dict) or "metric" not in item:
                raise LimitsStoreError(f"{where}: each entry needs a 'metric' key.")
            bounds: list[float | None] = []
            for bound in ("min", "max"):
                raw = item.get(bound)
                bounds.append(None if raw is None else parse_number(str(raw), f"{where}/{bound}"))
            unit = item.get("unit")
            entries.append(
                StoredMetricEntry(
                    str(item["metric"]), bounds[0], bounds[1], str(unit) if unit else None
                )
            )
        return entries

    def write_values(self, key: TargetKey, values: Iterable[MetricValue]) -> None:
        methods = self._methods(key.type_name)
        if methods is None:
            methods = self.competitions[key.type_name] = {}
        items = methods.get(key.method_name)
        if not isinstance(items, list):
            items = methods[key.method_name] = []

        for value in values:
            if value.range.is_empty:
                continue
            stored_name = value.descriptor.stored_name
            entry: dict[str, Any] = {"metric": stored_name}
            min_value, max_value = stored_bounds(value)
            if min_value is not None:
                entry["min"] = _yaml_number(min_value)
            entry["max"] = _yaml_number(max_value) if max_value is not None else math.inf
            if value.unit.name:
                entry["unit"] = value.unit.name
            for i, item in enumerate(items):
                if isinstance(item, dict) and item.get("metric") == stored_name:
                    items[i] = entry
                    break
            else:
                items.append(entry)

    def to_bytes(self) -> bytes:
        text = yaml.dump(self.data, default_flow_style=False, sort_keys=False, allow_unicode=True)
        return text.encode("utf-8")


class YamlLimitsStore(LimitsStore):
    """Limits store reading and writing YAML documents."""

    format_name = "yaml"

    def parse_document(self, content: bytes, origin: str) -> LimitsDocument:
        return YamlLimitsDocument.parse(content, origin)

    def new_document(self) -> LimitsDocument:
        return YamlLimitsDocument({})
