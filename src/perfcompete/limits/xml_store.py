"""XML limits documents.

Document layout::

    <CompetitionBenchmarks>
        <Competition Target="StringBenchmarks">
            <Candidate Target="concat" MinRatio="1.85" MaxRatio="2.15">
                <time>
                    <Min Value="1.2" Type="ms" />
                    <Max Value="3.4" Type="ms" />
                </time>
            </Candidate>
        </Competition>
    </CompetitionBenchmarks>

``MinRatio``/``MaxRatio`` hold the primary metric. Every other metric is an
element named after its stored name, whose ``Min``/``Max`` children carry a
required ``Value`` and an optional ``Type`` (unit name).

Documents are serialized with tab indentation so that an unchanged document
is written back byte for byte.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Iterable

from perfcompete.limits.store import (
    LimitsDocument,
    LimitsStore,
    LimitsStoreError,
    StoredMetricEntry,
    format_number,
    parse_number,
    stored_bounds,
)
from perfcompete.metrics.descriptors import MetricRegistry
from perfcompete.metrics.ranges import INF
from perfcompete.metrics.values import MetricValue, TargetKey

ROOT_TAG = "CompetitionBenchmarks"
COMPETITION_TAG = "Competition"
CANDIDATE_TAG = "Candidate"
TARGET_ATTR = "Target"
MIN_RATIO_ATTR = "MinRatio"
MAX_RATIO_ATTR = "MaxRatio"
MIN_TAG = "Min"
MAX_TAG = "Max"
VALUE_ATTR = "Value"
TYPE_ATTR = "Type"


class XmlLimitsDocument(LimitsDocument):
    """An in-memory ``CompetitionBenchmarks`` element tree."""

    def __init__(self, root: ET.Element, registry: MetricRegistry, origin: str = "<memory>") -> None:
        if root.tag != ROOT_TAG:
            raise LimitsStoreError(
                f"{origin}: root element must be <{ROOT_TAG}>, got <{root.tag}>."
            )
        self.root = root
        self.registry = registry
        self.origin = origin

    @classmethod
    def parse(cls, content: bytes | str, registry: MetricRegistry, origin: str = "<memory>") -> XmlLimitsDocument:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as exc:
            raise LimitsStoreError(f"{origin}: malformed XML: {exc}") from None
        return cls(root, registry, origin)

    @classmethod
    def new(cls, registry: MetricRegistry) -> XmlLimitsDocument:
        return cls(ET.Element(ROOT_TAG), registry)

    # -- lookup ------------------------------------------------------------

    def _competitions(self, type_name: str) -> list[ET.Element]:
        return [
            e for e in self.root.findall(COMPETITION_TAG) if e.get(TARGET_ATTR) == type_name
        ]

    def _candidates(self, key: TargetKey) -> list[ET.Element]:
        found: list[ET.Element] = []
        for competition in self._competitions(key.type_name):
            found.extend(
                e
                for e in competition.findall(CANDIDATE_TAG)
                if e.get(TARGET_ATTR) == key.method_name
            )
        return found

    def keys(self) -> list[TargetKey]:
        keys: list[TargetKey] = []
        for competition in self.root.findall(COMPETITION_TAG):
            for candidate in competition.findall(CANDIDATE_TAG):
                key = TargetKey(
                    competition.get(TARGET_ATTR, ""), candidate.get(TARGET_ATTR, "")
                )
                if key not in keys:
                    keys.append(key)
        return keys

    # -- reading -----------------------------------------------------------

    def read_entries(self, key: TargetKey) -> list[StoredMetricEntry] | None:
        candidates = self._candidates(key)
        if not candidates:
            return None
        primary = self.registry.primary
        entries: list[StoredMetricEntry] = []
        for candidate in candidates:
            min_ratio = candidate.get(MIN_RATIO_ATTR)
            max_ratio = candidate.get(MAX_RATIO_ATTR)
            if min_ratio is not None or max_ratio is not None:
                if primary is None:
                    raise LimitsStoreError(
                        f"{self.origin}: {key}: ratio limits are stored but no primary "
                        f"metric is registered."
                    )
                where = f"{self.origin}: {key}"
                entries.append(
                    StoredMetricEntry(
                        primary.stored_name,
                        None if min_ratio is None else parse_number(min_ratio, where),
                        None if max_ratio is None else parse_number(max_ratio, where),
                        legacy=True,
                    )
                )
            for element in candidate:
                entries.append(self._read_metric(key, element))
        return entries

    def _read_metric(self, key: TargetKey, element: ET.Element) -> StoredMetricEntry:
        path = f"{key.type_name}/{key.method_name}/{element.tag}"
        bounds: dict[str, float] = {}
        units: set[str] = set()
        for child in element:
            where = f"{self.origin}: {path}/{child.tag}"
            if child.tag not in (MIN_TAG, MAX_TAG):
                raise LimitsStoreError(f"{where}: unexpected element <{child.tag}>.")
            value = child.get(VALUE_ATTR)
            if value is None:
                raise LimitsStoreError(f"{where}: the '{VALUE_ATTR}' attribute is required.")
            bounds[child.tag] = parse_number(value, where)
            unit = child.get(TYPE_ATTR)
            if unit:
                units.add(unit)
        if len(units) > 1:
            raise LimitsStoreError(
                f"{self.origin}: {path}: Min and Max use different units ({', '.join(sorted(units))})."
            )
        return StoredMetricEntry(
            element.tag,
            bounds.get(MIN_TAG),
            bounds.get(MAX_TAG),
            units.pop() if units else None,
        )

    # -- writing -----------------------------------------------------------

    def _candidate_for_write(self, key: TargetKey) -> ET.Element:
        candidates = self._candidates(key)
        if candidates:
            return candidates[0]
        competitions = self._competitions(key.type_name)
        if competitions:
            competition = competitions[0]
        else:
            competition = ET.SubElement(self.root, COMPETITION_TAG, {TARGET_ATTR: key.type_name})
        return ET.SubElement(competition, CANDIDATE_TAG, {TARGET_ATTR: key.method_name})

    def write_values(self, key: TargetKey, values: Iterable[MetricValue]) -> None:
        candidate = self._candidate_for_write(key)
        for value in values:
            if value.range.is_empty:
                continue
            descriptor = value.descriptor
            element = candidate.find(descriptor.stored_name)
            if descriptor.is_primary and element is None:
                self._write_ratio(candidate, value)
            else:
                if element is None:
                    element = ET.SubElement(candidate, descriptor.stored_name)
                self._write_metric(element, value)

    @staticmethod
    def _write_ratio(candidate: ET.Element, value: MetricValue) -> None:
        rng = value.range
        if rng.min == -INF:
            candidate.attrib.pop(MIN_RATIO_ATTR, None)
        else:
            candidate.set(MIN_RATIO_ATTR, format_number(rng.min))
        if rng.max == INF:
            candidate.attrib.pop(MAX_RATIO_ATTR, None)
        else:
            candidate.set(MAX_RATIO_ATTR, format_number(rng.max))

    @staticmethod
    def _write_metric(element: ET.Element, value: MetricValue) -> None:
        for child in list(element):
            element.remove(child)
        element.text = None
        min_value, max_value = stored_bounds(value)
        unit_name = value.unit.name
        for tag, bound in ((MIN_TAG, min_value), (MAX_TAG, max_value)):
            if bound is None:
                continue
            attrs = {VALUE_ATTR: format_number(bound)}
            if unit_name:
                attrs[TYPE_ATTR] = unit_name
            ET.SubElement(element, tag, attrs)

    # -- serialization -----------------------------------------------------

    def to_bytes(self) -> bytes:
        ET.indent(self.root, space="\t")
        body = ET.tostring(self.root, encoding="utf-8", xml_declaration=True)
        return body + b"\n"

    def to_text(self) -> str:
        return self.to_bytes().decode("utf-8")


class XmlLimitsStore(LimitsStore):
    """Limits store reading and writing XML documents."""

    format_name = "xml"

    def parse_document(self, content: bytes, origin: str) -> LimitsDocument:
        return XmlLimitsDocument.parse(content, self.registry, origin)

    def new_document(self) -> LimitsDocument:
        return XmlLimitsDocument.new(self.registry)
