"""
Network classification and readiness scoring.

Splits discovered networks into in-scope and infrastructure networks
using exclusion patterns, then derives readiness metrics from the
in-scope set only. Every function here is a pure function of its
arguments; nothing is cached between calls.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, Sequence, TypeVar

from .gateway import offset_label
from .models import MicrosegAnalysis, MissingBaseSG, MissingGateway, NetworkInfo


class _HasNetworkName(Protocol):
    network_name: str


T = TypeVar("T", bound=_HasNetworkName)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative percentages."""
    return int(math.floor(value + 0.5))


class PatternMatcher:
    """
    Case-insensitive substring matcher for infrastructure networks.

    A name is excluded when it contains any pattern, so ``storage``
    excludes ``storage-replication-10g``. Short patterns such as ``net``
    match very broadly; choosing them is up to the operator.
    """

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns: tuple[str, ...] = tuple(
            p.strip().lower() for p in patterns if p and p.strip()
        )

    def is_excluded(self, name: str | None) -> bool:
        if not name:
            return False
        lowered = name.lower()
        return any(p in lowered for p in self.patterns)

    def matching_patterns(self, name: str | None) -> list[str]:
        """Patterns responsible for excluding ``name``."""
        if not name:
            return []
        lowered = name.lower()
        return [p for p in self.patterns if p in lowered]

    def mentions_excluded(self, text: str) -> bool:
        """True when free text (e.g. a warning) mentions any pattern."""
        return self.is_excluded(text)


@dataclass(frozen=True)
class ClassifiedNetworks:
    included: list[NetworkInfo] = field(default_factory=list)
    excluded: list[NetworkInfo] = field(default_factory=list)

    @property
    def included_names(self) -> list[str]:
        return [n.name for n in self.included]

    @property
    def excluded_names(self) -> list[str]:
        return [n.name for n in self.excluded]


@dataclass(frozen=True)
class ReadinessReport:
    """Exclusion-aware readiness view of one analysis."""
    included: list[NetworkInfo]
    excluded: list[NetworkInfo]
    readiness_percent: int
    missing_gateways: list[MissingGateway]
    missing_base_sgs: list[MissingBaseSG]
    segmentation_ready: bool
    isolation_percent: int
    total_vms: int
    isolated_vms: int
    unprotected_vms: int
    gateway_offset: int
    gateway_label: str

    @property
    def included_names(self) -> list[str]:
        return [n.name for n in self.included]

    def to_dict(self, show_excluded: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "readiness_percent": self.readiness_percent,
            "segmentation_ready": self.segmentation_ready,
            "isolation_percent": self.isolation_percent,
            "total_vms": self.total_vms,
            "isolated_vms": self.isolated_vms,
            "unprotected_vms": self.unprotected_vms,
            "gateway_offset": self.gateway_offset,
            "gateway_label": self.gateway_label,
            "included": [n.to_dict() for n in self.included],
            "missing_gateways": [m.to_dict() for m in self.missing_gateways],
            "missing_base_sgs": [m.to_dict() for m in self.missing_base_sgs],
            "excluded_count": len(self.excluded),
        }
        if show_excluded:
            data["excluded"] = [n.to_dict() for n in self.excluded]
        return data


def readiness_percent(included: Sequence[NetworkInfo]) -> int:
    """Share of in-scope networks with both a gateway alias and a base SG."""
    if not included:
        return 100
    ready = sum(1 for n in included if n.is_ready)
    return round_half_up(100 * ready / len(included))


def isolation_percent(isolated_vms: int, total_vms: int) -> int:
    if total_vms <= 0:
        return 0
    return round_half_up(100 * isolated_vms / total_vms)


def filter_missing(items: Iterable[T], matcher: PatternMatcher) -> list[T]:
    """Drop missing-item entries that belong to excluded networks."""
    return [item for item in items if not matcher.is_excluded(item.network_name)]


class NetworkClassifier:
    """Partitions networks by exclusion patterns and scores readiness."""

    def classify(
        self,
        networks: Iterable[NetworkInfo],
        patterns: Iterable[str] | PatternMatcher,
    ) -> ClassifiedNetworks:
        matcher = patterns if isinstance(patterns, PatternMatcher) else PatternMatcher(patterns)
        included: list[NetworkInfo] = []
        excluded: list[NetworkInfo] = []
        for net in networks:
            if matcher.is_excluded(net.name):
                excluded.append(net)
            else:
                included.append(net)
        return ClassifiedNetworks(included=included, excluded=excluded)

    def report(
        self,
        analysis: MicrosegAnalysis,
        patterns: Iterable[str],
        gateway_offset: int,
    ) -> ReadinessReport:
        matcher = PatternMatcher(patterns)
        split = self.classify(analysis.networks, matcher)
        missing_gateways = filter_missing(analysis.missing_gateways, matcher)
        missing_base_sgs = filter_missing(analysis.missing_base_sgs, matcher)

        return ReadinessReport(
            included=split.included,
            excluded=split.excluded,
            readiness_percent=readiness_percent(split.included),
            missing_gateways=missing_gateways,
            missing_base_sgs=missing_base_sgs,
            segmentation_ready=not missing_gateways and not missing_base_sgs,
            isolation_percent=isolation_percent(analysis.isolated_vms, analysis.total_vms),
            total_vms=analysis.total_vms,
            isolated_vms=analysis.isolated_vms,
            unprotected_vms=analysis.unprotected_vms,
            gateway_offset=gateway_offset,
            gateway_label=offset_label(gateway_offset),
        )
