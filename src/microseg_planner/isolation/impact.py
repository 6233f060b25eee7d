"""
Impact simulation presentation.

The backend decides which flows are allowed or blocked; this module
only filters warnings about excluded infrastructure networks and
summarizes what the current interface selection will change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from ..analysis.classifier import PatternMatcher
from .models import (
    AffectedVM,
    FlowAnalysis,
    ImpactSimulation,
    VMIsolationState,
    VMSegmentationStatus,
)

AFFECTED_PREVIEW_LIMIT = 10


def filter_warnings(warnings: Iterable[str], patterns: Iterable[str]) -> list[str]:
    matcher = PatternMatcher(patterns)
    return [w for w in warnings if not matcher.mentions_excluded(w)]


@dataclass(frozen=True)
class ImpactView:
    vmid: int
    name: str
    current_state: VMIsolationState
    simulated_state: VMIsolationState
    allowed_flows: tuple[FlowAnalysis, ...]
    blocked_flows: tuple[FlowAnalysis, ...]
    affected_vms: tuple[AffectedVM, ...]
    warnings: list[str]
    hidden_warnings: int
    required_actions: tuple[str, ...]
    allowed_gateways: list[str] = field(default_factory=list)
    blocked_networks: list[str] = field(default_factory=list)

    @property
    def affected_preview(self) -> tuple[AffectedVM, ...]:
        return self.affected_vms[:AFFECTED_PREVIEW_LIMIT]

    def to_dict(self) -> dict[str, Any]:
        return {
            "vmid": self.vmid,
            "name": self.name,
            "current_state": self.current_state.to_dict(),
            "simulated_state": self.simulated_state.to_dict(),
            "allowed_flows": [f.to_dict() for f in self.allowed_flows],
            "blocked_flows": [f.to_dict() for f in self.blocked_flows],
            "affected_vms": [v.to_dict() for v in self.affected_vms],
            "affected_count": len(self.affected_vms),
            "warnings": self.warnings,
            "hidden_warnings": self.hidden_warnings,
            "required_actions": list(self.required_actions),
            "allowed_gateways": self.allowed_gateways,
            "blocked_networks": self.blocked_networks,
        }


def change_summary(
    status: VMSegmentationStatus | None,
    selection: Mapping[str, bool] | None,
) -> tuple[list[str], list[str]]:
    """
    Gateways that stay reachable and networks whose intra-VLAN traffic
    gets blocked, for the selected interfaces.
    """
    if status is None or not selection:
        return [], []
    chosen = [n for n in status.networks if selection.get(n.interface)]
    allowed = [n.gateway for n in chosen if n.gateway]
    blocked = [n.network for n in chosen if n.network]
    return allowed, blocked


def present(
    simulation: ImpactSimulation,
    patterns: Iterable[str],
    status: VMSegmentationStatus | None = None,
    selection: Mapping[str, bool] | None = None,
) -> ImpactView:
    warnings = filter_warnings(simulation.warnings, patterns)
    allowed, blocked = change_summary(status, selection)
    return ImpactView(
        vmid=simulation.vmid,
        name=simulation.name,
        current_state=simulation.current_state,
        simulated_state=simulation.simulated_state,
        allowed_flows=simulation.allowed_flows,
        blocked_flows=simulation.blocked_flows,
        affected_vms=simulation.affected_vms,
        warnings=warnings,
        hidden_warnings=len(simulation.warnings) - len(warnings),
        required_actions=simulation.required_actions,
        allowed_gateways=allowed,
        blocked_networks=blocked,
    )
