"""VM list helpers: search and per-VM isolation badges."""

from __future__ import annotations

from typing import Any, Iterable

from ..analysis.classifier import PatternMatcher
from .models import VMSegmentationSummary

BADGE_ISOLATED = "isolated"
BADGE_PARTIAL = "partial"
BADGE_NONE = "none"


def search_vms(
    vms: Iterable[VMSegmentationSummary], term: str = ""
) -> list[VMSegmentationSummary]:
    """Match ``term`` against name, vmid and node (case-insensitive)."""
    term = term.strip().lower()
    if not term:
        return list(vms)
    return [
        vm for vm in vms
        if term in vm.name.lower() or term in str(vm.vmid) or term in vm.node.lower()
    ]


def isolation_badge(vm: VMSegmentationSummary) -> str:
    if vm.is_isolated:
        return BADGE_ISOLATED
    if vm.missing_base_sgs:
        return BADGE_PARTIAL
    return BADGE_NONE


def vm_row(vm: VMSegmentationSummary, matcher: PatternMatcher) -> dict[str, Any]:
    """A VM list row with isolation badge and infrastructure networks marked."""
    return {
        **vm.to_dict(),
        "badge": isolation_badge(vm),
        "networks": [
            {"name": net, "excluded": matcher.is_excluded(net)} for net in vm.networks
        ],
        "applied_sg_count": len(vm.applied_sgs),
    }
