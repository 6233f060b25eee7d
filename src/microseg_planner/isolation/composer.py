"""
Isolation request composition.

Turns an operator's interface selection and security level into the
exact isolate request body. At least one selected interface must bring
a base security group; otherwise the VM would get a default-deny
firewall with no allow rules at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..analysis.classifier import PatternMatcher
from ..errors import ValidationError
from .models import IsolationRequest, SecurityLevel, VMNetworkInfo, VMSegmentationStatus

REASON_EXCLUDED = "excluded"
REASON_NO_NETWORK = "no_network"
REASON_NO_BASE_SG = "no_base_sg"


@dataclass(frozen=True)
class InterfaceOption:
    """An interface as offered for selection. Ineligible ones stay listed."""
    interface: str
    network: str
    base_sg: str
    gateway: str
    ip_address: str
    excluded: bool
    eligible: bool
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "interface": self.interface,
            "network": self.network,
            "base_sg": self.base_sg,
            "gateway": self.gateway,
            "ip_address": self.ip_address,
            "excluded": self.excluded,
            "eligible": self.eligible,
            "reason": self.reason,
        }


def interface_option(net: VMNetworkInfo, matcher: PatternMatcher) -> InterfaceOption:
    excluded = matcher.is_excluded(net.network)
    if excluded:
        reason = REASON_EXCLUDED
    elif not net.network:
        reason = REASON_NO_NETWORK
    elif not net.base_sg:
        reason = REASON_NO_BASE_SG
    else:
        reason = ""

    return InterfaceOption(
        interface=net.interface,
        network=net.network,
        base_sg=net.base_sg,
        gateway=net.gateway,
        ip_address=net.ip_address,
        excluded=excluded,
        eligible=not reason,
        reason=reason,
    )


def interface_options(
    status: VMSegmentationStatus, matcher: PatternMatcher
) -> list[InterfaceOption]:
    return [interface_option(net, matcher) for net in status.networks]


def initial_selection(options: list[InterfaceOption]) -> dict[str, bool]:
    """Eligible interfaces start selected; everything else starts cleared."""
    return {opt.interface: opt.eligible for opt in options}


def selected_base_sgs(
    status: VMSegmentationStatus, selected_interfaces: Mapping[str, bool]
) -> list[str]:
    """Distinct base SGs of the selected interfaces, in first-seen order."""
    groups: list[str] = []
    for net in status.networks:
        if selected_interfaces.get(net.interface) and net.base_sg:
            if net.base_sg not in groups:
                groups.append(net.base_sg)
    return groups


def compose(
    status: VMSegmentationStatus,
    selected_interfaces: Mapping[str, bool],
    security_level: SecurityLevel | str = SecurityLevel.STANDARD,
) -> IsolationRequest:
    try:
        level = SecurityLevel(security_level)
    except ValueError:
        raise ValidationError(f"Unknown security level: {security_level!r}") from None

    groups = selected_base_sgs(status, selected_interfaces)
    if not groups:
        raise ValidationError("no interface selected")

    return IsolationRequest(
        additional_sgs=tuple(groups),
        set_policy_out_drop=level is SecurityLevel.REINFORCED,
    )
