"""
VM segmentation data models.

Per-VM status, impact simulation and isolation request payloads.
Server-origin objects are frozen snapshots rebuilt on every refresh.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SecurityLevel(str, Enum):
    STANDARD = "standard"  # inbound DROP, outbound ACCEPT
    REINFORCED = "reinforced"  # inbound and outbound DROP


def _strs(value: Any) -> tuple[str, ...]:
    return tuple(value or ())


@dataclass(frozen=True)
class VMNetworkInfo:
    """One VM interface and the network it was matched to."""
    interface: str
    bridge: str = ""
    tag: str = ""
    ip_address: str = ""
    network: str = ""  # net-* alias, empty when undetected
    gateway: str = ""  # gw-* alias
    base_sg: str = ""  # sg-base-* group
    firewall: bool = False  # NIC firewall flag

    def to_dict(self) -> dict[str, Any]:
        return {
            "interface": self.interface,
            "bridge": self.bridge,
            "tag": self.tag,
            "ip_address": self.ip_address,
            "network": self.network,
            "gateway": self.gateway,
            "base_sg": self.base_sg,
            "firewall": self.firewall,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VMNetworkInfo:
        return cls(
            interface=data["interface"],
            bridge=data.get("bridge") or "",
            tag=str(data.get("tag") or ""),
            ip_address=data.get("ip_address") or "",
            network=data.get("network") or "",
            gateway=data.get("gateway") or "",
            base_sg=data.get("base_sg") or "",
            firewall=bool(data.get("firewall", False)),
        )


@dataclass(frozen=True)
class VMSegmentationSummary:
    """One row of the VM list."""
    vmid: int
    name: str
    node: str
    type: str = "qemu"  # qemu or lxc
    status: str = ""
    network: str = ""  # primary network
    networks: tuple[str, ...] = ()
    firewall_enabled: bool = False
    is_isolated: bool = False
    missing_base_sgs: tuple[str, ...] = ()
    applied_sgs: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.node, self.type, self.vmid)

    def to_dict(self) -> dict[str, Any]:
        return {
            "vmid": self.vmid,
            "name": self.name,
            "node": self.node,
            "type": self.type,
            "status": self.status,
            "network": self.network,
            "networks": list(self.networks),
            "firewall_enabled": self.firewall_enabled,
            "is_isolated": self.is_isolated,
            "missing_base_sgs": list(self.missing_base_sgs),
            "applied_sgs": list(self.applied_sgs),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VMSegmentationSummary:
        return cls(
            vmid=int(data["vmid"]),
            name=data.get("name") or "",
            node=data["node"],
            type=data.get("type") or "qemu",
            status=data.get("status") or "",
            network=data.get("network") or "",
            networks=_strs(data.get("networks")),
            firewall_enabled=bool(data.get("firewall_enabled", False)),
            is_isolated=bool(data.get("is_isolated", False)),
            missing_base_sgs=_strs(data.get("missing_base_sgs")),
            applied_sgs=_strs(data.get("applied_sgs")),
        )


@dataclass(frozen=True)
class VMListForSegmentation:
    total_vms: int = 0
    isolated_vms: int = 0
    unprotected_vms: int = 0
    vms: tuple[VMSegmentationSummary, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VMListForSegmentation:
        return cls(
            total_vms=int(data.get("total_vms") or 0),
            isolated_vms=int(data.get("isolated_vms") or 0),
            unprotected_vms=int(data.get("unprotected_vms") or 0),
            vms=tuple(VMSegmentationSummary.from_dict(v) for v in data.get("vms") or []),
        )


@dataclass(frozen=True)
class VMSegmentationStatus:
    """Detailed firewall and network state of one VM."""
    vmid: int
    name: str
    node: str
    firewall_enabled: bool = False
    policy_in: str = ""
    policy_out: str = ""
    networks: tuple[VMNetworkInfo, ...] = ()
    is_isolated: bool = False
    applied_base_sgs: tuple[str, ...] = ()
    applied_sgs: tuple[str, ...] = ()
    direct_rules: int = 0
    recommendations: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "vmid": self.vmid,
            "name": self.name,
            "node": self.node,
            "firewall_enabled": self.firewall_enabled,
            "policy_in": self.policy_in,
            "policy_out": self.policy_out,
            "networks": [n.to_dict() for n in self.networks],
            "is_isolated": self.is_isolated,
            "applied_base_sgs": list(self.applied_base_sgs),
            "applied_sgs": list(self.applied_sgs),
            "direct_rules": self.direct_rules,
            "recommendations": list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VMSegmentationStatus:
        return cls(
            vmid=int(data["vmid"]),
            name=data.get("name") or "",
            node=data.get("node") or "",
            firewall_enabled=bool(data.get("firewall_enabled", False)),
            policy_in=data.get("policy_in") or "",
            policy_out=data.get("policy_out") or "",
            networks=tuple(VMNetworkInfo.from_dict(n) for n in data.get("networks") or []),
            is_isolated=bool(data.get("is_isolated", False)),
            applied_base_sgs=_strs(data.get("applied_base_sgs")),
            applied_sgs=_strs(data.get("applied_sgs")),
            direct_rules=int(data.get("direct_rules") or 0),
            recommendations=_strs(data.get("recommendations")),
        )


@dataclass(frozen=True)
class VMIsolationState:
    firewall_enabled: bool = False
    policy_in: str = ""
    policy_out: str = ""
    is_isolated: bool = False
    applied_sgs: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "firewall_enabled": self.firewall_enabled,
            "policy_in": self.policy_in,
            "policy_out": self.policy_out,
            "is_isolated": self.is_isolated,
            "applied_sgs": list(self.applied_sgs),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> VMIsolationState:
        data = data or {}
        return cls(
            firewall_enabled=bool(data.get("firewall_enabled", False)),
            policy_in=data.get("policy_in") or "",
            policy_out=data.get("policy_out") or "",
            is_isolated=bool(data.get("is_isolated", False)),
            applied_sgs=_strs(data.get("applied_sgs")),
        )


@dataclass(frozen=True)
class FlowAnalysis:
    direction: str  # in or out
    protocol: str = ""
    port: str = ""
    source: str = ""
    destination: str = ""
    reason: str = ""  # rule or group that decides the flow
    critical: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction,
            "protocol": self.protocol,
            "port": self.port,
            "source": self.source,
            "destination": self.destination,
            "reason": self.reason,
            "critical": self.critical,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FlowAnalysis:
        return cls(
            direction=data.get("direction") or "",
            protocol=data.get("protocol") or "",
            port=str(data.get("port") or ""),
            source=data.get("source") or "",
            destination=data.get("destination") or "",
            reason=data.get("reason") or "",
            critical=bool(data.get("critical", False)),
        )


@dataclass(frozen=True)
class AffectedVM:
    """A peer VM whose traffic with the isolated VM may change."""
    vmid: int
    name: str = ""
    node: str = ""
    network: str = ""
    ip_address: str = ""
    impact: str = ""  # communication_blocked, no_impact, ...
    can_resolve: bool = False
    resolution: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "vmid": self.vmid,
            "name": self.name,
            "node": self.node,
            "network": self.network,
            "ip_address": self.ip_address,
            "impact": self.impact,
            "can_resolve": self.can_resolve,
            "resolution": self.resolution,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AffectedVM:
        return cls(
            vmid=int(data["vmid"]),
            name=data.get("name") or "",
            node=data.get("node") or "",
            network=data.get("network") or "",
            ip_address=data.get("ip_address") or "",
            impact=data.get("impact") or "",
            can_resolve=bool(data.get("can_resolve", False)),
            resolution=data.get("resolution") or "",
        )


@dataclass(frozen=True)
class ImpactSimulation:
    """Backend before/after evaluation of isolating one VM."""
    vmid: int
    name: str = ""
    current_state: VMIsolationState = VMIsolationState()
    simulated_state: VMIsolationState = VMIsolationState()
    allowed_flows: tuple[FlowAnalysis, ...] = ()
    blocked_flows: tuple[FlowAnalysis, ...] = ()
    affected_vms: tuple[AffectedVM, ...] = ()
    warnings: tuple[str, ...] = ()
    required_actions: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImpactSimulation:
        return cls(
            vmid=int(data["vmid"]),
            name=data.get("name") or "",
            current_state=VMIsolationState.from_dict(data.get("current_state")),
            simulated_state=VMIsolationState.from_dict(data.get("simulated_state")),
            allowed_flows=tuple(FlowAnalysis.from_dict(f) for f in data.get("allowed_flows") or []),
            blocked_flows=tuple(FlowAnalysis.from_dict(f) for f in data.get("blocked_flows") or []),
            affected_vms=tuple(AffectedVM.from_dict(v) for v in data.get("affected_vms") or []),
            warnings=_strs(data.get("warnings")),
            required_actions=_strs(data.get("required_actions")),
        )


@dataclass(frozen=True)
class IsolationRequest:
    """Body of the isolate call."""
    additional_sgs: tuple[str, ...]
    set_policy_out_drop: bool = False
    enable_firewall: bool = True
    set_policy_in_drop: bool = True
    apply_base_sgs: bool = True
    enable_nic_fw: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "enable_firewall": self.enable_firewall,
            "set_policy_in_drop": self.set_policy_in_drop,
            "set_policy_out_drop": self.set_policy_out_drop,
            "apply_base_sgs": self.apply_base_sgs,
            "additional_sgs": list(self.additional_sgs),
            "enable_nic_fw": self.enable_nic_fw,
        }


@dataclass(frozen=True)
class IsolateResult:
    success: bool = True
    applied_sgs: tuple[str, ...] = ()
    enabled_nics: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "applied_sgs": list(self.applied_sgs),
            "enabled_nics": list(self.enabled_nics),
            "actions": list(self.actions),
            "errors": list(self.errors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> IsolateResult:
        # Only success/failure is guaranteed; an empty body means success
        data = data or {}
        return cls(
            success=bool(data.get("success", True)),
            applied_sgs=_strs(data.get("applied_sgs")),
            enabled_nics=_strs(data.get("enabled_nics")),
            actions=_strs(data.get("actions")),
            errors=_strs(data.get("errors")),
        )
