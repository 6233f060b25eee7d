"""
Network analysis data models.

Snapshots returned by the backend's analyze endpoint. They are never
patched in place; a refresh replaces the whole analysis.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class NetworkInfo:
    """A discovered logical network (VLAN/bridge) backed by a net-* alias."""
    name: str
    cidr: str = ""
    comment: str = ""
    gateway: str = ""
    has_gateway: bool = False
    has_base_sg: bool = False

    @property
    def is_ready(self) -> bool:
        return self.has_gateway and self.has_base_sg

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "cidr": self.cidr,
            "comment": self.comment,
            "gateway": self.gateway,
            "has_gateway": self.has_gateway,
            "has_base_sg": self.has_base_sg,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NetworkInfo:
        return cls(
            name=data["name"],
            cidr=data.get("cidr") or "",
            comment=data.get("comment") or "",
            gateway=data.get("gateway") or "",
            has_gateway=bool(data.get("has_gateway", False)),
            has_base_sg=bool(data.get("has_base_sg", False)),
        )


@dataclass(frozen=True)
class MissingGateway:
    """A gw-* alias that should exist but does not."""
    network_name: str
    alias_name: str
    gateway_ip: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "network_name": self.network_name,
            "alias_name": self.alias_name,
            "gateway_ip": self.gateway_ip,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MissingGateway:
        return cls(
            network_name=data["network_name"],
            alias_name=data.get("alias_name") or "",
            gateway_ip=data.get("gateway_ip") or "",
        )


@dataclass(frozen=True)
class MissingBaseSG:
    """An sg-base-* security group that should exist but does not."""
    network_name: str
    sg_name: str
    gateway_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "network_name": self.network_name,
            "sg_name": self.sg_name,
            "gateway_name": self.gateway_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MissingBaseSG:
        return cls(
            network_name=data["network_name"],
            sg_name=data.get("sg_name") or "",
            gateway_name=data.get("gateway_name") or "",
        )


@dataclass(frozen=True)
class MicrosegAnalysis:
    """
    Backend view of the current segmentation state.

    ``segmentation_ready`` is advisory: the backend does not know the
    caller's exclusion patterns, so readiness is recomputed locally.
    """
    networks: tuple[NetworkInfo, ...] = ()
    gateway_aliases: tuple[str, ...] = ()
    base_sgs: tuple[str, ...] = ()
    missing_gateways: tuple[MissingGateway, ...] = ()
    missing_base_sgs: tuple[MissingBaseSG, ...] = ()
    total_vms: int = 0
    isolated_vms: int = 0
    unprotected_vms: int = 0
    segmentation_ready: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "networks": [n.to_dict() for n in self.networks],
            "gateway_aliases": list(self.gateway_aliases),
            "base_sgs": list(self.base_sgs),
            "missing_gateways": [m.to_dict() for m in self.missing_gateways],
            "missing_base_sgs": [m.to_dict() for m in self.missing_base_sgs],
            "total_vms": self.total_vms,
            "isolated_vms": self.isolated_vms,
            "unprotected_vms": self.unprotected_vms,
            "segmentation_ready": self.segmentation_ready,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MicrosegAnalysis:
        # The backend serializes empty slices as null
        return cls(
            networks=tuple(NetworkInfo.from_dict(n) for n in data.get("networks") or []),
            gateway_aliases=tuple(data.get("gateway_aliases") or []),
            base_sgs=tuple(data.get("base_sgs") or []),
            missing_gateways=tuple(
                MissingGateway.from_dict(m) for m in data.get("missing_gateways") or []
            ),
            missing_base_sgs=tuple(
                MissingBaseSG.from_dict(m) for m in data.get("missing_base_sgs") or []
            ),
            total_vms=int(data.get("total_vms") or 0),
            isolated_vms=int(data.get("isolated_vms") or 0),
            unprotected_vms=int(data.get("unprotected_vms") or 0),
            segmentation_ready=bool(data.get("segmentation_ready", False)),
        )


@dataclass(frozen=True)
class AnalysisSnapshot:
    """An analysis together with the gateway offset it was computed for."""
    connection_id: str
    gateway_offset: int
    analysis: MicrosegAnalysis
    fetched_at: float = field(default_factory=time.time)
