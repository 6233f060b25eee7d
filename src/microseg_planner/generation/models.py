"""Generation request/result models for the generate-base endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PlannedAction:
    """A single idempotent creation step returned by a dry run."""
    type: str  # alias or security_group
    name: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "name": self.name, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlannedAction:
        return cls(
            type=data.get("type", ""),
            name=data.get("name", ""),
            description=data.get("description") or "",
        )


@dataclass(frozen=True)
class GenerateRequest:
    dry_run: bool
    create_gateways: bool
    gateway_offset: int
    networks: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "create_gateways": self.create_gateways,
            "gateway_offset": self.gateway_offset,
            "networks": list(self.networks),
        }


@dataclass(frozen=True)
class GenerateResult:
    """
    Outcome of a generation call.

    A dry run carries ``plan``; a real run carries ``created_aliases``
    and ``created_groups``. ``errors`` lists per-item failures that did
    not roll back anything already created.
    """
    dry_run: bool
    created_aliases: tuple[str, ...] = ()
    created_groups: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    plan: tuple[PlannedAction, ...] = ()

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def created_count(self) -> int:
        return len(self.created_aliases) + len(self.created_groups)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"dry_run": self.dry_run, "errors": list(self.errors)}
        if self.dry_run:
            data["plan"] = [a.to_dict() for a in self.plan]
        else:
            data["created_aliases"] = list(self.created_aliases)
            data["created_groups"] = list(self.created_groups)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], dry_run: bool | None = None) -> GenerateResult:
        is_dry = bool(data.get("dry_run", False)) if dry_run is None else dry_run
        if is_dry:
            return cls(
                dry_run=True,
                errors=tuple(data.get("errors") or []),
                plan=tuple(PlannedAction.from_dict(a) for a in data.get("plan") or []),
            )
        return cls(
            dry_run=False,
            created_aliases=tuple(data.get("created_aliases") or []),
            created_groups=tuple(data.get("created_groups") or []),
            errors=tuple(data.get("errors") or []),
        )


@dataclass(frozen=True)
class PendingChanges:
    """What the operator is asked to confirm before generating."""
    gateway_aliases: list[dict[str, str]] = field(default_factory=list)
    base_sgs: list[dict[str, str]] = field(default_factory=list)
    skipped_gateways: int = 0  # missing aliases left alone because gateway creation is off

    @property
    def is_empty(self) -> bool:
        return not self.gateway_aliases and not self.base_sgs

    def to_dict(self) -> dict[str, Any]:
        return {
            "gateway_aliases": self.gateway_aliases,
            "base_sgs": self.base_sgs,
            "skipped_gateways": self.skipped_gateways,
        }
