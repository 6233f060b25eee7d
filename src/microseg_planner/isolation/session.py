"""
VM isolation sessions.

A session is opened when a VM is selected and owns the interface
selection and security level for that VM only. Opening another VM or
closing the session discards it. Responses are tagged with the token of
the session that requested them, so results that arrive after the
operator moved on are dropped instead of leaking into the new session.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Iterable

from ..analysis.classifier import PatternMatcher
from ..errors import ValidationError
from .composer import InterfaceOption, compose, initial_selection, interface_options
from .impact import ImpactView, present
from .models import (
    ImpactSimulation,
    IsolationRequest,
    SecurityLevel,
    VMSegmentationStatus,
    VMSegmentationSummary,
)

logger = logging.getLogger(__name__)


@dataclass
class IsolationSession:
    connection_id: str
    vm: VMSegmentationSummary
    token: int
    exclude_patterns: tuple[str, ...] = ()
    status: VMSegmentationStatus | None = None
    simulation: ImpactSimulation | None = None
    options: list[InterfaceOption] = field(default_factory=list)
    selected_interfaces: dict[str, bool] = field(default_factory=dict)
    security_level: SecurityLevel = SecurityLevel.STANDARD
    closed: bool = False

    @property
    def key(self) -> tuple[str, str, int]:
        return self.vm.key

    def load_status(self, status: VMSegmentationStatus) -> None:
        self.status = status
        self.options = interface_options(status, PatternMatcher(self.exclude_patterns))
        self.selected_interfaces = initial_selection(self.options)

    def load_simulation(self, simulation: ImpactSimulation) -> None:
        self.simulation = simulation

    def option(self, interface: str) -> InterfaceOption | None:
        for opt in self.options:
            if opt.interface == interface:
                return opt
        return None

    def toggle(self, interface: str) -> bool:
        """Flip an interface. Ineligible or unknown interfaces are refused."""
        opt = self.option(interface)
        if opt is None or not opt.eligible:
            return False
        self.selected_interfaces[interface] = not self.selected_interfaces.get(interface, False)
        return True

    def select(self, interfaces: Iterable[str]) -> list[str]:
        """Select exactly ``interfaces``; returns the ones refused."""
        wanted = set(interfaces)
        refused = []
        for opt in self.options:
            if opt.interface in wanted and not opt.eligible:
                refused.append(opt.interface)
        known = {opt.interface for opt in self.options}
        refused.extend(sorted(wanted - known))
        self.selected_interfaces = {
            opt.interface: opt.eligible and opt.interface in wanted for opt in self.options
        }
        return refused

    def set_security_level(self, level: SecurityLevel | str) -> None:
        try:
            self.security_level = SecurityLevel(level)
        except ValueError:
            raise ValidationError(f"Unknown security level: {level!r}") from None

    def selected_count(self) -> int:
        return sum(1 for v in self.selected_interfaces.values() if v)

    def can_isolate(self) -> bool:
        return not self.vm.is_isolated and self.status is not None and self.selected_count() > 0

    def compose(self) -> IsolationRequest:
        if self.status is None:
            raise ValidationError(f"VM {self.vm.vmid} status not loaded")
        return compose(self.status, self.selected_interfaces, self.security_level)

    def impact_view(self) -> ImpactView | None:
        if self.simulation is None:
            return None
        return present(
            self.simulation, self.exclude_patterns, self.status, self.selected_interfaces
        )

    def close(self) -> None:
        self.closed = True


class SessionTracker:
    """Holds at most one open isolation session and guards against stale responses."""

    def __init__(self):
        self._tokens = itertools.count(1)
        self.current: IsolationSession | None = None

    def open(
        self,
        connection_id: str,
        vm: VMSegmentationSummary,
        exclude_patterns: Iterable[str] = (),
    ) -> IsolationSession:
        if self.current is not None:
            self.current.close()
        session = IsolationSession(
            connection_id=connection_id,
            vm=vm,
            token=next(self._tokens),
            exclude_patterns=tuple(exclude_patterns),
        )
        self.current = session
        logger.debug("Opened isolation session %d for VM %s", session.token, vm.vmid)
        return session

    def close(self) -> None:
        if self.current is not None:
            self.current.close()
            logger.debug("Closed isolation session %d", self.current.token)
        self.current = None

    def is_current(self, token: int) -> bool:
        return self.current is not None and self.current.token == token

    def deliver_status(self, token: int, status: VMSegmentationStatus) -> bool:
        if not self.is_current(token):
            logger.debug("Discarding stale status for VM %s (session %d)", status.vmid, token)
            return False
        self.current.load_status(status)
        return True

    def deliver_simulation(self, token: int, simulation: ImpactSimulation) -> bool:
        if not self.is_current(token):
            logger.debug(
                "Discarding stale simulation for VM %s (session %d)", simulation.vmid, token
            )
            return False
        self.current.load_simulation(simulation)
        return True
