"""
Micro-segmentation service.

Per-connection orchestration over the backend client and the config
store: analysis with its gateway offset, exclusion-aware readiness,
dry-run and applied generation, and VM isolation sessions.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from .analysis.classifier import NetworkClassifier, PatternMatcher, ReadinessReport
from .analysis.models import AnalysisSnapshot
from .client import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, BackendClient
from .config.store import DEFAULT_CONFIG_DIR, ConfigStore, MicrosegConfig, YamlConfigBackend
from .errors import PartialApplyError, TransportError, ValidationError
from .generation.models import GenerateResult, PendingChanges
from .generation.planner import ChangePlanGenerator
from .isolation.impact import ImpactView
from .isolation.inventory import search_vms, vm_row
from .isolation.models import IsolateResult, SecurityLevel, VMSegmentationSummary
from .isolation.session import IsolationSession, SessionTracker

logger = logging.getLogger(__name__)


class MicrosegService:
    """Entry point used by the CLI and the HTTP API."""

    def __init__(self, client: BackendClient, store: ConfigStore | None = None):
        self.client = client
        self.store = store or ConfigStore()
        self.classifier = NetworkClassifier()
        self.generator = ChangePlanGenerator(client)
        self.snapshots: dict[str, AnalysisSnapshot] = {}
        self.sessions: dict[str, SessionTracker] = {}

    # --- Configuration ---

    def config(self, connection_id: str) -> MicrosegConfig:
        return self.store.get(connection_id)

    def update_config(self, connection_id: str, changes: dict[str, Any]) -> MicrosegConfig:
        before = self.store.get(connection_id)
        after = self.store.update(connection_id, changes)
        if after.gateway_offset != before.gateway_offset:
            # The cached analysis was computed for the old gateway addresses
            self.invalidate(connection_id)
            logger.info(
                "Gateway offset for %s changed %d -> %d, analysis invalidated",
                connection_id, before.gateway_offset, after.gateway_offset,
            )
        return after

    def add_pattern(self, connection_id: str, pattern: str) -> MicrosegConfig:
        return self.store.add_pattern(connection_id, pattern)

    def remove_pattern(self, connection_id: str, pattern: str) -> MicrosegConfig:
        return self.store.remove_pattern(connection_id, pattern)

    def reset_patterns(self, connection_id: str) -> MicrosegConfig:
        return self.store.reset_patterns(connection_id)

    # --- Analysis ---

    def invalidate(self, connection_id: str) -> None:
        self.snapshots.pop(connection_id, None)

    def analyze(self, connection_id: str) -> AnalysisSnapshot:
        offset = self.config(connection_id).gateway_offset
        analysis = self.client.analyze(connection_id, offset)
        snapshot = AnalysisSnapshot(
            connection_id=connection_id, gateway_offset=offset, analysis=analysis
        )
        self.snapshots[connection_id] = snapshot
        logger.info(
            "Analyzed %s at offset %d: %d network(s), %d VM(s)",
            connection_id, offset, len(analysis.networks), analysis.total_vms,
        )
        return snapshot

    def snapshot(self, connection_id: str) -> AnalysisSnapshot:
        snapshot = self.snapshots.get(connection_id)
        if snapshot is None:
            raise ValidationError(f"No current analysis for {connection_id}; run analyze first")
        if snapshot.gateway_offset != self.config(connection_id).gateway_offset:
            self.invalidate(connection_id)
            raise ValidationError(
                f"Analysis for {connection_id} used gateway offset "
                f"{snapshot.gateway_offset}; re-run analyze"
            )
        return snapshot

    def report(self, connection_id: str, refresh: bool = False) -> ReadinessReport:
        if refresh or connection_id not in self.snapshots:
            self.analyze(connection_id)
        snapshot = self.snapshot(connection_id)
        config = self.config(connection_id)
        return self.classifier.report(
            snapshot.analysis, config.exclude_patterns, snapshot.gateway_offset
        )

    # --- Generation ---

    def pending_changes(self, connection_id: str) -> PendingChanges:
        return self.generator.pending_changes(
            self._current_report(connection_id), self.config(connection_id)
        )

    def preview(self, connection_id: str) -> GenerateResult | None:
        return self.generator.preview(
            connection_id, self._current_report(connection_id), self.config(connection_id)
        )

    def apply(self, connection_id: str) -> GenerateResult | None:
        result = self.generator.apply(
            connection_id, self._current_report(connection_id), self.config(connection_id)
        )
        if result is None:
            return None

        # What was created is only known from a fresh analysis
        self.invalidate(connection_id)
        try:
            self.analyze(connection_id)
        except TransportError as e:
            logger.warning("Re-analysis of %s after apply failed: %s", connection_id, e)
        if result.has_errors:
            raise PartialApplyError(connection_id, result)
        return result

    def _current_report(self, connection_id: str) -> ReadinessReport:
        snapshot = self.snapshot(connection_id)
        return self.classifier.report(
            snapshot.analysis,
            self.config(connection_id).exclude_patterns,
            snapshot.gateway_offset,
        )

    # --- VMs and isolation ---

    def list_vms(
        self, connection_id: str, network: str | None = None, search: str = ""
    ) -> list[VMSegmentationSummary]:
        listing = self.client.list_vms(connection_id, network)
        return search_vms(listing.vms, search)

    def vm_rows(
        self, connection_id: str, network: str | None = None, search: str = ""
    ) -> list[dict[str, Any]]:
        matcher = PatternMatcher(self.config(connection_id).exclude_patterns)
        return [vm_row(vm, matcher) for vm in self.list_vms(connection_id, network, search)]

    def find_vm(
        self, connection_id: str, node: str, vm_type: str, vmid: int
    ) -> VMSegmentationSummary | None:
        for vm in self.client.list_vms(connection_id).vms:
            if vm.key == (node, vm_type, vmid):
                return vm
        return None

    def tracker(self, connection_id: str) -> SessionTracker:
        return self.sessions.setdefault(connection_id, SessionTracker())

    def open_session(
        self,
        connection_id: str,
        vm: VMSegmentationSummary,
        tracker: SessionTracker | None = None,
    ) -> IsolationSession:
        """Select a VM: fetch its status and simulation into a fresh session.

        Sessions go to the connection's shared tracker unless ``tracker`` is
        given. Callers that serve independent requests pass their own, so
        opening one VM never closes another request's session.
        """
        if tracker is None:
            tracker = self.tracker(connection_id)
        session = tracker.open(
            connection_id, vm, self.config(connection_id).exclude_patterns
        )
        token = session.token

        status = self.client.vm_status(connection_id, vm.node, vm.type, vm.vmid)
        tracker.deliver_status(token, status)
        simulation = self.client.simulate(connection_id, vm.node, vm.type, vm.vmid)
        tracker.deliver_simulation(token, simulation)
        return session

    def close_session(self, session: IsolationSession) -> None:
        tracker = self.sessions.get(session.connection_id)
        if tracker is not None and tracker.current is session:
            tracker.close()
        else:
            session.close()

    def impact_view(self, session: IsolationSession) -> ImpactView | None:
        return session.impact_view()

    def isolate(self, session: IsolationSession) -> IsolateResult:
        if session.closed:
            raise ValidationError(f"Isolation session for VM {session.vm.vmid} is closed")
        if session.vm.is_isolated:
            raise ValidationError(f"VM {session.vm.vmid} is already isolated")

        request = session.compose()
        vm = session.vm
        result = self.client.isolate(session.connection_id, vm.node, vm.type, vm.vmid, request)
        logger.info(
            "Isolated VM %s (%s) on %s at %s level with %s",
            vm.vmid, vm.name, session.connection_id,
            SecurityLevel(session.security_level).value,
            ", ".join(request.additional_sgs),
        )
        self.close_session(session)
        return result


def service_from_env(timeout: float = DEFAULT_TIMEOUT) -> MicrosegService:
    """Build a service from MICROSEG_API_URL, MICROSEG_API_TOKEN and MICROSEG_CONFIG_DIR."""
    client = BackendClient(
        os.environ.get("MICROSEG_API_URL", DEFAULT_BASE_URL),
        token=os.environ.get("MICROSEG_API_TOKEN"),
        timeout=timeout,
    )
    store = ConfigStore(YamlConfigBackend(os.environ.get("MICROSEG_CONFIG_DIR", DEFAULT_CONFIG_DIR)))
    return MicrosegService(client, store)
