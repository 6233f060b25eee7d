"""
Change plan generation.

Builds generate-base requests for the in-scope networks of a readiness
report and sends them as a dry run (preview) or for real (apply).
Nothing about previous calls is remembered: the backend re-derives what
is missing from its current state, so a repeated apply creates nothing.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from ..analysis.classifier import PatternMatcher, ReadinessReport
from ..config.store import MicrosegConfig
from .models import GenerateRequest, GenerateResult, PendingChanges

logger = logging.getLogger(__name__)


class GenerateBackend(Protocol):
    def generate_base(self, connection_id: str, request: GenerateRequest) -> GenerateResult: ...


class ChangePlanGenerator:
    """Plans and applies gateway alias / base SG creation for one connection."""

    def __init__(self, backend: GenerateBackend):
        self.backend = backend

    @staticmethod
    def is_enabled(report: ReadinessReport) -> bool:
        """Generation is offered only while something in scope is missing."""
        return bool(report.missing_gateways or report.missing_base_sgs)

    @staticmethod
    def can_confirm(preview: GenerateResult | None) -> bool:
        return preview is not None and preview.dry_run and len(preview.plan) > 0

    def build_request(
        self,
        included_names: Iterable[str],
        config: MicrosegConfig,
        gateway_offset: int,
        dry_run: bool,
    ) -> GenerateRequest:
        matcher = PatternMatcher(config.exclude_patterns)
        networks: list[str] = []
        for name in included_names:
            if matcher.is_excluded(name):
                logger.warning("Dropping excluded network %s from generation request", name)
                continue
            if name not in networks:
                networks.append(name)

        return GenerateRequest(
            dry_run=dry_run,
            create_gateways=config.create_gateways,
            gateway_offset=gateway_offset,
            networks=tuple(networks),
        )

    def pending_changes(
        self, report: ReadinessReport, config: MicrosegConfig
    ) -> PendingChanges:
        gateways = []
        if config.create_gateways:
            gateways = [
                {"name": gw.alias_name, "network": gw.network_name, "ip": gw.gateway_ip}
                for gw in report.missing_gateways
            ]
        base_sgs = []
        if config.create_base_sgs:
            base_sgs = [
                {"name": sg.sg_name, "network": sg.network_name, "gateway": sg.gateway_name}
                for sg in report.missing_base_sgs
            ]
        skipped = 0 if config.create_gateways else len(report.missing_gateways)
        return PendingChanges(gateway_aliases=gateways, base_sgs=base_sgs, skipped_gateways=skipped)

    def preview(
        self,
        connection_id: str,
        report: ReadinessReport,
        config: MicrosegConfig,
    ) -> GenerateResult | None:
        """Dry run. Returns None when generation is disabled."""
        if not self.is_enabled(report):
            logger.debug("Nothing missing in scope for %s, preview disabled", connection_id)
            return None
        request = self.build_request(
            report.included_names, config, report.gateway_offset, dry_run=True
        )
        if not request.networks:
            # An empty scope means every network to the backend
            logger.debug("No in-scope network to send for %s, generation disabled", connection_id)
            return None
        result = self.backend.generate_base(connection_id, request)
        logger.info(
            "Previewed generation for %s: %d planned action(s)", connection_id, len(result.plan)
        )
        return result

    def apply(
        self,
        connection_id: str,
        report: ReadinessReport,
        config: MicrosegConfig,
    ) -> GenerateResult | None:
        """Create the missing objects. Returns None when generation is disabled."""
        if not self.is_enabled(report):
            logger.debug("Nothing missing in scope for %s, apply disabled", connection_id)
            return None
        request = self.build_request(
            report.included_names, config, report.gateway_offset, dry_run=False
        )
        if not request.networks:
            # An empty scope means every network to the backend
            logger.debug("No in-scope network to send for %s, generation disabled", connection_id)
            return None
        result = self.backend.generate_base(connection_id, request)
        logger.info(
            "Generated on %s: %d alias(es), %d group(s), %d error(s)",
            connection_id,
            len(result.created_aliases),
            len(result.created_groups),
            len(result.errors),
        )
        for error in result.errors:
            logger.warning("generate-base on %s: %s", connection_id, error)
        return result
