"""
Firewall backend client.

Thin httpx wrapper over the micro-segmentation REST surface. Every call
is a single request/response; failures surface as TransportError and
are never retried here.

Usage:
    with BackendClient("https://pve-manager/api/v1/firewall") as client:
        analysis = client.analyze("cluster-a", gateway_offset=254)
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from .analysis.models import MicrosegAnalysis
from .errors import TransportError
from .generation.models import GenerateRequest, GenerateResult
from .isolation.models import (
    ImpactSimulation,
    IsolateResult,
    IsolationRequest,
    VMListForSegmentation,
    VMSegmentationStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080/api/v1/firewall"
DEFAULT_TIMEOUT = 30.0


def _seg(value: Any) -> str:
    return quote(str(value), safe="")


class BackendClient:
    """Synchronous client for the /microseg endpoints of one backend."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            verify=verify,
            transport=transport,
        )

    def __enter__(self) -> BackendClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        operation: str,
        target: str,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        logger.debug("%s %s%s", method, self.base_url, path)
        try:
            response = self._client.request(method, path, params=params, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.warning(
                "%s on %s returned HTTP %d: %s",
                operation, target, e.response.status_code, message,
            )
            raise TransportError(operation, target, message, e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.warning("%s on %s failed: %s", operation, target, e)
            raise TransportError(operation, target, str(e) or type(e).__name__) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(operation, target, "invalid JSON in response") from e

    # ─────────────────────────────────────────────────────────────
    # Network analysis and generation
    # ─────────────────────────────────────────────────────────────

    def analyze(self, connection_id: str, gateway_offset: int) -> MicrosegAnalysis:
        data = self._request(
            "analyze", connection_id, "GET",
            f"/microseg/{_seg(connection_id)}/analyze",
            params={"gateway_offset": gateway_offset},
        )
        return MicrosegAnalysis.from_dict(data or {})

    def generate_base(self, connection_id: str, request: GenerateRequest) -> GenerateResult:
        target = f"{connection_id} [{', '.join(request.networks)}]"
        data = self._request(
            "generate-base", target, "POST",
            f"/microseg/{_seg(connection_id)}/generate-base",
            json=request.to_dict(),
        )
        return GenerateResult.from_dict(data or {}, dry_run=request.dry_run)

    # ─────────────────────────────────────────────────────────────
    # VM endpoints
    # ─────────────────────────────────────────────────────────────

    def list_vms(self, connection_id: str, network: str | None = None) -> VMListForSegmentation:
        params = {"network": network} if network else None
        data = self._request(
            "list-vms", connection_id, "GET",
            f"/microseg/{_seg(connection_id)}/vms",
            params=params,
        )
        return VMListForSegmentation.from_dict(data or {})

    def _vm_path(self, connection_id: str, node: str, vm_type: str, vmid: int) -> str:
        return (
            f"/microseg/{_seg(connection_id)}/vm/"
            f"{_seg(node)}/{_seg(vm_type)}/{_seg(vmid)}"
        )

    def vm_status(
        self, connection_id: str, node: str, vm_type: str, vmid: int
    ) -> VMSegmentationStatus:
        data = self._request(
            "vm-status", f"{connection_id}/{node}/{vm_type}/{vmid}", "GET",
            self._vm_path(connection_id, node, vm_type, vmid),
        )
        return VMSegmentationStatus.from_dict(data or {"vmid": vmid, "node": node})

    def simulate(
        self, connection_id: str, node: str, vm_type: str, vmid: int
    ) -> ImpactSimulation:
        data = self._request(
            "simulate", f"{connection_id}/{node}/{vm_type}/{vmid}", "GET",
            self._vm_path(connection_id, node, vm_type, vmid) + "/simulate",
        )
        return ImpactSimulation.from_dict(data or {"vmid": vmid})

    def isolate(
        self,
        connection_id: str,
        node: str,
        vm_type: str,
        vmid: int,
        request: IsolationRequest,
    ) -> IsolateResult:
        data = self._request(
            "isolate", f"{connection_id}/{node}/{vm_type}/{vmid}", "POST",
            self._vm_path(connection_id, node, vm_type, vmid) + "/isolate",
            json=request.to_dict(),
        )
        return IsolateResult.from_dict(data)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or "")
    return ""
