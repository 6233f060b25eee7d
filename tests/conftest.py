"""Shared test fixtures for Microseg Planner."""

import json

import httpx
import pytest

from microseg_planner.analysis.models import MicrosegAnalysis, NetworkInfo
from microseg_planner.client import BackendClient
from microseg_planner.config.store import ConfigStore, MemoryConfigBackend
from microseg_planner.isolation.models import (
    ImpactSimulation,
    VMNetworkInfo,
    VMSegmentationStatus,
    VMSegmentationSummary,
)
from microseg_planner.service import MicrosegService

BASE_URL = "http://backend.test/api/v1/firewall"


def _short(network: str) -> str:
    return network.removeprefix("net-")


class FakeBackend:
    """In-memory firewall backend speaking the /microseg REST surface."""

    def __init__(self):
        self.networks = {
            "net-dmz-web": {"name": "net-dmz-web", "cidr": "10.0.10.0/24",
                            "has_gateway": False, "has_base_sg": False},
            "storage-ceph": {"name": "storage-ceph", "cidr": "10.0.50.0/24",
                             "has_gateway": False, "has_base_sg": False},
            "net-app": {"name": "net-app", "cidr": "10.0.20.0/24",
                        "has_gateway": True, "has_base_sg": True},
        }
        self.vms = [
            {"vmid": 101, "name": "web-01", "node": "pve1", "type": "qemu",
             "status": "running", "network": "net-dmz-web",
             "networks": ["net-dmz-web", "storage-ceph"],
             "is_isolated": False, "missing_base_sgs": ["sg-base-dmz-web"]},
            {"vmid": 102, "name": "app-01", "node": "pve2", "type": "lxc",
             "status": "running", "network": "net-app", "networks": ["net-app"],
             "is_isolated": True, "applied_sgs": ["sg-base-app"]},
            {"vmid": 203, "name": "db-01", "node": "pve1", "type": "qemu",
             "status": "stopped", "network": "net-app", "networks": ["net-app"]},
        ]
        self.statuses = {
            101: {
                "vmid": 101, "name": "web-01", "node": "pve1",
                "firewall_enabled": False, "policy_in": "ACCEPT", "policy_out": "ACCEPT",
                "networks": [
                    {"interface": "net0", "bridge": "vmbr0", "tag": 10,
                     "ip_address": "10.0.10.5", "network": "net-dmz-web",
                     "gateway": "gw-dmz-web", "base_sg": "sg-base-web"},
                    {"interface": "net1", "bridge": "vmbr1", "ip_address": "10.0.50.5",
                     "network": "storage-ceph"},
                ],
            },
        }
        self.simulations = {
            101: {
                "vmid": 101, "name": "web-01",
                "current_state": {"firewall_enabled": False, "policy_in": "ACCEPT"},
                "simulated_state": {"firewall_enabled": True, "policy_in": "DROP",
                                    "is_isolated": True, "applied_sgs": ["sg-base-web"]},
                "allowed_flows": [{"direction": "out", "destination": "gw-dmz-web",
                                   "reason": "sg-base-web"}],
                "blocked_flows": [{"direction": "in", "source": "net-dmz-web",
                                   "reason": "policy_in DROP", "critical": True}],
                "affected_vms": [{"vmid": 300 + i, "name": f"peer-{i}",
                                  "impact": "communication_blocked"} for i in range(12)],
                "warnings": [
                    "VM shares net-dmz-web with 12 other VMs",
                    "Traffic on storage-ceph will be blocked",
                ],
                "required_actions": ["enable firewall", "set policy_in DROP"],
            },
        }
        self.fail_networks: set[str] = set()
        self.isolate_response = None
        self.down = False
        self.on_request = None
        self.requests: list[httpx.Request] = []

    # --- Request log helpers ---

    def calls(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def last_json(self, suffix: str) -> dict:
        return json.loads(self.calls(suffix)[-1].content)

    # --- Analysis ---

    def analysis(self) -> dict:
        nets = list(self.networks.values())
        return {
            "networks": nets,
            "gateway_aliases": [f"gw-{_short(n['name'])}" for n in nets if n["has_gateway"]],
            "base_sgs": [f"sg-base-{_short(n['name'])}" for n in nets if n["has_base_sg"]],
            "missing_gateways": [
                {"network_name": n["name"], "alias_name": f"gw-{_short(n['name'])}",
                 "gateway_ip": n["cidr"].rsplit(".", 1)[0] + ".254"}
                for n in nets if not n["has_gateway"]
            ] or None,
            "missing_base_sgs": [
                {"network_name": n["name"], "sg_name": f"sg-base-{_short(n['name'])}",
                 "gateway_name": f"gw-{_short(n['name'])}"}
                for n in nets if not n["has_base_sg"]
            ] or None,
            "total_vms": len(self.vms),
            "isolated_vms": sum(1 for v in self.vms if v.get("is_isolated")),
            "unprotected_vms": sum(1 for v in self.vms if not v.get("is_isolated")),
            "segmentation_ready": all(
                n["has_gateway"] and n["has_base_sg"] for n in nets
            ),
        }

    def generate(self, body: dict) -> dict:
        plan, aliases, groups, errors = [], [], [], []
        for name in body["networks"]:
            net = self.networks[name]
            short = _short(name)
            if body["create_gateways"] and not net["has_gateway"]:
                plan.append({"type": "alias", "name": f"gw-{short}",
                             "description": f"gateway .{body['gateway_offset']}"})
            if not net["has_base_sg"]:
                plan.append({"type": "security_group", "name": f"sg-base-{short}"})
            if body["dry_run"]:
                continue
            if name in self.fail_networks:
                errors.append(f"{name}: backend refused")
                continue
            if body["create_gateways"] and not net["has_gateway"]:
                net["has_gateway"] = True
                aliases.append(f"gw-{short}")
            if not net["has_base_sg"]:
                net["has_base_sg"] = True
                groups.append(f"sg-base-{short}")
        if body["dry_run"]:
            return {"dry_run": True, "plan": plan, "errors": errors}
        return {"dry_run": False, "created_aliases": aliases,
                "created_groups": groups, "errors": errors}

    # --- Transport ---

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path.removeprefix("/api/v1/firewall/microseg/")
        parts = path.split("/")

        if parts[1:] == ["analyze"]:
            return httpx.Response(200, json=self.analysis())
        if parts[1:] == ["generate-base"]:
            return httpx.Response(200, json=self.generate(json.loads(request.content)))
        if parts[1:] == ["vms"]:
            network = request.url.params.get("network")
            vms = [v for v in self.vms if not network or network in v["networks"]]
            return httpx.Response(200, json={
                "total_vms": len(vms),
                "isolated_vms": sum(1 for v in vms if v.get("is_isolated")),
                "unprotected_vms": sum(1 for v in vms if not v.get("is_isolated")),
                "vms": vms,
            })
        if parts[1] == "vm":
            vmid = int(parts[4])
            if len(parts) == 5:
                if vmid not in self.statuses:
                    return httpx.Response(404, json={"error": "vm not found"})
                return httpx.Response(200, json=self.statuses[vmid])
            if parts[5] == "simulate":
                return httpx.Response(200, json=self.simulations.get(vmid, {"vmid": vmid}))
            if parts[5] == "isolate":
                return httpx.Response(200, json=self.isolate_response or {
                    "success": True,
                    "applied_sgs": json.loads(request.content)["additional_sgs"],
                    "enabled_nics": ["net0"],
                    "actions": ["enabled VM firewall", "set policy_in DROP"],
                })
        return httpx.Response(404, json={"error": f"no route {request.url.path}"})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def backend_client(backend):
    with BackendClient(BASE_URL, transport=httpx.MockTransport(backend.handler)) as client:
        yield client


@pytest.fixture
def store():
    return ConfigStore(MemoryConfigBackend())


@pytest.fixture
def service(backend_client, store):
    return MicrosegService(backend_client, store)


@pytest.fixture
def scenario_a():
    """One in-scope network and one Ceph network, both unprovisioned."""
    return MicrosegAnalysis.from_dict({
        "networks": [
            {"name": "net-dmz-web", "has_gateway": False, "has_base_sg": False},
            {"name": "storage-ceph", "has_gateway": False, "has_base_sg": False},
        ],
        "missing_gateways": [
            {"network_name": "net-dmz-web", "alias_name": "gw-dmz-web"},
            {"network_name": "storage-ceph", "alias_name": "gw-storage-ceph"},
        ],
        "missing_base_sgs": [
            {"network_name": "net-dmz-web", "sg_name": "sg-base-dmz-web"},
            {"network_name": "storage-ceph", "sg_name": "sg-base-storage-ceph"},
        ],
        "total_vms": 4,
        "isolated_vms": 1,
        "unprotected_vms": 3,
    })


@pytest.fixture
def two_nic_status():
    """VM with one NIC on an excluded network and one on net-dmz-web."""
    return VMSegmentationStatus(
        vmid=101,
        name="web-01",
        node="pve1",
        networks=(
            VMNetworkInfo(interface="net0", network="storage-ceph", ip_address="10.0.50.5"),
            VMNetworkInfo(interface="net1", network="net-dmz-web", gateway="gw-dmz-web",
                          base_sg="sg-base-web", ip_address="10.0.10.5"),
        ),
    )


@pytest.fixture
def web_vm():
    return VMSegmentationSummary(vmid=101, name="web-01", node="pve1", type="qemu",
                                 networks=("net-dmz-web", "storage-ceph"))


@pytest.fixture
def simulation():
    return ImpactSimulation.from_dict(FakeBackend().simulations[101])


@pytest.fixture
def networks():
    return [
        NetworkInfo(name="net-dmz-web", has_gateway=True, has_base_sg=True),
        NetworkInfo(name="net-app", has_gateway=True, has_base_sg=False),
        NetworkInfo(name="Storage-Replication-10G"),
        NetworkInfo(name="corosync-ring0"),
    ]


@pytest.fixture
def make_client():
    def factory(handler, **kwargs):
        return BackendClient(BASE_URL, transport=httpx.MockTransport(handler), **kwargs)
    return factory
