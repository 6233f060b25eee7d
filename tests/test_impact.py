"""Tests for impact simulation presentation."""

from microseg_planner.isolation.impact import (
    AFFECTED_PREVIEW_LIMIT,
    change_summary,
    filter_warnings,
    present,
)
from microseg_planner.isolation.models import ImpactSimulation


class TestWarnings:
    def test_excluded_warnings_hidden(self, simulation):
        view = present(simulation, ["ceph"])
        assert view.warnings == ["VM shares net-dmz-web with 12 other VMs"]
        assert view.hidden_warnings == 1

    def test_no_patterns_keeps_all(self, simulation):
        assert filter_warnings(simulation.warnings, []) == list(simulation.warnings)

    def test_flows_passed_through(self, simulation):
        view = present(simulation, ["ceph"])
        assert view.allowed_flows == simulation.allowed_flows
        assert view.blocked_flows[0].critical
        assert view.simulated_state.is_isolated
        assert not view.current_state.firewall_enabled


class TestAffected:
    def test_preview_capped(self, simulation):
        view = present(simulation, [])
        assert len(view.affected_vms) == 12
        assert len(view.affected_preview) == AFFECTED_PREVIEW_LIMIT
        assert view.to_dict()["affected_count"] == 12

    def test_empty_simulation(self):
        view = present(ImpactSimulation.from_dict({"vmid": 5, "warnings": None}), ["ceph"])
        assert view.affected_preview == ()
        assert view.warnings == []
        assert view.hidden_warnings == 0


class TestChangeSummary:
    def test_selected_interfaces_only(self, two_nic_status):
        allowed, blocked = change_summary(two_nic_status, {"net0": False, "net1": True})
        assert allowed == ["gw-dmz-web"]
        assert blocked == ["net-dmz-web"]

    def test_without_status(self):
        assert change_summary(None, {"net1": True}) == ([], [])

    def test_present_with_selection(self, simulation, two_nic_status):
        view = present(simulation, ["ceph"], two_nic_status, {"net1": True})
        data = view.to_dict()
        assert data["allowed_gateways"] == ["gw-dmz-web"]
        assert data["blocked_networks"] == ["net-dmz-web"]
