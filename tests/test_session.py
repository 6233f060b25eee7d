"""Tests for isolation sessions and the stale-response guard."""

import pytest

from microseg_planner.errors import ValidationError
from microseg_planner.isolation.models import (
    ImpactSimulation,
    SecurityLevel,
    VMSegmentationStatus,
    VMSegmentationSummary,
)
from microseg_planner.isolation.session import SessionTracker


@pytest.fixture
def tracker():
    return SessionTracker()


@pytest.fixture
def other_vm():
    return VMSegmentationSummary(vmid=202, name="db-01", node="pve2")


class TestIsolationSession:
    def test_defaults_after_status(self, tracker, web_vm, two_nic_status):
        session = tracker.open("lab", web_vm, ["ceph"])
        assert tracker.deliver_status(session.token, two_nic_status)
        assert session.security_level is SecurityLevel.STANDARD
        assert session.selected_interfaces == {"net0": False, "net1": True}
        assert session.can_isolate()

    def test_toggle_refuses_ineligible(self, tracker, web_vm, two_nic_status):
        session = tracker.open("lab", web_vm, ["ceph"])
        session.load_status(two_nic_status)
        assert not session.toggle("net0")
        assert not session.toggle("net9")
        assert session.toggle("net1")
        assert session.selected_count() == 0
        assert not session.can_isolate()
        with pytest.raises(ValidationError):
            session.compose()

    def test_select_reports_refused(self, tracker, web_vm, two_nic_status):
        session = tracker.open("lab", web_vm, ["ceph"])
        session.load_status(two_nic_status)
        refused = session.select(["net0", "net1", "eth7"])
        assert refused == ["net0", "eth7"]
        assert session.selected_interfaces == {"net0": False, "net1": True}

    def test_level_change(self, tracker, web_vm, two_nic_status):
        session = tracker.open("lab", web_vm, ["ceph"])
        session.load_status(two_nic_status)
        session.set_security_level("reinforced")
        assert session.compose().set_policy_out_drop is True
        with pytest.raises(ValidationError):
            session.set_security_level("maximum")

    def test_compose_before_status(self, tracker, web_vm):
        session = tracker.open("lab", web_vm)
        with pytest.raises(ValidationError):
            session.compose()

    def test_already_isolated_cannot_isolate(self, tracker, two_nic_status):
        vm = VMSegmentationSummary(vmid=101, name="web-01", node="pve1", is_isolated=True)
        session = tracker.open("lab", vm, ["ceph"])
        session.load_status(two_nic_status)
        assert not session.can_isolate()


class TestStaleResponses:
    def test_switching_vm_discards_selection(self, tracker, web_vm, other_vm, two_nic_status):
        first = tracker.open("lab", web_vm, ["ceph"])
        first.load_status(two_nic_status)
        second = tracker.open("lab", other_vm, ["ceph"])
        assert first.closed
        assert second.selected_interfaces == {}
        assert second.security_level is SecurityLevel.STANDARD

    def test_late_status_for_previous_vm_dropped(self, tracker, web_vm, other_vm, two_nic_status):
        first = tracker.open("lab", web_vm, ["ceph"])
        second = tracker.open("lab", other_vm, ["ceph"])
        assert not tracker.deliver_status(first.token, two_nic_status)
        assert second.status is None
        assert first.status is None

    def test_late_simulation_dropped(self, tracker, web_vm, other_vm):
        first = tracker.open("lab", web_vm)
        tracker.open("lab", other_vm)
        assert not tracker.deliver_simulation(first.token, ImpactSimulation(vmid=101))
        assert tracker.current.simulation is None

    def test_close_drops_everything(self, tracker, web_vm):
        session = tracker.open("lab", web_vm)
        tracker.close()
        assert tracker.current is None
        assert not tracker.deliver_status(session.token, VMSegmentationStatus(
            vmid=101, name="web-01", node="pve1"))

    def test_tokens_increase(self, tracker, web_vm):
        a = tracker.open("lab", web_vm)
        b = tracker.open("lab", web_vm)
        assert b.token > a.token
        assert tracker.is_current(b.token)
        assert not tracker.is_current(a.token)
