"""Per-VM isolation: sessions, impact presentation and request composition."""

from .composer import compose, interface_options
from .impact import ImpactView, present
from .models import IsolationRequest, SecurityLevel, VMSegmentationStatus
from .session import IsolationSession, SessionTracker

__all__ = [
    "compose",
    "interface_options",
    "ImpactView",
    "present",
    "IsolationRequest",
    "SecurityLevel",
    "VMSegmentationStatus",
    "IsolationSession",
    "SessionTracker",
]
