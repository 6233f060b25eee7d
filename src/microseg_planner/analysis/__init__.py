"""Network analysis: classification, readiness and gateway addressing."""

from .classifier import NetworkClassifier, PatternMatcher, ReadinessReport
from .gateway import GatewayMode, gateway_offset
from .models import MicrosegAnalysis, NetworkInfo

__all__ = [
    "NetworkClassifier",
    "PatternMatcher",
    "ReadinessReport",
    "GatewayMode",
    "gateway_offset",
    "MicrosegAnalysis",
    "NetworkInfo",
]
