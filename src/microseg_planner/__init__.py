"""
Microseg Planner: micro-segmentation planning and VM isolation engine.

Classifies discovered networks, scores segmentation readiness, plans
gateway alias and base security group creation, and composes per-VM
isolation requests for a hypervisor firewall backend.
"""

__version__ = "0.1.0"
