"""
Inbound Kernel

The rule engine for inbound receiving of manufacturing material:
- Receipt and unit lifecycle state machines
- Enterprise serial allocation
- Role/action authorization
- Structural and closure validation
- Close-readiness preconditions
- Append-only audit trail on every receipt
"""

__version__ = "0.1.0"
