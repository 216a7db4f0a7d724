"""
gatekeeper.gate

Request gate package.

Responsibilities:
- Per-request state machine and context.
- Ordered processing stages (token, quota, lock).
- The `Gate` composition root that runs stages around a downstream handler.
"""

from gatekeeper.gate.operations import GatedOperation
from gatekeeper.gate.pipeline import Gate
from gatekeeper.gate.state import GateContext, GateStage

__all__ = ["Gate", "GateContext", "GateStage", "GatedOperation"]


# --- Module Notes -----------------------------------------------------------
# Call sites should depend on `Gate.run`; stages are an internal composition detail.
