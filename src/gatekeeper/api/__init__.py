"""
gatekeeper.api

HTTP surface of the gate (FastAPI).

Responsibilities:
- App factory, dependency wiring, and error rendering.
- Adapting gated handlers into FastAPI endpoints.
"""

# Package marker.
