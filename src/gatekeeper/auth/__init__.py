"""
gatekeeper.auth

Authentication/authorization package.

Responsibilities:
- JWT issuing and verification.
- Token revocation and refresh-token allowlisting.
- FastAPI auth dependencies (Principal + RBAC).
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Verification is pure; anything that touches the shared store lives in `revocation`.
