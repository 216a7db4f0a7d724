"""
gatekeeper.clock

Injectable wall clock.

Responsibilities:
- Define the `Clock` callable used for token expiry, lease TTLs and bucket refills.
- Convert clock readings to integer epoch milliseconds for the shared store.
"""

from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], float]

system_clock: Clock = time.time


def now_ms(clock: Clock) -> int:
    return round(clock() * 1000)


# --- Module Notes -----------------------------------------------------------
# Lock wait deadlines use the event loop's monotonic time instead; only state
# that is shared between instances is stamped with this wall clock.
