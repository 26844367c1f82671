"""Single-slot, time-bounded cache for the active personality."""

import time
from collections.abc import Callable

from ..core.schemas import Personality

DEFAULT_TTL_SECONDS = 300.0


class PersonalityCache:
    """
    Holds at most one personality for ``ttl_seconds``.

    States: empty (nothing cached), fresh (cached and within TTL) and stale
    (cached but expired). ``get`` only returns fresh values. The clock is
    injectable so tests can expire the slot deterministically.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Personality | None = None
        self._expires_at = 0.0

    def get(self) -> Personality | None:
        return self._value if self.is_fresh() else None

    def set(self, value: Personality) -> None:
        self._value = value
        self._expires_at = self._clock() + self.ttl_seconds

    def invalidate(self) -> None:
        self._value = None
        self._expires_at = 0.0

    def is_fresh(self) -> bool:
        return self._value is not None and self._clock() < self._expires_at

    @property
    def is_empty(self) -> bool:
        return self._value is None
