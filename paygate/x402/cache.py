# paygate/x402/cache.py
"""
Deposit address cache.

Maps a normalized (lower-cased) receiving address to the metadata of the
payment expected at that address. A record's presence is the only evidence
that an address is a payment destination this gateway issued.

Keys are NOT normalized here: callers must lower-case addresses before both
put() and get(). Entries expire after their TTL and are then indistinguishable
from entries that never existed. There is no capacity bound; a periodic sweep
drops expired records so they do not linger in memory.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Default time-to-live for a provisioned address (5 minutes)
DEFAULT_TTL_SECONDS = 300
# How often expired entries are swept
DEFAULT_CHECK_PERIOD_SECONDS = 60


@dataclass(frozen=True)
class DepositAddressRecord:
    """An outstanding provisioned deposit address. Immutable once cached."""
    address: str
    expected_amount: int
    provisioning_reference: str
    amount_minor: Optional[int] = None
    created_at: float = field(default_factory=time.time)


class AddressCache:
    """
    In-memory TTL store of deposit address records.

    Thread-safe for concurrent access. Records are never updated in place, so a
    get() observes either a complete record or nothing.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        check_period_seconds: int = DEFAULT_CHECK_PERIOD_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Default time-to-live applied by put()
            check_period_seconds: Minimum interval between expiry sweeps
            clock: Monotonic time source, injectable for tests
        """
        self._ttl_seconds = ttl_seconds
        self._check_period_seconds = check_period_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[DepositAddressRecord, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def put(
        self,
        address: str,
        record: DepositAddressRecord,
        ttl: Optional[float] = None,
    ) -> None:
        """
        Store a record under an already-normalized address.

        Args:
            address: Lower-cased receiving address
            record: Record describing the expected payment
            ttl: Time-to-live in seconds, defaults to the cache TTL
        """
        now = self._clock()
        expires_at = now + (ttl if ttl is not None else self._ttl_seconds)
        with self._lock:
            self._entries[address] = (record, expires_at)
        self._maybe_sweep(now)

    def get(self, address: str) -> Optional[DepositAddressRecord]:
        """
        Look up a live record.

        Returns:
            The record, or None if it was never cached or has expired
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                return None
            record, expires_at = entry
            if now >= expires_at:
                del self._entries[address]
                return None
        return record

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for _, expires_at in self._entries.values() if now < expires_at)

    def _maybe_sweep(self, now: float) -> None:
        """Remove expired entries at most once per check period."""
        if now - self._last_sweep < self._check_period_seconds:
            return

        with self._lock:
            # Double-check after acquiring lock
            if now - self._last_sweep < self._check_period_seconds:
                return
            self._last_sweep = now

            expired = [
                address for address, (_, expires_at) in self._entries.items()
                if now >= expires_at
            ]
            for address in expired:
                del self._entries[address]

        if expired:
            logger.debug(f"Swept {len(expired)} expired deposit addresses")
