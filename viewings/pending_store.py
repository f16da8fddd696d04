"""Per-phone pending-request store with time-based expiry.

Holds at most one live entry per phone number. Every entry carries its own
deadline and a token; a later ``set`` for the same phone replaces both, so
an expiry scheduled for the old entry can never remove the new one.

Expired entries disappear lazily on ``get`` and in bulk via ``sweep``, which
the optional background sweeper calls on an interval.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from viewings.models import (
    AwaitingBuyerConfirmation,
    Coordinating,
    PendingRequest,
)

log = logging.getLogger("viewings.pending_store")


def redact_pii(value: str) -> str:
    """Mask PII for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


@dataclass
class PendingEntry:
    state: PendingRequest
    token: str
    deadline: float
    updated_at: float


class PendingRequestStore:
    """Thread-safe map of phone number -> pending request.

    Args:
        ttl_seconds: Lifetime of selection and preference-collection entries.
        coordination_ttl_seconds: Lifetime of entries that wait on the other
            party (``coordinating``, ``awaiting_buyer_confirmation``).
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 30 * 60,
        coordination_ttl_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._coordination_ttl = coordination_ttl_seconds
        self._clock = clock
        self._entries: dict[str, PendingEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def default_ttl(self, state: PendingRequest) -> float:
        if isinstance(state, (Coordinating, AwaitingBuyerConfirmation)):
            return self._coordination_ttl
        return self._ttl

    def set(self, phone: str, state: PendingRequest, ttl: Optional[float] = None) -> str:
        """Store ``state`` for ``phone``, replacing any previous entry.

        Returns the entry's token, usable with ``expire``.
        """
        now = self._clock()
        lifetime = self.default_ttl(state) if ttl is None else ttl
        entry = PendingEntry(
            state=state,
            token=secrets.token_hex(8),
            deadline=now + lifetime,
            updated_at=now,
        )
        with self._lock:
            replaced = self._entries.get(phone)
            self._entries[phone] = entry
        log.info(
            "Pending %s for %s (ttl %.0fs%s)",
            state.kind, redact_pii(phone), lifetime,
            f", replaced {replaced.state.kind}" if replaced else "",
        )
        return entry.token

    def get(self, phone: str) -> Optional[PendingRequest]:
        entry = self.entry(phone)
        return entry.state if entry else None

    def entry(self, phone: str) -> Optional[PendingEntry]:
        """The live entry for ``phone``, dropping it first if expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(phone)
            if entry is None:
                return None
            if entry.deadline <= now:
                del self._entries[phone]
                log.info("Pending %s for %s expired", entry.state.kind, redact_pii(phone))
                return None
            return entry

    def delete(self, phone: str) -> bool:
        with self._lock:
            removed = self._entries.pop(phone, None)
        if removed:
            log.info("Pending %s for %s cleared", removed.state.kind, redact_pii(phone))
        return removed is not None

    def expire(self, phone: str, token: str) -> bool:
        """Delete the entry only if it is still the one identified by ``token``."""
        with self._lock:
            entry = self._entries.get(phone)
            if entry is None or entry.token != token:
                return False
            del self._entries[phone]
        return True

    def items(self) -> Iterator[tuple[str, PendingEntry]]:
        """Snapshot of live (unexpired) entries."""
        now = self._clock()
        with self._lock:
            live = [(p, e) for p, e in self._entries.items() if e.deadline > now]
        return iter(live)

    def seconds_left(self, entry: PendingEntry) -> float:
        return max(0.0, entry.deadline - self._clock())

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [p for p, e in self._entries.items() if e.deadline <= now]
            for phone in stale:
                del self._entries[phone]
        if stale:
            log.info("Swept %d expired pending request(s)", len(stale))
        return len(stale)

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for e in self._entries.values() if e.deadline > now)

    # ── Background sweeper ───────────────────────────────────────

    def start_sweeper(self, interval: float = 60.0) -> asyncio.Task:
        """Run ``sweep`` every ``interval`` seconds on the running loop."""
        if self._sweeper and not self._sweeper.done():
            return self._sweeper
        self._sweeper = asyncio.create_task(self._sweep_loop(interval))
        log.info("Pending-request sweeper started (every %.0fs)", interval)
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        log.info("Pending-request sweeper stopped")

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception:
                log.exception("Pending-request sweep failed")
