"""
Per-key mutual exclusion.

The ledger and the job store both need "one writer per key, no global
lock". KeyedLock hands out a FIFO-fair lock per key:

    - Threads contending for the SAME key are admitted in arrival order
      (ticket lock), so a busy account cannot starve a waiting request.
    - Threads working on DIFFERENT keys never wait on each other beyond
      the few instructions needed to take a ticket.
    - A key's entry is dropped as soon as no thread holds or waits for
      it, so the table does not grow with the number of keys ever seen.

Usage:
    locks = KeyedLock()

    with locks.hold("acct-1"):
        balance = balances.get("acct-1", 0)
        balances["acct-1"] = balance + 10

Never perform I/O while holding a key.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class _KeyEntry:
    """Ticket state for one key. Guarded by KeyedLock._guard."""

    __slots__ = ("condition", "next_ticket", "now_serving", "users")

    def __init__(self, guard: threading.Lock):
        self.condition = threading.Condition(guard)
        self.next_ticket = 0
        self.now_serving = 0
        self.users = 0


class KeyedLock:
    """FIFO-fair lock table keyed by any hashable value."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _KeyEntry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the with-block."""
        entry = self._acquire(key)
        try:
            yield
        finally:
            self._release(key, entry)

    def active_keys(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._entries)

    def _acquire(self, key: Hashable) -> _KeyEntry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _KeyEntry(self._guard)
                self._entries[key] = entry

            entry.users += 1
            ticket = entry.next_ticket
            entry.next_ticket += 1

            # wait() releases _guard, so other keys keep moving
            while entry.now_serving != ticket:
                entry.condition.wait()

            return entry

    def _release(self, key: Hashable, entry: _KeyEntry) -> None:
        with self._guard:
            entry.now_serving += 1
            entry.users -= 1

            if entry.users == 0:
                del self._entries[key]
            else:
                entry.condition.notify_all()
