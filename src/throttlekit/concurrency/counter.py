"""
In-flight operation accounting

Counts operations dispatched but not yet completed. In cross-context mode the
count of this context lives in a shared store entry, and the effective level
is the sum over all live contexts sharing the key prefix.
"""

import atexit
import functools
import logging
import weakref
from typing import Callable, Optional

from ..config import ThrottleConfig
from ..stores.base import (
    ContextEntry,
    ContextStore,
    StoreError,
    StoreSerializationError,
)

logger = logging.getLogger(__name__)


def _close_at_exit(close_ref: weakref.WeakMethod) -> None:
    close = close_ref()
    if close is not None:
        close()


def read_entries(store: ContextStore, prefix: str) -> dict[str, Optional[ContextEntry]]:
    """
    Load every context entry under `prefix`

    Returns:
        Mapping of key to parsed entry, or None for unparseable entries
    """
    entries: dict[str, Optional[ContextEntry]] = {}
    for key in store.keys():
        if not key.startswith(f"{prefix}."):
            continue
        try:
            entries[key] = ContextEntry.loads(store.get(key))
        except StoreSerializationError as e:
            logger.debug(f"Skipping context entry {key}: {e}")
            entries[key] = None
    return entries


def sweep_stale_entries(
    store: ContextStore,
    prefix: str,
    expire: float,
    now: float,
    keep: Optional[str] = None,
) -> list[str]:
    """
    Remove entries of contexts idle longer than `expire` ms, and malformed ones

    Args:
        keep: Key that is never removed (the caller's own entry)

    Returns:
        Removed keys
    """
    removed = []
    for key, entry in read_entries(store, prefix).items():
        if key == keep:
            continue
        if entry is None or entry.is_stale(now, expire):
            if store.remove(key):
                removed.append(key)

    if removed:
        logger.info(f"Swept {len(removed)} stale context entries under '{prefix}'")
    return removed


class ConcurrencyCounter:
    """
    Concurrency level of one scheduler, optionally aggregated across contexts

    Storage failures never escape: they are logged and the counter falls back
    to its in-process count.
    """

    def __init__(
        self,
        config: ThrottleConfig,
        store: Optional[ContextStore],
        clock: Callable[[], float],
    ):
        """
        Initialize counter

        Args:
            config: Scheduler options (cross-context settings are read here)
            store: Shared store, or None when only local counting is possible
            clock: Time source returning epoch milliseconds
        """
        self._store = store
        self._clock = clock
        self._local = 0
        self._started = False
        self._exit_hook: Optional[Callable[[], None]] = None
        self._prefix: Optional[str] = None
        self._context_key: Optional[str] = None
        self.context_id: Optional[str] = None
        self.configure(config)

    @property
    def across_contexts(self) -> bool:
        return self._across and self._store is not None

    @property
    def local_count(self) -> int:
        return self._local

    def configure(self, config: ThrottleConfig) -> None:
        """
        Apply (re)configuration

        Enabling cross-context mode starts the counter, disabling it removes
        this context's entry. A changed prefix or key moves the entry.
        """
        previous = (self._prefix, self._context_key)
        self._across = config.across_contexts
        self._prefix = config.context_id_prefix
        self._expire = config.context_expire
        self._context_key = config.context_key
        self._sweep_on_start = config.sweep_stale_on_start

        if not self.across_contexts:
            self.close()
        elif not self._started:
            self.start()
        elif previous != (self._prefix, self._context_key):
            self._relocate()

    def start(self) -> None:
        """Write this context's entry and register its teardown hook"""
        if self._store is None or self._started:
            return

        self.context_id = self._new_context_id()

        try:
            self._write(self._local)
            if self._sweep_on_start:
                self.sweep_stale()
        except StoreError as e:
            logger.warning(f"Could not initialize context entry {self.context_id}: {e}")

        self._exit_hook = functools.partial(
            _close_at_exit, weakref.WeakMethod(self.close)
        )
        atexit.register(self._exit_hook)
        self._started = True
        logger.debug(f"Context entry {self.context_id} registered")

    def close(self) -> None:
        """Remove this context's entry; safe to call more than once"""
        if not self._started:
            return
        self._started = False
        atexit.unregister(self._exit_hook)
        self._exit_hook = None

        try:
            self._store.remove(self.context_id)
        except StoreError as e:
            logger.warning(f"Could not remove context entry {self.context_id}: {e}")

    def current(self) -> int:
        """Effective concurrency level used for admission"""
        if not self.across_contexts:
            return self._local

        try:
            entries = read_entries(self._store, self._prefix)
        except StoreError as e:
            logger.warning(f"Falling back to local concurrency count: {e}")
            return self._local

        now = self._clock()
        total = 0
        for key, entry in entries.items():
            if entry is None:
                continue
            # other contexts that went quiet are presumed dead
            if key != self.context_id and entry.is_stale(now, self._expire):
                continue
            total += entry.current_count

        # own entry swept or corrupted by someone else
        if self._started and entries.get(self.context_id) is None:
            total += self._local
        return total

    def adjust(self, delta: int) -> int:
        """
        Add `delta` to this context's count

        An own entry that disappeared while the counter is running is written
        back from the local count.

        Returns:
            The new count for this context, or 0 once the counter is closed
        """
        if not self.across_contexts:
            self._local += delta
            return self._local

        if not self._started:
            logger.debug(f"Context entry {self.context_id} closed, skipping adjustment")
            return 0

        try:
            entry = ContextEntry.loads(self._store.get(self.context_id))
            base = entry.current_count
        except StoreSerializationError:
            logger.info(f"Context entry {self.context_id} missing, restoring it")
            base = self._local
        except StoreError as e:
            logger.warning(f"Store unavailable, adjusting local count only: {e}")
            self._local += delta
            return self._local

        count = max(base + delta, 0)
        try:
            self._write(count)
        except StoreError as e:
            logger.warning(f"Could not persist concurrency for {self.context_id}: {e}")
        self._local = count
        return count

    def sweep_stale(self) -> list[str]:
        """Remove stale entries of other contexts"""
        if self._store is None:
            return []
        return sweep_stale_entries(
            self._store,
            self._prefix,
            self._expire,
            self._clock(),
            keep=self.context_id,
        )

    def entries(self) -> dict[str, Optional[ContextEntry]]:
        if not self.across_contexts:
            return {}
        return read_entries(self._store, self._prefix)

    def _write(self, count: int) -> None:
        entry = ContextEntry(current_count=count, last_action_at=self._clock())
        self._store.set(self.context_id, entry.dumps())

    def _new_context_id(self) -> str:
        suffix = self._context_key or str(int(self._clock()))
        return f"{self._prefix}.{suffix}"

    def _relocate(self) -> None:
        old_id = self.context_id
        self.context_id = self._new_context_id()
        try:
            self._store.remove(old_id)
            self._write(self._local)
        except StoreError as e:
            logger.warning(
                f"Could not move context entry {old_id} to {self.context_id}: {e}"
            )
        logger.info(f"Context entry {old_id} moved to {self.context_id}")
