#!/usr/bin/env python3
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from cloudman.settings import LOGGER_NAME
from cloudman.store import ConfigStore

log = logging.getLogger(LOGGER_NAME)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RefreshRecord:
    name: str
    last_checked_at: Optional[int] = None
    cached_result: Any = None
    last_error: Optional[str] = None

    def is_fresh(self, interval: int, now: Optional[int] = None) -> bool:
        if self.last_checked_at is None:
            return False
        now = now_ms() if now is None else now
        return now - self.last_checked_at <= interval


def ensure_fresh(
    operation: Callable[[], None],
    record: RefreshRecord,
    interval: int,
    now: Optional[int] = None,
    advance_timestamp_on_failure: bool = True,
) -> bool:
    """
    Run ``operation`` only when ``record`` is older than ``interval`` milliseconds.

    ``operation`` takes no arguments and stores its result on the record
    itself. A record checked exactly ``interval`` ms ago is still fresh.
    Failures never reach the caller: the error text goes to
    ``record.last_error`` and the previous ``cached_result`` is kept.
    Returns True when the operation was run.
    """
    now = now_ms() if now is None else now
    if record.is_fresh(interval, now):
        return False

    try:
        operation()
    except Exception as exc:  # pylint: disable=broad-exception-caught
        record.last_error = str(exc) or exc.__class__.__name__
        log.warning("refresh of %s failed: %s", record.name, record.last_error)
        if advance_timestamp_on_failure:
            record.last_checked_at = now
        return True

    record.last_error = None
    record.last_checked_at = now
    log.debug("refreshed %s at %d", record.name, now)
    return True


# ---------------------------
# Records kept in the store
# ---------------------------

def _check_key(name: str) -> str:
    return f"{name}_last_check"


def _error_key(name: str) -> str:
    return f"{name}_error"


def load_record(store: ConfigStore, name: str) -> RefreshRecord:
    last = store.get(_check_key(name), None)
    return RefreshRecord(
        name=name,
        last_checked_at=int(last) if isinstance(last, (int, float)) else None,
        cached_result=store.get(name, None),
        last_error=store.get(_error_key(name), None),
    )


def save_record(store: ConfigStore, record: RefreshRecord) -> None:
    store.set(_check_key(record.name), record.last_checked_at)
    store.set(record.name, record.cached_result)
    if record.last_error:
        store.set(_error_key(record.name), record.last_error)
    else:
        store.delete(_error_key(record.name))


class Refresher:
    """Staleness-gated status value cached in the store between sessions."""

    def __init__(
        self,
        store: ConfigStore,
        name: str,
        producer: Callable[[], Any],
        interval: int,
        advance_timestamp_on_failure: bool = True,
    ):
        self.store = store
        self.name = name
        self.producer = producer
        self.interval = interval
        self.advance_timestamp_on_failure = advance_timestamp_on_failure

    def refresh(self, force: bool = False, now: Optional[int] = None) -> RefreshRecord:
        record = load_record(self.store, self.name)
        if force:
            record.last_checked_at = None

        def _operation() -> None:
            record.cached_result = self.producer()

        ensure_fresh(
            _operation,
            record,
            self.interval,
            now=now,
            advance_timestamp_on_failure=self.advance_timestamp_on_failure,
        )
        save_record(self.store, record)
        return record

    def record(self, value: Any, now: Optional[int] = None) -> RefreshRecord:
        """Store a result the caller already computed, as if the check had just run."""
        record = RefreshRecord(self.name, now_ms() if now is None else now, value, None)
        save_record(self.store, record)
        return record

    def value(self, now: Optional[int] = None) -> Any:
        return self.refresh(now=now).cached_result

    def status_line(self, now: Optional[int] = None) -> str:
        record = self.refresh(now=now)
        if record.last_error:
            if record.cached_result is None:
                return f"check failed: {record.last_error}"
            return f"{record.cached_result} (stale, check failed: {record.last_error})"
        if record.cached_result is None:
            return "unknown"
        return str(record.cached_result)
