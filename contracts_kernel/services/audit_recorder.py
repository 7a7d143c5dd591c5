"""
AuditRecorder -- best-effort, append-only contract audit trail.

Responsibility:
    Persists one ``ContractAuditEntryModel`` row per semantic action on a
    contract.  Two sinks share the ``AuditSink`` protocol:

    * ``AuditRecorder`` writes synchronously in its own short session.
    * ``QueuedAuditSink`` hands entries to a background worker thread that
      writes through an ``AuditRecorder`` (enqueue-and-forget).

Architecture position:
    Kernel > Services -- imperative shell, called by ContractRepository
    after each contract write has committed.

Invariants enforced:
    - Append-only: rows are inserted, never updated or deleted.
    - Decoupled: an audit failure is logged and suppressed.  It never fails
      or rolls back the contract mutation it describes.

Failure modes:
    - Store unavailable: ``audit_write_failed`` is logged at ERROR with the
      entry's contract id and action; the entry is lost.

Audit relevance:
    This IS the audit writer.  Reads go through ContractSelector.
"""

from __future__ import annotations

import queue
import threading
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from contracts_kernel.domain.records import AuditEntry
from contracts_kernel.logging_config import get_logger
from contracts_kernel.models.audit_entry import ContractAuditEntryModel

logger = get_logger("services.audit_recorder")


class AuditSink(Protocol):
    """Anything that accepts audit entries without raising."""

    def record(self, entry: AuditEntry) -> None:
        ...


class AuditRecorder:
    """
    Synchronous best-effort audit writer.

    Contract:
        ``record()`` inserts one row in its own transaction and returns.

    Guarantees:
        - Never raises for store failures; they are logged and suppressed.
        - Never shares a session with the contract write.

    Non-goals:
        - No retry.  A lost audit line is an accepted failure mode.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def record(self, entry: AuditEntry) -> None:
        session = self._session_factory()
        try:
            session.add(
                ContractAuditEntryModel(
                    id=entry.id,
                    contract_id=entry.contract_id,
                    action=entry.action.value,
                    performed_by=entry.performed_by,
                    performed_at=entry.performed_at,
                    details=entry.details,
                    ip_address=entry.ip_address,
                    user_agent=entry.user_agent,
                    previous_value=entry.previous_value,
                    new_value=entry.new_value,
                )
            )
            session.commit()
            logger.debug(
                "audit_entry_recorded",
                extra={
                    "contract_id": str(entry.contract_id),
                    "action": entry.action.value,
                },
            )
        except (SQLAlchemyError, TypeError, ValueError):
            session.rollback()
            logger.error(
                "audit_write_failed",
                extra={
                    "contract_id": str(entry.contract_id),
                    "action": entry.action.value,
                },
                exc_info=True,
            )
        finally:
            session.close()


_STOP = object()


class QueuedAuditSink:
    """
    Enqueue-and-forget audit sink backed by one worker thread.

    Contract:
        ``record()`` only enqueues.  The worker writes each entry through
        the wrapped ``AuditRecorder`` in arrival order.

    Guarantees:
        - ``drain()`` blocks until every entry enqueued so far is written
          (or has failed and been logged).
        - ``close()`` drains, stops the worker, and is idempotent.
    """

    def __init__(self, recorder: AuditRecorder, name: str = "contract-audit-writer"):
        self._recorder = recorder
        self._queue: queue.Queue = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()
        self._worker = threading.Thread(target=self._run, name=name, daemon=True)
        self._worker.start()

    def record(self, entry: AuditEntry) -> None:
        with self._lock:
            if self._closed:
                logger.warning(
                    "audit_sink_closed",
                    extra={
                        "contract_id": str(entry.contract_id),
                        "action": entry.action.value,
                    },
                )
                return
            self._queue.put(entry)

    def drain(self) -> None:
        self._queue.join()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_STOP)
        self._worker.join()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._recorder.record(item)
            finally:
                self._queue.task_done()
