"""
audit/recorder.py -- Fire-and-forget audit writer.

Resource services call AuditRecorder.record() after their primary write has
committed. The write itself runs on a small ThreadPoolExecutor owned by the
recorder, so:

  - the request never waits on the audit insert
  - a client disconnect cannot cancel an in-flight audit write
  - a failing audit write is logged and dropped; it never changes the
    outcome of the request that triggered it

Durability is weak by construction: the audit insert is not part of the
primary transaction. A crash between commit and flush loses the entry.

Lifecycle: created in the api lifespan, closed on shutdown. close() drains
pending writes before the pool goes away.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait

from audit.models import AuditDraft
from audit.store import AuditStore

logger = logging.getLogger("proxyvault.audit")


class AuditRecorder:
    """Submits AuditDrafts to an AuditStore on background workers.

    Usage:
        recorder = AuditRecorder(AuditStore(engine), max_workers=2)
        recorder.record(AuditDraft.created(ctx, AuditAction.CREATE_PROXY, TargetType.PROXY, proxy.snapshot()))
        ...
        recorder.close()
    """

    def __init__(self, store: AuditStore, max_workers: int = 2) -> None:
        self.store = store
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="audit")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def record(self, draft: AuditDraft) -> None:
        """Queue one entry for persistence. Never raises."""
        try:
            future = self._executor.submit(self.store.append, draft)
        except RuntimeError:
            # Pool already shut down (application is stopping).
            logger.warning("Audit recorder closed; dropped %s by user %s", draft.action, draft.context.actor_id)
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(lambda f, d=draft: self._on_done(f, d))

    def _on_done(self, future: Future, draft: AuditDraft) -> None:
        with self._lock:
            self._pending.discard(future)
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Audit write failed for %s (target=%s:%s, actor=%s): %s",
                draft.action,
                draft.target_type,
                draft.target_id,
                draft.context.actor_id,
                exc,
            )

    def flush(self, timeout: float | None = 5.0) -> bool:
        """Block until queued writes finish. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _done, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        """Drain pending writes and stop the worker pool."""
        self._executor.shutdown(wait=True)
        logger.info("Audit recorder stopped")
