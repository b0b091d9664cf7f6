"""Background route computations keyed by the viewing session.

A session stands for one open route view. Submitting a new request for a
session aborts the computation already in flight for it, and closing the
session aborts and forgets it, so a stale result never replaces a newer one.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from . import routes_client
from .geometry import AbortSignal, RouteComputationAborted
from .models import RouteViewRequest, TaskStatus
from .route_view import RouteUnavailableError, build_route_view

logger = logging.getLogger(__name__)

FINISHED_STATUSES = frozenset({"done", "error", "aborted"})


@dataclass
class _Session:
    task_id: str
    signal: AbortSignal = field(default_factory=AbortSignal)
    status: Optional[TaskStatus] = None
    finished_at: Optional[float] = None


class RouteSessionManager:
    """Thread-pooled route computations with one live task per session.

    Sessions whose task finished more than ``session_ttl`` seconds ago are
    forgotten, so views that are never closed do not pile up.
    """

    def __init__(
        self,
        max_workers: int = 4,
        client: Any = routes_client,
        session_ttl: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: Dict[str, _Session] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="route")
        self._client = client
        self._session_ttl = session_ttl
        self._clock = clock

    def submit(self, session_id: str, request: RouteViewRequest) -> str:
        task_id = str(uuid.uuid4())
        session = _Session(task_id=task_id)
        session.status = TaskStatus(task_id=task_id, session_id=session_id, status="pending")
        with self._lock:
            self._evict_expired()
            previous = self._sessions.get(session_id)
            if previous is not None:
                previous.signal.abort()
            self._sessions[session_id] = session
        self._executor.submit(self._run_task, session_id, session, request)
        return task_id

    def _run_task(self, session_id: str, session: _Session, request: RouteViewRequest) -> None:
        self._set_status(session_id, session, "running")
        try:
            view = build_route_view(request, client=self._client, signal=session.signal)
            session.signal.raise_if_aborted()
            self._set_status(session_id, session, "done", result=view)
        except RouteComputationAborted:
            logger.debug("Route task %s for session %s aborted", session.task_id, session_id)
            self._set_status(session_id, session, "aborted")
        except RouteUnavailableError as exc:
            self._set_status(session_id, session, "error", error=str(exc), result={"redirect": exc.redirect})
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Route task %s for session %s failed", session.task_id, session_id)
            self._set_status(session_id, session, "error", error=str(exc))

    def get(self, session_id: str) -> Optional[TaskStatus]:
        with self._lock:
            self._evict_expired()
            session = self._sessions.get(session_id)
            return session.status if session else None

    def close(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.signal.abort()
        return True

    def shutdown(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.signal.abort()
        self._executor.shutdown(wait=True)

    def _set_status(
        self,
        session_id: str,
        session: _Session,
        status_value: str,
        *,
        error: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self._lock:
            # Only the session's current task may publish, and never after an abort.
            if self._sessions.get(session_id) is not session:
                return
            if session.signal.aborted and status_value != "aborted":
                return
            session.status = TaskStatus(
                task_id=session.task_id,
                session_id=session_id,
                status=status_value,
                error=error,
                result=result,
            )
            if status_value in FINISHED_STATUSES:
                session.finished_at = self._clock()

    def _evict_expired(self) -> None:
        """Drop finished sessions past their TTL. Caller holds the lock."""
        if self._session_ttl <= 0:
            return
        cutoff = self._clock() - self._session_ttl
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if session.finished_at is not None and session.finished_at < cutoff
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.debug("Evicted %d finished route sessions", len(expired))
