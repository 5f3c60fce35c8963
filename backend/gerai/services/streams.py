"""Registry of in-flight generations, keyed by the caller's request id."""

import asyncio
import threading


class DuplicateRequestError(Exception):
    pass


class StreamRegistry:
    """Maps request ids to their cancellation handles. Process-memory only."""

    def __init__(self) -> None:
        self._sessions: dict[str, asyncio.Event] = {}
        self._lock = threading.Lock()

    def register(self, request_id: str, handle: asyncio.Event) -> None:
        with self._lock:
            if request_id in self._sessions:
                raise DuplicateRequestError(f"Request {request_id} is already streaming")
            self._sessions[request_id] = handle

    def lookup(self, request_id: str) -> asyncio.Event | None:
        with self._lock:
            return self._sessions.get(request_id)

    def remove(self, request_id: str, handle: asyncio.Event | None = None) -> asyncio.Event | None:
        """Drop a session. With ``handle``, only that exact registration is dropped."""
        with self._lock:
            current = self._sessions.get(request_id)
            if current is None or (handle is not None and current is not handle):
                return None
            return self._sessions.pop(request_id)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
