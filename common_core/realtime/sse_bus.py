from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass
from typing import AsyncIterator, Optional


@dataclass
class SseEvent:
    id: str
    seq: int
    data_json: str


class SseBus:
    """Fan-out of JSON events to Server-Sent Event streams.

    ``publish`` may be called from any thread (Firestore delivers snapshots on
    its own watch thread); subscribers run on the event loop.
    """

    def __init__(self, maxlen: int = 500):
        self._events: list[SseEvent] = []
        self._maxlen = maxlen
        self._seq = 0
        self._lock = threading.Lock()
        self._cond = asyncio.Condition()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def publish(self, data: dict) -> SseEvent:
        with self._lock:
            self._seq += 1
            ev = SseEvent(id=str(self._seq), seq=self._seq, data_json=json.dumps(data, ensure_ascii=False))
            self._events.append(ev)
            if len(self._events) > self._maxlen:
                self._events = self._events[-self._maxlen:]
            loop = self._loop

        if loop is not None and not loop.is_closed():
            asyncio.run_coroutine_threadsafe(self._notify(), loop)
        return ev

    async def _notify(self) -> None:
        async with self._cond:
            self._cond.notify_all()

    def _after(self, seq: int) -> list[SseEvent]:
        with self._lock:
            return [ev for ev in self._events if ev.seq > seq]

    async def subscribe(self, last_event_id: Optional[str]) -> AsyncIterator[SseEvent]:
        self._loop = asyncio.get_running_loop()
        try:
            last_seq = int(last_event_id) if last_event_id else None
        except ValueError:
            last_seq = None
        if last_seq is None:
            # live only, but hand over the latest state so the client can render
            with self._lock:
                last_seq = self._events[-1].seq - 1 if self._events else 0

        while True:
            pending = self._after(last_seq)
            for ev in pending:
                yield ev
                last_seq = ev.seq
            if pending:
                continue
            async with self._cond:
                await self._cond.wait()
