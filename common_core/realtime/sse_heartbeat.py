from __future__ import annotations

import asyncio
from typing import AsyncIterator

from common_core.realtime.sse_bus import SseEvent


async def with_heartbeat(it: AsyncIterator[SseEvent], interval_s: float = 15.0) -> AsyncIterator[str]:
    # keep one pending read across heartbeats; cancelling it would close the source
    pending: asyncio.Future | None = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(it.__anext__())
            done, _ = await asyncio.wait({pending}, timeout=interval_s)
            if not done:
                yield ": hb\n\n"
                continue
            fut, pending = pending, None
            try:
                ev = fut.result()
            except StopAsyncIteration:
                return
            yield f"id: {ev.id}\nevent: message\ndata: {ev.data_json}\n\n"
    finally:
        if pending is not None:
            pending.cancel()
