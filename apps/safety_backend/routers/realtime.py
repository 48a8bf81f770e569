from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from common_core.realtime.sse_heartbeat import with_heartbeat

router = APIRouter(prefix="/realtime", tags=["realtime"])


@router.get("/areas")
async def area_events(request: Request):
    bus = getattr(request.app.state, "sse_bus", None)
    if bus is None:
        raise HTTPException(status_code=503, detail="REALTIME_NOT_READY")
    last_id = request.headers.get("Last-Event-ID") or request.query_params.get("lastEventId")
    sub = bus.subscribe(last_event_id=last_id)

    async def gen():
        async for chunk in with_heartbeat(sub, interval_s=15.0):
            if await request.is_disconnected():
                break
            yield chunk

    return StreamingResponse(gen(), media_type="text/event-stream")
