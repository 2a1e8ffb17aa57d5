"""API routes for monitors, maintenance, settings and the live event stream.

Endpoints:
  GET  /api/monitors/{user_id}                    monitor list (also pushed to the user)
  POST /api/monitors/{monitor_id}/check           run one check now
  GET  /api/monitors/{monitor_id}/heartbeats      full heartbeat history
  GET  /api/status/{monitor_id}/heartbeats        public heartbeat history (msg hidden)
  GET  /api/maintenance/{user_id}                 maintenance list (also pushed)
  GET  /api/settings/timezone                     current server timezone
  PUT  /api/settings/timezone                     change server timezone
  GET  /api/client-ip                             caller's address as the server sees it
  GET  /api/stream/{user_id}                      SSE stream of the user's events
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from heartwatch.broadcast import group_for
from heartwatch.monitoring.errors import InvalidTimezone

logger = logging.getLogger(__name__)

router = APIRouter()


class TimezoneUpdate(BaseModel):
    timezone: str


# ── Monitors ─────────────────────────────────────────────────────────────────


@router.get("/monitors/{user_id}")
def monitor_list(user_id: int, request: Request) -> dict[str, Any]:
    return request.app.state.context.send_monitor_list(user_id)


@router.post("/monitors/{monitor_id}/check")
async def trigger_check(monitor_id: int, request: Request) -> dict[str, Any]:
    scheduler = request.app.state.scheduler
    heartbeat = await scheduler.run_monitor_now(monitor_id)
    if heartbeat is None:
        raise HTTPException(status_code=404, detail=f"Monitor not found: {monitor_id}")
    return heartbeat.to_json()


@router.get("/monitors/{monitor_id}/heartbeats")
def heartbeat_history(monitor_id: int, request: Request, limit: int = 100) -> dict[str, Any]:
    store = request.app.state.context.store
    return {
        "monitorID": monitor_id,
        "heartbeats": [hb.to_json() for hb in store.get_heartbeats(monitor_id, limit)],
    }


@router.get("/status/{monitor_id}/heartbeats")
def public_heartbeat_history(monitor_id: int, request: Request, limit: int = 100) -> dict[str, Any]:
    store = request.app.state.context.store
    return {
        "monitorID": monitor_id,
        "heartbeats": [hb.to_public_json() for hb in store.get_heartbeats(monitor_id, limit)],
    }


# ── Maintenance ──────────────────────────────────────────────────────────────


@router.get("/maintenance/{user_id}")
def maintenance_list(user_id: int, request: Request) -> dict[str, Any]:
    return request.app.state.context.send_maintenance_list(user_id)


# ── Settings ─────────────────────────────────────────────────────────────────


@router.get("/settings/timezone")
def get_timezone(request: Request) -> dict[str, str]:
    context = request.app.state.context
    return {"timezone": context.timezone, "offset": context.get_timezone_offset()}


@router.put("/settings/timezone")
def set_timezone(body: TimezoneUpdate, request: Request) -> dict[str, str]:
    context = request.app.state.context
    try:
        context.set_timezone(body.timezone)
    except InvalidTimezone as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"timezone": context.timezone, "offset": context.get_timezone_offset()}


@router.get("/client-ip")
def client_ip(request: Request) -> dict[str, str]:
    return {"ip": request.app.state.context.get_client_ip(request)}


# ── SSE stream ───────────────────────────────────────────────────────────────


@router.get("/stream/{user_id}")
async def event_stream(user_id: int, request: Request) -> StreamingResponse:
    """Server-Sent Events for one user's group: monitorList, maintenanceList, heartbeat."""
    broadcaster = request.app.state.context.broadcaster
    group = group_for(user_id)
    queue = broadcaster.subscribe(group)

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=30)
                    yield f"event: {message['event']}\ndata: {json.dumps(message['data'])}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            broadcaster.unsubscribe(group, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
