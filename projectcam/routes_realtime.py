"""
projectcam/routes_realtime.py

WebSocket endpoint streaming a project's live events.

The client passes its access token as ``?token=`` (browsers cannot set
headers on WebSocket upgrades) or as a bearer header. Only members of the
project may subscribe. The connection is one-way: anything the client sends
is ignored, and events missed while disconnected are not replayed. When
the caller stops being a member (removed, project deleted, account
deactivated) the server closes the socket with 1008.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from projectcam.auth_context import authenticate_token
from projectcam.config import IS_DEV
from projectcam.dependencies import load_project
from projectcam.permissions import can_view_project
from projectcam.realtime import EventType, Subscriber, hub, make_event

router = APIRouter(tags=["realtime"])

# RFC 6455 close codes
POLICY_VIOLATION = 1008
INTERNAL_ERROR = 1011


def _bearer(websocket: WebSocket) -> Optional[str]:
    header = websocket.headers.get("authorization") or ""
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def _forward(websocket: WebSocket, sub: Subscriber) -> None:
    while True:
        event = await sub.queue.get()
        if event is None:
            # Subscription revoked: membership ended while connected
            await websocket.close(code=POLICY_VIOLATION)
            return
        await websocket.send_json(event)


async def _drain(websocket: WebSocket) -> None:
    # Returns once the client goes away
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws/projects/{project_id}")
async def project_events(websocket: WebSocket, project_id: str, token: Optional[str] = Query(None)):
    try:
        ctx = await run_in_threadpool(authenticate_token, token or _bearer(websocket))
        project = await run_in_threadpool(load_project, project_id)
    except HTTPException as e:
        code = INTERNAL_ERROR if e.status_code >= 500 else POLICY_VIOLATION
        print(f"[REALTIME] Rejected subscription to project {project_id}: {e.detail}")
        await websocket.close(code=code)
        return

    if not can_view_project(project, ctx.user_id):
        print(f"[REALTIME] Rejected subscription: user_id={ctx.user_id} is not a member of project {project_id}")
        await websocket.close(code=POLICY_VIOLATION)
        return

    # Subscribe before accepting so nothing published after the handshake is missed
    sub = hub.subscribe(project_id, ctx.user_id)
    try:
        await websocket.accept()
        await websocket.send_json(make_event(EventType.SUBSCRIBED, project_id, {"user_id": ctx.user_id}))

        tasks = [asyncio.ensure_future(_forward(websocket, sub)), asyncio.ensure_future(_drain(websocket))]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            # Also reached when this handler is cancelled
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() and not isinstance(task.exception(), WebSocketDisconnect):
                print(f"[REALTIME] Stream error for user_id={ctx.user_id}: {task.exception()}")
    except WebSocketDisconnect:
        pass
    finally:
        hub.unsubscribe(sub)
        if IS_DEV and sub.dropped:
            print(f"[REALTIME] Subscriber {sub.id} dropped {sub.dropped} events")
