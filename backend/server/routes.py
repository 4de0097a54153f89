"""
Route registration for the coffee break API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Translate requests into controller intents
- Pull the controller from app.state
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError

from observability.logger import log_event, now_ms
from session.controller import SessionController
from spec import (
    ALLOWED_WS_INTENTS,
    DEFAULT_DURATION_S,
    DURATION_STEP_S,
    MAX_DURATION_S,
    MIN_DURATION_S,
    SNAPSHOT_PUSH_INTERVAL_MS,
)
from stats.categories import Category


class StartRequest(BaseModel):
    category: Category
    duration_s: int = Field(
        DEFAULT_DURATION_S,
        ge=MIN_DURATION_S,
        le=MAX_DURATION_S,
        multiple_of=DURATION_STEP_S,
    )


class ChatRequest(BaseModel):
    text: str = Field(..., min_length=1)


def snapshot_body(controller: SessionController) -> dict[str, Any]:
    """Renderer view: merged counters and the local session."""
    return {
        "instance_id": controller.instance_id,
        "stats": controller.snapshot().as_dict(),
        "session": controller.session_view(),
    }


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def _controller() -> SessionController:
        return app.state.controller

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/snapshot")
    async def snapshot() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return snapshot_body(_controller())

    @app.post("/session/start")
    async def session_start(req: StartRequest) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        controller = _controller()
        controller.start(req.category, req.duration_s)
        return snapshot_body(controller)

    @app.post("/session/sip")
    async def session_sip() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        controller = _controller()
        controller.record_progress()
        return snapshot_body(controller)

    @app.post("/session/finish")
    async def session_finish() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        controller = _controller()
        controller.finish()
        return snapshot_body(controller)

    @app.post("/session/restart")
    async def session_restart() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        controller = _controller()
        controller.restart()
        return snapshot_body(controller)

    @app.get("/chat")
    async def chat_history() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return {"messages": _controller().chat_history()}

    @app.post("/chat")
    async def chat(req: ChatRequest) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        reply = await _controller().send_chat(req.text)
        return {"reply": reply}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        controller = _controller()
        send_lock = asyncio.Lock()

        async def _send(msg: dict[str, Any]) -> None:
            async with send_lock:
                await ws.send_text(json.dumps(msg))

        async def _push_loop() -> None:
            while True:
                await _send({"type": "SNAPSHOT", **snapshot_body(controller)})
                await asyncio.sleep(SNAPSHOT_PUSH_INTERVAL_MS / 1000.0)

        pusher = asyncio.create_task(_push_loop())

        try:
            while True:
                raw = await ws.receive_text()
                error = _apply_ws_intent(controller, raw)
                if error is not None:
                    await _send({"type": "ERROR", "message": error})
                    continue
                await _send({"type": "SNAPSHOT", **snapshot_body(controller)})

        except WebSocketDisconnect:
            pass

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_FATAL_ERROR",
                "instance_id": controller.instance_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

        finally:
            pusher.cancel()
            await asyncio.gather(pusher, return_exceptions=True)


def _apply_ws_intent(controller: SessionController, raw: str) -> str | None:
    """
    Dispatch one renderer message.

    Returns an error string for a rejected message, None on success.
    Rejected messages never reach the controller.
    """
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        return "invalid json"

    if not isinstance(msg, dict):
        return "message must be an object"

    msg_type = msg.get("type")
    if msg_type not in ALLOWED_WS_INTENTS:
        return f"unknown intent: {msg_type}"

    if msg_type == "START":
        try:
            req = StartRequest.model_validate(msg)
        except ValidationError as exc:
            return f"invalid START: {exc.errors()[0].get('msg')}"
        controller.start(req.category, req.duration_s)
    elif msg_type == "SIP":
        controller.record_progress()
    elif msg_type == "FINISH":
        controller.finish()
    elif msg_type == "RESTART":
        controller.restart()

    return None
