"""
Route registration for the interview API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire the gateway to the WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.gateway import GatewayResult, InterviewGateway


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket("/ws/interview")
    async def interview_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = InterviewGateway(
            config=app.state.config,
            openai_client=app.state.openai_client,
        )
        pump: asyncio.Task[None] | None = None

        try:
            result = await gateway.on_ws_connect()
            await _flush_gateway_result(ws, result)
            pump = asyncio.create_task(_pump_outbox(ws, gateway))

            while True:
                text = await ws.receive_text()
                result = await gateway.on_json_message(text)
                await _flush_gateway_result(ws, result)

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")

        finally:
            if pump is not None:
                pump.cancel()


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    for msg in result.outbound_json:
        await ws.send_text(json.dumps(msg))


async def _pump_outbox(ws: WebSocket, gateway: InterviewGateway) -> None:
    """Forward asynchronously produced gateway messages to the client."""
    while True:
        msg = await gateway.outbox.get()
        try:
            await ws.send_text(json.dumps(msg))
        except (WebSocketDisconnect, RuntimeError):
            return
