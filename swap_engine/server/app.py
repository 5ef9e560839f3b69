"""HTTP / WebSocket gateway over a SwapEngine: submit orders, read history, stream lifecycle events.

The engine starts and stops with the app (lifespan). Events reach WebSocket clients through a
LifecycleNotifier listener registered per connection.
"""

import asyncio
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

from fastapi import Body, FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from swap_engine.app.engine import SwapEngine
from swap_engine.config.settings import get_server_config
from swap_engine.core.errors import OrderValidationError
from swap_engine.domain.order_state import OrderStatus, is_terminal_state
from swap_engine.domain.types import OrderEvent

logger = logging.getLogger(__name__)

CREATED_MESSAGE = "Order created. Connect to WebSocket at /api/orders/execute to receive status updates."


def create_app(engine: SwapEngine) -> FastAPI:
    """Build the FastAPI app for engine. Engine lifecycle is tied to the app lifespan."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await engine.start()
        try:
            yield
        finally:
            await engine.stop()

    app = FastAPI(title="Swap Engine API", description="Swap order submission, history and lifecycle stream", lifespan=lifespan)
    app.state.engine = engine

    @app.get("/health")
    async def get_health() -> Dict[str, Any]:
        health = await engine.health()
        return {
            "status": health["status"],
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "database": health["database"],
            "queue": health["queue"],
            "metrics": health["metrics"],
        }

    @app.post("/api/orders")
    async def post_order(payload: Dict[str, Any] = Body(...)) -> Any:
        """Create an order; it starts processing immediately. Subscribe on the WebSocket for status."""
        try:
            order = await engine.submit_order(
                payload.get("source_asset"),
                payload.get("dest_asset"),
                payload.get("amount"),
                payload.get("slippage"),
            )
        except OrderValidationError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})
        return {"order_id": order.id, "status": OrderStatus.PENDING.value, "message": CREATED_MESSAGE}

    @app.get("/api/orders/{order_id}")
    async def get_order(order_id: str) -> Any:
        result = await engine.get_order_with_executions(order_id)
        if result is None:
            return JSONResponse(status_code=404, content={"error": "Order not found"})
        return result

    @app.get("/api/orders")
    async def list_orders(limit: int = Query(50, ge=1, le=500)) -> Dict[str, Any]:
        return {"orders": await engine.list_recent_orders(limit)}

    @app.websocket("/api/orders/execute")
    async def execute_ws(websocket: WebSocket) -> None:
        """Each text message is an order request. Replies pending, then every event for the orders it created."""
        await websocket.accept()
        outbox: asyncio.Queue = asyncio.Queue()
        watched: Set[str] = set()

        def listener(event: OrderEvent) -> None:
            if event.order_id in watched:
                outbox.put_nowait(event.to_message())

        engine.notifier.subscribe(listener)
        sender = asyncio.create_task(_forward(websocket, outbox))
        try:
            while True:
                text = await websocket.receive_text()
                reply = await _submit_from_message(engine, text, watched)
                outbox.put_nowait(reply)
        except WebSocketDisconnect:
            logger.debug("WebSocket client disconnected (orders=%s)", sorted(watched))
        finally:
            engine.notifier.unsubscribe(listener)
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)

    return app


async def _submit_from_message(engine: SwapEngine, text: str, watched: Set[str]) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {"error": "Invalid message format"}
    if not isinstance(data, dict):
        return {"error": "Invalid message format"}
    order_id = str(uuid.uuid4())
    watched.add(order_id)
    try:
        await engine.submit_order(
            data.get("source_asset"),
            data.get("dest_asset"),
            data.get("amount"),
            data.get("slippage"),
            order_id=order_id,
        )
    except OrderValidationError as e:
        watched.discard(order_id)
        return {"error": str(e)}
    # No await between enqueue and this reply, so pending is queued ahead of any worker event.
    return {"order_id": order_id, "status": OrderStatus.PENDING.value}


async def _forward(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        await websocket.send_json(message)
        if is_terminal_state(message.get("status")):
            logger.debug("WebSocket sent terminal status for order %s", message.get("order_id"))


async def serve_engine(engine: SwapEngine, config: dict, stop_event: Optional[asyncio.Event] = None) -> None:
    """Serve the gateway with uvicorn inside the running loop until shutdown or stop_event."""
    import uvicorn

    server_cfg = get_server_config(config)
    server = uvicorn.Server(uvicorn.Config(create_app(engine), host=server_cfg["host"], port=server_cfg["port"], log_level="info"))

    async def _watch_stop() -> None:
        await stop_event.wait()
        server.should_exit = True

    watcher = asyncio.create_task(_watch_stop()) if stop_event is not None else None
    logger.info("Gateway on %s:%s", server_cfg["host"], server_cfg["port"])
    try:
        await server.serve()
    finally:
        if watcher is not None:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)


def run_server(config: dict) -> None:
    """Start the gateway (host/port from config.server, PORT env overrides)."""
    import uvicorn

    server_cfg = get_server_config(config)
    app = create_app(SwapEngine(config))
    logger.info("Gateway on %s:%s", server_cfg["host"], server_cfg["port"])
    uvicorn.run(app, host=server_cfg["host"], port=server_cfg["port"], log_level="info")
