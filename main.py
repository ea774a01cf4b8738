"""
FastAPI backend for AlgoViz.

Serves the algorithm catalog, visualization sessions and their playback
over HTTP, and streams frames to subscribed clients over WebSocket.
"""

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from api.app_config import get_settings
from api.shared.logger import get_logger, setup_logging
from engine import InvalidParameters, InvalidStateError, ReducerContractError

setup_logging(get_settings().log_level)
logger = get_logger(__name__)

from api.algorithms import router as algorithms_router
from api.playback import router as playback_router
from api.sessions import session_manager
from api.system import router as system_router
from websocket import session_channel, ws_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("AlgoViz backend starting...")
    logger.info(
        "Playback: %.0f ms base interval, speed %.2gx-%.2gx, checkpoints every %d steps",
        settings.base_interval_ms,
        settings.min_speed,
        settings.max_speed,
        settings.checkpoint_interval,
    )
    yield
    session_manager.shutdown()
    logger.info("AlgoViz backend stopped")


app = FastAPI(
    title="AlgoViz API",
    description="Step-by-step execution and playback engine for algorithm visualization",
    version="1.0.0",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)


# ============= Exception Handlers =============


@app.exception_handler(InvalidParameters)
async def invalid_parameters_handler(request: Request, exc: InvalidParameters):
    """Rejected input: nothing was created or changed."""
    logger.debug("Rejected %s: %s (%s)", request.url.path, exc.message, exc.reason)
    return ORJSONResponse(status_code=422, content={"detail": exc.message, **exc.to_dict()})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return ORJSONResponse(status_code=409, content={"detail": str(exc), "status": exc.status})


@app.exception_handler(ReducerContractError)
async def reducer_contract_handler(request: Request, exc: ReducerContractError):
    logger.error("Reducer contract violation on %s: %s", request.url.path, exc)
    return ORJSONResponse(status_code=500, content={"detail": "Run halted", "error": str(exc)})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error("%s failed with %d: %s", request.url.path, exc.status_code, exc.detail)
    return ORJSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s", request.url.path)
    return ORJSONResponse(status_code=500, content={"detail": "Internal server error"})


# Browser frontends run on a different origin during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(system_router, prefix="/api", tags=["system"])
app.include_router(algorithms_router, prefix="/api", tags=["algorithms"])
app.include_router(playback_router, prefix="/api", tags=["playback"])


# ============= WebSocket Endpoints =============


async def _serve(websocket: WebSocket, label: str) -> None:
    try:
        while True:
            message_text = await websocket.receive_text()
            response = await ws_manager.handle_message(websocket, message_text)
            if response:
                await ws_manager.send_to_connection(websocket, response)

    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception as e:
        logger.error("%s WebSocket error: %s", label, e)
        await ws_manager.disconnect(websocket)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, client_id: str = None):
    """
    Main WebSocket endpoint.

    Message format (JSON):
    {
        "type": "subscribe" | "unsubscribe" | "ping",
        "channel": "session:{session_id}",
        "data": {"channel": "session:{session_id}"}
    }
    """
    await ws_manager.connect(websocket, client_id)
    await _serve(websocket, "Main")


@app.websocket("/ws/session/{session_id}")
async def session_websocket_endpoint(websocket: WebSocket, session_id: str):
    """
    WebSocket endpoint for one session.

    Subscribes to ``session:{session_id}`` on connection and streams its
    frames, status changes and run announcements.
    """
    await ws_manager.connect(websocket, f"session-{session_id}")
    await ws_manager.subscribe(websocket, session_channel(session_id))
    await _serve(websocket, "Session")


@app.get("/api/ws/stats")
async def get_websocket_stats():
    """Get WebSocket connection statistics."""
    return ws_manager.get_stats()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="AlgoViz backend server")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("ALGOVIZ_PORT", 8000)),
        help="Port to run the server on (default: 8000 or ALGOVIZ_PORT env var)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable auto-reload",
    )
    args = parser.parse_args()

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=get_settings().log_level.lower(),
    )
