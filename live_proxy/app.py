"""
Gemini Live Proxy FastAPI Application

WebSocket relay between the browser assistant and the Gemini API on Vertex AI.
Opens one upstream session per browser connection.

Endpoints:
    WebSocket /ws?mode=voice|text|stt|playground - Session relay
    GET /health - Health check
    GET /sessions - Active session summaries
    GET /sessions/{session_id}/transcript - Conversation transcript for a session
    GET /* - Built frontend (production only)
"""

import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from google import genai

from live_proxy.config import ConfigurationError, ProxyConfig
from live_proxy.gemini_client import create_client
from live_proxy.handlers import ModeHandler, create_handler
from live_proxy.models import error_message
from live_proxy.session_manager import SessionManager, SessionMode
from live_proxy.structured_logger import StructuredLogger
from live_proxy.system_prompt import PatientInfo

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)
slog = StructuredLogger(logger)

# Global state
config: ProxyConfig = ProxyConfig.from_env()
session_manager = SessionManager()
genai_client: Optional[genai.Client] = None
app_start_time: float = time.time()


def get_client() -> genai.Client:
    """Lazily create the shared Vertex AI client."""
    global genai_client
    if genai_client is None:
        genai_client = create_client(config)
    return genai_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for application startup/shutdown"""
    logger.info("=" * 70)
    logger.info(f"Starting Gemini Live Proxy ({config.environment_name} mode)")
    logger.info(f"Using project: {config.project_id}")
    logger.info(f"Using location: {config.location}")
    logger.info(f"WebSocket available at {config.ws_path}")
    logger.info("=" * 70)

    if not config.project_id:
        logger.error("No Vertex AI project configured - upstream sessions will fail")

    yield

    logger.info("Shutting down Gemini Live Proxy...")
    closed = await session_manager.close_all()
    logger.info(f"Closed {closed} active session(s)")


app = FastAPI(
    title="Gemini Live Proxy",
    description="WebSocket relay to the Gemini Live API on Vertex AI",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Service health status
    """
    return {
        "status": "ok",
        "project": config.project_id,
        "mode": config.environment_name,
        "active_sessions": len(session_manager),
        "uptime_seconds": time.time() - app_start_time,
    }


@app.get("/sessions")
async def list_sessions():
    return {"sessions": session_manager.list(), **session_manager.stats()}


@app.get("/sessions/{session_id}/transcript")
async def get_transcript(session_id: str):
    record = session_manager.get(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"session_id": session_id, "mode": record.mode.value, **record.transcript.to_dict()}


@app.websocket(config.ws_path)
async def websocket_proxy(websocket: WebSocket):
    """
    WebSocket proxy for the Live API (voice, stt) and standard streaming API (text, playground).

    The mode comes from the query string and defaults to voice.
    """
    await websocket.accept()

    params = websocket.query_params
    mode = SessionMode.parse(params.get("mode"), SessionMode(config.default_mode))
    patient = PatientInfo.from_query(
        params,
        PatientInfo(name=config.patient_name, age=config.patient_age, gender=config.patient_gender),
    )

    record = await session_manager.create(mode)
    session_id = record.session_id
    logger.info(f"Client connected to proxy (mode: {mode.value}, session: {session_id})")

    handler: Optional[ModeHandler] = None
    try:
        handler = create_handler(mode, websocket, get_client(), config, record, patient)
        await session_manager.attach(session_id, handler)
        await handler.setup()
    except Exception as e:
        logger.error(f"Error setting up session {session_id}: {e}")
        slog.upstream_error(session_id, e, stage="setup")
        try:
            await websocket.send_json(error_message(str(e)))
            await websocket.close(code=1011)
        except (WebSocketDisconnect, RuntimeError):
            pass
        await session_manager.close(session_id)
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(code=message.get("code", 1000))
            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                raw = message["bytes"].decode("utf-8", errors="replace")
            if raw is None:
                continue

            session_manager.touch(session_id)
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.error(f"Error processing client message for session {session_id}: {e}")
                continue
            if not isinstance(payload, dict):
                continue

            try:
                await handler.dispatch(payload)
            except Exception as e:
                logger.error(f"Error processing {payload.get('type')} message for session {session_id}: {e}")
                await handler.send_json(error_message(str(e)))

    except WebSocketDisconnect:
        logger.info(f"{mode.value.capitalize()} client disconnected, closing session: {session_id}")
    except RuntimeError as e:
        logger.info(f"WebSocket closed for session {session_id}: {e}")
    finally:
        duration = time.time() - record.created_at
        await session_manager.close(session_id)
        slog.session_closed(session_id, mode.value, reason="client disconnected", duration_s=duration)


def mount_frontend(target: FastAPI, dist_dir: str) -> bool:
    """
    Serve the built frontend with SPA fallback to index.html.

    Must be called after all API routes are registered so the catch-all
    route does not shadow them.

    Returns:
        bool: True if the frontend was mounted
    """
    dist_root = os.path.abspath(dist_dir)
    index_html = os.path.join(dist_root, "index.html")
    if not os.path.isfile(index_html):
        logger.warning(f"Frontend build not found at {dist_root}, skipping static serving")
        return False

    assets_dir = os.path.join(dist_root, "assets")
    if os.path.isdir(assets_dir):
        target.mount("/assets", StaticFiles(directory=assets_dir), name="assets")

    @target.get("/{full_path:path}", include_in_schema=False)
    async def serve_spa(full_path: str):
        candidate = os.path.abspath(os.path.join(dist_root, full_path))
        if full_path and candidate.startswith(dist_root + os.sep) and os.path.isfile(candidate):
            return FileResponse(candidate)
        return FileResponse(index_html)

    logger.info(f"Serving frontend from {dist_root}")
    return True


if config.production:
    mount_frontend(app, config.dist_dir)


def main() -> None:
    import uvicorn

    try:
        config.validate_credentials()
    except ConfigurationError as e:
        logger.error(str(e))
        raise SystemExit(1)

    uvicorn.run(
        "live_proxy.app:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        reload=False
    )


if __name__ == "__main__":
    main()
