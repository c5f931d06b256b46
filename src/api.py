"""
HTTP API Module

FastAPI front end for the chatbot gateway.

Endpoints:
  GET  /         - small HTML index
  POST /chat     - one chat turn
  POST /rag      - raw document retrieval results
  GET  /status   - provider, retrieval and search status
  POST /refresh  - re-probe backends, then report status
  GET  /health   - liveness probe with chatbot and Discord summary

Handlers are plain (sync) functions, so FastAPI runs each request on its
threadpool and the blocking orchestrator never stalls the event loop.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from src.chatbot import Chatbot
from src.models import HistoryEntry, STATUS_ERROR

logger = logging.getLogger(__name__)

ENDPOINTS = ["/", "/chat", "/rag", "/status", "/refresh", "/health"]

INDEX_HTML = """<!DOCTYPE html>
<html>
<head><title>Chatbot Gateway</title></head>
<body>
  <h1>Chatbot Gateway</h1>
  <p>POST a JSON body like <code>{"message": "hello"}</code> to <code>/chat</code>.</p>
  <ul>
    <li><code>POST /chat</code> - chat with the bot</li>
    <li><code>POST /rag</code> - search indexed documents</li>
    <li><code>GET /status</code> - provider status</li>
    <li><code>POST /refresh</code> - re-check provider availability</li>
    <li><code>GET /health</code> - health check</li>
  </ul>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class HistoryItem(BaseModel):
    role: str = "user"
    content: str = ""
    timestamp: Optional[datetime] = None


class ChatRequest(BaseModel):
    message: str = ""
    session_id: Optional[str] = None
    history: List[HistoryItem] = Field(default_factory=list)


class RAGRequest(BaseModel):
    query: str = ""
    channel_id: str = ""
    limit: int = 5


def error_response(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "status": STATUS_ERROR})


def new_session_id() -> str:
    return f"sess_{time.time_ns()}"


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(chatbot: Chatbot, discord_bot: Optional[Any] = None) -> FastAPI:
    """
    Build the FastAPI app around an orchestrator.

    Args:
        chatbot: The shared Chatbot instance
        discord_bot: Running DiscordBot, reported by /health when present

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Chatbot Gateway",
        version="1.0.0",
        description="Chat with local or hosted LLMs, with document and web-search context.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        if any(err.get("type") == "json_invalid" for err in exc.errors()):
            return error_response("Invalid JSON format")
        logger.debug(f"Rejected payload on {request.url.path}: {exc.errors()}")
        return error_response("Invalid request payload")

    @app.get("/", response_class=HTMLResponse, tags=["meta"])
    def index() -> str:
        return INDEX_HTML

    @app.post("/chat", tags=["chat"])
    def chat(body: ChatRequest):
        """Answer one chat turn; backend trouble still yields a success reply."""
        message = body.message.strip()
        if not message:
            return error_response("Message cannot be empty")

        session_id = body.session_id or new_session_id()
        history = [HistoryEntry.from_dict(item.model_dump()) for item in body.history]

        response = chatbot.process_message(message, session_id, history)
        logger.info(f"HTTP chat: session={session_id} provider={response.provider}")
        return response.to_dict()

    @app.post("/rag", tags=["retrieval"])
    def rag(body: RAGRequest):
        query = body.query.strip()
        if not query:
            return error_response("Query cannot be empty")
        result = chatbot.process_rag_query(query, body.channel_id, body.limit)
        result["timestamp"] = datetime.utcnow().isoformat()
        return result

    @app.get("/status", tags=["meta"])
    def status() -> Dict[str, Any]:
        return chatbot.get_status()

    @app.post("/refresh", tags=["meta"])
    def refresh() -> Dict[str, Any]:
        chatbot.refresh_availability()
        return chatbot.get_status()

    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        """Liveness probe."""
        if discord_bot is not None:
            discord_status = discord_bot.get_status()
        else:
            discord_status = {
                "enabled": False,
                "status": "disabled",
                "note": "Set DISCORD_BOT_TOKEN environment variable to enable",
            }
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "endpoints": ENDPOINTS,
            "chatbot": {
                "ready": True,
                "mode": chatbot.mode,
                "current_provider": chatbot.current_provider.value,
            },
            "discord": discord_status,
        }

    return app
