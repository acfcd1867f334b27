"""
PocketLedger HTTP API

The chat endpoint the assistants page posts to. Run with:

    pocketledger-api

Authentication is handled upstream; the caller's id arrives in the
X-User-Id header.
"""

from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

from pocketledger import __version__
from pocketledger.agents import AssistantUnavailableError
from pocketledger.orchestrator import (
    ChatFlow,
    InvalidChatRequestError,
    RateLimitExceededError,
    UnknownAssistantError,
    create_app_components,
)


logger = structlog.get_logger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait before sending more messages."


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(chat_flow: Optional[ChatFlow] = None) -> FastAPI:
    """Build the FastAPI app around a ChatFlow (the configured one by default)."""
    if chat_flow is None:
        chat_flow = create_app_components().chat

    app = FastAPI(title="PocketLedger", version=__version__)

    # ============================================================================
    # CHAT ENDPOINTS
    # ============================================================================

    @app.post("/api/chat")
    async def chat(request: Request, x_user_id: Optional[str] = Header(default=None)):
        """Send a conversation to an assistant and return its reply."""
        if not x_user_id:
            return _error(401, "Unauthorized")

        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Invalid request body")
        if not isinstance(body, dict):
            return _error(400, "Invalid request body")

        try:
            reply = await chat_flow.send(
                x_user_id,
                body.get("assistantId"),
                body.get("messages"),
            )
        except RateLimitExceededError as e:
            return JSONResponse(
                status_code=429,
                content=e.result.error_body(RATE_LIMIT_MESSAGE),
                headers=e.result.headers(),
            )
        except InvalidChatRequestError as e:
            return _error(400, e.reason)
        except UnknownAssistantError:
            return _error(400, "Invalid assistant ID")
        except AssistantUnavailableError:
            return _error(500, "Failed to process chat request")
        except Exception as e:
            logger.error("chat_request_failed", user_id=x_user_id, error=str(e))
            return _error(500, "Failed to process chat request")

        return JSONResponse(
            content={"content": reply.content},
            headers=reply.rate_limit.headers(),
        )

    # ============================================================================
    # HEALTH
    # ============================================================================

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


def main() -> None:
    uvicorn.run(
        "pocketledger.api:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )


if __name__ == "__main__":
    main()
