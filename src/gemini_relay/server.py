"""FastAPI application relaying user prompts to Gemini and storing both turns."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .completion import CompletionClient, create_from_config
from .config import load_config, redacted
from .errors import CompletionError, HandlerError, ValidationError
from .handler import TurnHandler
from .store import DiskMessageStore, MessageStore

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong with the AI response."


# -----------------------------
# Pydantic request/response
# -----------------------------
class PromptRequest(BaseModel):
    # Optional so that a missing value reaches the handler's own validation.
    content: Optional[str] = Field(default=None, description="Prompt text for a single turn.")


class PromptResponse(BaseModel):
    reply: str


# -----------------------------
# Utilities
# -----------------------------
def _make_store(cfg: Dict[str, Any]) -> DiskMessageStore:
    data_dir = cfg.get("store", {}).get("data_dir") or "data/messages"
    return DiskMessageStore(data_dir)


def _user_id(request: Request, header: str) -> Optional[str]:
    """Identity set by the auth layer in front of this service."""
    value = (request.headers.get(header) or "").strip()
    return value or None


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    client: Optional[CompletionClient] = None,
    store: Optional[MessageStore] = None,
) -> FastAPI:
    cfg = load_config(config_path)
    server_cfg = cfg.get("server", {})
    cors_origins = server_cfg.get("cors_origins", ["*"])
    user_header = server_cfg.get("user_header") or "X-User-Id"

    # Services
    client = client or create_from_config(cfg)
    store = store or _make_store(cfg)
    handler = TurnHandler(store, client)

    app = FastAPI(title="Gemini Relay", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"errors": "Prompt content is required"})

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "endpoint": cfg.get("completion", {}).get("endpoint"),
            "api_key_set": bool(cfg.get("completion", {}).get("api_key")),
            "data_dir": getattr(store, "root", None) and str(store.root),
        }

    @app.get("/config")
    def get_config() -> JSONResponse:
        return JSONResponse(redacted(cfg))

    @app.post("/prompt", response_model=PromptResponse)
    def send_prompt(req: PromptRequest, request: Request):
        user_id = _user_id(request, user_header)
        if user_id is None:
            return _unauthorized()

        try:
            reply = handler.handle_turn(user_id, req.content)
        except ValidationError as e:
            return JSONResponse(status_code=400, content={"errors": str(e)})
        except HandlerError as e:
            logger.exception("Prompt turn failed for user %s: %s", user_id, e)
            message = str(e) if isinstance(e, CompletionError) else GENERIC_ERROR
            return JSONResponse(status_code=500, content={"error": message})
        except Exception as e:
            logger.exception("Prompt turn crashed for user %s: %s", user_id, e)
            return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})

        return PromptResponse(reply=reply)

    @app.get("/prompt")
    def list_prompts(request: Request):
        user_id = _user_id(request, user_header)
        if user_id is None:
            return _unauthorized()
        lister = getattr(store, "list", None)
        if lister is None:
            return JSONResponse(status_code=501, content={"error": "Store does not support listing"})
        return {"messages": [m.to_dict() for m in lister(user_id)]}

    return app
