"""
FastAPI webhook for the EmojiChess Messenger bot

Endpoints:
  GET /webhook  - Messenger subscription verification
  POST /webhook  - Page events (messages, quick replies, postbacks)
  GET /health

Usage:
  STOCKFISH_PATH=/usr/bin/stockfish PAGE_ACCESS_TOKEN=xxx VERIFY_TOKEN=yyy \
      uvicorn emojichess.api.main:app --port 8000
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from emojichess.chat_interface import ChatInterface
from emojichess.game_service import GameService
from emojichess.uci_oracle import UciOracle

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)


def get_verify_token() -> str:
    return os.environ.get("VERIFY_TOKEN", "")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the engine and the Send API client; shut both down on exit."""
    service = GameService(chat=ChatInterface(), oracle=UciOracle())
    await service.start()
    app.state.service = service
    yield
    await service.stop()


app = FastAPI(title="EmojiChess Messenger Bot", version="1.0.0", lifespan=lifespan)


class WebhookEntry(BaseModel):
    id: str | None = None
    time: int | None = None
    messaging: list[dict] = Field(default_factory=list)


class WebhookBody(BaseModel):
    object: str
    entry: list[WebhookEntry] = Field(default_factory=list)


@app.get("/webhook", response_class=PlainTextResponse)
def verify_webhook(
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str = Query("", alias="hub.challenge"),
):
    """Answer Messenger's subscription check with the challenge."""
    if not mode or not token:
        raise HTTPException(status_code=400, detail="Missing hub.mode or hub.verify_token")
    if mode != "subscribe" or token != get_verify_token():
        raise HTTPException(status_code=403, detail="Verification failed")
    log.info("WEBHOOK_VERIFIED")
    return challenge


@app.post("/webhook", response_class=PlainTextResponse)
def receive_events(body: WebhookBody, request: Request, background_tasks: BackgroundTasks):
    """Queue each page event for the game service and acknowledge at once."""
    if body.object != "page":
        raise HTTPException(status_code=404, detail="Not a page subscription")
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Bot is starting up")
    for entry in body.entry:
        # entry.messaging is a list but Messenger only ever sends one event in it
        if entry.messaging:
            background_tasks.add_task(service.handle_event, entry.messaging[0])
    return "EVENT_RECEIVED"


@app.get("/health")
def health():
    return {"status": "ok"}
