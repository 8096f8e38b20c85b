"""HTTP shell: Cliq webhooks, health and debug endpoints."""

from __future__ import annotations

import hashlib
import hmac
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request

from bugbuster.app import BugBusterApp
from bugbuster.log import get_logger
from bugbuster.messenger.models import InboundMessage

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-cliq-signature"
PARTICIPATE_REQUIRED = ("message", "user_name", "channel_id")


async def _read_body(request: Request) -> dict[str, Any]:
    """Accept JSON or url-encoded bodies (Deluge posts either)."""
    raw = await request.body()
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type:
        return {k: v[0] for k, v in parse_qs(raw.decode("utf-8")).items()}
    try:
        data = json.loads(raw or b"{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Body must be an object")
    return data


def verify_signature(secret: str | None, body: bytes, signature: str | None) -> bool:
    """HMAC-SHA256 of the raw body; an unset secret disables verification."""
    if not secret:
        return True
    if not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, expected)


def create_app(bot: BugBusterApp) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await bot.start()
        yield
        await bot.stop()

    app = FastAPI(title="BugBuster", lifespan=lifespan)
    app.state.bot = bot

    @app.post("/webhook/cliq/participate")
    async def cliq_participate(request: Request, background: BackgroundTasks):
        data = await _read_body(request)
        missing = [k for k in PARTICIPATE_REQUIRED if not data.get(k)]
        if missing:
            raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

        message = InboundMessage(
            channel_id=str(data["channel_id"]),
            channel_name=data.get("channel_name"),
            user_id=str(data.get("user_id") or ""),
            user_name=str(data["user_name"]),
            text=str(data["message"]),
            message_id=str(data["message_id"]) if data.get("message_id") else None,
        )
        logger.info("cliq_participation", channel_id=message.channel_id, user=message.user_name)
        background.add_task(bot.handler.handle, message)
        return {"status": "received"}

    @app.post("/webhook/cliq")
    async def cliq_webhook(request: Request, background: BackgroundTasks):
        raw = await request.body()
        if not verify_signature(bot.config.cliq.webhook_secret, raw, request.headers.get(SIGNATURE_HEADER)):
            logger.warning("cliq_signature_invalid")
            raise HTTPException(status_code=401, detail="Invalid signature")

        data = await _read_body(request)
        user = data.get("user") or {}
        channel = data.get("channel") or {}
        msg = data.get("message") or {}
        if not all(isinstance(part, dict) for part in (user, channel, msg)):
            raise HTTPException(status_code=400, detail="user, channel and message must be objects")

        if user.get("is_bot"):
            return {"status": "ignored", "reason": "bot message"}
        if not channel.get("id") or not msg.get("text"):
            raise HTTPException(status_code=400, detail="Missing channel or message")

        message = InboundMessage(
            channel_id=str(channel["id"]),
            channel_name=channel.get("name"),
            user_id=str(user.get("id") or ""),
            user_name=str(user.get("name") or ""),
            text=str(msg["text"]),
            message_id=str(msg["id"]) if msg.get("id") else None,
        )
        background.add_task(bot.handler.handle, message)
        return {"status": "received"}

    @app.get("/health")
    async def health():
        config = bot.config
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "bugbuster",
            "active_sessions": len(bot.session_store),
            "features": {
                "anthropic": bool(config.anthropic.api_key),
                "cliq_webhook": bool(config.cliq.webhook_url),
                "jira": config.jira is not None,
                "ssh_servers": sorted(config.ssh.servers),
                "tools": bot.tool_registry.names(),
            },
        }

    if bot.config.server.debug_endpoints:

        @app.get("/debug/sessions")
        async def list_sessions():
            return {
                channel_id: bot.service.get_stats(channel_id).to_dict()
                for channel_id in bot.service.active_channels()
            }

        @app.get("/debug/sessions/{channel_id}")
        async def session_stats(channel_id: str):
            stats = bot.service.get_stats(channel_id).to_dict()
            stats["locked"] = bot.service.queue.is_locked(channel_id)
            stats["queued"] = bot.service.queue.pending_count(channel_id)
            return stats

        @app.post("/debug/sessions/{channel_id}/reset")
        async def reset_session(channel_id: str):
            return {"channel_id": channel_id, "reset": bot.service.reset_session(channel_id)}

    return app
