"""
SERVICE GATEWAY

Small HTTP service that keeps provider keys off the listening device.
The device talks to this gateway; the gateway talks to the providers.

Endpoints:
- GET  /news?source=&q=        news search (provider top-headlines)
- POST /upload                 raw audio body -> {"upload_url"}
- POST /transcript             {"audio_url"} -> {"id", "status"}
- GET  /transcript/{id}        -> {"status", "text", "error"}
- GET  /api/status             health / version

When gateway.auth_token (GATEWAY_TOKEN) is set, every endpoint except
/api/status requires "Authorization: Bearer <token>".
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import PlainTextResponse

from newsreader import policy
from newsreader.config import Config, get_config
from newsreader.version import CURRENT_VERSION, get_version

logger = logging.getLogger(__name__)


def build_news_params(source: Optional[str], query: Optional[str], api_key: str) -> Dict[str, str]:
    """Provider query: English only, country=us when neither source nor q is given."""
    params = {"language": "en"}
    if source:
        params["sources"] = source
    if query:
        params["q"] = query
    if not source and not query:
        params["country"] = "us"
    params["apiKey"] = api_key
    return params


def create_app(config: Optional[Config] = None) -> FastAPI:
    """
    Build the gateway application.

    Args:
        config: Config (global config when omitted)
    """
    config = config or get_config()
    news_api_url = config.get("gateway.news_api_url")
    news_api_key = config.get("gateway.news_api_key", "")
    transcription_url = (config.get("gateway.transcription_url") or "").rstrip("/")
    transcription_key = config.get("gateway.transcription_api_key", "")
    auth_token = config.get("gateway.auth_token", "")
    timeout = config.get("gateway.timeout_seconds", policy.HTTP_TIMEOUT_SECONDS)

    app = FastAPI(title="News Reader Gateway", version=CURRENT_VERSION)

    def require_token(authorization: Optional[str] = Header(default=None)) -> None:
        if not auth_token:
            return
        if authorization not in (f"Bearer {auth_token}", auth_token):
            raise HTTPException(status_code=401, detail="Unauthorized")

    def provider_json(method: str, url: str, what: str, **kwargs) -> Dict[str, Any]:
        headers = kwargs.pop("headers", {})
        headers["authorization"] = transcription_key
        try:
            response = requests.request(method, url, headers=headers, timeout=timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"[GATEWAY] {what} failed: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to {what}")

    # ========================================================================
    # NEWS
    # ========================================================================

    @app.get("/news", dependencies=[Depends(require_token)])
    def get_news(source: Optional[str] = None, q: Optional[str] = None):
        params = build_news_params(source, q, news_api_key)
        logger.info(f"[GATEWAY] News source={source!r} q={q!r}")
        try:
            response = requests.get(news_api_url, params=params, timeout=timeout)
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"[GATEWAY] Error fetching news: {e}")
            return PlainTextResponse("Failed to fetch news", status_code=500)

    # ========================================================================
    # TRANSCRIPTION
    # ========================================================================

    @app.post("/upload", dependencies=[Depends(require_token)])
    async def upload_audio(request: Request):
        body = await request.body()
        if not body:
            raise HTTPException(status_code=400, detail="Audio data is required")
        data = await asyncio.to_thread(
            provider_json,
            "POST",
            f"{transcription_url}/upload",
            "upload audio",
            data=body,
            headers={"Content-Type": "application/octet-stream"},
        )
        return {"upload_url": data.get("upload_url")}

    @app.post("/transcript", dependencies=[Depends(require_token)])
    def start_transcription(payload: Dict[str, Any]):
        audio_url = payload.get("audio_url")
        if not audio_url:
            raise HTTPException(status_code=400, detail="Audio URL is required")
        data = provider_json(
            "POST",
            f"{transcription_url}/transcript",
            "start transcription",
            json={"audio_url": audio_url, "punctuate": True, "format_text": True},
        )
        return {"id": data.get("id"), "status": data.get("status")}

    @app.get("/transcript/{transcript_id}", dependencies=[Depends(require_token)])
    def get_transcription(transcript_id: str):
        data = provider_json(
            "GET",
            f"{transcription_url}/transcript/{transcript_id}",
            "get transcription status",
        )
        return {
            "status": data.get("status"),
            "text": data.get("text"),
            "error": data.get("error"),
        }

    # ========================================================================
    # STATUS
    # ========================================================================

    @app.get("/api/status")
    def get_status():
        return {
            "status": "ok",
            "version": CURRENT_VERSION,
            "milestone": get_version()["milestone"],
            "news_configured": bool(news_api_key),
            "transcription_configured": bool(transcription_key),
            "auth_required": bool(auth_token),
        }

    return app
