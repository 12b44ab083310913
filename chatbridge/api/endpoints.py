"""API endpoints for the chat widget backend."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from chatbridge import __version__
from chatbridge.clients.twilio import parse_twilio_webhook, validate_twilio_signature
from chatbridge.dependencies import ChatServices, get_chat_services
from chatbridge.models.conversation import ChatRequest, HealthResponse, LoadChatRequest, LoadChatResponse
from chatbridge.services.streaming import stream_events
from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/api/chat", tags=["Chat"])
async def chat(request: Request, services: ChatServices = Depends(get_chat_services)) -> Response:
    """Run one chat round and stream the assistant's reply as server-sent events."""
    try:
        body = await request.json()
    except ValueError as e:
        logger.error(f"Chat API error: could not parse body: {e}")
        return _error(500, "Failed to process chat message")

    message = body.get("message") if isinstance(body, dict) else None
    if not message or not isinstance(message, str):
        return _error(400, "Message is required")

    try:
        chat_request = ChatRequest.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Invalid chat request: {e}")
        return _error(400, "Invalid chat request")

    try:
        logger.info(f"Processing message for session {chat_request.session_id}: {chat_request.message[:50]}...")
        events = services.orchestrator.run(chat_request.message, chat_request.session_id, chat_request.history)
        return stream_events(events)
    except Exception as e:
        logger.error(f"Chat API error: {e}", exc_info=True)
        return _error(500, "Failed to process chat message")


@router.post("/api/chat/load", tags=["Chat"])
async def load_chat(request: Request, services: ChatServices = Depends(get_chat_services)) -> Response:
    """Load previously saved history for a session."""
    try:
        body = await request.json()
        load_request = LoadChatRequest.model_validate(body)
    except (ValueError, ValidationError):
        return _error(400, "Session ID is required")

    try:
        messages = await services.chat_store.load(load_request.session_id)
    except Exception as e:
        logger.error(f"Error loading chat: {e}", exc_info=True)
        return _error(500, "Failed to load chat")

    return JSONResponse(content=LoadChatResponse(messages=messages).model_dump())


@router.post("/api/sms/webhook", tags=["SMS"])
async def sms_webhook(request: Request, services: ChatServices = Depends(get_chat_services)) -> Response:
    """Receive an owner's SMS reply from Twilio and attach it to the waiting request."""
    raw_body = (await request.body()).decode("utf-8")
    params = parse_twilio_webhook(raw_body)

    settings = services.settings
    if settings.twilio_auth_token:
        url = settings.twilio_webhook_url or str(request.url)
        signature = request.headers.get("X-Twilio-Signature", "")
        if not validate_twilio_signature(settings.twilio_auth_token, signature, url, params):
            logger.warning("Rejected SMS webhook with invalid signature")
            return _error(403, "Invalid signature")

    reply = params.get("Body", "").strip()
    if not reply:
        logger.info("Ignoring SMS webhook without a body")
        return Response(content=EMPTY_TWIML, media_type="application/xml")

    pending = await services.pending_store.get_most_recent_pending()
    if pending is None:
        logger.warning(f"No pending request for SMS from {params.get('From', 'unknown')}")
        return Response(content=EMPTY_TWIML, media_type="application/xml")

    await services.pending_store.update_reply(pending.id, reply)
    logger.info(f"Delivered SMS reply to session {pending.session_id}")
    return Response(content=EMPTY_TWIML, media_type="application/xml")


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
