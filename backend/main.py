# ==============================================================================
# 1. IMPORTS
# ==============================================================================
from dotenv import load_dotenv
load_dotenv()
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config.config import Config
from core.conversation_relay import ConversationRelay, extract_assistant_text
from core.errors import UpstreamAuthError, UpstreamNotFound, ValidationError
from core.instance_guard import InstanceGuard
from core.session_store import SessionStore
from core.text_to_voice import TextToVoice
from core.utils import generate_session_id, utc_timestamp
from core.validation import validate_user_metadata, validate_user_text

# ==============================================================================
# 2. LOGGING SETUP
# ==============================================================================
log_format = '%(asctime)s - %(levelname)s - [Session:%(session_id)s] - %(message)s'
logging.basicConfig(level=logging.INFO, format=log_format)
logger = logging.getLogger(__name__)

class SessionIdFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, 'session_id'):
            record.session_id = 'SYSTEM'
        return True

# On the root handlers so records from every module get a session id.
for _handler in logging.getLogger().handlers:
    _handler.addFilter(SessionIdFilter())

# ==============================================================================
# 3. REQUEST MODEL
# ==============================================================================
class ChatRequest(BaseModel):
    # userText and userMetadata are checked by core.validation so the client
    # gets the same error messages whatever shape it sends.
    userText: Optional[Any] = None
    sessionId: Optional[str] = None
    userMetadata: Optional[Any] = None
    serverInstanceId: Optional[str] = None

# ==============================================================================
# 4. SERVICE SETUP (LIFESPAN)
# ==============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("--- Application starting up... ---")
    config: Config = app.state.config

    app.state.instance_guard = InstanceGuard()
    app.state.session_store = SessionStore(
        ttl_seconds=config.session_ttl_seconds,
        max_sessions=config.max_sessions,
        max_history_messages=config.max_history_messages,
    )

    if not config.vapi_assistant_id:
        logger.error("❌ VAPI_ASSISTANT_ID is MISSING")
    if not config.vapi_secret_key:
        logger.error("❌ VAPI_SECRET_KEY is MISSING")
    app.state.conversation_relay = ConversationRelay(
        api_key=config.vapi_secret_key,
        assistant_id=config.vapi_assistant_id,
        base_url=config.vapi_base_url,
        timeout=config.chat_timeout_seconds,
    )
    logger.info(f"✅ ConversationRelay initialized (assistant {'configured' if config.vapi_assistant_id else 'MISSING'}).")

    # Speech is optional: without it every reply goes out text-only.
    app.state.text_to_voice = None
    try:
        app.state.text_to_voice = TextToVoice(
            config.openai_api_key,
            model=config.tts_model,
            voice=config.tts_voice,
            response_format=config.tts_format,
            timeout=config.tts_timeout_seconds,
        )
        logger.info("✅ TextToVoice service initialized.")
    except Exception as e:
        logger.error(f"❌ TextToVoice initialization failed, replies will have no audio: {e}")

    yield

    logger.info("--- Application shutting down... ---")
    if app.state.text_to_voice is not None:
        await app.state.text_to_voice.close()

# ==============================================================================
# 5. HTTP ENDPOINTS
# ==============================================================================
router = APIRouter()

@router.post("/api/alia-text-chat")
@router.post("/alia-text-chat")
async def alia_text_chat(req: ChatRequest, request: Request):
    state = request.app.state
    config: Config = state.config

    try:
        user_text = validate_user_text(req.userText)
        user_metadata = validate_user_metadata(req.userMetadata)
    except ValidationError as e:
        return _error_response(e.status_code, e.message)

    if not state.instance_guard.is_current(req.serverInstanceId):
        logger.warning("⚠️ Server instance mismatch - client must reset its session")
        return JSONResponse({
            "success": False,
            "error": "Server restarted. Please refresh the page.",
            "serverRestarted": True,
            "newServerInstanceId": state.instance_guard.token,
        })

    session_id = req.sessionId or generate_session_id()
    store: SessionStore = state.session_store
    session, created = store.get_or_create(session_id, user_metadata)
    if created:
        logger.info("📝 New session created", extra={"session_id": session_id})
    else:
        logger.info("♻️ Existing session found", extra={"session_id": session_id})

    try:
        async with session['processing_lock']:
            store.append(session_id, {'role': 'user', 'content': user_text})
            chat_response = await state.conversation_relay.send(list(session['messages']), session_id=session_id)
            chat_id = chat_response.get("id") or None
            if chat_id:
                session['chat_id'] = chat_id
            assistant_text = extract_assistant_text(chat_response)
            store.append(session_id, {'role': 'assistant', 'content': assistant_text})
            conversation_length = len(session['messages'])
    except UpstreamAuthError as e:
        logger.error(f"❌ Error: {e}", extra={"session_id": session_id})
        return _error_response(401, "Authentication failed. Check VAPI_SECRET_KEY.")
    except UpstreamNotFound as e:
        logger.error(f"❌ Error: {e}", extra={"session_id": session_id})
        return _error_response(404, "Assistant not found. Check VAPI_ASSISTANT_ID.")
    except Exception as e:
        logger.error(f"❌ Error: {e}", extra={"session_id": session_id}, exc_info=True)
        details = str(e) if config.is_development else None
        return _error_response(500, "Failed to process message. Please try again.", details)

    audio_url = await synthesize_best_effort(state.text_to_voice, assistant_text, session_id)

    response = {
        "success": True,
        "assistantText": assistant_text,
        "assistantAudioUrl": audio_url,
        "sessionId": session_id,
        "chatId": chat_id,
        "serverInstanceId": state.instance_guard.token,
        "metadata": {
            "conversationLength": conversation_length,
            "timestamp": utc_timestamp(),
        },
    }
    logger.info(
        f"✅ Response sent: textLength={len(assistant_text)} hasAudio={bool(audio_url)}",
        extra={"session_id": session_id},
    )
    return response

@router.get("/health")
async def health(request: Request):
    state = request.app.state
    return {
        "status": "ok",
        "serverInstanceId": state.instance_guard.token,
        "activeSessionCount": state.session_store.count(),
    }

# ==============================================================================
# 6. HELPER FUNCTIONS
# ==============================================================================
async def synthesize_best_effort(text_to_voice: Optional[TextToVoice], text: str, session_id: str) -> Optional[str]:
    """Speech never blocks text delivery: any failure yields None."""
    if text_to_voice is None:
        logger.warning("TextToVoice service not found. Sending response without audio.", extra={"session_id": session_id})
        return None
    try:
        return await text_to_voice.synthesize_data_uri(text)
    except Exception as e:
        logger.error(f"⚠️ TTS Error: {e}", extra={"session_id": session_id})
        return None

def _error_response(status_code: int, message: str, details: Optional[str] = None) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "error": message}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)

async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Only the string fields can fail the model; name the offending one.
    for error in exc.errors():
        loc = error.get("loc", ())
        if len(loc) == 2 and loc[0] == "body" and loc[1] in ("sessionId", "serverInstanceId"):
            return _error_response(400, f"{loc[1]} must be a string")
    return _error_response(400, "Request body must be a JSON object")

# ==============================================================================
# 7. APP FACTORY
# ==============================================================================
def create_app(config: Optional[Config] = None) -> FastAPI:
    config = config or Config()
    app = FastAPI(title="Alia Text Relay", lifespan=lifespan)
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)
    return app

app = create_app()

# ==============================================================================
# 8. SERVER RUN
# ==============================================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=app.state.config.host, port=app.state.config.port)
