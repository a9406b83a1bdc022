# external imports
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
# internal imports
from app.api import router
from app.admin_api import admin_router
from app.auth import hash_password
from app.config import (
    OPENAI_API_KEY, GOOGLE_TTS_API_KEY, CORS_ORIGINS, LOG_LEVEL, PORT,
    ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_MINUTES_LIMIT
)
from lib_database.database import Database
from lib_database.models import User, UserRole
from lib_database.usage_repository import UsageRepository
from lib_database.user_repository import UserRepository
from lib_llm.conversation_client import ConversationClient
from lib_tts.text_to_speech_google import TextToSpeechGoogle
from lib_usage.admission_controller import AdmissionController
from lib_usage.errors import QuotaExceeded, ProviderError
from lib_usage.metered_operation import MeteredConversation, MeteredTTS
from lib_usage.usage_recorder import UsageRecorder

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


async def ensure_admin(users: UserRepository):
    """Create the bootstrap admin account when ADMIN_PASSWORD is set and it doesn't exist yet."""
    if not ADMIN_PASSWORD or await users.get_user_by_email(ADMIN_EMAIL):
        return
    await users.create_user(User(
        email=ADMIN_EMAIL.lower(),
        name="Super Admin",
        password_hash=hash_password(ADMIN_PASSWORD),
        role=UserRole.ADMIN,
        minutes_limit=ADMIN_MINUTES_LIMIT
    ))
    logger.warning("Default admin user %s created. Change the password immediately!", ADMIN_EMAIL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    database = Database()
    if not await database.connect():
        raise RuntimeError("Could not connect to MongoDB")

    usage_repository = UsageRepository(database)
    user_repository = UserRepository(database)
    admission = AdmissionController(usage_repository)
    recorder = UsageRecorder(usage_repository)
    conversation_client = ConversationClient(OPENAI_API_KEY)
    tts_client = TextToSpeechGoogle(GOOGLE_TTS_API_KEY)

    app.state.database = database
    app.state.usage_repository = usage_repository
    app.state.user_repository = user_repository
    app.state.admission_controller = admission
    app.state.usage_recorder = recorder
    app.state.metered_conversation = MeteredConversation(admission, recorder, conversation_client)
    app.state.metered_tts = MeteredTTS(admission, recorder, tts_client)

    await ensure_admin(user_repository)
    logger.info("Server Up At : http://localhost:%s/", PORT)

    yield

    # Shutdown: let admitted calls finish recording before the store goes away
    await app.state.metered_conversation.drain()
    await app.state.metered_tts.drain()
    await tts_client.close()
    await database.disconnect()


# app initalization & setup
app = FastAPI(title="Voice Agent API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router)
app.include_router(admin_router)


@app.exception_handler(QuotaExceeded)
async def quota_exceeded_handler(request: Request, exc: QuotaExceeded):
    body = {
        "denied": True,
        "error": f"{exc.resource} limit reached",
        "used": exc.used,
        "limit": exc.limit,
    }
    if exc.fallback_to_local:
        body["fallbackToLocal"] = True
    return JSONResponse(status_code=429, content=body)


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    if exc.fallback_to_local:
        return JSONResponse(
            status_code=500,
            content={"error": "Text-to-speech failed", "fallbackToLocal": True}
        )
    status_code = exc.status_code if exc.status_code and exc.status_code >= 400 else 502
    return JSONResponse(
        status_code=status_code,
        content={"error": str(exc), "details": exc.details}
    )


@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "message": "Voice Agent API",
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
