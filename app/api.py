import base64
import logging

from fastapi import APIRouter, Depends, HTTPException
from pymongo.errors import DuplicateKeyError

from .schemas import (
    RegisterRequest, LoginRequest, AuthResponse, UserPublic,
    ChatRequest, ChatResponse, TTSRequest, TTSResponse,
    RecordUsageRequest, UsageResponse, TTSUsageResponse,
    StudentLevelUpdate, StudentLevelPublic, QuotaDeniedResponse
)
from .auth import hash_password, verify_password, create_access_token, get_current_user
from .config import DEFAULT_MINUTES_LIMIT
from .dependencies import (
    get_user_repository, get_usage_repository, get_admission_controller,
    get_usage_recorder, get_metered_conversation, get_metered_tts
)
from lib_database.models import User, UserRole, StudentLevel
from lib_database.usage_repository import UsageRepository, today, month_start
from lib_database.user_repository import UserRepository
from lib_llm.prompt_generator import PromptGenerator
from lib_tts.text_to_speech_google import VoiceParams
from lib_usage.admission_controller import AdmissionController
from lib_usage.metered_operation import MeteredConversation, MeteredTTS
from lib_usage.quota_policy import round_minutes
from lib_usage.usage_recorder import UsageRecorder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

DEFAULT_LEVEL = "A1"

QUOTA_DENIED = {429: {"model": QuotaDeniedResponse, "description": "Allowance used up"}}


def to_public(user: User) -> UserPublic:
    return UserPublic(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role.value,
        minutes_limit=user.minutes_limit
    )


# ==============================
# AUTH
# ==============================

@router.post("/auth/register", response_model=AuthResponse, status_code=201, tags=["Auth"])
async def register(req: RegisterRequest, users: UserRepository = Depends(get_user_repository)):
    email = req.email.strip().lower()
    if await users.get_user_by_email(email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=email,
        name=req.name,
        password_hash=hash_password(req.password),
        role=UserRole.STUDENT,
        minutes_limit=DEFAULT_MINUTES_LIMIT
    )
    try:
        await users.create_user(user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already registered")

    await users.upsert_student_level(user.id, DEFAULT_LEVEL)
    return AuthResponse(message="Registration completed", token=create_access_token(user), user=to_public(user))


@router.post("/auth/login", response_model=AuthResponse, tags=["Auth"])
async def login(req: LoginRequest, users: UserRepository = Depends(get_user_repository)):
    user = await users.get_user_by_email(req.email.strip())
    if user is None or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    await users.touch_last_login(user.id)
    return AuthResponse(message="Login successful", token=create_access_token(user), user=to_public(user))


# ==============================
# USER
# ==============================

@router.get("/user/profile", tags=["User"])
async def get_profile(
    user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository)
):
    data = user.to_public_dict()
    student_level = await users.get_student_level(user.id)
    if student_level:
        data.update(
            level=student_level.level,
            topics=student_level.topics,
            learning_goals=student_level.learning_goals
        )
    return {"user": data}


@router.put("/user/level", tags=["User"])
async def update_level(
    req: StudentLevelUpdate,
    user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository)
):
    stored = await users.upsert_student_level(user.id, req.level, req.topics, req.learning_goals)
    return {
        "message": "Level updated",
        "student_level": StudentLevelPublic(
            level=stored.level, topics=stored.topics, learning_goals=stored.learning_goals
        )
    }


@router.get("/user/usage", response_model=UsageResponse, tags=["User"])
async def get_usage(
    user: User = Depends(get_current_user),
    repository: UsageRepository = Depends(get_usage_repository)
):
    day = today()
    daily = await repository.get_daily_minute_total(user.id, day)
    monthly = await repository.get_monthly_minute_total(user.id, month_start(day))

    return UsageResponse(
        daily_minutes=round_minutes(daily),
        monthly_minutes=round_minutes(monthly),
        minutes_limit=user.minutes_limit,
        remaining_minutes=max(0, round_minutes(user.minutes_limit - monthly))
    )


@router.post("/user/usage", tags=["User"])
async def add_usage(
    req: RecordUsageRequest,
    user: User = Depends(get_current_user),
    recorder: UsageRecorder = Depends(get_usage_recorder)
):
    """Record minutes measured by the client (e.g. a voice session it timed itself)."""
    if req.minutes <= 0:
        raise HTTPException(status_code=400, detail="Invalid minutes")

    if not await recorder.record_minutes(user.id, today(), req.minutes):
        raise HTTPException(status_code=500, detail="Failed to record usage")

    return {"message": "Usage recorded", "minutes_added": req.minutes}


@router.get("/user/tts-usage", response_model=TTSUsageResponse, tags=["User"])
async def get_tts_usage(
    user: User = Depends(get_current_user),
    admission: AdmissionController = Depends(get_admission_controller),
    repository: UsageRepository = Depends(get_usage_repository)
):
    daily_limit = await admission.get_tts_daily_limit()
    used_today = await repository.get_daily_tts_count(user.id, today())
    remaining = max(0, daily_limit - used_today)

    return TTSUsageResponse(
        dailyLimit=daily_limit,
        usedToday=used_today,
        remaining=remaining,
        canUsePremium=user.quota_exempt or remaining > 0
    )


# ==============================
# METERED ENDPOINTS
# ==============================

@router.post("/chat", response_model=ChatResponse, responses=QUOTA_DENIED, tags=["Metered"])
async def chat(
    req: ChatRequest,
    user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
    metered: MeteredConversation = Depends(get_metered_conversation)
):
    # Request values win, then the stored student level
    stored = await users.get_student_level(user.id) or StudentLevel(user_id=user.id, level=DEFAULT_LEVEL)
    level = req.level or stored.level or DEFAULT_LEVEL
    topic = req.topic or (", ".join(stored.topics) if stored.topics else None)
    prompt = PromptGenerator(level=level, session_type=req.session_type, topic=topic)
    history = [m.model_dump() for m in req.conversation_history]

    # QuotaExceeded / ProviderError are turned into responses by the app's handlers
    outcome = await metered.run(user, str(prompt), history, req.message)

    return ChatResponse(result=outcome.result, costApplied=outcome.cost_applied, level=level)


@router.post("/tts", response_model=TTSResponse, responses=QUOTA_DENIED, tags=["Metered"])
async def text_to_speech(
    req: TTSRequest,
    user: User = Depends(get_current_user),
    metered: MeteredTTS = Depends(get_metered_tts)
):
    voice = VoiceParams(language=req.voiceLang, gender=req.voiceGender)
    outcome = await metered.run(user, req.text, voice)

    return TTSResponse(
        result=base64.b64encode(outcome.result).decode("utf-8"),
        costApplied=outcome.cost_applied,
        voiceUsed=voice.voice_name,
        usedToday=outcome.used + outcome.cost_applied,
        dailyLimit=outcome.limit
    )
