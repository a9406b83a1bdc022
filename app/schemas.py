from pydantic import BaseModel, Field
from typing import List, Optional, Literal


class RegisterRequest(BaseModel):
    """Request model for creating a student account."""
    email: str = Field(..., min_length=3, examples=["student@example.com"])
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, examples=["Maria Rossi"])


class LoginRequest(BaseModel):
    email: str
    password: str


class UserPublic(BaseModel):
    id: str
    email: str
    name: str
    role: str
    minutes_limit: float


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserPublic


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Request model for one metered conversation turn."""

    message: str = Field(
        ...,
        min_length=1,
        description="The student's message",
        examples=["Can you check my sentence: I have went to school."]
    )

    conversation_history: List[HistoryMessage] = Field(
        default_factory=list,
        description="Previous turns, oldest first"
    )

    session_type: str = Field(
        default="conversation",
        description="conversation, grammar, pronunciation or vocabulary",
        examples=["grammar"]
    )

    level: Optional[str] = Field(default=None, description="CEFR level, defaults to the stored student level, then A1", examples=["B1"])

    topic: Optional[str] = Field(default=None, description="Topic, defaults to the session type")


class ChatResponse(BaseModel):
    """Response model containing the assistant reply and the minutes charged."""
    result: str = Field(..., description="The assistant reply")
    costApplied: float = Field(..., description="Minutes added to today's ledger")
    level: str


class TTSRequest(BaseModel):
    text: str = Field(..., min_length=1)
    voiceLang: str = Field(default="en-US", examples=["en-GB"])
    voiceGender: Literal["MALE", "FEMALE", "NEUTRAL"] = "MALE"


class TTSResponse(BaseModel):
    result: str = Field(..., description="Base64 encoded MP3 audio")
    costApplied: int
    voiceUsed: str
    usedToday: int
    dailyLimit: float


class QuotaDeniedResponse(BaseModel):
    """Body of a 429 quota denial."""
    denied: bool = True
    error: str
    used: float
    limit: float
    fallbackToLocal: Optional[bool] = None


class RecordUsageRequest(BaseModel):
    minutes: float


class UsageResponse(BaseModel):
    daily_minutes: float
    monthly_minutes: float
    minutes_limit: float
    remaining_minutes: float


class TTSUsageResponse(BaseModel):
    dailyLimit: int
    usedToday: int
    remaining: int
    canUsePremium: bool


class TTSSettings(BaseModel):
    dailyLimit: int
    description: Optional[str] = None


class TTSSettingsUpdate(BaseModel):
    dailyLimit: Optional[int] = None


class UserUpdateRequest(BaseModel):
    minutes_limit: Optional[float] = None
    role: Optional[str] = None


class AdminUserSummary(UserPublic):
    monthly_minutes_used: float
    level: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    last_login: Optional[str] = None


class UsageResetRequest(BaseModel):
    user_id: Optional[str] = None


class UserTTSUsage(BaseModel):
    userId: str
    date: str
    count: int


class StatsResponse(BaseModel):
    total_users: int
    active_today: int
    minutes_today: float
    minutes_month: float


class StudentLevelUpdate(BaseModel):
    """Request model for a student's own level and preferences."""
    level: Literal["A1", "A2", "B1", "B2", "C1", "C2"] = Field(..., examples=["B1"])
    topics: List[str] = Field(default_factory=list, examples=[["travel", "food"]])
    learning_goals: Optional[str] = Field(default=None, examples=["Prepare for a job interview"])


class StudentLevelPublic(BaseModel):
    level: str
    topics: List[str]
    learning_goals: Optional[str] = None
