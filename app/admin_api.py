from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query

from .schemas import (
    TTSSettings, TTSSettingsUpdate, UserUpdateRequest, AdminUserSummary,
    UsageResetRequest, UserTTSUsage, StatsResponse
)
from .auth import require_admin
from .config import TTS_DAILY_LIMIT_KEY
from .dependencies import get_usage_repository, get_user_repository, get_admission_controller
from lib_database.models import UserRole
from lib_database.usage_repository import UsageRepository, today, month_start
from lib_database.user_repository import UserRepository
from lib_usage.admission_controller import AdmissionController
from lib_usage.quota_policy import round_minutes

TTS_LIMIT_DESCRIPTION = "Daily premium TTS limit per student"

admin_router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)]
)


# ==============================
# TTS SETTINGS
# ==============================

@admin_router.get("/tts-settings", response_model=TTSSettings)
async def get_tts_settings(
    admission: AdmissionController = Depends(get_admission_controller),
    repository: UsageRepository = Depends(get_usage_repository)
):
    """Current daily premium TTS limit (the default when never configured)."""
    return TTSSettings(
        dailyLimit=await admission.get_tts_daily_limit(),
        description=await repository.get_config_description(TTS_DAILY_LIMIT_KEY) or TTS_LIMIT_DESCRIPTION
    )


@admin_router.put("/tts-settings")
async def update_tts_settings(
    req: TTSSettingsUpdate,
    repository: UsageRepository = Depends(get_usage_repository)
):
    if req.dailyLimit is None or req.dailyLimit < 0:
        raise HTTPException(status_code=400, detail="Invalid daily limit")

    await repository.set_config(TTS_DAILY_LIMIT_KEY, str(req.dailyLimit), TTS_LIMIT_DESCRIPTION)
    return {
        "success": True,
        "dailyLimit": req.dailyLimit,
        "message": "TTS settings updated successfully"
    }


# ==============================
# USERS & QUOTA STATE
# ==============================

@admin_router.get("/users", response_model=List[AdminUserSummary])
async def list_users(
    users: UserRepository = Depends(get_user_repository),
    repository: UsageRepository = Depends(get_usage_repository)
):
    """Every account with its minutes used this month."""
    totals = await repository.get_monthly_totals_by_user(month_start())
    levels = await users.get_levels_by_user()
    result = []
    for user in await users.list_users():
        data = user.to_public_dict()
        student_level = levels.get(user.id)
        result.append(AdminUserSummary(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role.value,
            minutes_limit=user.minutes_limit,
            monthly_minutes_used=round_minutes(totals.get(user.id, 0.0)),
            level=student_level.level if student_level else None,
            topics=student_level.topics if student_level else [],
            created_at=data.get("created_at"),
            last_login=data.get("last_login")
        ))
    return result


@admin_router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    req: UserUpdateRequest,
    users: UserRepository = Depends(get_user_repository)
):
    role = None
    if req.role is not None:
        try:
            role = UserRole(req.role)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid role")

    if req.minutes_limit is None and role is None:
        raise HTTPException(status_code=400, detail="No fields to update")
    if req.minutes_limit is not None and req.minutes_limit < 0:
        raise HTTPException(status_code=400, detail="Invalid minutes limit")

    user = await users.update_quota_fields(user_id, minutes_limit=req.minutes_limit, role=role)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    return {"message": "User updated", "user": user.to_public_dict()}


@admin_router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    users: UserRepository = Depends(get_user_repository),
    repository: UsageRepository = Depends(get_usage_repository)
):
    """Delete an account together with its ledger rows and level."""
    if await users.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    await repository.delete_user_usage(user_id)
    await users.delete_student_level(user_id)
    await users.delete_user(user_id)
    return {"message": "User deleted"}


@admin_router.get("/users/{user_id}/tts-usage", response_model=UserTTSUsage)
async def get_user_tts_usage(
    user_id: str,
    day: Optional[date] = Query(default=None, alias="date", description="YYYY-MM-DD, defaults to today"),
    repository: UsageRepository = Depends(get_usage_repository)
):
    day = day or today()
    count = await repository.get_daily_tts_count(user_id, day)
    return UserTTSUsage(userId=user_id, date=day.isoformat(), count=count)


@admin_router.post("/usage/reset")
async def reset_monthly_usage(
    req: UsageResetRequest,
    repository: UsageRepository = Depends(get_usage_repository)
):
    """Zero this month's minutes ledger, for everyone or a single user."""
    start = month_start()
    reset = await repository.reset_monthly_minutes(start, user_id=req.user_id)
    return {
        "success": True,
        "rows_reset": reset,
        "month": start.strftime("%Y-%m"),
        "user_id": req.user_id
    }


@admin_router.get("/stats", response_model=StatsResponse)
async def get_stats(
    users: UserRepository = Depends(get_user_repository),
    repository: UsageRepository = Depends(get_usage_repository)
):
    day = today()
    stats = await repository.get_usage_stats(day, month_start(day))
    return StatsResponse(
        total_users=await users.count_by_role(UserRole.STUDENT),
        active_today=stats["active_today"],
        minutes_today=round_minutes(stats["minutes_today"]),
        minutes_month=round_minutes(stats["minutes_month"])
    )
