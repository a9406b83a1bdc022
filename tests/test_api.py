"""
HTTP tests for the user and admin routes.

The app's lifespan is not entered (no Mongo connection); the services it
would build are placed on app.state directly, backed by the in-memory
collections and mocked providers.
"""
import base64
from datetime import date

import httpx
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock

from main import app
from app.auth import create_access_token, hash_password
from lib_database.models import User, UserRole
from lib_database.usage_repository import UsageRepository
from lib_database.user_repository import UserRepository
from lib_usage.admission_controller import AdmissionController
from lib_usage.errors import ProviderError
from lib_usage.metered_operation import MeteredConversation, MeteredTTS
from lib_tts.text_to_speech_google import TextToSpeechGoogle
from lib_usage.usage_recorder import UsageRecorder


@pytest.fixture
def llm_client():
    client = AsyncMock()
    client.complete.return_value = " ".join(["word"] * 75)
    return client


@pytest.fixture
def tts_client():
    client = AsyncMock()
    client.synthesize.return_value = b"mp3-bytes"
    return client


@pytest.fixture
def client(fake_db, llm_client, tts_client):
    usage_repository = UsageRepository(fake_db)
    admission = AdmissionController(usage_repository)
    recorder = UsageRecorder(usage_repository)

    app.state.usage_repository = usage_repository
    app.state.user_repository = UserRepository(fake_db)
    app.state.admission_controller = admission
    app.state.usage_recorder = recorder
    app.state.metered_conversation = MeteredConversation(admission, recorder, llm_client)
    app.state.metered_tts = MeteredTTS(admission, recorder, tts_client)
    return TestClient(app)


def add_user(fake_db, user: User) -> dict:
    fake_db.collections["users"].docs.append(user.to_dict())
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def student_headers(fake_db, student):
    return add_user(fake_db, student)


@pytest.fixture
def admin_headers(fake_db, admin):
    return add_user(fake_db, admin)


def seed_minutes(fake_db, user_id, minutes, day=None):
    fake_db.collections["minutes_usage"].docs.append({
        "user_id": user_id,
        "date": (day or date.today()).isoformat(),
        "minutes_used": minutes,
    })


# ==============================
# AUTH
# ==============================

def test_register_then_login(client):
    response = client.post("/api/auth/register", json={
        "email": "New@Example.com", "password": "secret", "name": "New Student"
    })
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["role"] == "student"
    assert body["user"]["minutes_limit"] == 120

    response = client.post("/api/auth/login", json={"email": "new@example.com", "password": "secret"})
    assert response.status_code == 200
    assert response.json()["token"]

    response = client.post("/api/auth/login", json={"email": "new@example.com", "password": "wrong"})
    assert response.status_code == 401


def test_register_duplicate_email(client, fake_db):
    add_user(fake_db, User(email="taken@example.com", name="T", password_hash=hash_password("x")))

    response = client.post("/api/auth/register", json={
        "email": "taken@example.com", "password": "secret", "name": "Other"
    })

    assert response.status_code == 400


def test_missing_or_bad_token(client):
    assert client.get("/api/user/profile").status_code == 401
    response = client.get("/api/user/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_profile_hides_password_hash(client, student_headers):
    response = client.get("/api/user/profile", headers=student_headers)

    assert response.status_code == 200
    assert "password_hash" not in response.json()["user"]


# ==============================
# METERED CHAT
# ==============================

def test_chat_charges_estimated_minutes(client, fake_db, student, student_headers, llm_client):
    response = client.post("/api/chat", headers=student_headers, json={
        "message": "Hello",
        "conversation_history": [{"role": "user", "content": "Hi"}],
        "session_type": "grammar",
        "level": "B1",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["costApplied"] == 0.5
    assert body["level"] == "B1"
    assert fake_db.collections["minutes_usage"].docs[0]["minutes_used"] == 0.5

    system_prompt, history, message = llm_client.complete.await_args.args
    assert "B1" in system_prompt
    assert history == [{"role": "user", "content": "Hi"}]
    assert message == "Hello"


def test_chat_denied_at_limit(client, fake_db, student, student_headers, llm_client):
    seed_minutes(fake_db, student.id, 120)

    response = client.post("/api/chat", headers=student_headers, json={"message": "Hello"})

    assert response.status_code == 429
    body = response.json()
    assert body["denied"] is True
    assert body["used"] == 120
    assert body["limit"] == 120
    assert "fallbackToLocal" not in body
    llm_client.complete.assert_not_awaited()


def test_chat_provider_failure_passes_status(client, fake_db, student_headers, llm_client):
    llm_client.complete.side_effect = ProviderError("Conversation provider error", status_code=503, details="overloaded")

    response = client.post("/api/chat", headers=student_headers, json={"message": "Hello"})

    assert response.status_code == 503
    assert response.json()["details"] == "overloaded"
    assert fake_db.collections["minutes_usage"].docs == []


def test_admin_chat_is_not_limited(client, fake_db, admin, admin_headers):
    seed_minutes(fake_db, admin.id, 1_000_000)

    response = client.post("/api/chat", headers=admin_headers, json={"message": "Hello"})

    assert response.status_code == 200


# ==============================
# METERED TTS
# ==============================

def test_tts_returns_audio_and_counts(client, fake_db, student_headers):
    response = client.post("/api/tts", headers=student_headers, json={
        "text": "Hello there", "voiceLang": "en-GB", "voiceGender": "FEMALE"
    })

    assert response.status_code == 200
    body = response.json()
    assert base64.b64decode(body["result"]) == b"mp3-bytes"
    assert body["voiceUsed"] == "en-GB-Neural2-F"
    assert body["usedToday"] == 1
    assert body["dailyLimit"] == 15
    assert len(fake_db.collections["tts_usage"].docs) == 1


def test_tts_denied_with_fallback(client, fake_db, student, student_headers, tts_client):
    fake_db.collections["api_configs"].docs.append({"config_key": "tts_daily_limit", "config_value": "0"})

    response = client.post("/api/tts", headers=student_headers, json={"text": "Hello"})

    assert response.status_code == 429
    assert response.json()["fallbackToLocal"] is True
    tts_client.synthesize.assert_not_awaited()


def test_tts_failure_falls_back_to_local(client, fake_db, student_headers, tts_client):
    tts_client.synthesize.side_effect = ProviderError("TTS API error", status_code=403)

    response = client.post("/api/tts", headers=student_headers, json={"text": "Hello"})

    assert response.status_code == 500
    assert response.json() == {"error": "Text-to-speech failed", "fallbackToLocal": True}
    assert fake_db.collections["tts_usage"].docs == []


# ==============================
# USAGE
# ==============================

def test_usage_reports_month_and_day(client, fake_db, student, student_headers):
    seed_minutes(fake_db, student.id, 10.004)

    response = client.get("/api/user/usage", headers=student_headers)

    assert response.json() == {
        "daily_minutes": 10.0,
        "monthly_minutes": 10.0,
        "minutes_limit": 120,
        "remaining_minutes": 110.0,
    }


def test_client_recorded_usage(client, fake_db, student_headers):
    assert client.post("/api/user/usage", headers=student_headers, json={"minutes": 0}).status_code == 400

    response = client.post("/api/user/usage", headers=student_headers, json={"minutes": 2.5})

    assert response.status_code == 200
    assert fake_db.collections["minutes_usage"].docs[0]["minutes_used"] == 2.5


def test_tts_usage_endpoint(client, student_headers):
    response = client.get("/api/user/tts-usage", headers=student_headers)

    assert response.json() == {"dailyLimit": 15, "usedToday": 0, "remaining": 15, "canUsePremium": True}


# ==============================
# ADMIN
# ==============================

def test_admin_routes_require_admin(client, student_headers):
    assert client.get("/api/admin/tts-settings", headers=student_headers).status_code == 403


def test_update_tts_settings(client, admin_headers):
    assert client.put("/api/admin/tts-settings", headers=admin_headers, json={"dailyLimit": -1}).status_code == 400

    response = client.put("/api/admin/tts-settings", headers=admin_headers, json={"dailyLimit": 20})
    assert response.status_code == 200

    response = client.get("/api/admin/tts-settings", headers=admin_headers)
    assert response.json()["dailyLimit"] == 20


def test_raising_limit_readmits_student(client, fake_db, student, student_headers, admin_headers):
    seed_minutes(fake_db, student.id, 120)
    assert client.post("/api/chat", headers=student_headers, json={"message": "Hi"}).status_code == 429

    response = client.put(f"/api/admin/users/{student.id}", headers=admin_headers, json={"minutes_limit": 200})
    assert response.status_code == 200
    assert response.json()["user"]["minutes_limit"] == 200

    assert client.post("/api/chat", headers=student_headers, json={"message": "Hi"}).status_code == 200


def test_update_user_validation(client, student, admin_headers):
    assert client.put(f"/api/admin/users/{student.id}", headers=admin_headers, json={}).status_code == 400
    assert client.put(f"/api/admin/users/{student.id}", headers=admin_headers,
                      json={"role": "owner"}).status_code == 400
    assert client.put("/api/admin/users/missing", headers=admin_headers,
                      json={"minutes_limit": 10}).status_code == 404


def test_reset_usage_readmits(client, fake_db, student, student_headers, admin_headers):
    seed_minutes(fake_db, student.id, 120)

    response = client.post("/api/admin/usage/reset", headers=admin_headers, json={"user_id": student.id})

    assert response.json()["rows_reset"] == 1
    assert client.post("/api/chat", headers=student_headers, json={"message": "Hi"}).status_code == 200


def test_list_users_and_stats(client, fake_db, student, student_headers, admin_headers):
    seed_minutes(fake_db, student.id, 3.5)

    users = client.get("/api/admin/users", headers=admin_headers).json()
    by_email = {u["email"]: u for u in users}
    assert by_email["student@example.com"]["monthly_minutes_used"] == 3.5
    assert by_email["admin@example.com"]["role"] == UserRole.ADMIN.value

    stats = client.get("/api/admin/stats", headers=admin_headers).json()
    assert stats == {"total_users": 1, "active_today": 1, "minutes_today": 3.5, "minutes_month": 3.5}


def test_delete_user_cascades(client, fake_db, student, student_headers, admin_headers):
    seed_minutes(fake_db, student.id, 1)

    response = client.delete(f"/api/admin/users/{student.id}", headers=admin_headers)

    assert response.status_code == 200
    assert fake_db.collections["minutes_usage"].docs == []
    assert client.get("/api/user/profile", headers=student_headers).status_code == 401


def test_health(client):
    assert client.get("/api/health").json()["status"] == "ok"


def test_chat_overshoot_reported_in_denial(client, fake_db, student, student_headers, llm_client):
    seed_minutes(fake_db, student.id, 118.5)
    llm_client.complete.return_value = " ".join(["word"] * 300)

    assert client.post("/api/chat", headers=student_headers, json={"message": "Hi"}).json()["costApplied"] == 2.0

    response = client.post("/api/chat", headers=student_headers, json={"message": "Hi"})
    assert response.status_code == 429
    body = response.json()
    assert body["used"] == pytest.approx(120.5)
    assert body["limit"] == 120


def test_tts_unreadable_google_reply_falls_back(client, fake_db, student_headers):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"unexpected": True}))
    google = TextToSpeechGoogle("g-key", http_client=httpx.AsyncClient(transport=transport))
    app.state.metered_tts = MeteredTTS(app.state.admission_controller, app.state.usage_recorder, google)

    response = client.post("/api/tts", headers=student_headers, json={"text": "Hello"})

    assert response.status_code == 500
    assert response.json()["fallbackToLocal"] is True
    assert fake_db.collections["tts_usage"].docs == []


# ==============================
# STUDENT LEVEL
# ==============================

def test_register_seeds_default_level(client, fake_db):
    response = client.post("/api/auth/register", json={
        "email": "level@example.com", "password": "secret", "name": "Level"
    })

    user_id = response.json()["user"]["id"]
    rows = fake_db.collections["student_levels"].docs
    assert [(r["user_id"], r["level"]) for r in rows] == [(user_id, "A1")]


def test_stored_level_drives_chat_prompt(client, student_headers, llm_client):
    response = client.put("/api/user/level", headers=student_headers, json={
        "level": "B2", "topics": ["travel"], "learning_goals": "Job interview"
    })
    assert response.status_code == 200
    assert response.json()["student_level"]["level"] == "B2"

    response = client.post("/api/chat", headers=student_headers, json={"message": "Hello"})

    assert response.json()["level"] == "B2"
    system_prompt = llm_client.complete.await_args.args[0]
    assert "B2" in system_prompt
    assert "travel" in system_prompt

    profile = client.get("/api/user/profile", headers=student_headers).json()["user"]
    assert profile["level"] == "B2"
    assert profile["learning_goals"] == "Job interview"


def test_request_level_overrides_stored_level(client, student_headers):
    client.put("/api/user/level", headers=student_headers, json={"level": "B2"})

    response = client.post("/api/chat", headers=student_headers, json={"message": "Hello", "level": "C1"})

    assert response.json()["level"] == "C1"


def test_chat_without_stored_level_uses_a1(client, student_headers):
    response = client.post("/api/chat", headers=student_headers, json={"message": "Hello"})

    assert response.json()["level"] == "A1"


def test_invalid_level_rejected(client, student_headers):
    response = client.put("/api/user/level", headers=student_headers, json={"level": "Z9"})

    assert response.status_code == 422


def test_admin_sees_levels_and_delete_removes_them(client, fake_db, student, student_headers, admin_headers):
    client.put("/api/user/level", headers=student_headers, json={"level": "A2", "topics": ["food"]})

    users = {u["email"]: u for u in client.get("/api/admin/users", headers=admin_headers).json()}
    assert users["student@example.com"]["level"] == "A2"
    assert users["student@example.com"]["topics"] == ["food"]
    assert users["admin@example.com"]["level"] is None

    client.delete(f"/api/admin/users/{student.id}", headers=admin_headers)

    assert fake_db.collections["student_levels"].docs == []


def test_quota_denial_is_documented(client):
    schema = client.get("/openapi.json").json()

    for path in ("/api/chat", "/api/tts"):
        denied = schema["paths"][path]["post"]["responses"]["429"]
        assert denied["content"]["application/json"]["schema"]["$ref"].endswith("/QuotaDeniedResponse")
