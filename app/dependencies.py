"""
Request-scoped accessors for the process-wide services built in the app
lifespan and kept on app.state.
"""
from fastapi import Request

from lib_database.usage_repository import UsageRepository
from lib_database.user_repository import UserRepository
from lib_usage.admission_controller import AdmissionController
from lib_usage.usage_recorder import UsageRecorder
from lib_usage.metered_operation import MeteredConversation, MeteredTTS


def get_usage_repository(request: Request) -> UsageRepository:
    return request.app.state.usage_repository


def get_user_repository(request: Request) -> UserRepository:
    return request.app.state.user_repository


def get_admission_controller(request: Request) -> AdmissionController:
    return request.app.state.admission_controller


def get_usage_recorder(request: Request) -> UsageRecorder:
    return request.app.state.usage_recorder


def get_metered_conversation(request: Request) -> MeteredConversation:
    return request.app.state.metered_conversation


def get_metered_tts(request: Request) -> MeteredTTS:
    return request.app.state.metered_tts
