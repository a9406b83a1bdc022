# lib_database module
from lib_database.database import Database
from lib_database.models import User, UserRole, MinutesLedgerEntry, TTSLedgerEntry, ApiConfig, StudentLevel
from lib_database.usage_repository import UsageRepository
from lib_database.user_repository import UserRepository

__all__ = [
    "Database",
    "User",
    "UserRole",
    "MinutesLedgerEntry",
    "TTSLedgerEntry",
    "ApiConfig",
    "StudentLevel",
    "UsageRepository",
    "UserRepository",
]
