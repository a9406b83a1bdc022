"""
MongoDB Data Models for users, usage ledgers and configuration
"""
from datetime import datetime
from typing import List, Optional
from dataclasses import dataclass, field, asdict
from enum import Enum
import uuid


class UserRole(str, Enum):
    """Role of an account."""
    ADMIN = "admin"
    STUDENT = "student"


@dataclass
class User:
    """
    Represents a registered account and its monthly minute allowance.
    """
    email: str
    name: str
    password_hash: str = ""
    role: UserRole = UserRole.STUDENT
    minutes_limit: float = 120
    created_at: datetime = field(default_factory=datetime.now)
    last_login: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if isinstance(self.role, str) and not isinstance(self.role, UserRole):
            self.role = UserRole(self.role)
        # Resolved once; admission reads this instead of comparing roles.
        self.quota_exempt = self.role == UserRole.ADMIN

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        data = asdict(self)
        data['role'] = self.role.value
        data['created_at'] = self.created_at.isoformat() if isinstance(self.created_at, datetime) else self.created_at
        if self.last_login:
            data['last_login'] = self.last_login.isoformat() if isinstance(self.last_login, datetime) else self.last_login
        return data

    def to_public_dict(self) -> dict:
        """Account fields safe to return to clients."""
        data = self.to_dict()
        data.pop('password_hash', None)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        """Create User from dictionary."""
        data = {k: v for k, v in data.items() if k != '_id'}
        for field_name in ['created_at', 'last_login']:
            if isinstance(data.get(field_name), str):
                data[field_name] = datetime.fromisoformat(data[field_name])
        return cls(**data)


@dataclass
class MinutesLedgerEntry:
    """
    Accumulated conversation minutes for one user on one calendar day.
    """
    user_id: str
    date: str  # YYYY-MM-DD, server-local
    minutes_used: float = 0.0
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat() if isinstance(self.created_at, datetime) else self.created_at
        data['updated_at'] = self.updated_at.isoformat() if isinstance(self.updated_at, datetime) else self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "MinutesLedgerEntry":
        """Create MinutesLedgerEntry from dictionary."""
        data = {k: v for k, v in data.items() if k != '_id'}
        for field_name in ['created_at', 'updated_at']:
            if isinstance(data.get(field_name), str):
                data[field_name] = datetime.fromisoformat(data[field_name])
        return cls(**data)


@dataclass
class TTSLedgerEntry:
    """
    One successful premium TTS synthesis. Never updated after insert.
    """
    user_id: str
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat() if isinstance(self.created_at, datetime) else self.created_at
        return data


@dataclass
class ApiConfig:
    """Single admin-editable setting. Last write wins."""
    config_key: str
    config_value: str
    description: Optional[str] = None
    updated_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_dict(cls, data: dict) -> "ApiConfig":
        data = {k: v for k, v in data.items() if k != '_id'}
        if isinstance(data.get('updated_at'), str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        return cls(**data)


@dataclass
class StudentLevel:
    """
    CEFR level and learning preferences of a student. One row per user.
    """
    user_id: str
    level: str = "A1"
    topics: List[str] = field(default_factory=list)
    learning_goals: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat() if isinstance(self.created_at, datetime) else self.created_at
        data['updated_at'] = self.updated_at.isoformat() if isinstance(self.updated_at, datetime) else self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "StudentLevel":
        data = {k: v for k, v in data.items() if k != '_id'}
        for field_name in ['created_at', 'updated_at']:
            if isinstance(data.get(field_name), str):
                data[field_name] = datetime.fromisoformat(data[field_name])
        data['topics'] = data.get('topics') or []
        return cls(**data)
