from enum import Enum
from typing import Optional
from pydantic import BaseModel

from exam_client.models.attempt import BaseType


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class User(BaseModel):
    id: int
    username: str
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class TemplateSummary(BaseModel):
    id: int
    name: str
    base_type: BaseType
    description: Optional[str] = None
    time_limit_seconds: int = 0
    question_count: int = 0

    @property
    def is_paired(self) -> bool:
        """Communication templates need a sender and a receiver"""
        return self.base_type == BaseType.COMMUNICATION
