from exam_client.models.account import TemplateSummary, User, UserRole
from exam_client.models.attempt import (
    ActiveAttempt,
    AnswerEntry,
    AnswerState,
    AttemptResult,
    AttemptStatus,
    BaseType,
    HistoryItem,
    HistoryPage,
    JoinPairingResponse,
    QuestionResult,
    QuestionSlot,
    QuestionType,
    ReferenceAnswer,
    Role,
    StartAttemptResponse,
    SubmitResult,
)

__all__ = [
    "ActiveAttempt",
    "AnswerEntry",
    "AnswerState",
    "AttemptResult",
    "AttemptStatus",
    "BaseType",
    "HistoryItem",
    "HistoryPage",
    "JoinPairingResponse",
    "QuestionResult",
    "QuestionSlot",
    "QuestionType",
    "ReferenceAnswer",
    "Role",
    "StartAttemptResponse",
    "SubmitResult",
    "TemplateSummary",
    "User",
    "UserRole",
]
