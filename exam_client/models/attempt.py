from enum import Enum
from datetime import datetime, timezone
from typing import Annotated, Optional, Dict, List
from pydantic import AfterValidator, BaseModel, ConfigDict, Field


class Role(str, Enum):
    SENDER = "sender"
    RECEIVER = "receiver"


class BaseType(str, Enum):
    INTELLIGENCE = "intelligence"
    COMMUNICATION = "communication"


class AttemptStatus(str, Enum):
    WAITING_PAIR = "waiting_pair"
    IN_PROGRESS = "inprogress"
    STARTED = "started"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (AttemptStatus.COMPLETED, AttemptStatus.TIMED_OUT)

    @property
    def is_running(self) -> bool:
        return self in (AttemptStatus.IN_PROGRESS, AttemptStatus.STARTED)


class QuestionType(str, Enum):
    COORDINATE = "coordinate"
    ELEVATION = "elevation"
    COMMUNICATION = "communication"


def _assume_utc(value: datetime) -> datetime:
    # The backend sends naive ISO strings that are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ReferenceAnswer(_WireModel):
    coord_x: Optional[str] = None
    coord_y: Optional[str] = None
    elevation: Optional[float] = None
    text: Optional[str] = None


class QuestionSlot(_WireModel):
    slot_order: int
    question_id: Optional[int] = None
    type: QuestionType
    content: str = ""
    communication_method: Optional[str] = None
    communication_subtype: Optional[str] = None
    # Sender only
    answer: Optional[ReferenceAnswer] = None
    keywords: Optional[List[str]] = None
    # Receiver only
    type_display: Optional[str] = None

    def without_reference(self) -> "QuestionSlot":
        return self.model_copy(update={"answer": None, "keywords": None})


class ActiveAttempt(_WireModel):
    attempt_id: Optional[int] = Field(default=None, alias="attemptId")
    user_id: Optional[int] = Field(default=None, alias="userId")
    role: Optional[Role] = None
    pairing_code: Optional[str] = Field(default=None, alias="pairingCode")
    template_name: Optional[str] = Field(default=None, alias="templateName")
    questions: List[QuestionSlot] = Field(default_factory=list)
    start_time: Optional[UtcDatetime] = Field(default=None, alias="startTime")
    time_limit: int = Field(default=0, alias="timeLimit")
    status: AttemptStatus


class AnswerEntry(_WireModel):
    answer_text: str = Field(default="", alias="answerText")
    answer_coord_x: str = Field(default="", alias="answerCoordX")
    answer_coord_y: str = Field(default="", alias="answerCoordY")


# wire name -> attribute
ANSWER_FIELDS = {
    "answerText": "answer_text",
    "answerCoordX": "answer_coord_x",
    "answerCoordY": "answer_coord_y",
}


class StartAttemptResponse(_WireModel):
    attempt_id: Optional[int] = Field(default=None, alias="attemptId")
    pairing_code: Optional[str] = Field(default=None, alias="pairingCode")
    message: Optional[str] = None


class JoinPairingResponse(_WireModel):
    attempt_id: Optional[int] = Field(default=None, alias="attemptId")
    message: Optional[str] = None


class SubmitResult(_WireModel):
    score: Optional[float] = None
    status: Optional[AttemptStatus] = None
    message: Optional[str] = None


class QuestionResult(_WireModel):
    slot_order: int
    question_id: Optional[int] = None
    content: str = ""
    type: QuestionType
    communication_method: Optional[str] = None
    communication_subtype: Optional[str] = None
    user_answer: Optional[str] = None
    is_correct: Optional[bool] = None
    score_awarded: Optional[float] = None
    correct_answer: Optional[str] = None


class AttemptResult(_WireModel):
    attempt_id: int = Field(alias="attemptId")
    template_id: Optional[int] = Field(default=None, alias="templateId")
    template_name: str = Field(default="", alias="templateName")
    template_description: Optional[str] = Field(
        default=None, alias="templateDescription"
    )
    score: Optional[float] = None
    total_questions: int = Field(default=0, alias="totalQuestions")
    status: AttemptStatus
    start_time: Optional[UtcDatetime] = Field(default=None, alias="startTime")
    submission_time: Optional[UtcDatetime] = Field(
        default=None, alias="submissionTime"
    )
    time_limit: int = Field(default=0, alias="timeLimit")
    questions: List[QuestionResult] = Field(default_factory=list)
    duration: Optional[float] = None


class HistoryItem(_WireModel):
    attempt_id: int = Field(alias="attemptId")
    template_name: str = Field(default="", alias="templateName")
    score: Optional[float] = None
    total_questions: int = Field(default=0, alias="totalQuestions")
    status: AttemptStatus
    submission_time: Optional[UtcDatetime] = Field(
        default=None, alias="submissionTime"
    )
    start_time: Optional[UtcDatetime] = Field(default=None, alias="startTime")


class HistoryPage(_WireModel):
    history: List[HistoryItem] = Field(default_factory=list)
    total_items: int = 0
    current_page: int = 1
    per_page: int = 10
    total_pages: int = 1


AnswerState = Dict[int, AnswerEntry]
