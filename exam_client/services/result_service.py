import logging
import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from exam_client.api.http import ApiClient
from exam_client.errors import ExamClientError
from exam_client.models import AttemptResult, HistoryPage, QuestionResult
from exam_client.utils.navigation import start_path

logger = logging.getLogger(__name__)

PASS_PERCENTAGE = 60


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ResultSummary(BaseModel):
    attempt_id: int
    template_id: Optional[int] = None
    template_title: str
    total_questions: int
    correct_count: int
    total_possible_score: float
    user_score: float
    percentage: int
    time_taken_seconds: Optional[int] = None
    completed_at: Optional[datetime] = None
    status: str
    questions: List[QuestionResult]

    @property
    def passed(self) -> bool:
        return self.total_possible_score > 0 and self.percentage >= PASS_PERCENTAGE

    @property
    def retake_path(self) -> Optional[str]:
        return start_path(self.template_id) if self.template_id is not None else None


def summarize(result: AttemptResult) -> ResultSummary:
    """Each question is worth one point"""
    correct_count = sum(1 for q in result.questions if q.is_correct is True)
    total_possible = float(result.total_questions)
    user_score = result.score if result.score is not None else 0.0
    percentage = (
        _round_half_up(user_score * 100 / total_possible) if total_possible > 0 else 0
    )

    time_taken: Optional[int] = None
    if result.duration is not None:
        time_taken = int(result.duration)
    elif result.start_time and result.submission_time:
        elapsed = (result.submission_time - result.start_time).total_seconds()
        time_taken = max(0, _round_half_up(elapsed))

    return ResultSummary(
        attempt_id=result.attempt_id,
        template_id=result.template_id,
        template_title=result.template_name,
        total_questions=result.total_questions,
        correct_count=correct_count,
        total_possible_score=total_possible,
        user_score=user_score,
        percentage=percentage,
        time_taken_seconds=time_taken,
        completed_at=result.submission_time,
        status=result.status.value,
        questions=result.questions,
    )


class ResultService:
    """Read-only view of a finished attempt"""

    def __init__(self, api: ApiClient):
        self.api = api
        self.summary: Optional[ResultSummary] = None
        self.error: Optional[str] = None
        self.warning: Optional[str] = None

    async def load(self, attempt_id: int) -> Optional[ResultSummary]:
        self.error = None
        self.warning = None
        try:
            result = await self.api.get_attempt_result(attempt_id)
        except ExamClientError as e:
            logger.error("Could not load result of attempt %s: %s", attempt_id, e.message)
            self.error = e.message
            return None
        if not result.status.is_terminal:
            logger.warning(
                "Attempt %s is not finished yet (%s)", attempt_id, result.status.value
            )
            self.warning = "This attempt is not finished yet."
        self.summary = summarize(result)
        return self.summary


class HistoryService:
    """Paginated list of the user's finished attempts"""

    def __init__(self, api: ApiClient, per_page: int = 10):
        self.api = api
        self.per_page = per_page
        self.page: Optional[HistoryPage] = None
        self.error: Optional[str] = None

    @property
    def current_page(self) -> int:
        return self.page.current_page if self.page else 1

    @property
    def total_pages(self) -> int:
        return self.page.total_pages if self.page else 1

    async def load(self, page: int = 1) -> Optional[HistoryPage]:
        self.error = None
        try:
            self.page = await self.api.get_history(page, self.per_page)
        except ExamClientError as e:
            logger.error("Could not load history page %s: %s", page, e.message)
            self.error = e.message
            return None
        self.per_page = self.page.per_page
        return self.page

    async def go_to(self, page: int) -> Optional[HistoryPage]:
        if page < 1 or page > self.total_pages or page == self.current_page:
            return self.page
        return await self.load(page)
