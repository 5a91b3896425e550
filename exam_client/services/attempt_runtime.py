import logging
from typing import Any, Dict, List, Optional

from exam_client.api.http import ApiClient
from exam_client.api.realtime import (
    EXAM_COMPLETED,
    RealtimeChannel,
    SubscriptionGroup,
    payload_dict,
)
from exam_client.errors import (
    AttemptFinishedError,
    AuthorizationError,
    ExamClientError,
)
from exam_client.models import (
    ActiveAttempt,
    AnswerEntry,
    AnswerState,
    QuestionSlot,
    Role,
    SubmitResult,
)
from exam_client.models.attempt import ANSWER_FIELDS
from exam_client.utils.countdown import Clock, Countdown
from exam_client.utils.display import format_time_left
from exam_client.utils.navigation import DASHBOARD, Router, result_path
from exam_client.utils.state_machine import RuntimeState, runtime_machine

logger = logging.getLogger(__name__)


class AttemptRuntime:
    """
    Timed answering phase of one attempt.

    The receiver (or the only party of an intelligence exam) gets an answer
    form and a countdown; answers are submitted once, by hand or when time
    runs out. The sender sees the reference answers, has no form and waits
    for exam_completed. A finished attempt is never shown again: load()
    replaces the route with the result view.
    """

    def __init__(
        self,
        api: ApiClient,
        channel: RealtimeChannel,
        router: Router,
        attempt_id: int,
        user_id: Optional[int] = None,
        clock: Optional[Clock] = None,
        tick_interval: float = 1.0,
    ):
        self.api = api
        self.channel = channel
        self.router = router
        self.attempt_id = attempt_id
        self.user_id = user_id
        self.machine = runtime_machine()
        self.attempt: Optional[ActiveAttempt] = None
        self.answers: AnswerState = {}
        self.current_index = 0
        self.error: Optional[str] = None
        self.score: Optional[float] = None
        self.result: Optional[SubmitResult] = None
        self._clock = clock
        self._tick_interval = tick_interval
        self._countdown: Optional[Countdown] = None
        self._submitting = False
        self._closed = False
        self._subscriptions = SubscriptionGroup()

    # --- view state ---

    @property
    def state(self) -> RuntimeState:
        return self.machine.get_state()

    @property
    def role(self) -> Optional[Role]:
        return self.attempt.role if self.attempt else None

    @property
    def is_sender(self) -> bool:
        return self.role == Role.SENDER

    @property
    def questions(self) -> List[QuestionSlot]:
        return self.attempt.questions if self.attempt else []

    @property
    def form_visible(self) -> bool:
        return not self.is_sender and self.machine.is_in(
            RuntimeState.READY, RuntimeState.SUBMITTING
        )

    @property
    def submitting(self) -> bool:
        return self._submitting

    @property
    def time_left(self) -> Optional[int]:
        return self._countdown.remaining if self._countdown else None

    @property
    def time_left_display(self) -> str:
        return format_time_left(self.time_left)

    @property
    def current_question(self) -> Optional[QuestionSlot]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def progress(self) -> float:
        if not self.questions:
            return 0.0
        return (self.current_index + 1) / len(self.questions) * 100

    def next_question(self):
        if self.current_index < len(self.questions) - 1:
            self.current_index += 1

    def prev_question(self):
        if self.current_index > 0:
            self.current_index -= 1

    # --- lifecycle ---

    async def load(self) -> RuntimeState:
        """Fetch the attempt and enter the matching state; safe to call again after an error"""
        if self.state != RuntimeState.LOADING and not self.machine.transition(
            RuntimeState.LOADING
        ):
            logger.warning("Load ignored in state %s", self.state.value)
            return self.state
        self.error = None

        try:
            attempt = await self.api.get_active_attempt(self.attempt_id)
        except AttemptFinishedError as e:
            self._leave_finished(e.status)
            return self.state
        except AuthorizationError as e:
            self._fail(e.message)
            self.router.replace(DASHBOARD)
            return self.state
        except ExamClientError as e:
            self._fail(e.message)
            return self.state

        if self._closed:
            return self.state
        if (
            attempt.user_id is not None
            and self.user_id is not None
            and attempt.user_id != self.user_id
        ):
            self._fail("This attempt could not be loaded, or you have no access to it.")
            self.router.replace(DASHBOARD)
            return self.state
        if attempt.status.is_terminal:
            self._leave_finished(attempt.status.value)
            return self.state

        if attempt.role != Role.SENDER:
            attempt.questions = [q.without_reference() for q in attempt.questions]
        self.attempt = attempt
        self.current_index = 0

        if attempt.role == Role.SENDER:
            self.machine.transition(RuntimeState.OBSERVING)
            # Unscoped: the completion may carry the receiver's attemptId
            self._subscriptions.add(
                self.channel.on(EXAM_COMPLETED, self._on_exam_completed)
            )
            logger.info("Sender watching attempt %s", self.attempt_id)
            return self.state

        self.answers = {q.slot_order: AnswerEntry() for q in attempt.questions}
        self.machine.transition(RuntimeState.READY)
        await self._start_countdown()
        return self.state

    async def resume(self):
        """Re-derive the countdown from the wall clock, e.g. after the app was suspended"""
        if self._countdown is None or self._countdown.expired:
            return
        if self._countdown.resync() <= 0:
            await self._countdown.expire()

    def close(self):
        """Leave the page: stop the timer and detach listeners"""
        self._closed = True
        self._teardown()

    # --- answers ---

    def set_answer(self, slot_order: int, field: str, value: str):
        if slot_order not in self.answers:
            raise ValueError(f"Unknown slot {slot_order}")
        attribute = ANSWER_FIELDS.get(field, field)
        if attribute not in ANSWER_FIELDS.values():
            raise ValueError(f"Unknown answer field {field}")
        setattr(self.answers[slot_order], attribute, value)

    def answer_payload(self) -> List[Dict[str, Any]]:
        """Every slot, answered or not"""
        return [
            {"slotOrder": slot_order, **entry.model_dump(by_alias=True)}
            for slot_order, entry in sorted(self.answers.items())
        ]

    async def submit(self, timed_out: bool = False) -> bool:
        """
        Send all answers once.

        The countdown and a manual click may both call this; whichever comes
        first wins and the other returns False.
        """
        if self.is_sender:
            logger.warning("Sender cannot submit attempt %s", self.attempt_id)
            return False
        if self._submitting or self.state != RuntimeState.READY:
            return False

        self._submitting = True
        self.machine.transition(RuntimeState.SUBMITTING)
        self.error = None
        if timed_out:
            logger.info("Time is up, submitting attempt %s", self.attempt_id)
        try:
            result = await self.api.submit_attempt(self.attempt_id, self.answer_payload())
        except AttemptFinishedError as e:
            if not self._closed:
                self.machine.transition(RuntimeState.SUBMITTED)
                self._leave_finished(e.status)
            return False
        except ExamClientError as e:
            if self._closed:
                return False
            logger.error("Submit of attempt %s failed: %s", self.attempt_id, e.message)
            self.error = e.message
            self._submitting = False
            self.machine.transition(RuntimeState.READY)
            return False

        if self._closed:
            logger.info("Attempt %s submitted after leaving the page", self.attempt_id)
            return True
        self.result = result
        self.score = result.score
        self.machine.transition(RuntimeState.SUBMITTED)
        self._teardown()
        self.machine.transition(RuntimeState.REDIRECTED)
        self.router.push(result_path(self.attempt_id))
        return True

    # --- internals ---

    async def _start_countdown(self):
        attempt = self.attempt
        if (
            attempt.start_time is None
            or attempt.time_limit <= 0
            or not attempt.status.is_running
        ):
            return
        self._countdown = Countdown(
            attempt.start_time,
            attempt.time_limit,
            on_expire=self._on_time_up,
            clock=self._clock,
            interval=self._tick_interval,
        )
        logger.info(
            "Attempt %s: %s s left", self.attempt_id, self._countdown.remaining
        )
        if self._countdown.remaining <= 0:
            await self._countdown.expire()
        else:
            self._countdown.start()

    async def tick(self) -> Optional[int]:
        """Advance the countdown by one second"""
        if self._countdown is None:
            return None
        return await self._countdown.tick()

    async def _on_time_up(self):
        await self.submit(timed_out=True)

    def _on_exam_completed(self, payload):
        if self.state != RuntimeState.OBSERVING:
            return
        self.score = payload_dict(payload).get("score")
        logger.info(
            "Receiver finished attempt %s, score %s", self.attempt_id, self.score
        )
        self._teardown()
        self.machine.transition(RuntimeState.REDIRECTED)
        self.router.replace(result_path(self.attempt_id))

    def _leave_finished(self, status: Optional[str]):
        logger.info(
            "Attempt %s already finished (%s), showing result", self.attempt_id, status
        )
        self._teardown()
        self.machine.transition(RuntimeState.REDIRECTED)
        self.router.replace(result_path(self.attempt_id))

    def _fail(self, message: str):
        logger.error("Attempt %s: %s", self.attempt_id, message)
        self.error = message
        self.machine.transition(RuntimeState.ERROR)

    def _teardown(self):
        if self._countdown is not None:
            self._countdown.cancel()
        self._subscriptions.close()
