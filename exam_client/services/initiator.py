import logging
from typing import Optional, Tuple

from exam_client.api.http import ApiClient
from exam_client.api.realtime import (
    CONNECT_ERROR,
    ERROR,
    OPPONENT_DISCONNECTED,
    PAIRING_SUCCESS,
    RealtimeChannel,
    SubscriptionGroup,
    payload_dict,
)
from exam_client.errors import (
    ApiError,
    ExamClientError,
    TemplateUnavailableError,
    ValidationError,
)
from exam_client.models import Role, TemplateSummary
from exam_client.utils.navigation import Router, attempt_path
from exam_client.utils.state_machine import PairingState, initiator_machine

logger = logging.getLogger(__name__)


class PairingInitiator:
    """
    Starts an attempt for the current user.

    Intelligence exams (single party) and a sender whose attempt is already
    paired go straight to the attempt page. A sender that gets a pairing code
    back waits here until the receiver joins.
    """

    def __init__(self, api: ApiClient, channel: RealtimeChannel, router: Router):
        self.api = api
        self.channel = channel
        self.router = router
        self.machine = initiator_machine()
        self.template: Optional[TemplateSummary] = None
        self.role: Optional[Role] = None
        self.attempt_id: Optional[int] = None
        self.pairing_code: Optional[str] = None
        self.partner_connected = False
        self.partner_name: Optional[str] = None
        self.error: Optional[str] = None
        self.retryable = True
        self._in_flight = False
        self._last_request: Optional[Tuple[int, Optional[Role]]] = None
        self._subscriptions = SubscriptionGroup()

    @property
    def state(self) -> PairingState:
        return self.machine.get_state()

    @property
    def starting(self) -> bool:
        return self._in_flight

    @property
    def waiting(self) -> bool:
        return self.state == PairingState.WAITING_PAIR

    async def start(self, template_id: int, role: Optional[Role] = None) -> bool:
        """Returns False when nothing was started (guarded, or failed)"""
        if self._in_flight:
            logger.warning(
                "Start for template %s ignored, a start is already in flight",
                template_id,
            )
            return False
        if not self.machine.can_transition(PairingState.STARTING):
            logger.warning("Start ignored in state %s", self.state.value)
            return False

        self._in_flight = True
        self._last_request = (template_id, role)
        self.error = None
        self._subscriptions.close()
        self.machine.transition(PairingState.STARTING)
        try:
            self.template = await self._load_template(template_id)
            self.role = self._resolve_role(self.template, role)
            response = await self.api.start_attempt(template_id, self.role)
            if response.attempt_id is None:
                raise ApiError(
                    response.message or "Starting failed, no attempt id was returned."
                )
        except ExamClientError as e:
            self._fail(e.message, retryable=e.retryable)
            return False
        finally:
            self._in_flight = False

        self.attempt_id = response.attempt_id
        self.pairing_code = response.pairing_code
        self.partner_connected = False

        if self.role == Role.SENDER and response.pairing_code:
            logger.info(
                "Attempt %s waiting for a receiver (code %s)",
                self.attempt_id,
                self.pairing_code,
            )
            self.machine.transition(PairingState.WAITING_PAIR)
            self._listen_for_partner()
        else:
            logger.info("Attempt %s started", self.attempt_id)
            self.machine.transition(PairingState.STARTED)
            self.router.push(attempt_path(self.attempt_id))
        return True

    async def retry(self) -> bool:
        """Manual retry after a retryable failure"""
        if self.state != PairingState.ERROR or not self.retryable:
            return False
        if self._last_request is None:
            return False
        return await self.start(*self._last_request)

    def close(self):
        self._subscriptions.close()

    async def _load_template(self, template_id: int) -> TemplateSummary:
        templates = await self.api.get_active_templates()
        for template in templates:
            if template.id == template_id:
                return template
        raise TemplateUnavailableError(
            "The exam template could not be found or is not active."
        )

    def _resolve_role(
        self, template: TemplateSummary, role: Optional[Role]
    ) -> Optional[Role]:
        if not template.is_paired:
            return None
        if role is None or Role(role) != Role.SENDER:
            error = ValidationError(
                "Communication exams are started by the sender; "
                "the receiver joins with a pairing code."
            )
            error.retryable = False
            raise error
        return Role.SENDER

    def _listen_for_partner(self):
        # The receiver holds its own attempt, so these may carry its attemptId
        self._subscriptions.add(self.channel.on(PAIRING_SUCCESS, self._on_pairing_success))
        self._subscriptions.add(self.channel.on(ERROR, self._on_error))
        self._subscriptions.add(
            self.channel.on(OPPONENT_DISCONNECTED, self._on_opponent_disconnected)
        )
        self._subscriptions.add(self.channel.on(CONNECT_ERROR, self._on_connect_error))

    def _on_pairing_success(self, payload):
        payload = payload_dict(payload)
        self.partner_connected = True
        self.partner_name = payload.get("receiverUsername") or self.partner_name
        if self.state == PairingState.PAIRED:
            return
        logger.info(
            "Receiver %s joined attempt %s", self.partner_name or "?", self.attempt_id
        )
        self.error = None
        self.machine.transition(PairingState.PAIRED)
        self.router.push(attempt_path(self.attempt_id))

    def _on_error(self, payload):
        message = payload_dict(payload).get("message") or "unknown error"
        self._fail(f"Error during pairing: {message}", retryable=True)

    def _on_opponent_disconnected(self, payload):
        logger.warning("Receiver left attempt %s", self.attempt_id)
        self.partner_connected = False
        self._fail("The receiver has disconnected.", retryable=True)

    def _on_connect_error(self, payload):
        self._fail(
            f"Cannot reach the server: {self.channel.connect_error or payload}",
            retryable=True,
        )

    def _fail(self, message: str, retryable: bool):
        logger.error("Initiator error: %s", message)
        self.error = message
        self.retryable = retryable
        self.machine.transition(PairingState.ERROR)
