import logging
from typing import Optional

from exam_client.api.http import ApiClient
from exam_client.api.realtime import (
    CONNECT_ERROR,
    DISCONNECT,
    PAIRING_FAILED,
    PAIRING_SUCCESS,
    START_EXAM,
    RealtimeChannel,
    SubscriptionGroup,
    payload_dict,
)
from exam_client.errors import ExamClientError
from exam_client.utils.navigation import Router, attempt_path
from exam_client.utils.state_machine import PairingState, joiner_machine

logger = logging.getLogger(__name__)


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class PairingJoiner:
    """
    Receiver side of a communication exam.

    The join request only validates the code. Both parties enter the exam
    when the backend pushes start_exam, so that signal, not the HTTP
    response, moves the receiver to the attempt page.
    """

    def __init__(self, api: ApiClient, channel: RealtimeChannel, router: Router):
        self.api = api
        self.channel = channel
        self.router = router
        self.machine = joiner_machine()
        self.code_input = ""
        self.error: Optional[str] = None
        self.joining = False
        self.partner_name: Optional[str] = None
        self.attempt_id: Optional[int] = None
        self._subscriptions = SubscriptionGroup()

    @property
    def state(self) -> PairingState:
        return self.machine.get_state()

    @property
    def can_join(self) -> bool:
        return self.channel.connected and not self.joining

    async def join(self, code: str, template_id: int) -> bool:
        """True once the backend accepted the code; navigation waits for start_exam"""
        if self.joining or self.state == PairingState.STARTED:
            logger.warning("Join ignored in state %s", self.state.value)
            return False
        self.code_input = code
        normalized = normalize_code(code)
        if not normalized:
            self._fail("Please enter a valid pairing code.")
            return False
        if not self.channel.connected:
            reason = self.channel.connect_error or "realtime channel not connected"
            self._fail(f"Cannot reach the server: {reason}")
            return False

        self.error = None
        self.joining = True
        self.machine.transition(PairingState.JOINING)
        # Listen before asking, start_exam can beat the HTTP response
        self._listen()
        logger.info("Joining pairing %s for template %s", normalized, template_id)
        try:
            response = await self.api.join_pairing(normalized, template_id)
        except ExamClientError as e:
            if self.joining:
                self._fail(e.message)
            return False

        if self.state == PairingState.ERROR:
            return False
        if response.attempt_id is not None and self.attempt_id is None:
            self.attempt_id = response.attempt_id
        logger.info("Pairing code accepted, waiting for start_exam")
        return True

    def close(self):
        self._subscriptions.close()

    def _listen(self):
        self._subscriptions.close()
        self._subscriptions.add(self.channel.on(PAIRING_SUCCESS, self._on_pairing_success))
        self._subscriptions.add(self.channel.on(PAIRING_FAILED, self._on_pairing_failed))
        self._subscriptions.add(self.channel.on(START_EXAM, self._on_start_exam))
        self._subscriptions.add(self.channel.on(CONNECT_ERROR, self._on_connection_lost))
        self._subscriptions.add(self.channel.on(DISCONNECT, self._on_connection_lost))

    def _on_pairing_success(self, payload):
        if not self.joining:
            return
        self.partner_name = payload_dict(payload).get("senderUsername")
        logger.info("Paired with %s", self.partner_name or "sender")
        self.machine.transition(PairingState.PAIRED)

    def _on_pairing_failed(self, payload):
        if not self.joining:
            return
        message = payload_dict(payload).get("message") or (
            "Pairing failed, check the code or retry later."
        )
        self._fail(message)

    def _on_start_exam(self, payload):
        if not self.joining:
            return
        try:
            self.attempt_id = int(payload_dict(payload)["attemptId"])
        except (KeyError, TypeError, ValueError):
            self._fail("Paired, but the exam could not be started. Please retry.")
            return
        self.joining = False
        self.machine.transition(PairingState.STARTED)
        self._subscriptions.close()
        self.router.push(attempt_path(self.attempt_id))

    def _on_connection_lost(self, payload):
        if not self.joining:
            return
        reason = self.channel.connect_error or "connection lost"
        self._fail(f"Cannot reach the server: {reason}")

    def _fail(self, message: str):
        logger.warning("Join failed: %s", message)
        self.error = message
        self.joining = False
        self.machine.transition(PairingState.ERROR)
        self._subscriptions.close()
