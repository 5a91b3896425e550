import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from socketio.exceptions import ConnectionError as SocketConnectionError

from exam_client.api.realtime import RealtimeChannel
from exam_client.config import Settings
from exam_client.models import (
    ActiveAttempt,
    AttemptResult,
    HistoryPage,
    JoinPairingResponse,
    StartAttemptResponse,
    SubmitResult,
    TemplateSummary,
    User,
)
from exam_client.utils.navigation import Router

T0 = datetime(2026, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


class FakeSocket:
    """Stands in for socketio.AsyncClient"""

    def __init__(self):
        self.handlers = {}
        self.emitted = []
        self.connect_calls = []
        self.connected = False
        self.fail_connect = None
        self.report_connect_error = False

    def on(self, event, handler=None, namespace=None):
        self.handlers[(namespace, event)] = handler

    async def connect(self, url, headers=None, namespaces=None, socketio_path=None, transports=None):
        self.connect_calls.append(
            {"url": url, "headers": headers, "namespaces": namespaces, "path": socketio_path}
        )
        if self.fail_connect:
            if self.report_connect_error:
                await self.fire("connect_error", {"message": self.fail_connect})
            raise SocketConnectionError(self.fail_connect)
        self.connected = True
        await self.fire("connect")

    async def disconnect(self):
        self.connected = False
        await self.fire("disconnect", "client disconnect")

    async def emit(self, event, data=None, namespace=None):
        self.emitted.append((event, data, namespace))

    async def fire(self, event, *args, namespace="/quiz"):
        handler = self.handlers.get((namespace, event))
        if handler is not None:
            await handler(*args)


class FakeApi:
    """Async stand-in for ApiClient that records every call"""

    def __init__(self):
        self.calls = []
        self.errors = {}
        self.delays = {}
        self.cookies = {"session": "s3cr3t"}
        self.user = User(id=1, username="alice", role="user")
        self.templates = [
            TemplateSummary(
                id=7,
                name="Signals drill",
                base_type="communication",
                time_limit_seconds=600,
                question_count=2,
            ),
            TemplateSummary(
                id=3,
                name="Map reading",
                base_type="intelligence",
                time_limit_seconds=300,
                question_count=2,
            ),
        ]
        self.start_response = StartAttemptResponse(attemptId=42)
        self.join_response = JoinPairingResponse(attemptId=42, message="ok")
        self.active = None
        self.submit_result = SubmitResult(score=1.5, status="completed")
        self.result = None
        self.history_page = HistoryPage()

    async def _call(self, name, *args):
        self.calls.append((name, args))
        delay = self.delays.get(name)
        if delay:
            await asyncio.sleep(delay)
        error = self.errors.get(name)
        if error is not None:
            raise error

    def count(self, name):
        return sum(1 for call, _ in self.calls if call == name)

    def args(self, name):
        return [args for call, args in self.calls if call == name]

    async def me(self):
        await self._call("me")
        return self.user

    async def login(self, username, password):
        await self._call("login", username, password)
        return self.user

    async def register(self, username, password, role="user"):
        await self._call("register", username, password, role)
        return "registered"

    async def logout(self):
        await self._call("logout")
        return "bye"

    async def get_active_templates(self):
        await self._call("get_active_templates")
        return self.templates

    async def start_attempt(self, template_id, role=None):
        await self._call("start_attempt", template_id, role)
        return self.start_response

    async def join_pairing(self, pairing_code, template_id):
        await self._call("join_pairing", pairing_code, template_id)
        return self.join_response

    async def get_active_attempt(self, attempt_id):
        await self._call("get_active_attempt", attempt_id)
        return self.active

    async def submit_attempt(self, attempt_id, answers):
        await self._call("submit_attempt", attempt_id, answers)
        return self.submit_result

    async def get_attempt_result(self, attempt_id):
        await self._call("get_attempt_result", attempt_id)
        return self.result

    async def get_history(self, page=1, per_page=10):
        await self._call("get_history", page, per_page)
        return self.history_page


def make_attempt(role=None, status="inprogress", start=T0, time_limit=600, user_id=1):
    return ActiveAttempt.model_validate(
        {
            "attemptId": 42,
            "userId": user_id,
            "role": role,
            "templateName": "Signals drill",
            "startTime": start.replace(tzinfo=None).isoformat() if start else None,
            "timeLimit": time_limit,
            "status": status,
            "questions": [
                {
                    "slot_order": 1,
                    "question_id": 11,
                    "type": "coordinate",
                    "content": "Read grid reference",
                    "answer": {"coord_x": "123", "coord_y": "456"},
                },
                {
                    "slot_order": 2,
                    "question_id": 12,
                    "type": "communication",
                    "content": "Relay the message",
                    "communication_method": "semaphore",
                    "communication_subtype": "command",
                    "answer": {"text": "ADVANCE TO RIDGE"},
                    "keywords": ["advance", "ridge"],
                },
            ],
        }
    )


def make_result(**overrides):
    data = {
        "attemptId": 42,
        "templateId": 7,
        "templateName": "Signals drill",
        "score": 1.0,
        "totalQuestions": 2,
        "status": "completed",
        "startTime": "2026-03-01T08:00:00",
        "submissionTime": "2026-03-01T08:04:10",
        "timeLimit": 600,
        "questions": [
            {"slot_order": 1, "type": "coordinate", "is_correct": True, "user_answer": "123,456"},
            {"slot_order": 2, "type": "communication", "is_correct": False, "user_answer": ""},
        ],
    }
    data.update(overrides)
    return AttemptResult.model_validate(data)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def settings():
    return Settings(api_url="http://testserver/api", socket_url="http://testserver")


@pytest.fixture
def fake_socket():
    return FakeSocket()


@pytest.fixture
def channel(settings, fake_socket):
    return RealtimeChannel(settings, sio=fake_socket)


@pytest.fixture
async def connected_channel(channel):
    await channel.connect({"session": "s3cr3t"})
    return channel


@pytest.fixture
def router():
    return Router("/dashboard")


@pytest.fixture
def api():
    return FakeApi()
