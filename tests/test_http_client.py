import httpx
import pytest

from exam_client.api.http import ApiClient
from exam_client.errors import (
    ApiError,
    AttemptFinishedError,
    AuthorizationError,
    NotFoundError,
    TransportError,
)
from exam_client.models import AttemptStatus, BaseType, Role

from stub_backend import StubBackend, create_app


@pytest.fixture
def backend():
    return StubBackend()


@pytest.fixture
async def client(settings, backend):
    http = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=create_app(backend)),
        base_url=settings.api_url,
    )
    api = ApiClient(settings, client=http)
    yield api
    await api.aclose()


@pytest.fixture
async def logged_in(client):
    await client.login("alice", "pw")
    return client


async def test_login_keeps_session_cookie(client):
    user = await client.login("alice", "pw")
    assert user.username == "alice"
    assert client.cookies.get("session") == "alice"
    me = await client.me()
    assert me.id == 1


async def test_wrong_password_uses_backend_message(client):
    with pytest.raises(AuthorizationError) as exc:
        await client.login("alice", "nope")
    assert exc.value.message == "Wrong username or password"
    assert exc.value.retryable is False


async def test_me_without_session_is_authorization_error(client):
    with pytest.raises(AuthorizationError):
        await client.me()


async def test_register_reports_taken_username(client):
    assert await client.register("bob", "pw") == "registered"
    with pytest.raises(ApiError) as exc:
        await client.register("bob", "pw")
    assert exc.value.status_code == 400
    assert exc.value.message == "Username taken"


async def test_active_templates(logged_in):
    templates = await logged_in.get_active_templates()
    assert [t.id for t in templates] == [7]
    assert templates[0].base_type == BaseType.COMMUNICATION
    assert templates[0].is_paired


async def test_start_attempt_sends_role_only_when_given(logged_in, backend):
    single = await logged_in.start_attempt(7)
    paired = await logged_in.start_attempt(7, Role.SENDER)

    assert single.pairing_code is None
    assert paired.pairing_code == "AB12CD"
    assert backend.received[0] == {"op": "start", "templateId": 7, "role": None}
    assert backend.received[1]["role"] == "sender"


async def test_join_pairing_payload(logged_in, backend):
    await logged_in.start_attempt(7, Role.SENDER)
    response = await logged_in.join_pairing("AB12CD", 7)
    assert response.attempt_id == 100
    assert backend.received[-1] == {"op": "join", "pairingCode": "AB12CD", "templateId": 7}

    with pytest.raises(ApiError) as exc:
        await logged_in.join_pairing("AB12CD", 7)
    assert exc.value.message == "Invalid pairing code"


async def test_active_attempt_parses_naive_start_time_as_utc(logged_in):
    started = await logged_in.start_attempt(7)
    attempt = await logged_in.get_active_attempt(started.attempt_id)
    assert attempt.status == AttemptStatus.IN_PROGRESS
    assert attempt.start_time.utcoffset().total_seconds() == 0
    assert attempt.time_limit == 600


async def test_finished_attempt_fetch_is_conflict(logged_in):
    started = await logged_in.start_attempt(7)
    await logged_in.submit_attempt(started.attempt_id, [])
    with pytest.raises(AttemptFinishedError) as exc:
        await logged_in.get_active_attempt(started.attempt_id)
    assert exc.value.status == "completed"


async def test_missing_attempt_is_not_found(logged_in):
    with pytest.raises(NotFoundError) as exc:
        await logged_in.get_active_attempt(999)
    assert exc.value.message == "Attempt not found"


async def test_submit_then_result_and_history(logged_in, backend):
    started = await logged_in.start_attempt(7)
    answers = [{"slotOrder": 1, "answerText": "312", "answerCoordX": "", "answerCoordY": ""}]
    result = await logged_in.submit_attempt(started.attempt_id, answers)
    assert result.status == AttemptStatus.COMPLETED
    assert backend.received[-1]["answers"] == answers

    detail = await logged_in.get_attempt_result(started.attempt_id)
    assert detail.questions[0].is_correct is True

    page = await logged_in.get_history(page=1, per_page=5)
    assert page.total_items == 1
    assert page.history[0].attempt_id == started.attempt_id


async def test_network_failure_is_transport_error(settings):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url=settings.api_url)
    api = ApiClient(settings, client=http)
    with pytest.raises(TransportError) as exc:
        await api.get_active_templates()
    assert exc.value.retryable is True
    await api.aclose()
