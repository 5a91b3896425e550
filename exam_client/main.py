import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from exam_client.api.http import ApiClient
from exam_client.api.realtime import RealtimeChannel
from exam_client.config import Settings
from exam_client.services.attempt_runtime import AttemptRuntime
from exam_client.services.initiator import PairingInitiator
from exam_client.services.joiner import PairingJoiner
from exam_client.services.result_service import HistoryService, ResultService
from exam_client.services.session_service import SessionService
from exam_client.utils.countdown import Clock
from exam_client.utils.navigation import Router

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent


class ExamClient:
    """
    One logged-in client: REST session, realtime channel and router.

    Views are created from here so they all share the same connection
    handle instead of reaching for a global socket.
    """

    def __init__(
        self,
        settings: Settings,
        api: Optional[ApiClient] = None,
        channel: Optional[RealtimeChannel] = None,
        router: Optional[Router] = None,
    ):
        self.settings = settings
        self.api = api or ApiClient(settings)
        self.channel = channel or RealtimeChannel(settings)
        self.router = router or Router()
        self.session = SessionService(self.api, self.channel)

    @property
    def user_id(self) -> Optional[int]:
        return self.session.user.id if self.session.user else None

    def initiator(self) -> PairingInitiator:
        return PairingInitiator(self.api, self.channel, self.router)

    def joiner(self) -> PairingJoiner:
        return PairingJoiner(self.api, self.channel, self.router)

    def runtime(self, attempt_id: int, clock: Optional[Clock] = None) -> AttemptRuntime:
        return AttemptRuntime(
            self.api,
            self.channel,
            self.router,
            attempt_id,
            user_id=self.user_id,
            clock=clock,
        )

    def results(self) -> ResultService:
        return ResultService(self.api)

    def history(self, per_page: int = 10) -> HistoryService:
        return HistoryService(self.api, per_page=per_page)

    async def aclose(self):
        await self.channel.disconnect()
        await self.api.aclose()


def create_client(settings: Optional[Settings] = None) -> ExamClient:
    """Build a client from .env / environment unless settings are given"""
    if settings is None:
        load_dotenv(BASE_DIR / ".env")
        settings = Settings.from_env()
    logger.info("Exam client for %s", settings.api_url)
    return ExamClient(settings)
