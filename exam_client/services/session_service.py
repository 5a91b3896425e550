import logging
from typing import Optional

from exam_client.api.http import ApiClient
from exam_client.api.realtime import RealtimeChannel
from exam_client.errors import AuthorizationError, ExamClientError, TransportError
from exam_client.models import User

logger = logging.getLogger(__name__)


class SessionService:
    """
    Who is logged in, and the realtime connection that goes with it.

    The channel is connected once auth resolves to a user and disconnected
    on logout or when auth is lost.
    """

    def __init__(self, api: ApiClient, channel: RealtimeChannel):
        self.api = api
        self.channel = channel
        self.user: Optional[User] = None
        self.loading = True
        self.error: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.user is not None

    async def check(self) -> Optional[User]:
        self.loading = True
        try:
            user = await self.api.me()
        except AuthorizationError:
            user = None
        except ExamClientError as e:
            self.error = e.message
            user = None
        await self._resolved(user)
        return user

    async def login(self, username: str, password: str) -> Optional[User]:
        self.error = None
        try:
            user = await self.api.login(username, password)
        except ExamClientError as e:
            self.error = e.message
            return None
        await self._resolved(user)
        return user

    async def register(self, username: str, password: str, role: str = "user") -> bool:
        self.error = None
        try:
            message = await self.api.register(username, password, role)
        except ExamClientError as e:
            self.error = e.message
            return False
        logger.info("Registered %s: %s", username, message)
        return True

    async def logout(self):
        try:
            await self.api.logout()
        except ExamClientError as e:
            # Local state is cleared regardless
            logger.warning("Logout request failed: %s", e.message)
            self.error = e.message
        await self._resolved(None)

    async def _resolved(self, user: Optional[User]):
        self.user = user
        self.loading = False
        if user is None:
            await self.channel.disconnect()
            return
        logger.info("Logged in as %s", user.username)
        try:
            await self.channel.connect(self.api.cookies)
        except TransportError as e:
            self.error = e.message
