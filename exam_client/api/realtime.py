import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from exam_client.config import Settings
from exam_client.errors import TransportError

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]

# Signals pushed by the backend for a pairing / attempt
PAIRING_SUCCESS = "pairing_success"
PAIRING_FAILED = "pairing_failed"
START_EXAM = "start_exam"
EXAM_COMPLETED = "exam_completed"
OPPONENT_DISCONNECTED = "opponent_disconnected"
ERROR = "error"

# Connection lifecycle, re-published to listeners after the channel state is updated
CONNECT = "connect"
DISCONNECT = "disconnect"
CONNECT_ERROR = "connect_error"

SERVER_DISCONNECT = "server disconnect"
CLIENT_DISCONNECT = "client disconnect"


class Subscription:
    """Handle for one listener; close() detaches it"""

    def __init__(self, channel: "RealtimeChannel", event: str, handler: Handler):
        self.channel = channel
        self.event = event
        self.handler = handler
        self.active = True

    def close(self):
        if self.active:
            self.active = False
            self.channel._remove(self.event, self.handler)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class SubscriptionGroup:
    """Several subscriptions that share a lifetime"""

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def add(self, subscription: Subscription) -> Subscription:
        self._subscriptions.append(subscription)
        return subscription

    def close(self):
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions = []

    def __len__(self):
        return len(self._subscriptions)


class RealtimeChannel:
    """
    The Socket.IO connection of the logged-in user.

    There is one per session. Services receive it explicitly and attach
    listeners with on(), which returns a Subscription they must close when
    they leave; nothing is removed behind their back. Several listeners may
    watch the same event.
    """

    def __init__(self, settings: Settings, sio: Optional[socketio.AsyncClient] = None):
        self.settings = settings
        self.namespace = settings.socket_namespace
        self._sio = sio or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=settings.reconnection_attempts,
            reconnection_delay=settings.reconnection_delay,
        )
        self._listeners: Dict[str, List[Handler]] = {}
        self._registered: set = set()
        self._connected = False
        self.connect_error: Optional[str] = None
        for event in (CONNECT, DISCONNECT, CONNECT_ERROR):
            self._register(event)

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self, cookies: Optional[Dict[str, str]] = None):
        """Open the connection, forwarding the REST session cookies"""
        if self._connected:
            return
        headers = {}
        if cookies:
            headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())
        logger.info(
            "Connecting to %s%s (path %s)",
            self.settings.socket_url,
            self.namespace,
            self.settings.socket_path,
        )
        self.connect_error = None
        try:
            await self._sio.connect(
                self.settings.socket_url,
                headers=headers,
                namespaces=[self.namespace],
                socketio_path=self.settings.socket_path,
                transports=["websocket", "polling"],
            )
        except SocketConnectionError as e:
            # socketio may already have dispatched connect_error
            if self.connect_error is None:
                await self._dispatch(CONNECT_ERROR, str(e))
            raise TransportError(self.connect_error or str(e)) from e

    async def disconnect(self):
        if not self._sio.connected and not self._connected:
            logger.debug("Socket not connected, nothing to disconnect")
            return
        logger.info("Disconnecting socket")
        await self._sio.disconnect()
        self._connected = False
        self.connect_error = None

    async def emit(self, event: str, data: Any = None) -> bool:
        """Send an event; False when the channel is not connected"""
        if not self._connected:
            logger.error("Socket not connected, cannot emit %s", event)
            return False
        await self._sio.emit(event, data, namespace=self.namespace)
        return True

    def on(self, event: str, handler: Handler) -> Subscription:
        self._register(event)
        self._listeners.setdefault(event, []).append(handler)
        logger.debug("Listening for %s", event)
        return Subscription(self, event, handler)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    @asynccontextmanager
    async def events(self, *names: str) -> AsyncIterator[AsyncIterator[Tuple[str, Any]]]:
        """
        Consume events as an async stream.

            async with channel.events(START_EXAM, PAIRING_FAILED) as stream:
                async for event, payload in stream:
                    ...

        Listeners are detached when the block exits.
        """
        queue: asyncio.Queue = asyncio.Queue()
        group = SubscriptionGroup()
        for name in names:
            group.add(
                self.on(name, lambda payload, name=name: queue.put_nowait((name, payload)))
            )

        async def stream():
            while True:
                yield await queue.get()

        try:
            yield stream()
        finally:
            group.close()

    def for_attempt(self, attempt_id: int) -> "AttemptChannel":
        return AttemptChannel(self, attempt_id)

    # --- internals ---

    def _register(self, event: str):
        if event in self._registered:
            return
        self._registered.add(event)

        async def dispatcher(*args):
            await self._dispatch(event, *args)

        self._sio.on(event, dispatcher, namespace=self.namespace)

    def _remove(self, event: str, handler: Handler):
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug("Stopped listening for %s", event)

    async def _dispatch(self, event: str, *args):
        payload = args[0] if args else None
        if event == CONNECT:
            self._connected = True
            self.connect_error = None
            logger.info("Socket connected to %s", self.namespace)
        elif event == DISCONNECT:
            self._connected = False
            reason = payload
            logger.info("Socket disconnected: %s", reason)
            if reason == SERVER_DISCONNECT:
                self.connect_error = "Disconnected by the server, please log in again."
            elif reason != CLIENT_DISCONNECT:
                self.connect_error = "Connection lost."
        elif event == CONNECT_ERROR:
            self.connect_error = f"Connection error: {_describe(payload)}"
            logger.error("Socket connection error: %s", payload)

        for handler in list(self._listeners.get(event, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener for %s failed", event)


def payload_dict(payload: Any) -> Dict[str, Any]:
    return payload if isinstance(payload, dict) else {}


def _describe(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(payload.get("message", payload))
    return str(payload)


class AttemptChannel:
    """
    View of the channel scoped to one attempt.

    Handlers only see payloads that carry this attemptId or none at all.
    """

    def __init__(self, channel: RealtimeChannel, attempt_id: int):
        self.channel = channel
        self.attempt_id = attempt_id

    @property
    def connected(self) -> bool:
        return self.channel.connected

    def _matches(self, payload: Any) -> bool:
        if not isinstance(payload, dict) or payload.get("attemptId") is None:
            return True
        return str(payload["attemptId"]) == str(self.attempt_id)

    def on(self, event: str, handler: Handler) -> Subscription:
        def scoped(payload):
            if self._matches(payload):
                return handler(payload)
            logger.debug(
                "Dropped %s for attempt %s (watching %s)",
                event,
                payload.get("attemptId"),
                self.attempt_id,
            )
            return None

        return self.channel.on(event, scoped)

    async def emit(self, event: str, data: Optional[Dict[str, Any]] = None) -> bool:
        payload = dict(data or {})
        payload.setdefault("attemptId", self.attempt_id)
        return await self.channel.emit(event, payload)
