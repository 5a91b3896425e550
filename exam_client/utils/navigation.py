import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

DASHBOARD = "/dashboard"


def start_path(template_id: int) -> str:
    return f"/quiz/start/{template_id}"


def attempt_path(attempt_id: int) -> str:
    return f"/quiz/attempt/{attempt_id}"


def result_path(attempt_id: int) -> str:
    return f"/quiz/result/{attempt_id}"


class Router:
    """
    Records where the client should be.

    push() adds a history entry, replace() overwrites the current one so a
    finished attempt cannot be reached again with "back". Listeners get the
    new path; a UI layer hooks in there.
    """

    def __init__(self, initial: Optional[str] = None):
        self.history: List[str] = [initial] if initial else []
        self._listeners: List[Callable[[str], None]] = []

    @property
    def current(self) -> Optional[str]:
        return self.history[-1] if self.history else None

    def listen(self, callback: Callable[[str], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def push(self, path: str) -> None:
        logger.info("Navigate to %s", path)
        self.history.append(path)
        self._notify(path)

    def replace(self, path: str) -> None:
        logger.info("Replace route with %s", path)
        if self.history:
            self.history[-1] = path
        else:
            self.history.append(path)
        self._notify(path)

    def back(self) -> Optional[str]:
        if len(self.history) > 1:
            self.history.pop()
            self._notify(self.history[-1])
        return self.current

    def _notify(self, path: str):
        for callback in list(self._listeners):
            try:
                callback(path)
            except Exception:
                logger.exception("Route listener failed for %s", path)
