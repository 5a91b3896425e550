import os

from pydantic import BaseModel


DEFAULT_API_URL = "http://localhost:7575/api"
DEFAULT_SOCKET_URL = "http://localhost:7575"


def normalize_socket_url(url: str) -> str:
    """Prefix a bare host:port with http://"""
    url = url.strip()
    if not url.startswith("http://") and not url.startswith("https://"):
        return f"http://{url}"
    return url


class Settings(BaseModel):
    api_url: str = DEFAULT_API_URL
    socket_url: str = DEFAULT_SOCKET_URL
    socket_namespace: str = "/quiz"
    socket_path: str = "socket.io"
    reconnection_attempts: int = 5
    reconnection_delay: float = 3.0
    request_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the environment.

        Call after load_dotenv() so values from a local .env are visible.
        Unset variables fall back to the local development backend.
        """
        return cls(
            api_url=os.getenv("EXAM_API_URL", DEFAULT_API_URL).rstrip("/"),
            socket_url=normalize_socket_url(
                os.getenv("EXAM_SOCKET_URL", DEFAULT_SOCKET_URL)
            ),
            socket_namespace=os.getenv("EXAM_SOCKET_NAMESPACE", "/quiz"),
            socket_path=os.getenv("EXAM_SOCKET_PATH", "socket.io"),
            reconnection_attempts=int(os.getenv("EXAM_RECONNECT_ATTEMPTS", "5")),
            reconnection_delay=float(os.getenv("EXAM_RECONNECT_DELAY", "3")),
            request_timeout=float(os.getenv("EXAM_REQUEST_TIMEOUT", "10")),
        )
