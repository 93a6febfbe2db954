import time
from dataclasses import dataclass
from enum import Enum
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Callable, Dict, Optional, Sequence

from pypresence.exceptions import InvalidID, PyPresenceException, ServerError
from pypresence.presence import Presence
from pypresence.types import ActivityType

from .client import MediaType
from .logger import get_logger

logger = get_logger()

MAX_BUTTONS = 2
MAX_TEXT_LENGTH = 128

TRANSPORT_ERRORS = (PyPresenceException, OSError)


def app_version() -> str:
    try:
        return version("jellyrpc")
    except PackageNotFoundError:
        return "0.0.0"


def tag_line() -> str:
    return f"Jellyfin-RPC v{app_version()}"


class InvalidApplicationId(Exception):
    """Discord rejected the application ID, retrying can't fix that."""


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass(frozen=True, slots=True)
class ActivityButton:
    label: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"label": self.label, "url": self.url}


# -------------------------
# Payload
# -------------------------
def _safe_text(text: Optional[str], fallback: str = "Jellyfin") -> str:
    """Discord needs at least 2 visible characters and at most 128."""
    text = text or fallback
    if len(text.strip()) < 2:
        text += "\u200B"
    return text[:MAX_TEXT_LENGTH]


def build_activity(
    state_message: str,
    details: str,
    end_time: Optional[int],
    image_url: str,
    buttons: Sequence[ActivityButton],
    tag_line: str,
    media_type: MediaType,
) -> Dict[str, Any]:
    """Keyword arguments for ``Presence.update``. No timestamps without an end time."""
    activity_type = ActivityType.LISTENING if media_type is MediaType.AUDIO else ActivityType.WATCHING
    payload: Dict[str, Any] = {
        "activity_type": activity_type,
        "details": _safe_text(details),
        "state": _safe_text(state_message),
        "large_text": _safe_text(tag_line),
    }
    if image_url:
        payload["large_image"] = image_url
    if end_time is not None:
        payload["end"] = int(end_time)

    capped = [b.to_dict() for b in buttons[:MAX_BUTTONS]]
    if capped:
        payload["buttons"] = capped
    return payload


# -------------------------
# Connection
# -------------------------
class PresenceConnection:
    """Owns the Discord IPC client and keeps it connected."""

    def __init__(
        self,
        application_id: str,
        sleep: Callable[[float], None] = time.sleep,
        client_factory: Callable[[str], Any] = Presence,
        base_delay: float = 1.0,
        max_delay: Optional[float] = None,
    ):
        self.application_id = application_id
        self.sleep = sleep
        self.client_factory = client_factory
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.state = ConnectionState.DISCONNECTED
        self.rpc = client_factory(application_id)

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based): 1s, 2s, 4s, ..."""
        delay = self.base_delay * 2 ** (attempt - 1)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def connect(self):
        """Blocks until the handshake succeeds."""
        self._connect_with_backoff("connect")
        logger.info("Connected to Discord Rich Presence Socket")

    def reconnect(self):
        self._close_client()
        self.rpc = self.client_factory(self.application_id)
        self._connect_with_backoff("reconnect")
        logger.info("Reconnected to Discord Rich Presence Socket")

    def _connect_with_backoff(self, action: str):
        attempt = 1
        while True:
            logger.info(f"Attempt {attempt}: Trying to {action}")
            try:
                self.rpc.connect()
            except InvalidID as e:
                raise InvalidApplicationId(f"Discord rejected application ID {self.application_id}") from e
            except TRANSPORT_ERRORS as e:
                delay = self.backoff_delay(attempt)
                logger.error(f"Failed to {action}, retrying in {delay:g}s. Error: {e}")
                self.sleep(delay)
                attempt += 1
                continue
            self.state = ConnectionState.CONNECTED
            return

    def set_status(self, payload: Dict[str, Any]) -> bool:
        """
        Push an activity, reconnecting as often as needed until it lands.

        Reconnects after the first one wait with the same backoff as ``connect``.
        Returns False when Discord rejects the payload itself, which no reconnect fixes.
        """
        failures = 0
        while True:
            try:
                self.rpc.update(**payload)
            except InvalidID as e:
                raise InvalidApplicationId(f"Discord rejected application ID {self.application_id}") from e
            except ServerError as e:
                logger.error(f"Discord rejected the activity. Error: {e}")
                return False
            except TRANSPORT_ERRORS as e:
                failures += 1
                logger.error(f"Failed to set activity. Error: {e}")
                self.state = ConnectionState.DISCONNECTED
                if failures > 1:
                    self.sleep(self.backoff_delay(failures - 1))
                self.reconnect()
                continue
            self.state = ConnectionState.CONNECTED
            return True

    def clear(self) -> bool:
        """Clear the activity once. Failures are logged, not retried."""
        try:
            self.rpc.clear()
        except TRANSPORT_ERRORS as e:
            logger.error(f"Failed to clear activity. Error: {e}")
            self.state = ConnectionState.DISCONNECTED
            return False
        logger.info("Cleared Rich Presence")
        return True

    def _close_client(self):
        try:
            self.rpc.close()
        except (*TRANSPORT_ERRORS, RuntimeError) as e:
            logger.debug(f"Ignoring error while closing stale Discord client: {e}")
        loop = getattr(self.rpc, "loop", None)
        if loop is not None and not loop.is_closed():
            try:
                loop.close()
            except RuntimeError as e:
                logger.debug(f"Could not close event loop of stale Discord client: {e}")

    def close(self):
        if self.is_connected:
            self.clear()
        self._close_client()
        self.state = ConnectionState.DISCONNECTED
