import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from . import imgur
from .client import ExternalService, JellyfinClient, MediaServerError, MediaType, PlaybackItem
from .config import Button, Settings
from .filter import is_displayable, show_paused
from .logger import get_logger
from .presence import (
    MAX_BUTTONS,
    ActivityButton,
    ConnectionState,
    PresenceConnection,
    build_activity,
    tag_line,
)

logger = get_logger()


@dataclass(frozen=True, slots=True)
class SyncState:
    """CONNECTED while an activity is shown on Discord."""
    presence: ConnectionState = ConnectionState.DISCONNECTED

    @property
    def connected(self) -> bool:
        return self.presence is ConnectionState.CONNECTED


def select_buttons(configured: Sequence[Button], external_services: Sequence[ExternalService]) -> List[ActivityButton]:
    """
    Fill up to two buttons in config order.

    A 'dynamic'/'dynamic' button takes the next external service and is dropped
    once they run out; any other button is used as configured.
    """
    buttons: List[ActivityButton] = []
    used = 0
    for button in configured:
        if button.is_dynamic:
            if used < len(external_services):
                service = external_services[used]
                buttons.append(ActivityButton(service.name, service.url))
                used += 1
        else:
            buttons.append(ActivityButton(button.name, button.url))

        if len(buttons) == MAX_BUTTONS:
            break
    return buttons


class PresenceSync:
    """Polls Jellyfin and mirrors the result onto Discord."""

    def __init__(
        self,
        settings: Settings,
        jellyfin: JellyfinClient,
        connection: PresenceConnection,
        image_urls_file: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.jellyfin = jellyfin
        self.connection = connection
        self.image_urls_file = image_urls_file
        self.sleep = sleep

    def _displayable(self, item: PlaybackItem) -> bool:
        if item.media_type.is_none():
            return False
        if not show_paused(item.media_type, item.end_time, self.settings.discord.show_paused):
            return False
        return is_displayable(item, self.settings.jellyfin.blacklist, self.jellyfin.library_check)

    def _image_for(self, item: PlaybackItem) -> str:
        if not self.settings.images.enable_images:
            return ""
        if not self.settings.use_imgur or item.media_type is MediaType.LIVE_TV:
            return item.image_url
        try:
            return imgur.resolve(
                item.item_id,
                item.image_url,
                self.settings.imgur.client_id,
                self.image_urls_file,
                self.settings.jellyfin.self_signed_cert,
            )
        except imgur.ImgurError as e:
            logger.error(f"Failed to use Imgur: {e}")
            return item.image_url

    def sync_once(self, state: SyncState) -> SyncState:
        """One poll cycle. Jellyfin errors propagate to the caller."""
        item = self.jellyfin.fetch_current_playback()

        if self._displayable(item):
            if not state.connected:
                logger.info(item.details)
                logger.info(item.state_message)

            payload = build_activity(
                item.state_message,
                item.details,
                item.end_time,
                self._image_for(item),
                select_buttons(self.settings.discord.buttons, item.external_services),
                tag_line(),
                item.media_type,
            )
            if not self.connection.set_status(payload):
                return state
            return SyncState(ConnectionState.CONNECTED)

        if state.connected:
            self.connection.clear()
            return SyncState(ConnectionState.DISCONNECTED)

        return state

    def run(self, interval: float, state: Optional[SyncState] = None):
        """Poll forever, one cycle every ``interval`` seconds."""
        state = state or SyncState()
        while True:
            try:
                state = self.sync_once(state)
            except MediaServerError as e:
                logger.error(f"Skipping update, Jellyfin is unavailable: {e}")
            self.sleep(interval)
