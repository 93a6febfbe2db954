"""Decides whether the current playback item should be shown on Discord."""
from typing import Callable, Optional

from .client import MediaType, PlaybackItem
from .config import Blacklist
from .logger import get_logger

logger = get_logger()

LibraryLookup = Callable[[str, str], bool]


def is_displayable(item: PlaybackItem, blacklist: Blacklist, library_lookup: LibraryLookup) -> bool:
    """
    Check an item against the blacklist.

    ``library_lookup(item_id, library_name)`` is only called for items that pass
    the media type check, and stops at the first library that contains the item.
    Lookup errors are not caught here.
    """
    if item.media_type.is_none():
        return False

    if item.media_type in blacklist.media_types:
        logger.debug(f"{item.media_type} are blacklisted, not showing {item.item_id}")
        return False

    for library in blacklist.libraries:
        if library_lookup(item.item_id, library):
            logger.debug(f"Item {item.item_id} is in blacklisted library '{library}'")
            return False

    return True


def show_paused(media_type: MediaType, end_time: Optional[int], show_paused_setting: bool) -> bool:
    """Paused content has no end time; live TV never has one, so it is always shown."""
    if end_time is not None or media_type is MediaType.LIVE_TV:
        return True
    return show_paused_setting
