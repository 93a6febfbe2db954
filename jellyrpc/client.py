import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .logger import get_logger

logger = get_logger()

TICKS_PER_SECOND = 10_000_000

# -------------------------
# Utilities
# -------------------------
_SESSION: Optional[requests.Session] = None


def get_session() -> requests.Session:
    """Create and return a cached requests.Session with retries."""
    global _SESSION
    if _SESSION is None:
        _SESSION = requests.Session()
        retry_strategy = Retry(total=3, backoff_factor=1, status_forcelist=[429, 500, 502, 503, 504])
        adapter = HTTPAdapter(max_retries=retry_strategy)
        _SESSION.mount("http://", adapter)
        _SESSION.mount("https://", adapter)
    return _SESSION


def http_get(url: str, self_signed_cert: bool = False, **kwargs) -> requests.Response:
    """GET through the shared session, accepting self-signed certificates when asked."""
    r = get_session().get(url, verify=not self_signed_cert, **kwargs)
    r.raise_for_status()
    return r


class MediaServerError(Exception):
    """Raised when Jellyfin can't be reached or returns something unusable."""


# -------------------------
# Data Model
# -------------------------
class MediaType(Enum):
    MOVIE = "movie"
    EPISODE = "episode"
    AUDIO = "music"
    LIVE_TV = "livetv"
    NONE = "none"

    @classmethod
    def _missing_(cls, value):
        # Accept Jellyfin item types and loose spellings from config files
        if isinstance(value, str):
            key = value.strip().lower().replace("_", "").replace(" ", "")
            aliases = {
                "movie": cls.MOVIE,
                "episode": cls.EPISODE,
                "music": cls.AUDIO,
                "audio": cls.AUDIO,
                "livetv": cls.LIVE_TV,
                "tvchannel": cls.LIVE_TV,
                "none": cls.NONE,
            }
            return aliases.get(key)
        return None

    @classmethod
    def from_jellyfin(cls, item_type: Optional[str]) -> "MediaType":
        """Map a Jellyfin ``Type`` value, anything unknown is NONE."""
        if not item_type:
            return cls.NONE
        try:
            return cls(item_type)
        except ValueError:
            return cls.NONE

    def is_none(self) -> bool:
        return self is MediaType.NONE

    def __str__(self) -> str:
        return {
            MediaType.MOVIE: "Movies",
            MediaType.EPISODE: "Episodes",
            MediaType.AUDIO: "Music",
            MediaType.LIVE_TV: "Live TV",
            MediaType.NONE: "None",
        }[self]


@dataclass(frozen=True, slots=True)
class ExternalService:
    name: str
    url: str


@dataclass(frozen=True, slots=True)
class PlaybackItem:
    item_id: str
    media_type: MediaType
    details: str = ""
    state_message: str = ""
    end_time: Optional[int] = None
    image_url: str = ""
    external_services: Tuple[ExternalService, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> "PlaybackItem":
        """Nothing is playing."""
        return cls(item_id="", media_type=MediaType.NONE)

    @classmethod
    def from_session(cls, session: Dict[str, Any], base_url: str, now: Optional[float] = None) -> "PlaybackItem":
        """Build an item from a Jellyfin ``/Sessions`` entry that has a ``NowPlayingItem``."""
        item = session.get("NowPlayingItem") or {}
        play_state = session.get("PlayState") or {}
        item_id = item.get("Id")
        if not item_id:
            raise MediaServerError("NowPlayingItem has no Id")

        media_type = MediaType.from_jellyfin(item.get("Type"))
        name = item.get("Name") or ""
        image_id = item_id

        if media_type is MediaType.EPISODE:
            details = item.get("SeriesName") or name
            state_message = f"{_episode_label(item)} {name}".strip()
            image_id = item.get("SeriesId") or item_id
        elif media_type is MediaType.MOVIE:
            details = name
            state_message = ", ".join(item.get("Genres") or [])
        elif media_type is MediaType.AUDIO:
            details = name
            artists = ", ".join(item.get("Artists") or []) or item.get("AlbumArtist") or "Unknown Artist"
            state_message = f"By {artists}"
            image_id = item.get("AlbumId") or item_id
        elif media_type is MediaType.LIVE_TV:
            details = name
            state_message = "Live TV"
        else:
            details = name
            state_message = ""

        external_services = tuple(
            ExternalService(name=s["Name"], url=s["Url"])
            for s in item.get("ExternalUrls") or []
            if s.get("Name") and s.get("Url")
        )

        return cls(
            item_id=item_id,
            media_type=media_type,
            details=details,
            state_message=state_message,
            end_time=_end_time(item, play_state, now),
            image_url=f"{base_url}/Items/{image_id}/Images/Primary",
            external_services=external_services,
        )


def _episode_label(item: Dict[str, Any]) -> str:
    season = item.get("ParentIndexNumber")
    episode = item.get("IndexNumber")
    if season is None or episode is None:
        return ""
    label = f"S{season:02}E{episode:02}"
    last = item.get("IndexNumberEnd")
    if last is not None and last != episode:
        label += f"-{last:02}"
    return label


def _end_time(item: Dict[str, Any], play_state: Dict[str, Any], now: Optional[float]) -> Optional[int]:
    """Absolute end timestamp, None while paused or when the runtime is unknown."""
    if play_state.get("IsPaused"):
        return None
    runtime = item.get("RunTimeTicks")
    if not runtime:
        return None
    position = play_state.get("PositionTicks") or 0
    remaining = max(runtime - position, 0) / TICKS_PER_SECOND
    return int((time.time() if now is None else now) + remaining)


# -------------------------
# Client Class
# -------------------------
class JellyfinClient:
    """Handles communication with Jellyfin."""

    def __init__(self, url: str, api_key: str, usernames: Sequence[str], self_signed_cert: bool = False):
        self.url = str(url).rstrip("/")
        self.api_key = api_key
        self.usernames = {u.lower() for u in usernames}
        self.self_signed_cert = self_signed_cert
        self.headers = {"X-Emby-Token": api_key}

    def _request(self, endpoint: str, **params) -> Any:
        url = f"{self.url}/{endpoint}"
        try:
            r = http_get(url, self.self_signed_cert, headers=self.headers, params=params or None, timeout=10)
            return r.json()
        except requests.RequestException as e:
            raise MediaServerError(f"Jellyfin request to {endpoint} failed: {e}") from e
        except ValueError as e:
            raise MediaServerError(f"Jellyfin returned invalid JSON for {endpoint}: {e}") from e

    def fetch_current_playback(self) -> PlaybackItem:
        """Return what the configured user is playing, or an empty item."""
        sessions = self._request("Sessions")
        if not isinstance(sessions, list):
            raise MediaServerError("Jellyfin /Sessions did not return a list")

        for session in sessions:
            if (session.get("UserName") or "").lower() not in self.usernames:
                continue
            if not session.get("NowPlayingItem"):
                continue
            return PlaybackItem.from_session(session, self.url)

        return PlaybackItem.empty()

    def library_check(self, item_id: str, library_name: str) -> bool:
        """True when ``item_id`` lives inside the library called ``library_name``."""
        ancestors = self._request(f"Items/{item_id}/Ancestors")
        if not isinstance(ancestors, list):
            raise MediaServerError(f"Jellyfin returned no ancestors for item {item_id}")
        found = any(a.get("Name") == library_name for a in ancestors)
        logger.debug(f"Item {item_id} in library '{library_name}': {found}")
        return found
