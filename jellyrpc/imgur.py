"""
Imgur-backed image cache.

Poster images are uploaded to Imgur once per Jellyfin item and the resulting
links are kept in ``urls.json``, a flat ``{"<item id>": "<imgur link>"}``
document. Entries are never refreshed once written.
"""
import json
import os
import tempfile
from typing import Dict, Optional

import requests

from .client import get_session, http_get
from .config import ConfigPathError, config_dir
from .logger import get_logger

logger = get_logger()

IMGUR_UPLOAD_URL = "https://api.imgur.com/3/image"


class ImgurError(Exception):
    """Base class for image cache failures."""


class CachePathError(ImgurError):
    """No usable location for urls.json."""


class CacheFormatError(ImgurError):
    """urls.json exists but is not a JSON object."""


class MissingCredential(ImgurError):
    """No Imgur client ID configured."""


class UploadError(ImgurError):
    """Fetching the source image or uploading it failed."""


class InvalidResponse(ImgurError):
    """Imgur answered without a link at data.link."""


def get_urls_path() -> str:
    """Default urls.json location, next to the config file."""
    try:
        return os.path.join(config_dir(), "urls.json")
    except ConfigPathError as e:
        raise CachePathError(str(e)) from e


class ImageCache:
    """The urls.json document, loaded into a dict and written back whole."""

    def __init__(self, path: str):
        self.path = path
        self.urls: Dict[str, str] = {}

    def load(self) -> "ImageCache":
        if not os.path.exists(self.path):
            logger.debug(f"Creating image urls file at {self.path}")
            self._write({})

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise CachePathError(f"Can't read {self.path}: {e}") from e
        except ValueError as e:
            raise CacheFormatError(f"{self.path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CacheFormatError(f"{self.path} is not a JSON object, try deleting it")
        self.urls = data
        return self

    def get(self, item_id: str) -> Optional[str]:
        url = self.urls.get(item_id)
        return url if isinstance(url, str) else None

    def store(self, item_id: str, url: str):
        self.urls[item_id] = url
        self._write(self.urls)

    def _write(self, data: Dict[str, str]):
        """Replace the file in one step so readers never see a partial document."""
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".urls-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise CachePathError(f"Can't write {self.path}: {e}") from e


def download_image(image_url: str, self_signed_cert: bool = False) -> bytes:
    try:
        r = http_get(image_url, self_signed_cert, timeout=15)
    except requests.RequestException as e:
        raise UploadError(f"Could not download {image_url}: {e}") from e
    logger.debug(f"Got {len(r.content)} image bytes from {image_url}")
    return r.content


def upload_image(image_bytes: bytes, client_id: str) -> str:
    """Uploads raw image bytes to Imgur and returns the hosted link."""
    headers = {"Authorization": f"Client-ID {client_id}"}
    try:
        r = get_session().post(IMGUR_UPLOAD_URL, headers=headers, data=image_bytes, timeout=30)
        payload = r.json()
    except requests.RequestException as e:
        raise UploadError(f"Imgur upload failed: {e}") from e
    except ValueError as e:
        raise InvalidResponse(f"Imgur returned invalid JSON (status {r.status_code})") from e

    logger.debug(f"Imgur response after upload: {payload}")
    data = payload.get("data") if isinstance(payload, dict) else None
    link = data.get("link") if isinstance(data, dict) else None
    if not isinstance(link, str) or not link:
        raise InvalidResponse(f"Imgur response has no data.link (status {r.status_code})")
    return link


def resolve(
    item_id: str,
    image_url: str,
    client_id: Optional[str],
    image_urls_file: Optional[str] = None,
    self_signed_cert: bool = False,
) -> str:
    """
    Return the Imgur link for ``item_id``, uploading ``image_url`` on a cache miss.

    A cached link is returned without any network traffic. Raises an
    ``ImgurError`` subclass on any failure; callers fall back to the source URL.
    """
    path = image_urls_file or get_urls_path()
    logger.debug(f"Imgur urls path is: {path}")

    cache = ImageCache(path).load()
    cached = cache.get(item_id)
    if cached is not None:
        logger.debug(f"Found imgur url {cached} for item id {item_id}")
        return cached

    if not client_id:
        raise MissingCredential("Imgur client ID is not configured")

    link = upload_image(download_image(image_url, self_signed_cert), client_id)
    cache.store(item_id, link)
    logger.info(f"Image for {item_id} uploaded to {link}")
    return link
