"""
Startup checks for jellyrpc settings.
"""
from typing import Optional, Tuple

import requests

from .client import http_get
from .config import Settings
from .logger import get_logger

logger = get_logger()


def validate_jellyfin_connection(settings: Settings) -> Tuple[bool, Optional[str]]:
    """
    Test connectivity to the Jellyfin server.

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    url = f"{settings.jellyfin.base_url}/System/Info/Public"
    try:
        http_get(url, settings.jellyfin.self_signed_cert, timeout=5)
    except requests.exceptions.ConnectionError:
        error = "Cannot connect to Jellyfin server. Check jellyfin.url in config."
    except requests.exceptions.Timeout:
        error = "Jellyfin server connection timed out."
    except requests.RequestException as e:
        error = f"Jellyfin validation failed: {e}"
    else:
        logger.debug("Jellyfin connection successful")
        return True, None

    logger.warning(error)
    return False, error


def validate_application_id(application_id: str) -> Tuple[bool, Optional[str]]:
    """
    Validate Discord application ID format.

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not application_id:
        return False, "Discord application ID is empty"

    # Discord IDs are numeric snowflakes
    if not application_id.isdigit():
        return False, f"Discord application ID should be numeric, got: {application_id}"

    if len(application_id) < 17 or len(application_id) > 20:
        logger.warning(f"Discord application ID has unusual length: {len(application_id)} digits")

    return True, None


def validate_imgur_client_id(client_id: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate Imgur client ID format.

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not client_id:
        return False, "Imgur client ID is empty, images will not be uploaded"

    if len(client_id) < 10:
        logger.warning(f"Imgur client ID seems too short: {len(client_id)} characters")

    return True, None


def startup_warnings(settings: Settings):
    """Log settings that change what shows up on Discord."""
    if settings.jellyfin.self_signed_cert:
        logger.warning("Self-signed certificates are enabled!")

    if settings.images.enable_images and not settings.images.imgur_images:
        logger.warning("Images without Imgur requires port forwarding!")

    if settings.use_imgur:
        valid, error = validate_imgur_client_id(settings.imgur.client_id)
        if not valid:
            logger.warning(error)

    blacklist = settings.jellyfin.blacklist
    if blacklist.media_types:
        logger.info(f"These media types won't be shown: {', '.join(str(m) for m in blacklist.media_types)}")
    if blacklist.libraries:
        logger.info(f"These media libraries won't be shown: {', '.join(blacklist.libraries)}")
