#!/usr/bin/env python3
"""
Jellyfin → Discord Rich Presence with Imgur caching
Entry point for the jellyrpc package.
"""
import argparse
import sys

from jellyrpc.client import JellyfinClient
from jellyrpc.config import ConfigPathError, get_config_path, load_config
from jellyrpc.core import PresenceSync
from jellyrpc.logger import LEVELS, parse_level, setup_logger
from jellyrpc.presence import InvalidApplicationId, PresenceConnection
from jellyrpc.validation import startup_warnings, validate_application_id, validate_jellyfin_connection

EXIT_CONFIG_PATH = 1
EXIT_CONFIG_LOAD = 2
EXIT_APPLICATION_ID = 3


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="jellyrpc", description="Rich presence for Jellyfin")
    parser.add_argument("-c", "--config", help="Path to the config file")
    parser.add_argument("-i", "--image-urls-file", dest="image_urls", help="Path to image urls file for imgur")
    parser.add_argument("-t", "--wait-time", type=int, default=3, help="Time to wait between loops in seconds")
    parser.add_argument("-s", "--suppress-warnings", action="store_true", help="Stops warnings from showing on startup")
    parser.add_argument(
        "-v", "--log-level", default="info", choices=list(LEVELS),
        help="Sets the log level to one of: trace, debug, info, warn, error, off",
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logger = setup_logger(level=parse_level(args.log_level), log_file=args.log_file)

    logger.info("Initializing Jellyfin-RPC")

    try:
        config_path = args.config or get_config_path()
    except ConfigPathError as e:
        logger.error(f"Error determining config path: {e}")
        return EXIT_CONFIG_PATH

    try:
        settings = load_config(config_path)
    except Exception as e:
        logger.error(f"Config can't be loaded: {e}")
        logger.error(f"Config file should be located at: {config_path}")
        return EXIT_CONFIG_LOAD

    application_id = settings.discord.application_id
    valid, error = validate_application_id(application_id)
    if not valid:
        logger.error(f"Failed to create Discord RPC client: {error}")
        return EXIT_APPLICATION_ID

    if not args.suppress_warnings:
        startup_warnings(settings)
        validate_jellyfin_connection(settings)

    jellyfin = JellyfinClient(
        settings.jellyfin.base_url,
        settings.jellyfin.api_key,
        settings.jellyfin.username,
        settings.jellyfin.self_signed_cert,
    )
    connection = PresenceConnection(application_id)
    sync = PresenceSync(settings, jellyfin, connection, image_urls_file=args.image_urls)

    try:
        connection.connect()
        sync.run(args.wait_time)
    except InvalidApplicationId as e:
        logger.error(f"{e}, the Client ID is invalid.")
        return EXIT_APPLICATION_ID
    except KeyboardInterrupt:
        logger.info("Exiting gracefully...")
        connection.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
