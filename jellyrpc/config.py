import os
import sys
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, HttpUrl, field_validator

from .client import MediaType

DEFAULT_APPLICATION_ID = "1053747938519679018"
DYNAMIC = "dynamic"


class ConfigPathError(Exception):
    """Raised when no default configuration directory can be determined."""


class Button(BaseModel):
    """A static button, or a slot for an external service when both fields are 'dynamic'."""
    name: str = DYNAMIC
    url: str = DYNAMIC

    @property
    def is_dynamic(self) -> bool:
        return self.name == DYNAMIC and self.url == DYNAMIC


class Blacklist(BaseModel):
    """Media types and libraries that are never shown."""
    media_types: List[MediaType] = Field(default_factory=list)
    libraries: List[str] = Field(default_factory=list)

    @field_validator("media_types", mode="before")
    @classmethod
    def _parse_media_types(cls, value):
        if value is None:
            return []
        return [MediaType(v) if isinstance(v, str) else v for v in value]

    @field_validator("libraries", mode="before")
    @classmethod
    def _parse_libraries(cls, value):
        return value or []


class JellyfinConfig(BaseModel):
    """Jellyfin Connection Settings."""
    url: HttpUrl
    api_key: str
    username: List[str]
    self_signed_cert: bool = False
    blacklist: Blacklist = Field(default_factory=Blacklist)

    @field_validator("username", mode="before")
    @classmethod
    def _single_username(cls, value):
        if isinstance(value, str):
            return [value]
        return value

    @property
    def base_url(self) -> str:
        return str(self.url).rstrip("/")


class DiscordConfig(BaseModel):
    """Discord Rich Presence Settings."""
    application_id: str = DEFAULT_APPLICATION_ID
    buttons: List[Button] = Field(default_factory=lambda: [Button(), Button()])
    show_paused: bool = True

    @field_validator("application_id", mode="before")
    @classmethod
    def _default_application_id(cls, value):
        return value or DEFAULT_APPLICATION_ID


class ImagesConfig(BaseModel):
    """Image Settings."""
    enable_images: bool = False
    imgur_images: bool = False


class ImgurConfig(BaseModel):
    """Imgur Upload Settings."""
    client_id: Optional[str] = None


class Settings(BaseModel):
    """Master configuration model."""
    jellyfin: JellyfinConfig
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    imgur: ImgurConfig = Field(default_factory=ImgurConfig)

    @field_validator("discord", "images", "imgur", mode="before")
    @classmethod
    def _empty_section(cls, value):
        # A bare "discord:" key in YAML loads as None
        return {} if value is None else value

    @property
    def use_imgur(self) -> bool:
        return self.images.enable_images and self.images.imgur_images


def config_dir() -> str:
    """Platform config directory for jellyfin-rpc files."""
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if not app_data:
            raise ConfigPathError("APPDATA is not set")
        return os.path.join(app_data, "jellyfin-rpc")

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if not xdg_config_home:
        home = os.environ.get("HOME")
        if not home:
            raise ConfigPathError("Neither XDG_CONFIG_HOME nor HOME is set")
        xdg_config_home = os.path.join(home, ".config")
    return os.path.join(xdg_config_home, "jellyfin-rpc")


def get_config_path() -> str:
    return os.path.join(config_dir(), "main.yaml")


def load_config(path: str) -> Settings:
    """Loads and validates configuration from a YAML file."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Configuration file not found at: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return Settings(**data)
