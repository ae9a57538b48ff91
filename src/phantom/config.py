"""
Configuration for connections and AI features.

Values come from keyword arguments, then the environment, then a ``.env``
file. Nothing here touches the network.
"""

import os
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

ENV_PREFIX = "PHANTOM_"


class ConnectionConfig(BaseModel):
    """Where and as whom a session connects."""

    host: str = "irc.libera.chat"
    port: int = Field(default=6667, gt=0, lt=65536)
    nick: str = Field(default="PhantomUser", min_length=1)
    username: str = "phantom"
    realname: str = "Phantom IRC User"


class Settings(BaseModel):
    """Client-wide settings.

    ``api_key`` selects the AI vendor by its format; leave it empty to run
    without AI features. ``spam_threshold`` is the confidence above which an
    outgoing message flagged as spam needs confirmation.
    """

    api_key: Optional[str] = None
    completion_timeout: float = Field(default=30.0, gt=0)
    spam_threshold: int = Field(default=70, ge=0, le=100)
    history_window: int = Field(default=100, gt=0)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)


def _env(name: str) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name, "").strip()
    return value or None


def load_settings(dotenv_path: Optional[str] = None, **overrides) -> Settings:
    """Builds ``Settings`` from ``.env`` and ``PHANTOM_*`` variables.

    Unset variables fall back to the model defaults. Invalid values raise
    ``pydantic.ValidationError``.
    """
    load_dotenv(dotenv_path or find_dotenv(usecwd=True))

    connection = {
        key: value
        for key, value in {
            "host": _env("IRC_HOST"),
            "port": _env("IRC_PORT"),
            "nick": _env("IRC_NICK"),
        }.items()
        if value is not None
    }
    values = {
        key: value
        for key, value in {
            "api_key": _env("AI_KEY"),
            "completion_timeout": _env("COMPLETION_TIMEOUT"),
            "spam_threshold": _env("SPAM_THRESHOLD"),
        }.items()
        if value is not None
    }
    values["connection"] = ConnectionConfig(**connection)
    values.update(overrides)
    return Settings(**values)
