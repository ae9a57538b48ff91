"""
The main entrypoint for the Phantom package.

This module contains the ``Phantom`` client, which wires a chat session (live
or simulated) to the AI feature layer. The session never depends on the AI
layer; the AI layer only reads the session's message logs, and its one write
path (a spam-gated send) goes back through ``Session.send``.
"""

import inspect
import logging
import warnings
from typing import Any, Callable, List, Optional, Sequence, Union

from .ai import AIService
from .config import ConnectionConfig, Settings, load_settings
from .llm import LLM, ProviderError
from .models import (
    CatchUp,
    CodeSnippet,
    Message,
    NotificationPriority,
    PastAnswer,
    QAEntry,
    SendResult,
    SpamVerdict,
)
from .providers import create_provider, detect_provider, get_provider_info
from .session import Live, NotConnectedError, NotJoinedError, Session, SessionError
from .simulation import Simulated
from .transport import Transport

logger = logging.getLogger(__name__)

Confirm = Callable[[SpamVerdict], Any]

__all__ = [
    "Phantom",
    "AIService",
    "ConnectionConfig",
    "Settings",
    "load_settings",
    "LLM",
    "ProviderError",
    "Session",
    "Live",
    "Simulated",
    "SessionError",
    "NotConnectedError",
    "NotJoinedError",
    "create_provider",
    "detect_provider",
    "get_provider_info",
]


class Phantom:
    """
    The Phantom chat client.

    Owns one session and one AI service and exposes the operations a UI
    needs. Every collaborator can be injected; the defaults give a working
    client with no network access at all (simulated session, AI disabled).

    Parameters
    ----------
    session : Session, optional
        The session store. Defaults to ``Live(transport)`` when a transport
        is given, otherwise to ``Simulated()``.
    ai : AIService, optional
        The AI feature layer. Defaults to ``AIService.from_key`` with the
        configured API key.
    api_key : str, optional
        Shortcut overriding ``settings.api_key``.
    transport : Transport, optional
        A protocol client for a live session, e.g. ``IRCTransport()``.
    settings : Settings, optional
        Client settings. Defaults to ``Settings()``.

    Examples
    --------
    Demo mode, no network:

    >>> app = Phantom()

    A real network with Claude-backed AI features:

    >>> from phantom.transport import IRCTransport
    >>> app = Phantom(transport=IRCTransport(), api_key="sk-ant-...")
    """

    def __init__(
        self,
        session: Optional[Session] = None,
        ai: Optional[AIService] = None,
        api_key: Optional[str] = None,
        transport: Optional[Transport] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        if api_key is not None:
            self.settings = self.settings.model_copy(update={"api_key": api_key})

        if session is not None:
            self.session = session
        elif transport is not None:
            self.session = Live(transport)
        else:
            self.session = Simulated()

        if ai is not None:
            self.ai = ai
        else:
            self.ai = AIService.from_key(
                self.settings.api_key, timeout=self.settings.completion_timeout
            )
            if self.settings.api_key and not self.ai.enabled:
                warnings.warn(
                    "Phantom is running without AI features because the API key "
                    "format was not recognized.",
                    UserWarning,
                )

    # --- session passthrough ---
    async def connect(self, config: Optional[ConnectionConfig] = None) -> None:
        await self.session.connect(config or self.settings.connection)

    def join(self, channel: str) -> None:
        self.session.join_channel(channel)

    def part(self, channel: str) -> None:
        self.session.part_channel(channel)

    def disconnect(self) -> None:
        self.session.disconnect()

    def on(self, kind, handler) -> Callable[[], None]:
        return self.session.on(kind, handler)

    def recent_messages(self, channel: str) -> List[Message]:
        return self.session.get_messages(channel, self.settings.history_window)

    # --- features ---
    async def send_message(
        self, channel: str, text: str, confirm: Optional[Confirm] = None
    ) -> SendResult:
        """Sends ``text`` after a spam check.

        A message classified as spam with confidence above the configured
        threshold is held unless ``confirm(verdict)`` returns true (it may be
        a coroutine function). AI failures never hold a message.

        Raises
        ------
        NotConnectedError, NotJoinedError
            If the session cannot send to ``channel``.
        """
        if not self.session.is_connected:
            raise NotConnectedError("send message")
        if not self.session.is_joined(channel):
            raise NotJoinedError(channel)

        verdict = await self.ai.check_spam(text, channel)
        if verdict.is_spam and verdict.confidence > self.settings.spam_threshold:
            approved = confirm(verdict) if confirm is not None else False
            if inspect.isawaitable(approved):
                approved = await approved
            if not approved:
                logger.info("Held message to %s flagged as spam: %s", channel, verdict.reason)
                return SendResult(sent=False, verdict=verdict)

        message = self.session.send(channel, text)
        return SendResult(sent=True, verdict=verdict, message=message)

    async def summarize(self, channel: str) -> str:
        return await self.ai.summarize_messages(self.recent_messages(channel), channel)

    async def catch_up(self, channel: str) -> CatchUp:
        return await self.ai.smart_catch_up(self.recent_messages(channel), channel)

    async def code_snippets(self, channel: str) -> List[CodeSnippet]:
        return await self.ai.extract_code_snippets(self.recent_messages(channel))

    async def notification_priority(
        self, message: Union[Message, str]
    ) -> NotificationPriority:
        text = message.text if isinstance(message, Message) else message
        return await self.ai.get_notification_priority(text, self.session.nick or "")

    async def find_past_answer(
        self, question: str, past_answers: Sequence[QAEntry]
    ) -> PastAnswer:
        return await self.ai.find_past_answer(question, past_answers)
