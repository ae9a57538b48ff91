"""Concrete implementations for IRC transports.

A transport is the wire-level side of a live session. It exposes the verbs a
session needs (connect, join, part, say, quit) and reports what the server
tells it through a single listener as ``(kind, payload)`` pairs:

- ``registered`` : {}
- ``message``    : {nick, target, message, type, system}
- ``join``       : {nick, channel}
- ``part``       : {nick, channel}
- ``userlist``   : {channel, users}
- ``error``      : {message, fatal}
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]

NICK_PREFIXES = "~&@%+"


class Transport(ABC):
    """Interface for the protocol library a live session drives."""

    def __init__(self):
        self._listener: Optional[Listener] = None

    def listen(self, listener: Listener) -> None:
        """Sets the single callback that receives every transport event."""
        self._listener = listener

    def emit(self, kind: str, **payload: Any) -> None:
        if self._listener is not None:
            self._listener(kind, payload)

    @property
    @abstractmethod
    def nick(self) -> Optional[str]:
        """The nickname the server currently knows us by."""
        pass

    @abstractmethod
    async def connect(
        self, host: str, port: int, nick: str, username: str, realname: str
    ) -> None:
        """Opens the connection. Registration is reported later as ``registered``."""
        pass

    @abstractmethod
    def join(self, channel: str) -> None:
        pass

    @abstractmethod
    def part(self, channel: str) -> None:
        pass

    @abstractmethod
    def say(self, target: str, text: str) -> None:
        pass

    @abstractmethod
    def quit(self, reason: str) -> None:
        pass


class IRCTransport(Transport):
    """Transport on top of the ``irc`` package's asyncio client."""

    def __init__(self):
        super().__init__()
        self._reactor = None
        self._connection = None
        self._quitting = False
        self._quit_reason: Optional[str] = None
        self._names: Dict[str, List[str]] = {}

    @property
    def nick(self) -> Optional[str]:
        if self._connection is None:
            return None
        return self._connection.get_nickname()

    async def connect(self, host, port, nick, username, realname):
        import irc.client_aio

        self._quitting = False
        self._quit_reason = None
        self._reactor = irc.client_aio.AioReactor(loop=asyncio.get_running_loop())
        handlers = {
            "welcome": self._on_welcome,
            "pubmsg": self._on_message,
            "privmsg": self._on_message,
            "pubnotice": self._on_message,
            "privnotice": self._on_message,
            "action": self._on_message,
            "join": self._on_join,
            "part": self._on_part,
            "kick": self._on_kick,
            "namreply": self._on_namreply,
            "endofnames": self._on_endofnames,
            "nicknameinuse": self._on_nickname_in_use,
            "error": self._on_error,
            "disconnect": self._on_disconnect,
        }
        for event, handler in handlers.items():
            self._reactor.add_global_handler(event, handler)

        connection = await self._reactor.server().connect(
            host, port, nick, username=username, ircname=realname
        )
        if self._quit_reason is not None:
            logger.debug("Quit requested while connecting, closing new connection")
            connection.disconnect(self._quit_reason)
            return
        self._connection = connection

    def join(self, channel):
        self._connection.join(channel)

    def part(self, channel):
        self._connection.part(channel)

    def say(self, target, text):
        self._connection.privmsg(target, text)

    def quit(self, reason):
        """Closes the connection, or the one still being opened once it is up."""
        self._quitting = True
        self._quit_reason = reason
        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        connection.disconnect(reason)

    # --- irc event handlers ---
    def _on_welcome(self, connection, event):
        self.emit("registered")

    def _on_message(self, connection, event):
        kind = {"pubnotice": "notice", "privnotice": "notice", "action": "action"}
        # Server notices carry a bare host name instead of nick!user@host.
        from_server = not event.source or "!" not in event.source
        self.emit(
            "message",
            nick=event.source.nick if event.source else "",
            target=event.target,
            message=event.arguments[0] if event.arguments else "",
            type=kind.get(event.type, "privmsg"),
            system=from_server,
        )

    def _on_join(self, connection, event):
        self.emit("join", nick=event.source.nick, channel=event.target)

    def _on_part(self, connection, event):
        self.emit("part", nick=event.source.nick, channel=event.target)

    def _on_kick(self, connection, event):
        self.emit("part", nick=event.arguments[0], channel=event.target)

    def _on_namreply(self, connection, event):
        _, channel, names = event.arguments[:3]
        self._names.setdefault(channel, []).extend(
            name.lstrip(NICK_PREFIXES) for name in names.split()
        )

    def _on_endofnames(self, connection, event):
        channel = event.arguments[0]
        self.emit("userlist", channel=channel, users=self._names.pop(channel, []))

    def _on_nickname_in_use(self, connection, event):
        self.emit("error", message="Nickname is already in use", fatal=False)

    def _on_error(self, connection, event):
        detail = " ".join(str(part) for part in [event.target, *event.arguments] if part)
        self.emit("error", message=detail or "IRC error", fatal=True)

    def _on_disconnect(self, connection, event):
        if self._quitting:
            logger.debug("Connection closed after quit")
            return
        self.emit("error", message="Disconnected from server", fatal=True)
