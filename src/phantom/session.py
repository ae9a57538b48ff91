"""
Chat sessions: connection lifecycle, channel membership, message logs and rosters.

``Session`` holds all bookkeeping and is the only writer of channel state.
Backends (``Live`` here, ``Simulated`` in ``phantom.simulation``) only decide
how requests leave the process and feed what comes back through the shared
``_ingest_*`` methods, so both behave identically from the caller's side.

Channel and nick names are compared with RFC 1459 casemapping, so ``#Python``
and ``#python`` are the same channel. A channel keeps the spelling the
server last used for it.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from .config import ConnectionConfig
from .models import (
    OWN_ORIGIN,
    RECEIVED_ORIGIN,
    SYSTEM_ORIGIN,
    Channel,
    ChannelState,
    ConnectEvent,
    ErrorEvent,
    EventKind,
    JoinEvent,
    Message,
    Origin,
    PartEvent,
    SessionState,
    UserListEvent,
    utc_now,
)
from .transport import Transport

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]

CHANNEL_PREFIXES = "#&+!"
SERVER_LOG = "*server*"

_CASEMAP = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ[]\\~", "abcdefghijklmnopqrstuvwxyz{}|^")


def irc_lower(name: str) -> str:
    """Folds a channel or nick name for comparison (RFC 1459 casemapping)."""
    return name.translate(_CASEMAP)


class SessionError(Exception):
    """An operation was called in a state that does not allow it."""


class NotConnectedError(SessionError):
    def __init__(self, operation: str):
        super().__init__(f"Cannot {operation}: not connected to IRC server")


class NotJoinedError(SessionError):
    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(f"Not joined to {channel}")


class Session(ABC):
    """Interface and shared state machine for a chat session.

    Parameters
    ----------
    clock : callable, optional
        Returns the timestamp stamped on new messages. Defaults to UTC now.
    history_limit : int, optional
        Keeps at most this many messages per channel, dropping the oldest.
        Must be positive. Unbounded by default.

    Notes
    -----
    Server notices, and anything not addressed to a channel or to us, are
    logged under ``SERVER_LOG``.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        history_limit: Optional[int] = None,
    ):
        if history_limit is not None and history_limit < 1:
            raise ValueError(f"history_limit must be positive, got {history_limit}")
        self.state = SessionState.DISCONNECTED
        self.nick: Optional[str] = None
        self.history_limit = history_limit
        self._clock = clock or utc_now
        # Keyed by irc_lower(name).
        self._channels: Dict[str, Channel] = {}
        self._joined: List[str] = []
        self._subscribers: Dict[EventKind, List[Handler]] = {
            kind: [] for kind in EventKind
        }

    # --- backend hooks ---
    @abstractmethod
    async def _open(self, config: ConnectionConfig) -> None:
        """Starts connecting. Must end with ``_registered`` or raise."""
        pass

    @abstractmethod
    def _request_join(self, channel: str) -> None:
        pass

    @abstractmethod
    def _request_part(self, channel: str) -> None:
        pass

    @abstractmethod
    def _deliver(self, target: str, text: str) -> None:
        """Sends an own message that is already in the local log."""
        pass

    @abstractmethod
    def _close(self, reason: str) -> None:
        pass

    def _stop_activity(self, channel: str) -> None:
        """Stops background work tied to a channel. Nothing by default."""

    # --- subscriptions ---
    def on(self, kind: Union[EventKind, str], handler: Handler) -> Callable[[], None]:
        """Subscribes ``handler`` to an event kind.

        Handlers accumulate; registering a second one never drops the first.
        Returns a callable that unsubscribes the handler.
        """
        kind = EventKind(kind)
        self._subscribers[kind].append(handler)
        return lambda: self.off(kind, handler)

    def off(self, kind: Union[EventKind, str], handler: Handler) -> None:
        subscribers = self._subscribers[EventKind(kind)]
        if handler in subscribers:
            subscribers.remove(handler)

    def _emit(self, kind: EventKind, payload: Any) -> None:
        for handler in list(self._subscribers[kind]):
            try:
                handler(payload)
            except Exception:
                logger.exception("Subscriber for %s event failed", kind.value)

    # --- operations ---
    @property
    def is_connected(self) -> bool:
        return self.state == SessionState.CONNECTED

    async def connect(self, config: Optional[ConnectionConfig] = None) -> None:
        """Begins connecting.

        Success is announced with a ``connect`` event once the server has
        registered us. Failure is announced with an ``error`` event and leaves
        the session disconnected; nothing is retried.
        """
        if self.state != SessionState.DISCONNECTED:
            raise SessionError("Session already has an active connection")

        config = config or ConnectionConfig()
        self.state = SessionState.CONNECTING
        self.nick = config.nick
        logger.info("Connecting to %s:%s as %s", config.host, config.port, config.nick)
        try:
            await self._open(config)
        except Exception as e:
            if self.state != SessionState.CONNECTING:
                logger.debug("Connect attempt ended after disconnect: %s", e)
                return
            logger.warning("Connection to %s failed: %s", config.host, e)
            self.state = SessionState.DISCONNECTED
            self._emit(
                EventKind.ERROR,
                ErrorEvent(message=str(e) or type(e).__name__, fatal=True),
            )

    def disconnect(self, reason: str = "Phantom IRC - Leaving") -> None:
        """Closes the connection, including one that is still being opened."""
        if self.state == SessionState.DISCONNECTED:
            return
        self._close(reason)
        self._reset()
        logger.info("Disconnected: %s", reason)

    def join_channel(self, name: str) -> None:
        """Requests to join ``name``. Joining a joined channel does nothing."""
        self._require_connected("join channel")
        channel = self._find(name)
        if channel is not None and channel.state != ChannelState.NOT_JOINED:
            logger.debug("Already in %s, ignoring join", name)
            return

        channel = self._get_or_create(name)
        channel.state = ChannelState.JOINING
        try:
            self._request_join(name)
        except Exception:
            channel.state = ChannelState.NOT_JOINED
            raise

    def part_channel(self, name: str) -> None:
        """Leaves ``name``. Parting a channel we are not in does nothing."""
        channel = self._find(name)
        if channel is None or channel.state == ChannelState.NOT_JOINED:
            logger.debug("Not in %s, ignoring part", name)
            return
        self._require_connected("part channel")
        self._leave(channel)
        self._request_part(name)

    def send(self, channel: str, text: str) -> Message:
        """Sends ``text`` to a joined channel.

        The message is appended to the local log (and announced) before the
        backend delivers it; there is no wait for a server echo.

        Raises
        ------
        NotConnectedError
            If the session is not connected.
        NotJoinedError
            If ``channel`` is not joined.
        """
        self._require_connected("send message")
        target = self._find(channel)
        if target is None or not target.is_joined:
            raise NotJoinedError(channel)

        message = Message(
            sender=self.nick,
            target=target.name,
            text=text,
            time=self._clock(),
            origin=OWN_ORIGIN,
        )
        self._append(target, message)
        self._emit(EventKind.MESSAGE, message)
        self._deliver(target.name, text)
        return message

    # --- queries ---
    def is_joined(self, channel: str) -> bool:
        target = self._find(channel)
        return target is not None and target.is_joined

    def get_messages(self, channel: str, limit: Optional[int] = 100) -> List[Message]:
        """Returns the last ``limit`` messages of a channel, oldest first."""
        target = self._find(channel)
        if target is None:
            return []
        if limit is None:
            return list(target.messages)
        return target.messages[-limit:] if limit > 0 else []

    def get_channels(self) -> List[str]:
        """Joined channel names, in join order."""
        return [self._channels[key].name for key in self._joined]

    def get_users(self, channel: str) -> List[str]:
        target = self._find(channel)
        return sorted(target.users) if target is not None else []

    def get_channel(self, name: str) -> Optional[Channel]:
        """A snapshot copy of a channel; changing it does not touch the session."""
        channel = self._find(name)
        return channel.model_copy(deep=True) if channel is not None else None

    # --- ingestion (single writer) ---
    def _registered(self, nick: Optional[str] = None) -> None:
        if self.state != SessionState.CONNECTING:
            logger.debug("Ignoring registration in state %s", self.state.value)
            return
        if nick:
            self.nick = nick
        self.state = SessionState.CONNECTED
        logger.info("Registered as %s", self.nick)
        self._emit(EventKind.CONNECT, ConnectEvent(nick=self.nick))

    def _ingest_message(
        self,
        nick: str,
        target: str,
        text: str,
        kind: str = "privmsg",
        time: Optional[datetime] = None,
        origin: Origin = RECEIVED_ORIGIN,
    ) -> Message:
        if origin == SYSTEM_ORIGIN or not nick:
            key = SERVER_LOG
        elif self._is_self(target):
            # Private messages are logged under the sender, like a query window.
            key = nick
        elif target and target[0] in CHANNEL_PREFIXES:
            key = target
        else:
            key = SERVER_LOG
        log = self._get_or_create(key)
        message = Message(
            sender=nick,
            target=log.name,
            text=text,
            time=time or self._clock(),
            origin=origin,
            kind=kind,
        )
        self._append(log, message)
        self._emit(EventKind.MESSAGE, message)
        return message

    def _ingest_join(self, nick: str, channel: str) -> None:
        target = self._find(channel)
        if self._is_self(nick):
            target = self._get_or_create(channel)
            target.name = channel
            if not target.is_joined:
                target.state = ChannelState.JOINED
                self._joined.append(irc_lower(channel))
                logger.info("Joined %s", channel)
            target.users.add(nick)
        elif target is not None and target.state != ChannelState.NOT_JOINED:
            target.users.add(nick)
        self._emit(EventKind.JOIN, JoinEvent(channel=channel, nick=nick))

    def _ingest_part(self, nick: str, channel: str) -> None:
        target = self._find(channel)
        if self._is_self(nick):
            if target is not None and target.state != ChannelState.NOT_JOINED:
                self._leave(target)
        elif target is not None:
            target.users.discard(nick)
        self._emit(EventKind.PART, PartEvent(channel=channel, nick=nick))

    def _ingest_userlist(self, channel: str, users: List[str]) -> None:
        target = self._get_or_create(channel)
        target.users = set(users)
        target.roster_complete = True
        self._emit(EventKind.USER_LIST, UserListEvent(channel=channel, users=list(users)))

    def _ingest_error(self, message: str, fatal: bool = False) -> None:
        if fatal:
            if self.state == SessionState.DISCONNECTED:
                logger.debug("Ignoring fatal error while disconnected: %s", message)
                return
            logger.warning("Connection lost: %s", message)
            self._reset()
        self._emit(EventKind.ERROR, ErrorEvent(message=message, fatal=fatal))

    # --- helpers ---
    def _require_connected(self, operation: str) -> None:
        if self.state != SessionState.CONNECTED:
            raise NotConnectedError(operation)

    def _is_self(self, nick: Optional[str]) -> bool:
        return bool(nick) and bool(self.nick) and irc_lower(nick) == irc_lower(self.nick)

    def _find(self, name: str) -> Optional[Channel]:
        return self._channels.get(irc_lower(name))

    def _get_or_create(self, name: str) -> Channel:
        key = irc_lower(name)
        if key not in self._channels:
            self._channels[key] = Channel(name=name)
        return self._channels[key]

    def _append(self, channel: Channel, message: Message) -> None:
        channel.messages.append(message)
        if self.history_limit is not None and len(channel.messages) > self.history_limit:
            del channel.messages[: len(channel.messages) - self.history_limit]

    def _leave(self, channel: Channel) -> None:
        channel.state = ChannelState.NOT_JOINED
        channel.users.clear()
        channel.roster_complete = False
        key = irc_lower(channel.name)
        if key in self._joined:
            self._joined.remove(key)
        self._stop_activity(channel.name)
        logger.info("Left %s", channel.name)

    def _reset(self) -> None:
        self.state = SessionState.DISCONNECTED
        for channel in self._channels.values():
            if channel.state != ChannelState.NOT_JOINED:
                self._leave(channel)


class Live(Session):
    """A session driven by a real network transport.

    Parameters
    ----------
    transport : Transport
        The protocol client, e.g. ``phantom.transport.IRCTransport()``.
    """

    def __init__(self, transport: Transport, history_limit: Optional[int] = None):
        super().__init__(history_limit=history_limit)
        self.transport = transport
        transport.listen(self._on_transport_event)

    async def _open(self, config):
        await self.transport.connect(
            config.host, config.port, config.nick, config.username, config.realname
        )

    def _request_join(self, channel):
        self.transport.join(channel)

    def _request_part(self, channel):
        self.transport.part(channel)

    def _deliver(self, target, text):
        self.transport.say(target, text)

    def _close(self, reason):
        self.transport.quit(reason)

    def _on_transport_event(self, kind: str, payload: Dict[str, Any]) -> None:
        try:
            if kind == "registered":
                self._registered(self.transport.nick)
            elif kind == "message":
                self._ingest_message(
                    payload["nick"],
                    payload["target"],
                    payload["message"],
                    payload.get("type") or "privmsg",
                    origin=SYSTEM_ORIGIN if payload.get("system") else RECEIVED_ORIGIN,
                )
            elif kind == "join":
                self._ingest_join(payload["nick"], payload["channel"])
            elif kind == "part":
                self._ingest_part(payload["nick"], payload["channel"])
            elif kind == "userlist":
                self._ingest_userlist(payload["channel"], payload["users"])
            elif kind == "error":
                self._ingest_error(
                    str(payload.get("message", "Unknown error")),
                    bool(payload.get("fatal", False)),
                )
            else:
                logger.warning("Ignoring unknown transport event %r", kind)
        except KeyError as e:
            logger.warning("Malformed %s event from transport, missing %s", kind, e)
