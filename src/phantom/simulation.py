"""
A self-contained session that simulates an IRC network.

Used when no real transport is reachable. It produces the same event
sequence a live session would (registration, join, user list, messages),
paced by an injectable ``Scheduler`` and ``random.Random`` so tests can run
it on virtual time with fixed seeds.
"""

import logging
import random
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .models import ChannelState, Message
from .scheduling import AsyncioScheduler, Scheduler
from .session import NotJoinedError, Session, irc_lower

logger = logging.getLogger(__name__)

CONNECT_DELAY = 1.0
AUTO_JOIN_DELAY = 0.5
JOIN_DELAY = 0.5
REPLY_DELAY = (2.0, 5.0)
AMBIENT_INTERVAL = (15.0, 30.0)

DEMO_CHANNEL = "#phantom-demo"
SPAMMER = "spambot"

MOCK_CHANNELS: Dict[str, Dict[str, Any]] = {
    "#phantom-demo": {
        "topic": "Welcome to Phantom IRC Demo! This is a simulated channel showcasing AI features.",
        "users": ["alice", "bob", "charlie", "diana", "eve"],
    },
    "#dev-chat": {
        "topic": "Development discussion and technical topics",
        "users": ["dev1", "dev2", "techie", "coder"],
    },
    "#random": {
        "topic": "Random off-topic discussions",
        "users": ["user1", "user2", "user3"],
    },
}

# (nick, text, seconds before the join)
MOCK_HISTORY: Dict[str, List[Tuple[str, str, int]]] = {
    "#phantom-demo": [
        ("alice", "Hey everyone! Welcome to Phantom IRC!", 3600),
        ("bob", "This is pretty cool, how does the AI spam filter work?", 3500),
        ("alice", "It checks messages with an AI model before they are sent", 3400),
        ("charlie", "Check out this link: https://example.com/cool-project", 3300),
        ("diana", "Can someone help me with IRC commands?", 3200),
        ("eve", "Sure! Type /join #channel to join a channel", 3100),
        ("bob", "The AI summary feature is really handy for catching up", 3000),
        ("alice", "Yeah, especially for busy channels with lots of activity", 2900),
        ("charlie", "Is this open source?", 2800),
        ("diana", "Built for a hackathon!", 2700),
    ],
    "#dev-chat": [
        ("dev1", "Working on a new React component", 7200),
        ("dev2", "Nice! Are you using hooks?", 7100),
        ("techie", "Hooks are the way to go these days", 7000),
        ("coder", "Anyone tried the new Vite features?", 6900),
        ("dev1", "Vite is blazing fast compared to webpack", 6800),
        ("dev2", "The HMR is incredible", 6700),
        ("techie", "What are you all building?", 6600),
        ("coder", "Working on an AI-powered IRC client", 6500),
    ],
    "#random": [
        ("user1", "Good morning everyone!", 10800),
        ("user2", "Morning! How's everyone doing?", 10700),
        ("user3", "Pretty good, just having coffee", 10600),
        ("user1", "Coffee is life ☕", 10500),
    ],
}

RANDOM_MESSAGES: Dict[str, List[Tuple[str, str]]] = {
    "#phantom-demo": [
        ("alice", "The UI looks really polished!"),
        ("bob", "How long did it take to build this?"),
        ("charlie", "The dark theme is nice on the eyes"),
        ("diana", "Can this connect to real IRC servers?"),
        ("eve", "The protocol validation was smart"),
        ("alice", "Testing early saved a lot of time"),
        ("bob", "Anyone else excited about AI features?"),
        ("charlie", "The spam filter is a game changer"),
    ],
    "#dev-chat": [
        ("dev1", "Just pushed a new commit"),
        ("dev2", "Running tests now..."),
        ("techie", "Anyone need help debugging?"),
        ("coder", "This architecture is clean"),
    ],
    "#random": [
        ("user1", "Anyone here?"),
        ("user2", "Yeah, what's up?"),
        ("user3", "Just lurking..."),
    ],
}

REPLIES: List[Tuple[str, str]] = [
    ("alice", "Good point!"),
    ("bob", "I agree"),
    ("charlie", "Interesting..."),
    ("diana", "Thanks for sharing!"),
    ("eve", "👍"),
]

SPAM_EXAMPLES: List[str] = [
    "BUY CHEAP PRODUCTS NOW!!! CLICK HERE: http://spam.com",
    "Make $$$$ working from home! Limited time offer!!!",
    "You won a FREE iPhone! Claim now at: http://scam.com",
    "URGENT: Your account needs verification: http://phishing.com",
]


class Simulated(Session):
    """A session backed by canned channels and timed fake traffic.

    Parameters
    ----------
    scheduler : Scheduler, optional
        Clock and timers. Defaults to ``AsyncioScheduler`` (real time).
    rng : random.Random, optional
        Source for reply choice and pacing. Seed it for reproducible runs.
    auto_join : str or None, default="#phantom-demo"
        Channel joined automatically after registration; None disables it.
    history_limit : int, optional
        Per-channel log bound, as for ``Session``.
    """

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
        auto_join: Optional[str] = DEMO_CHANNEL,
        history_limit: Optional[int] = None,
    ):
        self.scheduler = scheduler or AsyncioScheduler()
        super().__init__(clock=self.scheduler.now, history_limit=history_limit)
        self.rng = rng or random.Random()
        self.auto_join = auto_join
        self._connect_timer = None
        self._timers: Dict[str, Set[Any]] = {}  # keyed by irc_lower(channel)

    async def _open(self, config):
        self._connect_timer = self.scheduler.call_later(
            CONNECT_DELAY, self._finish_connect
        )

    def _finish_connect(self) -> None:
        self._connect_timer = None
        self._registered()
        if self.auto_join and self.is_connected:
            self._connect_timer = self.scheduler.call_later(
                AUTO_JOIN_DELAY, self._auto_join
            )

    def _auto_join(self) -> None:
        self._connect_timer = None
        if self.is_connected:
            self.join_channel(self.auto_join)

    def _request_join(self, channel):
        self._later(channel, JOIN_DELAY, self._complete_join, channel)

    def _complete_join(self, channel: str) -> None:
        target = self._find(channel)
        if target is None or target.state != ChannelState.JOINING:
            return

        key = irc_lower(channel)
        data = MOCK_CHANNELS.get(key, {"topic": f"Welcome to {channel}", "users": []})
        target.topic = data["topic"]
        if not target.messages:
            now = self.scheduler.now()
            for nick, text, ago in MOCK_HISTORY.get(key, []):
                self._append(
                    target,
                    Message(
                        sender=nick,
                        target=channel,
                        text=text,
                        time=now - timedelta(seconds=ago),
                    ),
                )

        self._ingest_join(self.nick, channel)
        users = [user for user in data["users"] if user != self.nick] + [self.nick]
        self._ingest_userlist(channel, users)
        if RANDOM_MESSAGES.get(key):
            self._schedule_ambient(channel)

    def _request_part(self, channel):
        self._ingest_part(self.nick, channel)

    def _deliver(self, target, text):
        self._later(target, self.rng.uniform(*REPLY_DELAY), self._reply, target)

    def _reply(self, channel: str) -> None:
        if not self.is_joined(channel):
            return
        nick, text = self.rng.choice(REPLIES)
        self._ingest_message(nick, channel, text)

    def _schedule_ambient(self, channel: str) -> None:
        self._later(channel, self.rng.uniform(*AMBIENT_INTERVAL), self._ambient, channel)

    def _ambient(self, channel: str) -> None:
        if not self.is_joined(channel):
            return
        nick, text = self.rng.choice(RANDOM_MESSAGES[irc_lower(channel)])
        self._ingest_message(nick, channel, text)
        self._schedule_ambient(channel)

    def inject_spam(self, channel: str) -> Message:
        """Delivers a canned spam line to ``channel`` as an inbound message."""
        self._require_connected("inject spam")
        if not self.is_joined(channel):
            raise NotJoinedError(channel)
        return self._ingest_message(SPAMMER, channel, self.rng.choice(SPAM_EXAMPLES))

    def _later(self, channel: str, delay: float, callback: Callable[..., None], *args) -> None:
        key = irc_lower(channel)

        def fire():
            self._timers.get(key, set()).discard(handle)
            callback(*args)

        handle = self.scheduler.call_later(delay, fire)
        self._timers.setdefault(key, set()).add(handle)

    def _stop_activity(self, channel):
        for handle in self._timers.pop(irc_lower(channel), set()):
            handle.cancel()

    def _close(self, reason):
        if self._connect_timer is not None:
            self._connect_timer.cancel()
            self._connect_timer = None
        for channel in list(self._timers):
            self._stop_activity(channel)
        logger.debug("Simulated session closed: %s", reason)
