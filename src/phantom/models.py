"""
Defines the core Pydantic data models for the application.

These models are the data contract between the session store, the AI feature
layer and whatever UI sits on top. Messages and event payloads are frozen once
created; channels are mutable but only the session store writes to them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

# --- Constants ---
RECEIVED_ORIGIN = "received"
OWN_ORIGIN = "own"
SYSTEM_ORIGIN = "system"
Origin = Literal[RECEIVED_ORIGIN, OWN_ORIGIN, SYSTEM_ORIGIN]

HIGH_PRIORITY = "high"
MEDIUM_PRIORITY = "medium"
LOW_PRIORITY = "low"
Priority = Literal[HIGH_PRIORITY, MEDIUM_PRIORITY, LOW_PRIORITY]
PRIORITIES = (HIGH_PRIORITY, MEDIUM_PRIORITY, LOW_PRIORITY)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Vendor(str, Enum):
    """AI completion vendors a key can be bound to."""

    ANTHROPIC = "anthropic"
    GROQ = "groq"
    GEMINI = "gemini"
    MISTRAL = "mistral"
    OPENAI = "openai"


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ChannelState(str, Enum):
    NOT_JOINED = "not_joined"
    JOINING = "joining"
    JOINED = "joined"


class EventKind(str, Enum):
    """Notification kinds a session emits to its subscribers."""

    CONNECT = "connect"
    MESSAGE = "message"
    JOIN = "join"
    PART = "part"
    USER_LIST = "userList"
    ERROR = "error"


# --- Session models ---
class Message(BaseModel):
    """One chat line. Immutable once appended to a channel log."""

    model_config = ConfigDict(frozen=True)

    sender: str
    target: str
    text: str
    time: datetime = Field(default_factory=utc_now)
    origin: Origin = RECEIVED_ORIGIN
    kind: str = "privmsg"  # "privmsg" | "notice" | "action"


class Channel(BaseModel):
    """A conversation scope: roster and message log, in arrival order."""

    name: str
    topic: str = ""
    state: ChannelState = ChannelState.NOT_JOINED
    users: Set[str] = Field(default_factory=set)
    roster_complete: bool = False
    messages: List[Message] = Field(default_factory=list)

    @property
    def is_joined(self) -> bool:
        return self.state == ChannelState.JOINED


class ConnectEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    nick: str


class JoinEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel: str
    nick: str


class PartEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel: str
    nick: str


class UserListEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel: str
    users: List[str]


class ErrorEvent(BaseModel):
    """A transport or connection failure. Fatal errors end the session."""

    model_config = ConfigDict(frozen=True)

    message: str
    fatal: bool = False


# --- AI feature models ---
class SpamVerdict(BaseModel):
    is_spam: bool
    confidence: int = Field(ge=0, le=100)
    reason: str


class NotificationPriority(BaseModel):
    priority: Priority
    reason: str


class CatchUp(BaseModel):
    """Digest of a message window: what was discussed and decided."""

    topics: List[str] = Field(default_factory=list, max_length=3)
    decisions: List[str] = Field(default_factory=list, max_length=3)
    code_snippet_count: int = 0
    summary: str


class CodeSnippet(BaseModel):
    code: str
    language: str
    author: str
    channel: str
    timestamp: datetime
    context: str = "Code snippet"
    category: str = "general"


class QAEntry(BaseModel):
    """A past question and its answer, supplied by the caller."""

    question: str
    answer: str
    author: Optional[str] = None
    timestamp: Optional[datetime] = None


class PastAnswer(BaseModel):
    found_answer: bool
    answer: Optional[str] = None
    similarity: int = Field(default=0, ge=0, le=100)
    original: Optional[QAEntry] = None


class ProviderInfo(BaseModel):
    """Display details for a vendor."""

    name: str
    icon: str
    color: str
    models: List[str] = Field(default_factory=list)
    enabled: bool = False


class SendResult(BaseModel):
    """Outcome of a spam-gated send."""

    sent: bool
    verdict: SpamVerdict
    message: Optional[Message] = None
