"""
AI features layered over a chat session.

Every feature is built only on an ``LLM`` adapter and on messages read from
the session store. Features never raise on provider trouble: a missing
adapter yields a "disabled" result and a failed call yields a documented
fallback, so AI stays strictly additive and never blocks sending.
"""

import logging
import re
from typing import List, Optional, Sequence

from . import parsing
from .llm import DEFAULT_TIMEOUT, LLM, ProviderError
from .models import (
    HIGH_PRIORITY,
    MEDIUM_PRIORITY,
    PRIORITIES,
    CatchUp,
    CodeSnippet,
    Message,
    NotificationPriority,
    PastAnswer,
    ProviderInfo,
    QAEntry,
    SpamVerdict,
)
from .providers import UNKNOWN_PROVIDER, create_provider, get_provider_info

logger = logging.getLogger(__name__)

CODE_BLOCK = re.compile(r"```(\w+)?\n(.+?)```", re.DOTALL)
PAST_ANSWER_WINDOW = 20

SUMMARY_DISABLED = "AI summarization disabled. No API key provided."
SUMMARY_EMPTY = "No messages to summarize."
SUMMARY_FAILED = "Failed to generate summary. AI service error."

SPAM_PROMPT = """Analyze if this IRC message is spam. Reply with ONLY "SPAM" or "LEGITIMATE" followed by confidence (0-100) and reason.

Channel: {channel}
Message: "{message}"

Format: [SPAM/LEGITIMATE]|[0-100]|[reason]"""

SUMMARY_PROMPT = """Summarize this IRC conversation in {channel}. Focus on main topics, decisions, and important links. Be concise (2-3 sentences max).

{transcript}

Summary:"""

PRIORITY_PROMPT = """Rate notification priority for this IRC message. Reply ONLY with: HIGH, MEDIUM, or LOW

Message: "{message}"

Priority:"""

CATCH_UP_PROMPT = """Analyze this IRC conversation for an AI developer who was away. Extract:
1. Main topics discussed (max 3)
2. Key decisions or conclusions (max 3)
3. Number of code snippets shared

Format your response as:
TOPICS: topic1 | topic2 | topic3
DECISIONS: decision1 | decision2 | decision3
CODE_SNIPPETS: <number>
SUMMARY: <2 sentence overview>

{transcript}"""

SNIPPET_PROMPT = """Analyze this code snippet. Reply with ONLY:
LANGUAGE: <language>
PURPOSE: <one sentence what it does>
CATEGORY: <type like "bug-fix", "example", "utility", "config">

Code:
{code}"""

PAST_ANSWER_PROMPT = """Check if this new question was already answered before. Reply with:
FOUND: YES or NO
MATCH_ID: Q<number> (if YES)
SIMILARITY: 0-100 (how similar)
SUGGESTED_ANSWER: <the previous answer if FOUND=YES, otherwise "none">

New Question: "{question}"

Past Q&A:
{history}"""


def render_transcript(messages: Sequence[Message]) -> str:
    """One ``[HH:MM:SS] <nick> text`` line per message, in log order."""
    return "\n".join(
        f"[{m.time.strftime('%H:%M:%S')}] <{m.sender}> {m.text}" for m in messages
    )


def find_code_blocks(messages: Sequence[Message]) -> List[CodeSnippet]:
    """Scans messages for fenced code blocks.

    Returns unclassified snippets (generic context and category) in message
    order. No provider is involved.
    """
    snippets = []
    for msg in messages:
        for match in CODE_BLOCK.finditer(msg.text):
            snippets.append(
                CodeSnippet(
                    code=match.group(2).strip(),
                    language=match.group(1) or "unknown",
                    author=msg.sender,
                    channel=msg.target or "unknown",
                    timestamp=msg.time,
                )
            )
    return snippets


class AIService:
    """The AI feature set, bound to at most one completion adapter.

    Parameters
    ----------
    llm : LLM, optional
        The adapter to use. Without one every feature returns its disabled
        result and no call is attempted.
    """

    def __init__(self, llm: Optional[LLM] = None):
        self.llm = llm

    @classmethod
    def from_key(cls, api_key: Optional[str], timeout: float = DEFAULT_TIMEOUT):
        """Builds the service for whatever vendor the key belongs to."""
        return cls(create_provider(api_key, timeout=timeout))

    @property
    def enabled(self) -> bool:
        return self.llm is not None

    def get_provider_info(self) -> ProviderInfo:
        if self.llm is None:
            return UNKNOWN_PROVIDER.model_copy(deep=True)
        info = get_provider_info(self.llm.vendor)
        info.enabled = True
        return info

    async def check_spam(self, message: str, channel: str) -> SpamVerdict:
        """Classifies an outgoing message. Fails open on any provider error."""
        if not self.enabled:
            return SpamVerdict(is_spam=False, confidence=0, reason="AI disabled")

        try:
            reply = await self.llm.chat(
                SPAM_PROMPT.format(channel=channel, message=message), max_tokens=100
            )
        except ProviderError as e:
            logger.warning("Spam check failed, letting message through: %s", e)
            return SpamVerdict(is_spam=False, confidence=0, reason="AI error")

        classification, confidence, reason = parsing.split_fields(reply, 3)
        classification = (classification or "").strip("[] ").upper()
        score = parsing.leading_int((confidence or "").strip("[] "))
        return SpamVerdict(
            is_spam=classification == "SPAM",
            confidence=50 if score is None else parsing.clamp(score),
            reason=reason or "No reason provided",
        )

    async def summarize_messages(self, messages: Sequence[Message], channel: str) -> str:
        if not self.enabled:
            return SUMMARY_DISABLED
        if not messages:
            return SUMMARY_EMPTY

        prompt = SUMMARY_PROMPT.format(
            channel=channel, transcript=render_transcript(messages)
        )
        try:
            return await self.llm.chat(prompt, max_tokens=300)
        except ProviderError as e:
            logger.warning("Summary for %s failed: %s", channel, e)
            return SUMMARY_FAILED

    async def get_notification_priority(
        self, message: str, self_nick: str
    ) -> NotificationPriority:
        """Ranks an incoming message. Mentions of ``self_nick`` are always high."""
        if not self.enabled:
            return NotificationPriority(priority=MEDIUM_PRIORITY, reason="AI disabled")

        if self_nick and self_nick.lower() in message.lower():
            return NotificationPriority(priority=HIGH_PRIORITY, reason="Direct mention")

        try:
            reply = await self.llm.chat(
                PRIORITY_PROMPT.format(message=message), max_tokens=50
            )
        except ProviderError as e:
            logger.warning("Notification priority failed: %s", e)
            return NotificationPriority(priority=MEDIUM_PRIORITY, reason="AI error")

        priority = reply.strip().lower()
        if priority not in PRIORITIES:
            priority = MEDIUM_PRIORITY
        return NotificationPriority(priority=priority, reason="AI analysis")

    async def smart_catch_up(self, messages: Sequence[Message], channel: str) -> CatchUp:
        """Extracts topics, decisions and code volume from a message window.

        Each labeled field of the reply is parsed on its own, so a missing
        ``DECISIONS:`` line does not cost the topics or the summary.
        """
        if not self.enabled:
            return CatchUp(summary="AI disabled")
        if not messages:
            return CatchUp(summary="No messages")

        prompt = CATCH_UP_PROMPT.format(transcript=render_transcript(messages))
        try:
            reply = await self.llm.chat(prompt, max_tokens=500)
        except ProviderError as e:
            logger.warning("Catch-up for %s failed: %s", channel, e)
            return CatchUp(summary="AI error")

        return CatchUp(
            topics=parsing.list_field(reply, "TOPICS"),
            decisions=parsing.list_field(reply, "DECISIONS"),
            code_snippet_count=max(0, parsing.int_field(reply, "CODE_SNIPPETS")),
            summary=parsing.field(reply, "SUMMARY") or "No summary available",
        )

    async def extract_code_snippets(self, messages: Sequence[Message]) -> List[CodeSnippet]:
        """Finds fenced code blocks and classifies each one.

        A failed classification keeps the snippet with the generic
        ``Code snippet`` / ``general`` labels; it never drops the others.
        """
        if not self.enabled:
            return []
        return [await self._classify(snippet) for snippet in find_code_blocks(messages)]

    async def _classify(self, snippet: CodeSnippet) -> CodeSnippet:
        try:
            reply = await self.llm.chat(
                SNIPPET_PROMPT.format(code=snippet.code), max_tokens=150
            )
        except ProviderError as e:
            logger.warning("Code snippet classification failed: %s", e)
            return snippet

        return snippet.model_copy(
            update={
                "language": parsing.field(reply, "LANGUAGE") or snippet.language,
                "context": parsing.field(reply, "PURPOSE") or snippet.context,
                "category": parsing.field(reply, "CATEGORY") or snippet.category,
            }
        )

    async def find_past_answer(
        self, question: str, past_answers: Sequence[QAEntry]
    ) -> PastAnswer:
        """Looks for an earlier answer to ``question`` among recent Q&A pairs.

        Only the last 20 pairs are shown to the model. A match is accepted
        only when the reply says YES, names an index inside that window and
        carries an answer other than "none"; anything else is no match.
        """
        if not self.enabled or not past_answers:
            return PastAnswer(found_answer=False)

        window = list(past_answers)[-PAST_ANSWER_WINDOW:]
        history = "\n".join(
            f"Q{idx}: {qa.question}\nA{idx}: {qa.answer}\n---"
            for idx, qa in enumerate(window)
        )
        prompt = PAST_ANSWER_PROMPT.format(question=question, history=history)
        try:
            reply = await self.llm.chat(prompt, max_tokens=300)
        except ProviderError as e:
            logger.warning("Past answer lookup failed: %s", e)
            return PastAnswer(found_answer=False)

        found = re.match(r"YES\b", parsing.field(reply, "FOUND") or "", re.IGNORECASE)
        match_id = parsing.leading_int(
            (parsing.field(reply, "MATCH_ID") or "").lstrip("Qq")
        )
        similarity = parsing.clamp(parsing.int_field(reply, "SIMILARITY"))
        answer = parsing.block_field(reply, "SUGGESTED_ANSWER")

        if (
            found
            and match_id is not None
            and 0 <= match_id < len(window)
            and answer
            and answer.strip("\"'").lower() != "none"
        ):
            return PastAnswer(
                found_answer=True,
                answer=answer,
                similarity=similarity,
                original=window[match_id],
            )
        return PastAnswer(found_answer=False, similarity=similarity)
