# =============================================================================
# Context Window Manager — Priority-Scored Conversation Memory
# =============================================================================
#
# Keeps the full history of every conversation plus an "active window": the
# subset of messages worth replaying to the LLM. Every addMessage() call
# re-scores the whole history (scores are never memoised, time decay moves
# them) and rebuilds the window.
#
# SCORING (per message):
#   finalScore = 0.3 * marketRelevance
#              + 0.2 * timeRelevance        (exp(-Δt / 1h))
#              + 0.3 * instrumentRelevance
#              + 0.2 * userPriorityScore
#
# WINDOW:
#   sort by finalScore desc → keep finalScore > priority_threshold (0.7)
#   → keep at most floor(max_window_size / 2) messages (a message count)
#
# STATE:
#   - one ConversationContext per conversation id, created lazily on the
#     first message and kept for the lifetime of the manager
#   - one ContextWindow per conversation id
#   - one MarketContext owned by the manager and shared by all
#     conversations; snapshots of it are copied into a window when the
#     latest message mentions a market, or on a ~30% draw while volatility
#     is high
#
# The clock and the random source are constructor parameters so tests can
# pin both.
# =============================================================================

from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from tadawul_advisor.services.gazetteer import Instrument

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class FinancialMetadata:
    """Lexical annotations attached to a message. Every field is optional."""

    instruments: list[str] = field(default_factory=list)
    companies: list[str] = field(default_factory=list)
    markets: list[str] = field(default_factory=list)
    metrics: list[str] = field(default_factory=list)
    timeframes: list[str] = field(default_factory=list)
    sentiment: str | None = None        # bullish | bearish | neutral
    confidence_score: float | None = None
    risk_level: str | None = None       # low | medium | high
    technical_indicators: list[str] = field(default_factory=list)
    fundamental_factors: list[str] = field(default_factory=list)


@dataclass
class Message:
    """One chat turn. `timestamp` is epoch seconds."""

    id: str
    role: str  # "user" or "assistant"
    content: str
    timestamp: float
    metadata: FinancialMetadata | None = None


@dataclass
class UserPreferences:
    preferred_markets: list[str] = field(default_factory=list)
    risk_tolerance: str = "moderate"
    preferred_timeframe: str = "medium"
    technical_analysis_level: str = "basic"
    language: str = "en"


@dataclass
class ConversationContext:
    """Running state of one conversation."""

    id: str
    messages: list[Message] = field(default_factory=list)
    active_instruments: set[str] = field(default_factory=set)
    active_technical_analysis: bool = False
    fundamental_analysis_active: bool = False
    last_updated: float = 0.0
    user_preferences: UserPreferences = field(default_factory=UserPreferences)
    current_company: Instrument | None = None


@dataclass
class MarketContext:
    market_hours: bool = False
    conditions: str = "neutral"        # bull | bear | neutral
    volatility_level: str = "low"      # low | medium | high
    major_indices: dict[str, float] = field(default_factory=dict)
    timestamp: float = 0.0


@dataclass
class ContextScore:
    message_id: str
    market_relevance: float
    time_relevance: float
    instrument_relevance: float
    user_priority_score: float
    final_score: float


@dataclass
class ScoredMessage:
    message: Message
    score: ContextScore


@dataclass
class ContextWindow:
    max_size: int
    priority_threshold: float
    recent_messages: list[ScoredMessage] = field(default_factory=list)
    market_snapshots: list[MarketContext] = field(default_factory=list)
    key_insights: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class ContextWindowManager:
    """Per-conversation histories and windows over one shared market context."""

    INSIGHT_SOURCE_COUNT = 5
    TIME_DECAY_SECONDS = 3600.0

    def __init__(
        self,
        max_window_size: int = 4096,
        priority_threshold: float = 0.7,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self._max_window_size = max_window_size
        self._priority_threshold = priority_threshold
        self._clock = clock
        self._rng = rng or random.Random()
        self._contexts: dict[str, ConversationContext] = {}
        self._windows: dict[str, ContextWindow] = {}
        self._market_context = MarketContext()

    # -- Mutation ------------------------------------------------------------

    def add_message(self, conversation_id: str, message: Message) -> ConversationContext:
        """Append a message and recompute the conversation's active window."""
        context = self._contexts.get(conversation_id)
        if context is None:
            context = ConversationContext(id=conversation_id)
            self._contexts[conversation_id] = context
            self._windows[conversation_id] = ContextWindow(
                max_size=self._max_window_size,
                priority_threshold=self._priority_threshold,
            )
            logger.info("Created conversation context %s", conversation_id)

        metadata = message.metadata
        if metadata is not None:
            context.active_instruments.update(metadata.instruments)
            if metadata.technical_indicators:
                context.active_technical_analysis = True
            if metadata.fundamental_factors:
                context.fundamental_analysis_active = True

        context.messages.append(message)
        context.last_updated = self._clock()
        self._update_window(context)
        return context

    def set_current_company(
        self, conversation_id: str, instrument: Instrument | None,
    ) -> None:
        context = self._contexts.get(conversation_id)
        if context is not None:
            context.current_company = instrument

    def update_market_context(self, **changes) -> MarketContext:
        """Merge changes into the shared market context (unknown keys raise)."""
        self._market_context = replace(self._market_context, **changes)
        return self._market_context

    # -- Scoring -------------------------------------------------------------

    def score_message(self, message: Message, now: float | None = None) -> ContextScore:
        current_time = self._clock() if now is None else now
        age = max(0.0, current_time - message.timestamp)
        time_relevance = math.exp(-age / self.TIME_DECAY_SECONDS)
        metadata = message.metadata

        market_relevance = 0.5
        instrument_relevance = 0.5
        user_priority = 0.5
        if metadata is not None:
            for present in (
                metadata.instruments,
                metadata.markets,
                metadata.technical_indicators,
                metadata.fundamental_factors,
            ):
                if present:
                    market_relevance += 0.1

            if metadata.instruments:
                instrument_relevance = 0.7
                if self._is_active_instrument(metadata.instruments[0]):
                    instrument_relevance = 0.9

            if metadata.risk_level == "high":
                user_priority += 0.2
            if metadata.confidence_score is not None and metadata.confidence_score > 0.8:
                user_priority += 0.1

        final_score = (
            market_relevance * 0.3
            + time_relevance * 0.2
            + instrument_relevance * 0.3
            + user_priority * 0.2
        )
        return ContextScore(
            message_id=message.id,
            market_relevance=market_relevance,
            time_relevance=time_relevance,
            instrument_relevance=instrument_relevance,
            user_priority_score=user_priority,
            final_score=final_score,
        )

    def _is_active_instrument(self, instrument: str) -> bool:
        # Looks across every tracked conversation, not only the current one.
        return any(
            instrument in context.active_instruments
            for context in self._contexts.values()
        )

    # -- Window --------------------------------------------------------------

    def _update_window(self, context: ConversationContext) -> None:
        window = self._windows[context.id]
        now = self._clock()

        scored = [
            ScoredMessage(message=msg, score=self.score_message(msg, now))
            for msg in context.messages
        ]
        scored.sort(key=lambda s: s.score.final_score, reverse=True)

        window.recent_messages = [
            s for s in scored
            if s.score.final_score > window.priority_threshold
        ][: self._max_window_size // 2]

        window.key_insights = self._extract_insights(
            [s.message for s in scored[: self.INSIGHT_SOURCE_COUNT]]
        )

        if self._should_take_snapshot(context):
            window.market_snapshots.append(replace(
                self._market_context,
                major_indices=dict(self._market_context.major_indices),
                timestamp=now,
            ))
            logger.debug("Market snapshot taken for %s", context.id)

    def _should_take_snapshot(self, context: ConversationContext) -> bool:
        latest = context.messages[-1]
        if latest.metadata is not None and latest.metadata.markets:
            return True
        return (
            self._market_context.volatility_level == "high"
            and self._rng.random() > 0.7
        )

    @staticmethod
    def _extract_insights(messages: list[Message]) -> list[str]:
        insights: dict[str, None] = {}
        for message in messages:
            metadata = message.metadata
            if metadata is None:
                continue
            if metadata.instruments:
                insights[f"Instruments: {', '.join(metadata.instruments)}"] = None
            if metadata.technical_indicators:
                insights[f"Technical Analysis: {', '.join(metadata.technical_indicators)}"] = None
            if metadata.fundamental_factors:
                insights[f"Fundamental Factors: {', '.join(metadata.fundamental_factors)}"] = None
            if metadata.sentiment:
                insights[f"Market Sentiment: {metadata.sentiment}"] = None
            if metadata.risk_level:
                insights[f"Risk Level: {metadata.risk_level}"] = None
        return list(insights)

    # -- Queries -------------------------------------------------------------

    def get_context_for_prompt(self, conversation_id: str) -> str:
        """Render the window as a prompt block; "" for an unknown conversation."""
        window = self._windows.get(conversation_id)
        if window is None:
            return ""

        sections: list[str] = []
        if window.market_snapshots:
            market = self._market_context
            sections.append(
                "Current Market Context:\n"
                f"Market Hours: {'Open' if market.market_hours else 'Closed'}\n"
                f"Conditions: {market.conditions}\n"
                f"Volatility: {market.volatility_level}\n"
                f"Snapshots: {len(window.market_snapshots)}"
            )

        if window.key_insights:
            sections.append(
                "Key Insights:\n" + "\n".join(f"- {i}" for i in window.key_insights)
            )

        if window.recent_messages:
            sections.append(
                "Recent Discussion:\n"
                + "\n\n".join(_render_message(s) for s in window.recent_messages)
            )

        return "\n\n".join(sections)

    def get_window(self, conversation_id: str) -> ContextWindow | None:
        return self._windows.get(conversation_id)

    def get_conversation(self, conversation_id: str) -> ConversationContext | None:
        return self._contexts.get(conversation_id)

    def get_active_instruments(self, conversation_id: str) -> list[str]:
        context = self._contexts.get(conversation_id)
        return sorted(context.active_instruments) if context else []

    def get_key_insights(self, conversation_id: str) -> list[str]:
        window = self._windows.get(conversation_id)
        return list(window.key_insights) if window else []

    def get_market_context(self) -> MarketContext:
        return self._market_context


def _render_message(scored: ScoredMessage) -> str:
    message = scored.message
    lines = [f"{message.role}: {message.content}"]
    metadata = message.metadata
    if metadata is not None:
        lines.append(f"  Instruments: {', '.join(metadata.instruments) or 'none'}")
        lines.append(
            f"  Technical Indicators: {', '.join(metadata.technical_indicators) or 'none'}"
        )
        lines.append(f"  Sentiment: {metadata.sentiment or 'neutral'}")
        lines.append(f"  Risk Level: {metadata.risk_level or 'medium'}")
    lines.append(f"  Priority: {scored.score.final_score:.2f}")
    return "\n".join(lines)
