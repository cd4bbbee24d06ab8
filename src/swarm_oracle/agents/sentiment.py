"""Default keyword-polarity sentiment scorer.

Counts bullish and bearish lexicon hits and squashes the net score with
``tanh`` so the result always lies in [-1, 1].  Long texts are damped by
their word count so a single keyword in an essay moves the needle less
than the same keyword in a headline.
"""

from __future__ import annotations

import math
import re

BULLISH_WORDS = frozenset({
    "bullish", "moon", "pump", "rise", "up", "gain", "profit", "buy",
    "surge", "rally", "breakthrough", "adoption", "positive", "optimistic",
    "strong", "support", "milestone",
})

BEARISH_WORDS = frozenset({
    "bearish", "dump", "crash", "fall", "down", "loss", "sell", "drop",
    "decline", "plunge", "negative", "pessimistic", "weak", "resistance",
    "correction", "bubble", "risk", "concern",
})

_WORD_RE = re.compile(r"\S+")


class KeywordSentimentScorer:
    """Callable scorer; swap in any ``(text) -> float`` with the same range."""

    def __init__(
        self,
        bullish: frozenset[str] = BULLISH_WORDS,
        bearish: frozenset[str] = BEARISH_WORDS,
    ) -> None:
        self._bullish = bullish
        self._bearish = bearish

    def __call__(self, text: str) -> float:
        words = _WORD_RE.findall(text.lower())
        if not words:
            return 0.0
        score = 0
        for word in words:
            if word in self._bullish:
                score += 1
            if word in self._bearish:
                score -= 1
        return math.tanh(score / max(len(words) / 10, 1))
