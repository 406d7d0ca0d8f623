"""Local keyword extraction.

Finds probable nouns in a text without calling the analysis provider and ranks
them by frequency. A word counts as a candidate when any of these hold:

- it ends with a typical noun suffix (``-tion``, ``-ness``, ``-ity``, …)
- its first letter is capitalised in the original text (proper-noun guess)
- it belongs to a small vocabulary of common domain nouns

The heuristics are deliberately cheap; no part-of-speech tagging is attempted.
Tokens are ASCII letter runs: in "café" the token is "caf".
"""

from __future__ import annotations

import logging
import re
from collections import Counter

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\b[A-Za-z]+\b", re.ASCII)

#: Suffixes that usually mark a noun.
_NOUN_SUFFIXES: tuple[str, ...] = (
    "tion", "sion", "ment", "ness", "ity", "er", "or",
    "ism", "ist", "ance", "ence", "ship", "hood", "dom",
    "ing", "age", "ery", "ory", "cy", "ty", "ure",
)

#: Domain nouns accepted regardless of suffix or case.
_COMMON_NOUNS: frozenset[str] = frozenset([
    "data", "system", "user", "file", "code", "app", "web", "api",
    "server", "client", "database", "service", "product", "company",
    "team", "project", "email", "phone", "address", "name", "text",
    "image", "video", "audio", "document", "report", "analysis", "result",
    "model", "algorithm", "function", "method", "process", "task", "job",
    "role", "customer", "market", "business", "industry", "technology",
    "platform", "solution", "tool", "feature", "update", "version", "release",
])

#: Common English function words never reported as keywords.
STOP_WORDS: frozenset[str] = frozenset([
    "the", "be", "to", "of", "and", "a", "in", "that", "have", "i",
    "it", "for", "not", "on", "with", "he", "as", "you", "do", "at",
    "this", "but", "his", "by", "from", "they", "we", "say", "her", "she",
    "or", "an", "will", "my", "one", "all", "would", "there", "their", "what",
    "so", "up", "out", "if", "about", "who", "get", "which", "go", "me",
    "when", "make", "can", "like", "time", "no", "just", "him", "know", "take",
    "people", "into", "year", "your", "good", "some", "could", "them", "see", "other",
    "than", "then", "now", "look", "only", "come", "its", "over", "think", "also",
    "back", "after", "use", "two", "how", "our", "work", "first", "well", "way",
    "even", "new", "want", "because", "any", "these", "give", "day", "most", "us",
    "is", "was", "are", "been", "has", "had", "were", "said", "did", "having",
    "may", "being",
])


def is_likely_noun(word: str) -> bool:
    """Return True if *word* passes the noun heuristics.

    Case is part of the signal, so *word* must be the token as it appeared in
    the text, not a lowercased copy.

    Examples:
        >>> is_likely_noun("information")
        True
        >>> is_likely_noun("London")
        True
        >>> is_likely_noun("quickly")
        False
    """
    if len(word) < 3:
        return False

    lowered = word.lower()
    if lowered.endswith(_NOUN_SUFFIXES):
        return True
    if word[0].isupper():
        return True
    return lowered in _COMMON_NOUNS


class KeywordExtractor:
    """Ranks noun-like words of a text by frequency.

    Stateless apart from its stop-word list, so a single instance can be
    shared between concurrent pipeline tasks.
    """

    def __init__(self, stop_words: frozenset[str] = STOP_WORDS) -> None:
        self.stop_words = stop_words

    def extract_keywords(self, text: str, top_n: int) -> list[str]:
        """Return up to *top_n* keywords, most frequent first.

        Ties are broken alphabetically. Never raises: empty text, text made of
        stop words only, or a non-positive *top_n* all give ``[]``.

        Args:
            text: The text to scan.
            top_n: Maximum number of keywords to return.

        Returns:
            Lowercased keywords ordered by descending count, then ascending word.
        """
        if top_n <= 0 or not text:
            return []

        counts: Counter[str] = Counter()
        for noun in self._extract_nouns(text):
            word = noun.lower()
            if word not in self.stop_words and len(word) > 2:
                counts[word] += 1

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [word for word, _ in ranked[:top_n]]

    def _extract_nouns(self, text: str) -> list[str]:
        return [word for word in _WORD_RE.findall(text) if is_likely_noun(word)]
