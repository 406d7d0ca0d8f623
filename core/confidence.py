"""Heuristic confidence scoring for an analysis.

The score is a rough quality estimate in ``[0, 1]`` built from additive bonuses
on top of a 0.5 base. It is not a calibrated probability.
"""

from __future__ import annotations

BASE_CONFIDENCE = 0.5


def calculate_confidence(text: str, summary: str, topics: list[str]) -> float:
    """Score how trustworthy an analysis of *text* looks.

    Bonuses:

    * +0.2 if the text has more than 50 words, else +0.1 above 20 words
    * +0.1 if the summary has between 6 and 49 words
    * +0.1 if at least three topics were found
    * +0.1 if the summary/text word ratio lies strictly between 0.05 and 0.3

    Args:
        text: The analysed input text.
        summary: The summary produced for it.
        topics: Topics assigned to it.

    Returns:
        0.0 if *text* or *summary* is empty, otherwise a value in ``[0.5, 1.0]``.

    Examples:
        >>> calculate_confidence("", "", [])
        0.0
    """
    if not text or not summary:
        return 0.0

    text_words = len(text.split())
    summary_words = len(summary.split())

    score = BASE_CONFIDENCE

    if text_words > 50:
        score += 0.2
    elif text_words > 20:
        score += 0.1

    if 5 < summary_words < 50:
        score += 0.1

    if len(topics) >= 3:
        score += 0.1

    if text_words:
        ratio = summary_words / text_words
        if 0.05 < ratio < 0.3:
            score += 0.1

    return min(score, 1.0)
