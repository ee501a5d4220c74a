"""N-gram overlap similarity used to reject near-duplicate chatlogs."""

import math
import re
from collections.abc import Iterable

from .constants import NGRAM_WEIGHTS

_SPEAKER_LABELS = re.compile(r"agent:|customer:", re.IGNORECASE)
_NOISE = re.compile(r"[\[\]():\d]")


def _tokenize(text: str) -> list[str]:
    # Drop speaker labels, timestamps and brackets so only the wording counts
    cleaned = _SPEAKER_LABELS.sub("", text.lower())
    cleaned = _NOISE.sub("", cleaned)
    return cleaned.split()


def _ngrams(tokens: list[str], n: int) -> set[tuple[str, ...]]:
    return {tuple(tokens[i : i + n]) for i in range(len(tokens) - n + 1)}


def _ngram_overlap(tokens_a: list[str], tokens_b: list[str], n: int) -> float:
    if len(tokens_a) < n or len(tokens_b) < n:
        return 0.0
    grams_a = _ngrams(tokens_a, n)
    grams_b = _ngrams(tokens_b, n)
    return len(grams_a & grams_b) / max(len(grams_a), len(grams_b))


def similarity_score(text_a: str, text_b: str) -> float:
    """Score how closely two transcripts resemble each other.

    A BLEU-style measure: the distinct 1- to 4-grams of both texts are compared,
    each order's overlap is divided by the larger n-gram set, and the four
    overlaps are combined with weights 0.4, 0.3, 0.2 and 0.1.

    Args:
        text_a: Candidate transcript.
        text_b: Reference transcript.

    Returns:
        float: Similarity in [0, 1]; 1 for identical wording, 0 if either is empty.
    """
    if not text_a or not text_b:
        return 0.0

    tokens_a = _tokenize(text_a)
    tokens_b = _tokenize(text_b)

    score = math.fsum(
        weight * _ngram_overlap(tokens_a, tokens_b, n)
        for n, weight in enumerate(NGRAM_WEIGHTS, start=1)
    )
    return min(1.0, max(0.0, score))


def find_duplicate(
    candidate: str, accepted: Iterable[str], threshold: float
) -> float | None:
    """Return the first similarity score above ``threshold``, or None if unique."""
    for existing in accepted:
        score = similarity_score(candidate, existing)
        if score > threshold:
            return score
    return None
