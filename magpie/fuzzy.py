"""Fuzzy name matching with normalized Levenshtein similarity."""

from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

T = TypeVar("T")

# Similarity below this counts as no match
FUZZY_THRESHOLD = 0.5


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str, threshold: float = FUZZY_THRESHOLD) -> float:
    """Normalized similarity in [0, 1] of two strings, ignoring case.

    Computed as ``(max_len - distance) / max_len``. Scores below
    ``threshold`` are reported as 0.
    """
    a, b = a.lower(), b.lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    score = (longest - levenshtein(a, b)) / longest
    return score if score >= threshold else 0.0


@dataclass(frozen=True)
class FuzzyResult(Generic[T]):
    rank: float
    item: T


def fuzzy_rank(
    query: str,
    candidates: Iterable[T],
    threshold: float = FUZZY_THRESHOLD,
    key: Callable[[T], str] = str,
) -> list[FuzzyResult[T]]:
    """All candidates with a positive rank, best first.

    Candidates of equal rank keep their input order.
    """
    if not query:
        return []
    results = []
    for candidate in candidates:
        rank = similarity(key(candidate), query, threshold)
        if rank > 0:
            results.append(FuzzyResult(rank, candidate))
    results.sort(key=lambda result: result.rank, reverse=True)
    return results


def fuzzy_best(
    query: str,
    candidates: Iterable[T],
    threshold: float = FUZZY_THRESHOLD,
    key: Callable[[T], str] = str,
) -> FuzzyResult[T] | None:
    """Best matching candidate, or None when nothing reaches the threshold.

    On a tie the earliest candidate wins.

    Example:
        fuzzy_best("stoat", set.cards, key=lambda card: card.name)
    """
    if not query:
        return None
    best: FuzzyResult[T] | None = None
    for candidate in candidates:
        rank = similarity(key(candidate), query, threshold)
        if rank > 0 and (best is None or rank > best.rank):
            best = FuzzyResult(rank, candidate)
    return best
