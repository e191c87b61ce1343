"""Typo-tolerant scoring for FUZZY mode searches."""

from __future__ import annotations

from typing import Final

from nodekb.domain.models import NodeSummary

DEFAULT_FUZZY_MIN_SCORE: Final[int] = 200


def levenshtein(left: str, right: str) -> int:
    """Classic edit distance (insert, delete, substitute; unit costs)."""

    if left == right:
        return 0
    if len(left) < len(right):
        left, right = right, left
    if not right:
        return len(left)

    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            if left_char == right_char:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def fuzzy_score(node: NodeSummary, query: str) -> float:
    """Score in 0..1000 driven by the best edit distance across name, type and words."""

    needle = query.strip().casefold()
    if not needle:
        return 0.0
    name = node.display_name.casefold()
    clean_type = node.clean_type.casefold()
    if name == needle or clean_type == needle:
        return 1000.0

    words = name.split() or [name]
    name_distance = levenshtein(needle, name)
    type_distance = levenshtein(needle, clean_type)
    word_distances = [(levenshtein(needle, word), word) for word in words]
    word_distance, closest_word = min(word_distances, key=lambda item: item[0])

    best = min(name_distance, type_distance, word_distance)
    if word_distance == best:
        matched_length = max(len(needle), len(closest_word))
    elif type_distance == best:
        matched_length = max(len(needle), len(clean_type))
    else:
        matched_length = max(len(needle), len(name))
    similarity = 1 - best / matched_length

    if needle in name or needle in clean_type:
        return 800 + similarity * 100
    if any(word.startswith(needle) for word in words) or clean_type.startswith(needle):
        return 700 + similarity * 100
    if best <= 2:
        return 500 + (2 - best) * 100 + similarity * 50
    if best <= 3 and len(needle) >= 4:
        return 400 + (3 - best) * 50 + similarity * 50
    return similarity * 300


__all__ = ["DEFAULT_FUZZY_MIN_SCORE", "fuzzy_score", "levenshtein"]
