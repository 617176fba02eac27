"""
Exercise/reference detector

Finds labels such as "Exercise 2.3" or "Example 4" in reference material so
they can be offered as mandatory exercises.
"""
import logging
import re
from typing import Iterable, List

logger = logging.getLogger(__name__)

MAX_MATCHES_PER_PATTERN = 5

EXERCISE_PATTERNS = [
    re.compile(r"\bExercise\s+\d+(?:\.\d+)?", re.IGNORECASE),
    re.compile(r"\bExample\s+\d+(?:\.\d+)?", re.IGNORECASE),
    re.compile(r"\bProblem\s+\d+(?:\.\d+)?", re.IGNORECASE),
    re.compile(r"\bQuestion\s+\d+(?:\.\d+)?", re.IGNORECASE),
]


def detect_exercises(text: str) -> List[str]:
    """
    Detect exercise/example/problem/question labels in text

    Each pattern contributes at most five matches. Duplicates are removed
    with an exact (case-sensitive) comparison, keeping first-seen order, so
    "Exercise 1" and "EXERCISE 1" are both kept.
    """
    if not text:
        return []

    found: List[str] = []
    for pattern in EXERCISE_PATTERNS:
        matches = [match.group(0) for match in pattern.finditer(text)]
        found.extend(matches[:MAX_MATCHES_PER_PATTERN])

    exercises = merge_exercises(found)
    logger.info(f"Detected {len(exercises)} exercises/examples")
    return exercises


def merge_exercises(*groups: Iterable[str]) -> List[str]:
    """Union several exercise lists, exact dedupe, first-seen order"""
    merged: List[str] = []
    seen = set()
    for group in groups:
        for label in group:
            label = " ".join(label.split())
            if label not in seen:
                seen.add(label)
                merged.append(label)
    return merged
