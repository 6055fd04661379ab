"""
Scoring Service

Two pure functions applied to every graded attempt:

- derive_quality: maps correctness, speed and hint usage onto the SM-2
  0-5 recall-quality scale
- calculate_points: points earned from difficulty, speed and hints

Quality ratings:
  5 = correct, no hints, finished in at most half the estimated time
  4 = correct and quick with a hint, or correct within the estimate
  3 = correct but slow, or correct with 2+ hints
  1 = incorrect
  0 = incorrect with 2+ hints
"""

from typing import Optional


def time_ratio(time_taken_seconds: float, estimated_time_seconds: Optional[int]) -> Optional[float]:
    """time_taken / estimated, or None when there is no usable estimate."""
    if not estimated_time_seconds or estimated_time_seconds <= 0:
        return None
    return time_taken_seconds / estimated_time_seconds


def derive_quality(
    is_correct: bool,
    time_taken_seconds: float,
    estimated_time_seconds: Optional[int],
    hints_used: int,
) -> int:
    """
    Calculate SM-2 quality rating (0-5) for an attempt.

    Args:
        is_correct: Whether the answer was correct
        time_taken_seconds: Time the user spent on the question
        estimated_time_seconds: Question's expected solve time, if known
        hints_used: Number of hints revealed before answering

    Returns:
        Quality rating 0-5
    """
    if not is_correct:
        return 0 if hints_used >= 2 else 1

    if hints_used >= 2:
        return 3

    ratio = time_ratio(time_taken_seconds, estimated_time_seconds)
    if ratio is None:
        return 4 if hints_used == 0 else 3

    if ratio <= 0.5:
        return 5 if hints_used == 0 else 4
    if ratio <= 1.0:
        return 4 if hints_used == 0 else 3
    return 3


def calculate_points(
    is_correct: bool,
    difficulty_score: float,
    time_taken_seconds: float,
    estimated_time_seconds: Optional[int],
    hints_used: int,
) -> int:
    """
    Points for an attempt. Incorrect answers always earn 0; the result is
    never negative.

    base = floor(difficulty * 10)
    time bonus = base * (1 - ratio) * 0.2 when faster than the estimate
    hint penalty = hints * base // 10
    """
    if not is_correct:
        return 0

    base = int(difficulty_score * 10)

    bonus = 0
    ratio = time_ratio(time_taken_seconds, estimated_time_seconds)
    if ratio is not None and ratio < 1:
        bonus = int(base * (1 - ratio) * 0.2)

    penalty = hints_used * base // 10

    return max(0, base + bonus - penalty)
