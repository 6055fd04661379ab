"""
Difficulty Scorer

Authoring-time estimate of how hard a problem is, on a 0-100 scale,
from six weighted components:

    conceptual load       0.25  number of patterns involved
    algorithm complexity  0.20  asymptotic class of the intended solution
    implementation        0.15  description length, constraints, examples
    pattern recognition   0.20  how well-known the primary pattern is
    edge cases            0.10  keyword heuristics and large numeric bounds
    time pressure         0.10  official label, else the pattern

Also hosts the per-user view of a problem's difficulty and the
recalibration of the stored score from real attempt statistics.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from codedrill.exceptions import NotFoundError
from codedrill.models.models import Problem, ProblemTopic, Question, QuestionAttempt, UserSkill

logger = logging.getLogger(__name__)


COMPONENT_WEIGHTS = {
    "conceptual": 0.25,
    "algorithm": 0.20,
    "implementation": 0.15,
    "pattern": 0.20,
    "edge_cases": 0.10,
    "time_pressure": 0.10,
}

COMPLEXITY_SCORES = {
    "O(1)": 10.0,
    "O(log n)": 25.0,
    "O(n)": 35.0,
    "O(n log n)": 50.0,
    "O(n^2)": 65.0,
    "O(n^3)": 80.0,
    "O(2^n)": 90.0,
    "O(n!)": 95.0,
}

# Checked in order against the lowercased complexity string
COMPLEXITY_KEYWORDS = [
    (("factorial", "n!"), 95.0),
    (("exponential", "2^n"), 90.0),
    (("cubic", "n^3"), 80.0),
    (("quadratic", "n^2"), 65.0),
    (("linearithmic", "n log n"), 50.0),
    (("linear",), 35.0),
    (("logarithmic", "log n"), 25.0),
    (("constant",), 10.0),
]

PATTERN_RECOGNITION_SCORES = {
    # Easy to recognize
    "Array": 20.0,
    "String": 20.0,
    "Hash Table": 25.0,
    "Hash Map": 25.0,
    "Stack": 30.0,
    "Queue": 30.0,
    # Medium
    "Two Pointers": 35.0,
    "Binary Search": 35.0,
    "Linked List": 40.0,
    "Sliding Window": 40.0,
    "Tree": 45.0,
    "Binary Tree": 45.0,
    # Harder to spot
    "Heap": 55.0,
    "Graph": 60.0,
    "Bit Manipulation": 60.0,
    "Trie": 65.0,
    "Union Find": 65.0,
    "Dynamic Programming": 70.0,
    "Topological Sort": 70.0,
    "Backtracking": 75.0,
    # Advanced
    "KMP": 75.0,
    "Segment Tree": 80.0,
    "Fenwick Tree": 80.0,
    "Suffix Array": 85.0,
    "Manacher": 85.0,
}

EDGE_CASE_KEYWORDS = {
    "negative": 10.0,
    "zero": 5.0,
    "empty": 5.0,
    "duplicate": 10.0,
    "null": 8.0,
    "overflow": 15.0,
    "edge": 8.0,
    "special": 8.0,
    "distinct": 5.0,
    "unique": 5.0,
}

OFFICIAL_TIME_PRESSURE = {"Easy": 20.0, "Medium": 50.0, "Hard": 80.0}

PATTERN_TIME_PRESSURE = {
    "Array": 25.0,
    "Hash Table": 25.0,
    "Two Pointers": 35.0,
    "Binary Search": 35.0,
    "Sliding Window": 40.0,
    "Graph": 65.0,
    "Dynamic Programming": 75.0,
    "Backtracking": 80.0,
}

# Recalibration
MIN_ATTEMPTS_FOR_RECALIBRATION = 10
MAX_RECALIBRATION_SHIFT = 10.0


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def difficulty_tier(score: float) -> str:
    """Human-readable tier for a 0-100 score."""
    if score <= 20:
        return "Trivial"
    if score <= 35:
        return "Easy"
    if score <= 50:
        return "Medium-Easy"
    if score <= 65:
        return "Medium"
    if score <= 80:
        return "Hard"
    if score <= 95:
        return "Very Hard"
    return "Expert"


def difficulty_color(score: float) -> str:
    """Green / amber / red bucket for UI display."""
    if score <= 35:
        return "#22c55e"
    if score <= 65:
        return "#f59e0b"
    return "#ef4444"


@dataclass
class DifficultyComponents:
    conceptual: float
    algorithm: float
    implementation: float
    pattern: float
    edge_cases: float
    time_pressure: float

    def weighted_total(self) -> float:
        values = asdict(self)
        return clamp(sum(values[name] * weight for name, weight in COMPONENT_WEIGHTS.items()), 0.0, 100.0)


class DifficultyScorer:
    """Pure scoring of a Problem row; does not touch the database."""

    def score(self, problem: Problem) -> float:
        return self.components(problem).weighted_total()

    def components(self, problem: Problem) -> DifficultyComponents:
        return DifficultyComponents(
            conceptual=self.score_conceptual(problem),
            algorithm=self.score_algorithm(problem),
            implementation=self.score_implementation(problem),
            pattern=self.score_pattern_recognition(problem),
            edge_cases=self.score_edge_cases(problem),
            time_pressure=self.score_time_pressure(problem),
        )

    def score_conceptual(self, problem: Problem) -> float:
        count = len(problem.secondary_patterns or [])
        if problem.primary_pattern:
            count += 1

        if count == 0:
            return 30.0
        if count == 1:
            return 20.0
        if count == 2:
            return 40.0
        if count == 3:
            return 60.0
        return 80.0

    def score_algorithm(self, problem: Problem) -> float:
        if not problem.time_complexity:
            return 50.0

        complexity = problem.time_complexity.strip()
        if complexity in COMPLEXITY_SCORES:
            return COMPLEXITY_SCORES[complexity]

        lowered = complexity.lower()
        for needles, score in COMPLEXITY_KEYWORDS:
            if any(needle in lowered for needle in needles):
                return score
        return 50.0

    def score_implementation(self, problem: Problem) -> float:
        score = 30.0

        length = len(problem.description or "")
        if length > 800:
            score += 30.0
        elif length > 500:
            score += 20.0
        elif length > 300:
            score += 10.0

        score += len(problem.constraints or []) * 5.0

        if len(problem.examples or []) > 3:
            score += 10.0

        return clamp(score, 0.0, 100.0)

    def score_pattern_recognition(self, problem: Problem) -> float:
        if not problem.primary_pattern:
            return 60.0
        return PATTERN_RECOGNITION_SCORES.get(problem.primary_pattern, 50.0)

    def score_edge_cases(self, problem: Problem) -> float:
        constraints = problem.constraints or []
        score = len(constraints) * 10.0

        description = (problem.description or "").lower()
        constraint_text = " ".join(constraints).lower()

        for keyword, weight in EDGE_CASE_KEYWORDS.items():
            if keyword in description or keyword in constraint_text:
                score += weight

        if "10^9" in constraint_text or "10^5" in constraint_text:
            score += 10.0

        return clamp(score, 0.0, 100.0)

    def score_time_pressure(self, problem: Problem) -> float:
        if problem.official_difficulty in OFFICIAL_TIME_PRESSURE:
            return OFFICIAL_TIME_PRESSURE[problem.official_difficulty]
        if problem.primary_pattern in PATTERN_TIME_PRESSURE:
            return PATTERN_TIME_PRESSURE[problem.primary_pattern]
        return 50.0

    def describe(self, problem: Problem) -> Dict[str, Any]:
        """Score, tier, colour and component breakdown for one problem."""
        components = self.components(problem)
        score = components.weighted_total()
        return {
            "problem_id": problem.id,
            "score": round(score, 2),
            "tier": difficulty_tier(score),
            "color": difficulty_color(score),
            "components": asdict(components),
        }


def get_problem(db: Session, problem_id: str) -> Problem:
    problem = db.query(Problem).filter(Problem.id == problem_id).first()
    if problem is None:
        raise NotFoundError("problem", problem_id)
    return problem


def personalized_difficulty(db: Session, problem_id: str, user_id: str) -> float:
    """
    A problem's difficulty as seen by one user.

    Strong users (topic proficiency above 50) see it easier, weak users
    harder: base + (50 - avg_proficiency) * 0.6, clamped to 0-100. Users
    with no skill records in the problem's topics get the base score.
    """
    problem = get_problem(db, problem_id)

    topic_ids = db.query(ProblemTopic.topic_id).filter(ProblemTopic.problem_id == problem.id)
    avg_proficiency = db.query(func.avg(UserSkill.proficiency_level)).filter(
        UserSkill.user_id == user_id,
        UserSkill.topic_id.in_(topic_ids),
    ).scalar()
    avg_proficiency = float(avg_proficiency) if avg_proficiency is not None else 50.0

    return clamp(problem.difficulty_score + (50.0 - avg_proficiency) * 0.6, 0.0, 100.0)


def recalibration_step(success_rate: float) -> float:
    if success_rate > 0.80:
        return 5.0
    if success_rate > 0.60:
        return 2.0
    if success_rate < 0.30:
        return -5.0
    if success_rate < 0.45:
        return -2.0
    return 0.0


def recalibrate_difficulty(db: Session, problem_id: str) -> Dict[str, Any]:
    """
    Nudge a problem's stored difficulty toward what users actually experience.

    Needs at least 10 attempts across the problem's questions. The change
    is bounded to ±10 of the current score and the result stays in 0-100.

    Returns:
        Dict with attempt_count, success_rate, previous/new score and
        whether the score changed
    """
    problem = get_problem(db, problem_id)

    attempt_count, success_rate, avg_time = db.query(
        func.count(QuestionAttempt.id),
        func.coalesce(func.avg(case((QuestionAttempt.is_correct == True, 1.0), else_=0.0)), 0.0),  # noqa: E712
        func.coalesce(func.avg(QuestionAttempt.time_taken_seconds), 0.0),
    ).join(Question, Question.id == QuestionAttempt.question_id).filter(
        Question.problem_id == problem.id
    ).one()

    previous = problem.difficulty_score
    result = {
        "problem_id": problem.id,
        "attempt_count": attempt_count,
        "success_rate": round(float(success_rate), 3),
        "average_time_seconds": round(float(avg_time), 1),
        "previous_score": previous,
        "new_score": previous,
        "changed": False,
    }

    if attempt_count < MIN_ATTEMPTS_FOR_RECALIBRATION:
        return result

    adjusted = clamp(
        previous + recalibration_step(float(success_rate)),
        previous - MAX_RECALIBRATION_SHIFT,
        previous + MAX_RECALIBRATION_SHIFT,
    )
    adjusted = clamp(adjusted, 0.0, 100.0)

    if adjusted != previous:
        problem.difficulty_score = adjusted
        db.commit()
        logger.info(
            "Recalibrated problem %s difficulty %.1f -> %.1f (success rate %.2f over %d attempts)",
            problem.id, previous, adjusted, success_rate, attempt_count,
        )

    result["new_score"] = adjusted
    result["changed"] = adjusted != previous
    return result
