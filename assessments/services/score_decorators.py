# assessments/services/score_decorators.py
"""
Post-evaluation enrichment stages.

A decorator takes an ``EvaluationResult`` plus the grading context and
returns a new result; the input is never modified. Stages always run in
DECORATOR_ORDER so that a given configuration produces the same result
whatever order it was declared in.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional, Sequence

from .evaluation import (
    EvaluationResult,
    ExamPolicy,
    GradingQuestion,
    GradingResponse,
    compute_percentage,
)

logger = logging.getLogger(__name__)

TIME_BONUS = "time_bonus"
TIME_PENALTY = "time_penalty"
STREAK_BONUS = "streak_bonus"
BADGES = "badges"
DETAILED_STATS = "detailed_stats"

DECORATOR_ORDER = (TIME_BONUS, TIME_PENALTY, STREAK_BONUS, BADGES, DETAILED_STATS)

# Finishing under this share of the allotted time earns a bonus
TIME_BONUS_THRESHOLD = 75
MAX_TIME_PENALTY_PERCENT = 20
STREAK_START = 3
STREAK_STEP = 0.5


@dataclass(frozen=True)
class DecoratorContext:
    policy: ExamPolicy
    time_spent_seconds: Optional[int] = None
    responses: Sequence[GradingResponse] = ()
    questions: Sequence[GradingQuestion] = ()

    @property
    def time_spent_minutes(self) -> Optional[float]:
        if self.time_spent_seconds is None:
            return None
        return self.time_spent_seconds / 60


def _with_score(result: EvaluationResult, score: float, note: str, **details) -> EvaluationResult:
    return replace(
        result,
        score=round(score, 2),
        percentage=round(compute_percentage(score, result.max_score), 2),
        feedback=f"{result.feedback} {note}".strip(),
        details={**result.details, **details},
    )


def _in_answer_order(responses: Iterable[GradingResponse]):
    return sorted(responses, key=lambda r: (r.answered_at is None, r.answered_at or datetime.min))


def time_bonus(result: EvaluationResult, context: DecoratorContext) -> EvaluationResult:
    """Up to 7.5% of max_score for finishing well inside the allotted time."""
    minutes = context.time_spent_minutes
    duration = context.policy.duration_minutes
    if not minutes or not duration:
        return result

    used = minutes / duration * 100
    if used >= TIME_BONUS_THRESHOLD:
        return result

    bonus = result.max_score * ((TIME_BONUS_THRESHOLD - used) / 10) / 100
    return _with_score(
        result,
        result.score + bonus,
        f"Time bonus: +{round(bonus)} points!",
        time_bonus=round(bonus, 2),
        time_spent=context.time_spent_seconds,
        time_saved=round(duration - minutes, 2),
    )


def time_penalty(result: EvaluationResult, context: DecoratorContext) -> EvaluationResult:
    """Overtime costs its share of the duration, capped at 20% of max_score."""
    minutes = context.time_spent_minutes
    duration = context.policy.duration_minutes
    if not minutes or not duration:
        return result

    overtime = minutes - duration
    if overtime <= 0:
        return result

    penalty_percent = min(overtime / duration * 100, MAX_TIME_PENALTY_PERCENT)
    penalty = result.max_score * penalty_percent / 100
    return _with_score(
        result,
        max(0.0, result.score - penalty),
        f"Time penalty: -{round(penalty)} points.",
        time_penalty=round(penalty, 2),
        overtime=round(overtime, 2),
    )


def streak_bonus(result: EvaluationResult, context: DecoratorContext) -> EvaluationResult:
    if not context.responses:
        return result

    current = 0
    best = 0
    bonus = 0.0
    for response in _in_answer_order(context.responses):
        if response.is_correct:
            current += 1
            best = max(best, current)
            if current >= STREAK_START:
                bonus += STREAK_STEP * (current - STREAK_START + 1)
        else:
            current = 0

    if bonus <= 0:
        return result
    return _with_score(
        result,
        result.score + bonus,
        f"Streak bonus: +{round(bonus)} points!",
        streak_bonus=round(bonus, 2),
        max_streak=best,
    )


def badges(result: EvaluationResult, context: DecoratorContext) -> EvaluationResult:
    earned = []
    if result.percentage == 100:
        earned.append("perfection")
    if result.details.get("time_bonus"):
        earned.append("lightning")
    if result.details.get("max_streak", 0) >= 5:
        earned.append("on_fire")
    if result.passed and result.percentage >= 90:
        earned.append("excellence")
    elif result.passed and result.percentage >= 75:
        earned.append("very_good")

    if not earned:
        return result
    return replace(
        result,
        feedback=f"{result.feedback} Badges: {', '.join(earned)}".strip(),
        details={**result.details, "badges": earned},
    )


def detailed_stats(result: EvaluationResult, context: DecoratorContext) -> EvaluationResult:
    if not context.responses or not context.questions:
        return result

    times = [r.time_spent or 0 for r in context.responses]
    by_question = {r.question_id: r for r in context.responses}

    by_difficulty: Dict[str, Dict[str, int]] = {}
    for question in context.questions:
        bucket = by_difficulty.setdefault(question.difficulty or "intermediate", {"correct": 0, "total": 0})
        bucket["total"] += 1
        response = by_question.get(question.id)
        if response and response.is_correct:
            bucket["correct"] += 1

    return replace(
        result,
        details={
            **result.details,
            "avg_time_per_question": round(sum(times) / len(times)),
            "performance_by_difficulty": by_difficulty,
            "fastest_question": min(times),
            "slowest_question": max(times),
        },
    )


DECORATORS: Dict[str, Callable[[EvaluationResult, DecoratorContext], EvaluationResult]] = {
    TIME_BONUS: time_bonus,
    TIME_PENALTY: time_penalty,
    STREAK_BONUS: streak_bonus,
    BADGES: badges,
    DETAILED_STATS: detailed_stats,
}


def apply_decorators(result: EvaluationResult, names: Iterable[str], context: DecoratorContext) -> EvaluationResult:
    """
    Run the requested stages in canonical order. A failing stage is logged
    and skipped; the result from the previous stage carries on.
    """
    requested = set(names or ())
    for name in requested - set(DECORATOR_ORDER):
        logger.warning("Ignoring unknown score decorator %r", name)

    for name in DECORATOR_ORDER:
        if name not in requested:
            continue
        try:
            result = DECORATORS[name](result, context)
        except Exception:
            logger.exception("Score decorator %s failed; keeping previous result", name)
    return result
