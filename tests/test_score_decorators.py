from datetime import datetime, timedelta

import pytest

from assessments.services import score_decorators
from assessments.services.evaluation import EvaluationResult, ExamPolicy, GradingQuestion, GradingResponse
from assessments.services.score_decorators import (
    DecoratorContext,
    apply_decorators,
    badges,
    detailed_stats,
    streak_bonus,
    time_bonus,
    time_penalty,
)

T0 = datetime(2026, 1, 1, 9, 0)
POLICY = ExamPolicy(evaluation_type="multiple_choice", passing_score=50, duration_minutes=60)


def result(score=50.0, max_score=100.0, passed=True):
    return EvaluationResult(
        score=score, max_score=max_score, percentage=score / max_score * 100, passed=passed,
        feedback="Done.", details={"correct_answers": 1},
    )


def context(minutes=None, responses=(), questions=()):
    return DecoratorContext(
        policy=POLICY,
        time_spent_seconds=None if minutes is None else int(minutes * 60),
        responses=tuple(responses),
        questions=tuple(questions),
    )


def streak(*outcomes):
    return [
        GradingResponse(question_id=i, is_correct=ok, selected_option_id=i,
                        answered_at=T0 + timedelta(minutes=i), time_spent=10 * (i + 1))
        for i, ok in enumerate(outcomes)
    ]


def test_time_bonus_for_quick_finish():
    # 15 of 60 minutes: 25% used, bonus (75 - 25) / 10 = 5% of max_score
    decorated = time_bonus(result(), context(minutes=15))
    assert decorated.score == 55
    assert decorated.percentage == 55
    assert decorated.details["time_bonus"] == 5
    assert "Time bonus" in decorated.feedback


def test_no_time_bonus_when_most_of_the_time_was_used():
    original = result()
    assert time_bonus(original, context(minutes=45)) is original


def test_time_penalty_is_capped():
    # 30 minutes overtime is 50% of the duration, capped at 20%
    decorated = time_penalty(result(), context(minutes=90))
    assert decorated.score == 30
    assert decorated.details["time_penalty"] == 20


def test_time_penalty_proportional_to_overtime():
    decorated = time_penalty(result(), context(minutes=66))
    assert decorated.score == pytest.approx(40)


def test_time_decorators_need_a_duration():
    original = result()
    assert time_penalty(original, context()) is original


def test_streak_bonus():
    decorated = streak_bonus(result(), context(responses=streak(True, True, True, True, False, True)))
    # +0.5 at three in a row, +1.0 at four
    assert decorated.score == 51.5
    assert decorated.details["max_streak"] == 4


def test_short_streaks_earn_nothing():
    original = result()
    assert streak_bonus(original, context(responses=streak(True, True, False, True, True))) is original


def test_badges():
    decorated = badges(result(score=100), context())
    assert decorated.details["badges"] == ["perfection", "excellence"]

    decorated = badges(result(score=80), context())
    assert decorated.details["badges"] == ["very_good"]


def test_detailed_stats():
    responses = streak(True, False)
    questions = [GradingQuestion(id=0, difficulty="beginner"), GradingQuestion(id=1, difficulty="expert")]
    decorated = detailed_stats(result(), context(responses=responses, questions=questions))

    assert decorated.details["performance_by_difficulty"] == {
        "beginner": {"correct": 1, "total": 1},
        "expert": {"correct": 0, "total": 1},
    }
    assert decorated.details["fastest_question"] == 10
    assert decorated.details["slowest_question"] == 20
    assert decorated.details["avg_time_per_question"] == 15


def test_decorators_do_not_mutate_their_input():
    original = result()
    time_bonus(original, context(minutes=10))
    assert original.score == 50
    assert "time_bonus" not in original.details


def test_canonical_order_regardless_of_declared_order():
    declared_badges_first = apply_decorators(result(), ["badges", "time_bonus"], context(minutes=6))
    declared_time_first = apply_decorators(result(), ["time_bonus", "badges"], context(minutes=6))

    assert declared_badges_first == declared_time_first
    # badges ran after the bonus, so it saw it
    assert "lightning" in declared_badges_first.details["badges"]


def test_unknown_decorator_is_ignored():
    original = result()
    assert apply_decorators(original, ["confetti"], context()) == original


def test_failing_decorator_is_skipped(monkeypatch):
    def explode(result, context):
        raise RuntimeError("boom")

    monkeypatch.setitem(score_decorators.DECORATORS, "time_bonus", explode)
    decorated = apply_decorators(result(), ["time_bonus", "streak_bonus"], context(responses=streak(True, True, True)))

    assert decorated.score == 50.5
    assert "time_bonus" not in decorated.details
