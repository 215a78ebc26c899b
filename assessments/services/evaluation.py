# assessments/services/evaluation.py
"""
Scoring strategies.

Each strategy is a plain function ``(policy, responses, questions) ->
EvaluationResult`` registered under an ``Exam.EvaluationType`` value. They
work on frozen snapshots of the question bank and never touch the database,
so one attempt's grading cannot observe a half-edited bank and attempts can
be graded in parallel.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from exams.models import Exam, Question

from ..conf import get_setting

DIFFICULTY_MULTIPLIERS = {
    Question.Difficulty.BEGINNER.value: 1.0,
    Question.Difficulty.INTERMEDIATE.value: 1.2,
    Question.Difficulty.ADVANCED.value: 1.5,
    Question.Difficulty.EXPERT.value: 2.0,
}

STATUS_GRADED = "graded"
STATUS_UNANSWERED = "unanswered"
STATUS_PENDING_REVIEW = "pending_review"


# =========================================================
# Snapshots
# =========================================================

@dataclass(frozen=True)
class KeywordRule:
    word: str
    weight: float = 10
    required: bool = False
    synonyms: Tuple[str, ...] = ()

    def forms(self, case_sensitive: bool) -> List[str]:
        forms = [self.word, *self.synonyms]
        return forms if case_sensitive else [f.lower() for f in forms]


@dataclass(frozen=True)
class GradingQuestion:
    id: int
    points: float = 1
    difficulty: str = Question.Difficulty.INTERMEDIATE
    question_type: str = Question.QuestionType.MCQ
    model_answer: str = ""
    grading_mode: str = Question.GradingMode.HYBRID
    semantic_threshold: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    case_sensitive: bool = False
    keywords: Tuple[KeywordRule, ...] = ()

    @property
    def value(self) -> float:
        # A zero-point question still counts as one point
        return self.points or 1

    @classmethod
    def from_model(cls, question: Question) -> "GradingQuestion":
        return cls(
            id=question.id,
            points=question.points,
            difficulty=question.difficulty,
            question_type=question.question_type,
            model_answer=question.model_answer or "",
            grading_mode=question.grading_mode,
            semantic_threshold=question.semantic_threshold,
            min_length=question.min_length,
            max_length=question.max_length,
            case_sensitive=question.case_sensitive,
            keywords=tuple(
                KeywordRule(
                    word=kw.word,
                    weight=kw.weight,
                    required=kw.required,
                    synonyms=tuple(kw.synonyms or ()),
                )
                for kw in question.keywords.all()
            ),
        )


@dataclass(frozen=True)
class GradingResponse:
    question_id: int
    is_correct: bool = False
    selected_option_id: Optional[int] = None
    text_answer: str = ""
    answered_at: Optional[datetime] = None
    time_spent: int = 0

    @property
    def answered(self) -> bool:
        return self.selected_option_id is not None or bool(self.text_answer.strip())

    @classmethod
    def from_model(cls, response) -> "GradingResponse":
        return cls(
            question_id=response.question_id,
            is_correct=response.is_correct,
            selected_option_id=response.selected_option_id,
            text_answer=response.text_answer or "",
            answered_at=response.answered_at,
            time_spent=response.time_spent or 0,
        )


@dataclass(frozen=True)
class ExamPolicy:
    evaluation_type: str
    passing_score: float
    duration_minutes: Optional[int] = None

    @classmethod
    def from_model(cls, exam: Exam) -> "ExamPolicy":
        return cls(
            evaluation_type=exam.evaluation_type,
            passing_score=exam.pass_mark_percentage,
            duration_minutes=exam.duration_minutes,
        )


@dataclass
class EvaluationResult:
    score: float
    max_score: float
    percentage: float
    passed: bool
    feedback: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "passed": self.passed,
            "feedback": self.feedback,
            "details": self.details,
        }


# =========================================================
# Helpers
# =========================================================

def _round2(value: float) -> float:
    return round(value, 2)


def compute_percentage(score: float, max_score: float) -> float:
    return (score / max_score) * 100 if max_score > 0 else 0.0


def _finalize(policy: ExamPolicy, score: float, max_score: float, feedback: Callable[[bool], str],
              details: Dict[str, Any]) -> EvaluationResult:
    percentage = compute_percentage(score, max_score)
    passed = percentage >= policy.passing_score
    return EvaluationResult(
        score=_round2(score),
        max_score=max_score,
        percentage=_round2(percentage),
        passed=passed,
        feedback=feedback(passed),
        details=details,
    )


def _index_responses(responses: Iterable[GradingResponse]) -> Dict[int, GradingResponse]:
    return {r.question_id: r for r in responses}


# =========================================================
# Strategies
# =========================================================

def evaluate_multiple_choice(policy: ExamPolicy, responses: Sequence[GradingResponse],
                             questions: Sequence[GradingQuestion]) -> EvaluationResult:
    """Exact match: full points for each correct response."""
    by_question = _index_responses(responses)
    score = 0.0
    max_score = 0.0
    correct = 0

    for question in questions:
        max_score += question.value
        response = by_question.get(question.id)
        if response and response.is_correct:
            score += question.value
            correct += 1

    return _finalize(
        policy, score, max_score,
        lambda passed: "Congratulations! You passed." if passed else "Keep up the effort.",
        {"correct_answers": correct, "total_questions": len(questions)},
    )


def evaluate_true_false(policy: ExamPolicy, responses: Sequence[GradingResponse],
                        questions: Sequence[GradingQuestion]) -> EvaluationResult:
    """Binary: one point per question whatever its declared value."""
    by_question = _index_responses(responses)
    score = sum(1 for q in questions if by_question.get(q.id) and by_question[q.id].is_correct)
    max_score = len(questions)

    return _finalize(
        policy, float(score), float(max_score),
        lambda passed: "Excellent work!" if passed else "Review the basic concepts.",
        {"correct_answers": score, "total_questions": max_score},
    )


def evaluate_adaptive(policy: ExamPolicy, responses: Sequence[GradingResponse],
                      questions: Sequence[GradingQuestion]) -> EvaluationResult:
    """
    Correct answers earn ``points * difficulty multiplier`` while max_score
    only accumulates base points, so the percentage can exceed 100.
    """
    bank = {q.id: q for q in questions}
    ordered = sorted(responses, key=lambda r: (r.answered_at is None, r.answered_at or datetime.min))

    score = 0.0
    max_score = 0.0
    bonus = 0.0
    correct = 0

    for response in ordered:
        question = bank.get(response.question_id)
        if question is None:
            continue
        base = question.value
        max_score += base
        if response.is_correct:
            earned = base * DIFFICULTY_MULTIPLIERS.get(question.difficulty, 1.0)
            score += earned
            bonus += earned - base
            correct += 1

    return _finalize(
        policy, score, max_score,
        lambda passed: (
            f"Excellent! Difficulty bonus: +{round(bonus)} points"
            if passed else "Keep practising the harder questions."
        ),
        {
            "correct_answers": correct,
            "total_questions": len(questions),
            "difficulty_bonus": _round2(bonus),
        },
    )


def evaluate_exam_simulation(policy: ExamPolicy, responses: Sequence[GradingResponse],
                             questions: Sequence[GradingQuestion]) -> EvaluationResult:
    """Full points when correct; a wrong answer costs a share of its points. Blank answers are free."""
    ratio = get_setting("SIMULATION_PENALTY_RATIO")
    by_question = _index_responses(responses)

    score = 0.0
    max_score = 0.0
    penalties = 0.0
    correct = 0
    incorrect = 0

    for question in questions:
        max_score += question.value
        response = by_question.get(question.id)
        if response is None or not response.answered:
            continue
        if response.is_correct:
            score += question.value
            correct += 1
        else:
            penalty = question.value * ratio
            penalties += penalty
            incorrect += 1
            score = max(0.0, score - penalty)

    return _finalize(
        policy, score, max_score,
        lambda passed: (
            "You are ready for the official exam!"
            if passed else f"Penalties: -{_round2(penalties)} points. Review your mistakes."
        ),
        {
            "correct_answers": correct,
            "incorrect_answers": incorrect,
            "total_questions": len(questions),
            "penalties": _round2(penalties),
        },
    )


# --- Open questions ---

_WORD_SPLIT = re.compile(r"\s+")


def lexical_similarity(answer: str, model_answer: str) -> Optional[float]:
    """
    Jaccard overlap of the words longer than two characters.

    Returns ``None`` when the model answer has no usable words. Stand-in for
    an embedding model: any callable with this signature returning 0..1 can
    be passed to ``evaluate_open_questions``.
    """
    answer_words = {w for w in _WORD_SPLIT.split(answer.lower()) if len(w) > 2}
    model_words = {w for w in _WORD_SPLIT.split(model_answer.lower()) if len(w) > 2}
    if not model_words:
        return None
    union = answer_words | model_words
    return len(answer_words & model_words) / len(union) if union else 0.0


def keyword_matches(answer: str, question: GradingQuestion) -> List[Dict[str, Any]]:
    text = answer if question.case_sensitive else answer.lower()
    default_weight = get_setting("DEFAULT_KEYWORD_WEIGHT")
    return [
        {
            "keyword": kw.word,
            "found": any(form in text for form in kw.forms(question.case_sensitive)),
            "weight": kw.weight or default_weight,
            "required": kw.required,
        }
        for kw in question.keywords
    ]


def grade_by_keywords(answer: str, question: GradingQuestion) -> float:
    """Proportional credit by matched weight; a missing required keyword zeroes the question."""
    matches = keyword_matches(answer, question)
    if not matches:
        return 0.0
    if any(m["required"] and not m["found"] for m in matches):
        return 0.0
    total = sum(m["weight"] for m in matches)
    earned = sum(m["weight"] for m in matches if m["found"])
    return (earned / total) * question.value if total > 0 else 0.0


def grade_by_similarity(answer: str, question: GradingQuestion,
                        similarity: Callable[[str, str], Optional[float]]) -> Tuple[float, Optional[float]]:
    """Returns (earned points, similarity). No model answer means full credit."""
    max_points = question.value
    if not question.model_answer.strip():
        return max_points, None
    value = similarity(answer, question.model_answer)
    if value is None:
        return max_points, None

    threshold = question.semantic_threshold
    if threshold is None:
        threshold = get_setting("DEFAULT_SEMANTIC_THRESHOLD")
    if threshold <= 0 or value >= threshold:
        return max_points, value
    if value >= threshold * 0.5:
        return max_points * (value / threshold), value
    return 0.0, value


def grade_open_question(question: GradingQuestion, response: Optional[GradingResponse],
                        similarity: Callable[[str, str], Optional[float]] = lexical_similarity) -> Dict[str, Any]:
    points = question.value
    text = (response.text_answer if response else "").strip()
    if not text:
        return {
            "question_id": question.id,
            "earned": 0.0,
            "max_points": points,
            "status": STATUS_UNANSWERED,
            "is_correct": False,
            "details": {},
        }

    mode = question.grading_mode
    details: Dict[str, Any] = {"mode": mode}
    status = STATUS_GRADED

    if question.min_length and len(text) < question.min_length:
        details["length_error"] = f"Answer too short (min: {question.min_length} characters)"
        earned = 0.0
    elif question.max_length and len(text) > question.max_length:
        details["length_error"] = f"Answer too long (max: {question.max_length} characters)"
        earned = points * 0.5
    elif mode == Question.GradingMode.KEYWORDS:
        earned = grade_by_keywords(text, question)
        details["keyword_results"] = keyword_matches(text, question)
    elif mode == Question.GradingMode.HYBRID:
        keyword_score = grade_by_keywords(text, question)
        semantic_score, value = grade_by_similarity(text, question, similarity)
        if question.keywords:
            earned = semantic_score * 0.6 + keyword_score * 0.4
        else:
            earned = semantic_score
        details.update({
            "keyword_score": _round2(keyword_score),
            "semantic_score": _round2(semantic_score),
            "similarity": value,
            "keyword_results": keyword_matches(text, question),
        })
    elif mode == Question.GradingMode.MANUAL:
        earned = 0.0
        status = STATUS_PENDING_REVIEW
        details["pending_review"] = True
    else:
        # semantic, and any unrecognised mode
        earned, value = grade_by_similarity(text, question, similarity)
        details["similarity"] = value

    return {
        "question_id": question.id,
        "earned": _round2(earned),
        "max_points": points,
        "status": status,
        "is_correct": status == STATUS_GRADED and earned >= points * 0.5,
        "details": details,
    }


def evaluate_open_questions(policy: ExamPolicy, responses: Sequence[GradingResponse],
                            questions: Sequence[GradingQuestion],
                            similarity: Callable[[str, str], Optional[float]] = lexical_similarity) -> EvaluationResult:
    """
    Hybrid open-text grading. Any question left for manual review blocks a
    pass for the whole attempt.
    """
    by_question = _index_responses(responses)
    results = [grade_open_question(q, by_question.get(q.id), similarity) for q in questions]

    score = sum(r["earned"] for r in results)
    max_score = float(sum(q.value for q in questions))
    pending = sum(1 for r in results if r["status"] == STATUS_PENDING_REVIEW)

    result = _finalize(
        policy, score, max_score,
        lambda passed: (
            "Great work on the open questions!" if passed else "Keep developing your answers."
        ),
        {
            "question_results": results,
            "pending_manual_review": pending > 0,
            "auto_graded_count": sum(1 for r in results if r["status"] == STATUS_GRADED),
            "pending_review_count": pending,
        },
    )
    if pending:
        result.passed = False
        result.feedback = "Some questions are awaiting manual grading."
    return result


# =========================================================
# Selection
# =========================================================

STRATEGIES: Dict[str, Callable[..., EvaluationResult]] = {
    Exam.EvaluationType.MULTIPLE_CHOICE.value: evaluate_multiple_choice,
    Exam.EvaluationType.TRUE_FALSE.value: evaluate_true_false,
    Exam.EvaluationType.ADAPTIVE.value: evaluate_adaptive,
    Exam.EvaluationType.EXAM_SIMULATION.value: evaluate_exam_simulation,
    Exam.EvaluationType.OPEN_QUESTION.value: evaluate_open_questions,
}


def get_strategy(evaluation_type: str) -> Callable[..., EvaluationResult]:
    # Unknown types still grade, as multiple choice
    return STRATEGIES.get(evaluation_type, evaluate_multiple_choice)


def evaluate(policy: ExamPolicy, responses: Sequence[GradingResponse],
             questions: Sequence[GradingQuestion]) -> EvaluationResult:
    return get_strategy(policy.evaluation_type)(policy, responses, questions)
