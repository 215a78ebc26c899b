# assessments/services/attempt_service.py
"""
Attempt lifecycle: start, resume, autosave, anti-cheat ingestion, submit.

Every terminal transition is a conditional UPDATE on ``status=STARTED``, so
when a submit and an anti-cheat abandonment race, exactly one of them wins
and the other sees "no longer in progress". Expiry is applied lazily
whenever an attempt is read or written.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from exams.models import Exam
from late_access.models import LateAccessCode
from late_access.services import LateAccessRegistry, can_manage_exam

from .. import events
from ..conf import get_setting
from ..exceptions import (
    AttemptAbandoned,
    AttemptLimitReached,
    AttemptNotFound,
    AttemptNotInProgress,
    CooldownActive,
    DuplicateResponse,
    ExamNotAvailable,
    ExamNotFound,
    InvalidResumeToken,
    NotAllowedToMonitorExam,
    NotAttemptOwner,
    UnknownQuestion,
)
from ..models import AntiCheatEvent, AttemptResponse, ExamAttempt
from .evaluation import EvaluationResult, ExamPolicy, GradingQuestion, GradingResponse, evaluate
from .score_decorators import DecoratorContext, apply_decorators

logger = logging.getLogger(__name__)

STARTED = ExamAttempt.Status.STARTED


@dataclass
class ResumedAttempt:
    attempt: ExamAttempt
    responses: List[AttemptResponse] = field(default_factory=list)


@dataclass
class SubmissionResult:
    attempt: ExamAttempt
    result: EvaluationResult
    responses: List[AttemptResponse] = field(default_factory=list)


@dataclass
class ExamMonitor:
    exam: Exam
    attempts: List[ExamAttempt]
    late_codes: List[LateAccessCode]


# =========================================================
# Helpers
# =========================================================

def _fetch(attempt_id, *, lock=False) -> ExamAttempt:
    queryset = ExamAttempt.objects.select_related("exam")
    if lock:
        queryset = queryset.select_for_update()
    attempt = queryset.filter(pk=attempt_id).first()
    if attempt is None:
        raise AttemptNotFound()
    return attempt


def _check_owner(attempt, user):
    if attempt.user_id != user.id:
        logger.warning("User %s tried to access attempt %s owned by user %s",
                       user.id, attempt.id, attempt.user_id)
        raise NotAttemptOwner()


def _load_owned(attempt_id, user) -> ExamAttempt:
    attempt = _fetch(attempt_id)
    _check_owner(attempt, user)
    expire_if_due(attempt)
    return attempt


def _session_length(exam, late) -> timedelta:
    minutes = exam.duration_minutes or get_setting("DEFAULT_DURATION_MINUTES")
    if late and exam.late_duration_minutes:
        minutes = exam.late_duration_minutes
    return timedelta(minutes=minutes)


def _resolve_option(question, option_id):
    if option_id in (None, ""):
        return None
    for option in question.options.all():
        if option.id == int(option_id):
            return option
    logger.warning("Option %s does not belong to question %s; treating as unanswered", option_id, question.id)
    return None


def _transition(attempt, to_status, now, **fields) -> bool:
    """STARTED -> ``to_status``. False when another transition got there first."""
    updated = ExamAttempt.objects.filter(pk=attempt.pk, status=STARTED).update(
        status=to_status,
        ended_at=now,
        updated_at=now,
        version=F("version") + 1,
        **fields,
    )
    attempt.refresh_from_db()
    return updated == 1


def expire_if_due(attempt, now=None) -> bool:
    """Move a STARTED attempt past its deadline to EXPIRED. Returns True if it did."""
    now = now or timezone.now()
    if attempt.status != STARTED or now < attempt.expires_at:
        return False
    if not _transition(attempt, ExamAttempt.Status.EXPIRED, now):
        return False

    logger.info("Attempt %s expired (user=%s, exam=%s)", attempt.id, attempt.user_id, attempt.exam_id)
    events.publish(events.attempt_expired, sender=ExamAttempt, attempt=attempt)
    return True


# =========================================================
# Orchestrator
# =========================================================

class ExamAttemptService:

    @staticmethod
    def start_attempt(*, exam_id, user, late_code=None, ip_address=None, user_agent="") -> ExamAttempt:
        """
        Create a STARTED attempt once every eligibility rule passes.

        Order of checks: exam exists and is published, availability window
        (a late-access code only reopens a closed window), attempt limit,
        cool-down since the latest completed attempt. Any failure raises
        before anything is written.
        """
        now = timezone.now()

        with transaction.atomic():
            # Serializes concurrent starts by the same student
            get_user_model().objects.select_for_update().filter(pk=user.pk).first()

            exam = Exam.objects.filter(pk=exam_id).first()
            if exam is None:
                raise ExamNotFound()
            if not exam.is_published:
                raise ExamNotAvailable("Exam is not published")

            previous = ExamAttempt.objects.filter(exam=exam, user=user)
            for stale in previous.filter(status=STARTED, expires_at__lte=now):
                expire_if_due(stale, now)

            if exam.start_time and now < exam.start_time:
                raise ExamNotAvailable("Exam has not started yet")

            usage = None
            if exam.end_time and now > exam.end_time:
                usage = LateAccessRegistry.find_unspent_access(exam_id=exam.id, user=user)
                if usage is None and late_code:
                    usage = LateAccessRegistry.validate_code(code=late_code, exam_id=exam.id, user=user)
                if usage is None:
                    raise ExamNotAvailable("Exam has ended")

            if exam.max_attempts:
                counted = previous.filter(
                    status__in=[STARTED, ExamAttempt.Status.COMPLETED]
                ).count()
                if counted >= exam.max_attempts:
                    raise AttemptLimitReached(exam.max_attempts)

            if exam.time_between_attempts:
                last = (
                    previous.filter(status=ExamAttempt.Status.COMPLETED, submitted_at__isnull=False)
                    .order_by("-submitted_at")
                    .first()
                )
                if last:
                    ready_at = last.submitted_at + timedelta(hours=exam.time_between_attempts)
                    if now < ready_at:
                        raise CooldownActive(ready_at - now)

            expires_at = now + _session_length(exam, late=usage is not None)
            if usage is None and exam.end_time:
                expires_at = min(expires_at, exam.end_time)

            attempt = ExamAttempt.objects.create(
                user=user,
                exam=exam,
                status=STARTED,
                resume_token=secrets.token_hex(get_setting("RESUME_TOKEN_BYTES")),
                started_at=now,
                expires_at=expires_at,
                ip_address=ip_address,
                user_agent=(user_agent or "")[:512],
            )

            if usage is not None:
                usage.attempt = attempt
                usage.save(update_fields=["attempt"])

            logger.info(
                "Attempt %s started (user=%s, exam=%s, late=%s, expires_at=%s)",
                attempt.id, user.id, exam.id, usage is not None, expires_at.isoformat(),
            )
            events.publish(events.attempt_started, sender=ExamAttempt, attempt=attempt, late=usage is not None)

        return attempt

    @staticmethod
    def get_attempt(*, attempt_id, user) -> ExamAttempt:
        return _load_owned(attempt_id, user)

    @staticmethod
    def list_attempts(*, user, exam_id=None):
        now = timezone.now()
        queryset = ExamAttempt.objects.filter(user=user).select_related("exam")
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id)
        for stale in queryset.filter(status=STARTED, expires_at__lte=now):
            expire_if_due(stale, now)
        return queryset.order_by("-started_at")

    @staticmethod
    def monitor_exam(*, exam_id, user) -> ExamMonitor:
        """Every attempt on ``exam_id`` with its anti-cheat ledger, plus the exam's late codes."""
        exam = Exam.objects.filter(pk=exam_id).first()
        if exam is None:
            raise ExamNotFound()
        if not can_manage_exam(user, exam):
            logger.warning("User %s tried to monitor exam %s", user.id, exam.id)
            raise NotAllowedToMonitorExam()

        now = timezone.now()
        queryset = ExamAttempt.objects.filter(exam=exam)
        for stale in queryset.filter(status=STARTED, expires_at__lte=now):
            expire_if_due(stale, now)

        attempts = list(
            queryset
            .select_related("user", "exam")
            .prefetch_related("anti_cheat_events")
            .annotate(tab_switches=Count(
                "anti_cheat_events",
                filter=Q(anti_cheat_events__event_type=AntiCheatEvent.EventType.TAB_SWITCH),
            ))
            .order_by("-started_at")
        )
        late_codes = list(LateAccessRegistry.list_codes(exam_id=exam.id, user=user))
        return ExamMonitor(exam=exam, attempts=attempts, late_codes=late_codes)

    @staticmethod
    def resume_attempt(*, attempt_id, resume_token, user) -> ResumedAttempt:
        attempt = _fetch(attempt_id)
        if not secrets.compare_digest(str(resume_token or ""), attempt.resume_token):
            logger.warning("Invalid resume token for attempt %s from user %s", attempt.id, user.id)
            raise InvalidResumeToken()
        _check_owner(attempt, user)

        expire_if_due(attempt)
        if not attempt.is_in_progress:
            raise AttemptNotInProgress()

        responses = list(attempt.responses.select_related("selected_option").order_by("answered_at", "id"))
        return ResumedAttempt(attempt=attempt, responses=responses)

    @staticmethod
    def save_answer(*, attempt_id, user, question_id, selected_option_id=None,
                    text_answer="", time_spent=0) -> AttemptResponse:
        """Autosave: upsert the single response for (attempt, question)."""
        attempt = _load_owned(attempt_id, user)
        if not attempt.is_in_progress:
            raise AttemptNotInProgress()

        now = timezone.now()
        with transaction.atomic():
            attempt = _fetch(attempt_id, lock=True)
            if not attempt.is_in_progress:
                raise AttemptNotInProgress()

            question = attempt.exam.questions.prefetch_related("options").filter(pk=question_id).first()
            if question is None:
                raise UnknownQuestion()
            option = _resolve_option(question, selected_option_id)

            values = {
                "selected_option": option,
                "text_answer": text_answer or "",
                "is_correct": bool(option and option.is_correct),
                "time_spent": time_spent or 0,
                "answered_at": now,
            }
            try:
                with transaction.atomic():
                    response, _ = AttemptResponse.objects.update_or_create(
                        attempt=attempt, question=question, defaults=values,
                    )
            except IntegrityError:
                raise DuplicateResponse()

        return response

    @staticmethod
    def record_anti_cheat_event(*, attempt_id, user, event_type, metadata=None,
                                client_event_id=None, occurred_at=None) -> AntiCheatEvent:
        """
        Append one event to the attempt's ledger.

        A retried delivery (same ``client_event_id``) returns the stored event
        without counting it again. The HTTP API requires the id; callers that
        omit it get a fresh one, so their retries are counted twice.

        Once the tab-switch count exceeds the exam's limit the attempt is
        abandoned and ``AttemptAbandoned`` is raised after the transition has
        been committed.
        """
        if event_type not in AntiCheatEvent.EventType.values:
            raise ValidationError({"type": f"Unknown anti-cheat event type: {event_type}"})

        _load_owned(attempt_id, user)

        now = timezone.now()
        client_event_id = client_event_id or uuid.uuid4().hex
        abandoned = False

        with transaction.atomic():
            attempt = _fetch(attempt_id, lock=True)
            if attempt.status == ExamAttempt.Status.ABANDONED:
                raise AttemptAbandoned()
            if not attempt.is_in_progress:
                raise AttemptNotInProgress()

            existing = attempt.anti_cheat_events.filter(client_event_id=client_event_id).first()
            if existing:
                logger.debug("Duplicate anti-cheat delivery %s on attempt %s", client_event_id, attempt.id)
                return existing

            event = AntiCheatEvent.objects.create(
                attempt=attempt,
                event_type=event_type,
                sequence=attempt.anti_cheat_events.count() + 1,
                client_event_id=client_event_id,
                occurred_at=occurred_at or now,
                metadata=metadata,
            )
            ExamAttempt.objects.filter(pk=attempt.pk).update(
                suspicious_activity_detected=True,
                updated_at=now,
                version=F("version") + 1,
            )

            limit = attempt.exam.max_tab_switches
            tab_switches = attempt.tab_switch_count
            if limit is not None and tab_switches > limit:
                abandoned = _transition(attempt, ExamAttempt.Status.ABANDONED, now)
                if abandoned:
                    logger.info(
                        "Attempt %s abandoned after %s tab switches (limit %s)",
                        attempt.id, tab_switches, limit,
                    )
                    events.publish(
                        events.attempt_abandoned,
                        sender=ExamAttempt,
                        attempt=attempt,
                        tab_switches=tab_switches,
                    )

        if abandoned:
            raise AttemptAbandoned()
        return event

    @staticmethod
    def submit_attempt(*, attempt_id, user, responses) -> SubmissionResult:
        """
        Persist the final answers, grade them and complete the attempt.

        The question bank is read once and every response is graded against
        that snapshot. For each question the last entry in ``responses``
        wins and replaces any autosaved answer.
        """
        attempt = _load_owned(attempt_id, user)
        if not attempt.is_in_progress:
            raise AttemptNotInProgress()

        now = timezone.now()
        with transaction.atomic():
            attempt = _fetch(attempt_id, lock=True)
            if not attempt.is_in_progress:
                raise AttemptNotInProgress()

            exam = Exam.objects.filter(pk=attempt.exam_id).first()
            if exam is None:
                raise ExamNotFound()

            questions = list(exam.questions.prefetch_related("options", "keywords"))
            bank = {q.id: q for q in questions}

            latest = {}
            for entry in responses or ():
                question_id = entry.get("question_id")
                if question_id not in bank:
                    logger.warning("Skipping response to unknown question %s in attempt %s",
                                   question_id, attempt.id)
                    continue
                latest[question_id] = entry

            stored = {r.question_id: r for r in attempt.responses.all()}
            saved = []
            for question_id, entry in latest.items():
                question = bank[question_id]
                option = _resolve_option(question, entry.get("selected_option_id"))
                response = stored.get(question_id) or AttemptResponse(attempt=attempt, question=question)
                response.selected_option = option
                response.text_answer = entry.get("text_answer") or ""
                response.is_correct = bool(option and option.is_correct)
                response.time_spent = entry.get("time_spent", response.time_spent) or 0
                response.answered_at = now
                try:
                    with transaction.atomic():
                        response.save()
                except IntegrityError:
                    raise DuplicateResponse()
                stored[question_id] = response
                saved.append(response)

            snapshot = [GradingQuestion.from_model(q) for q in questions]
            graded = [GradingResponse.from_model(r) for r in stored.values()]
            policy = ExamPolicy.from_model(exam)
            time_spent = max(0, int((now - attempt.started_at).total_seconds()))

            result = evaluate(policy, graded, snapshot)
            result = apply_decorators(
                result,
                exam.score_decorators,
                DecoratorContext(policy=policy, time_spent_seconds=time_spent, responses=graded, questions=snapshot),
            )

            for item in result.details.get("question_results", ()):
                response = stored.get(item["question_id"])
                if response is None:
                    continue
                response.earned_points = item["earned"]
                response.is_correct = item["is_correct"]
                response.grading_details = {"status": item["status"], **item["details"]}
                response.save(update_fields=["earned_points", "is_correct", "grading_details"])

            completed = _transition(
                attempt,
                ExamAttempt.Status.COMPLETED,
                now,
                submitted_at=now,
                score=result.score,
                max_score=result.max_score,
                percentage=result.percentage,
                passed=result.passed,
                feedback=result.feedback,
                evaluation_details=result.details,
                time_spent_seconds=time_spent,
            )
            if not completed:
                raise AttemptNotInProgress()

            logger.info(
                "Attempt %s completed (user=%s, exam=%s, score=%s/%s, passed=%s)",
                attempt.id, user.id, exam.id, result.score, result.max_score, result.passed,
            )
            events.publish(events.attempt_submitted, sender=ExamAttempt, attempt=attempt)
            events.publish(events.attempt_graded, sender=ExamAttempt, attempt=attempt, result=result)

        return SubmissionResult(attempt=attempt, result=result, responses=saved)


def expire_stale_attempts(now=None) -> int:
    """Advisory sweep over STARTED attempts; reads and writes expire on their own."""
    now = now or timezone.now()
    count = 0
    for attempt in ExamAttempt.objects.filter(status=STARTED, expires_at__lte=now):
        if expire_if_due(attempt, now):
            count += 1
    return count
