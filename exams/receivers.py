"""Keeps the denormalized exam statistics in step with the attempt lifecycle."""
import logging

from django.db.models import Avg, Count, F, Q
from django.dispatch import receiver

from assessments import events
from assessments.models import ExamAttempt

from .models import Exam

logger = logging.getLogger(__name__)


@receiver(events.attempt_started)
def count_started_attempt(sender, attempt, **kwargs):
    Exam.objects.filter(pk=attempt.exam_id).update(
        total_attempts=F('total_attempts') + 1,
        last_attempt_at=attempt.started_at,
    )


@receiver(events.attempt_graded)
def refresh_exam_stats(sender, attempt, **kwargs):
    # Recomputed from all completed attempts
    stats = ExamAttempt.objects.filter(
        exam_id=attempt.exam_id, status=ExamAttempt.Status.COMPLETED
    ).aggregate(
        completions=Count('id'),
        passed=Count('id', filter=Q(passed=True)),
        average=Avg('percentage'),
    )
    completions = stats['completions'] or 0
    pass_rate = (stats['passed'] / completions * 100) if completions else 0

    Exam.objects.filter(pk=attempt.exam_id).update(
        total_completions=completions,
        average_score=round(stats['average'] or 0, 2),
        pass_rate=round(pass_rate, 2),
    )
    logger.debug("Exam %s stats refreshed: %s completions, pass rate %s%%",
                 attempt.exam_id, completions, round(pass_rate, 2))
