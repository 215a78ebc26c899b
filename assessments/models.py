# assessments/models.py
from django.conf import settings
from django.db import models

from exams.models import Exam, Question, Option


class ExamAttempt(models.Model):
    """
    One student's timed pass at one exam.

    STARTED is the only non-terminal status. Result fields are written only
    on the STARTED -> COMPLETED transition; terminal attempts are kept for
    audit and analytics.
    """

    class Status(models.TextChoices):
        STARTED = "STARTED", "Started"
        COMPLETED = "COMPLETED", "Completed"
        EXPIRED = "EXPIRED", "Expired"
        ABANDONED = "ABANDONED", "Abandoned"

    TERMINAL_STATUSES = (Status.COMPLETED, Status.EXPIRED, Status.ABANDONED)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='exam_attempts')
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='attempts')
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.STARTED)

    resume_token = models.CharField(max_length=128, unique=True)

    started_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    submitted_at = models.DateTimeField(null=True, blank=True)  # COMPLETED only
    ended_at = models.DateTimeField(null=True, blank=True)      # any terminal transition

    # Result, populated on COMPLETED
    score = models.FloatField(null=True, blank=True)
    max_score = models.FloatField(null=True, blank=True)
    percentage = models.FloatField(null=True, blank=True)
    passed = models.BooleanField(null=True)
    feedback = models.TextField(blank=True)
    evaluation_details = models.JSONField(null=True, blank=True)
    time_spent_seconds = models.PositiveIntegerField(null=True, blank=True)

    suspicious_activity_detected = models.BooleanField(default=False)

    # Bumped on every status or anti-cheat write
    version = models.PositiveIntegerField(default=1)

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=512, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['exam', 'user']),
            models.Index(fields=['user', 'status']),
        ]

    def __str__(self):
        return f"{self.user} - {self.exam.title} ({self.status})"

    @property
    def is_in_progress(self):
        return self.status == self.Status.STARTED

    @property
    def tab_switch_count(self):
        # Always derived from the ledger
        return self.anti_cheat_events.filter(event_type=AntiCheatEvent.EventType.TAB_SWITCH).count()


class AntiCheatEvent(models.Model):
    """Append-only ledger entry for suspicious client-side activity."""

    class EventType(models.TextChoices):
        TAB_SWITCH = "TAB_SWITCH", "Tab switch"
        FULLSCREEN_EXIT = "FULLSCREEN_EXIT", "Fullscreen exit"
        COPY_ATTEMPT = "COPY_ATTEMPT", "Copy attempt"
        PASTE_ATTEMPT = "PASTE_ATTEMPT", "Paste attempt"
        RIGHT_CLICK = "RIGHT_CLICK", "Right click"
        BLUR_EVENT = "BLUR_EVENT", "Window blur"

    attempt = models.ForeignKey(ExamAttempt, on_delete=models.CASCADE, related_name='anti_cheat_events')
    event_type = models.CharField(max_length=20, choices=EventType.choices)

    # Server-assigned position in the ledger (1-based)
    sequence = models.PositiveIntegerField()
    # Client delivery id; a retried delivery carries the same value
    client_event_id = models.CharField(max_length=64)

    occurred_at = models.DateTimeField()
    recorded_at = models.DateTimeField(auto_now_add=True)
    metadata = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ['sequence']
        constraints = [
            models.UniqueConstraint(fields=['attempt', 'sequence'], name='unique_event_sequence'),
            models.UniqueConstraint(fields=['attempt', 'client_event_id'], name='unique_event_delivery'),
        ]

    def __str__(self):
        return f"{self.event_type} #{self.sequence} on attempt {self.attempt_id}"


class AttemptResponse(models.Model):
    attempt = models.ForeignKey(ExamAttempt, related_name='responses', on_delete=models.CASCADE)
    question = models.ForeignKey(Question, on_delete=models.CASCADE)

    # For MCQ / true-false
    selected_option = models.ForeignKey(Option, null=True, blank=True, on_delete=models.SET_NULL)

    # For open questions
    text_answer = models.TextField(blank=True)

    # Grading
    is_correct = models.BooleanField(default=False)
    earned_points = models.FloatField(null=True, blank=True)
    grading_details = models.JSONField(null=True, blank=True)

    time_spent = models.PositiveIntegerField(default=0, help_text="Seconds spent on the question")
    answered_at = models.DateTimeField()

    class Meta:
        ordering = ['answered_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['attempt', 'question'], name='unique_response_per_question'),
        ]

    def __str__(self):
        return f"Response to question {self.question_id} in attempt {self.attempt_id}"
