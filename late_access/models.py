# late_access/models.py
from django.conf import settings
from django.db import models

from exams.models import Exam


class LateAccessCode(models.Model):
    """
    A short-lived credential that lets a student into an exam after its
    window has closed.

    Remaining usages are always derived from the usage ledger.
    """

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        EXHAUSTED = "EXHAUSTED", "Exhausted"
        EXPIRED = "EXPIRED", "Expired"
        REVOKED = "REVOKED", "Revoked"

    code = models.CharField(max_length=32, unique=True)
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='late_codes')
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)

    generated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='generated_late_codes'
    )
    assigned_user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.CASCADE, related_name='assigned_late_codes',
    )

    max_usages = models.PositiveIntegerField(default=1)
    expires_at = models.DateTimeField()

    reason = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)

    revoked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.SET_NULL, related_name='revoked_late_codes',
    )
    revoked_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['exam', 'status']),
            models.Index(fields=['expires_at']),
        ]

    def __str__(self):
        return f"{self.code} ({self.exam.title})"

    @property
    def usage_count(self):
        # len() so a prefetched ledger costs no query
        return len(self.usages.all())

    @property
    def usages_remaining(self):
        return max(0, self.max_usages - self.usage_count)

    def sync_status(self):
        """Flip ACTIVE -> EXHAUSTED once the ledger is full. Returns True when changed."""
        if self.status == self.Status.ACTIVE and self.usages_remaining == 0:
            self.status = self.Status.EXHAUSTED
            return True
        return False


class LateAccessUsage(models.Model):
    """Append-only usage ledger; a user consumes a given code at most once."""
    late_code = models.ForeignKey(LateAccessCode, on_delete=models.CASCADE, related_name='usages')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='late_code_usages')
    used_at = models.DateTimeField()
    # The attempt this usage admitted, once started
    attempt = models.OneToOneField(
        'assessments.ExamAttempt', null=True, blank=True,
        on_delete=models.SET_NULL, related_name='late_code_usage',
    )

    class Meta:
        ordering = ['used_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['late_code', 'user'], name='unique_late_code_usage_per_user'),
        ]

    def __str__(self):
        return f"{self.user} used {self.late_code.code}"
