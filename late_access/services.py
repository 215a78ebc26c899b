# late_access/services.py
from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.utils import timezone

from assessments import events
from assessments.conf import get_setting
from assessments.exceptions import (
    ExamNotFound,
    LateCodeAlreadyUsed,
    LateCodeDeactivated,
    LateCodeExhausted,
    LateCodeExpired,
    LateCodeInvalid,
    LateCodeNotFound,
    LateCodeNotYours,
    NotAllowedToGenerateCode,
    NotAllowedToManageCode,
)
from exams.models import Exam

from .models import LateAccessCode, LateAccessUsage

logger = logging.getLogger(__name__)


def normalize_code(code):
    return (code or "").strip().upper()


def _random_code():
    alphabet = get_setting("LATE_CODE_ALPHABET")
    return "".join(secrets.choice(alphabet) for _ in range(get_setting("LATE_CODE_LENGTH")))


def can_manage_exam(user, exam):
    """Exam creator (teacher or admin role) or any inspector."""
    if user.is_superuser or getattr(user, "is_inspector", False):
        return True
    return exam.created_by_id == user.id and getattr(user, "is_exam_staff", False)


class LateAccessRegistry:
    """
    Issues, validates and consumes late-access codes.

    Validation is the only consuming operation: a successful call appends
    one usage row to the code's ledger.
    """

    @staticmethod
    def generate_code(*, exam_id, generated_by, max_usages=None, expires_at=None,
                      assigned_user=None, reason="", notes="") -> LateAccessCode:
        exam = Exam.objects.filter(id=exam_id).first()
        if exam is None:
            raise ExamNotFound()

        if not can_manage_exam(generated_by, exam):
            raise NotAllowedToGenerateCode()

        if max_usages is None:
            max_usages = 1
        if max_usages < 1:
            raise ValueError("max_usages must be at least 1")
        if expires_at is None:
            expires_at = timezone.now() + timedelta(days=get_setting("LATE_CODE_TTL_DAYS"))

        attempts = get_setting("LATE_CODE_GENERATION_ATTEMPTS")
        for _ in range(attempts):
            candidate = _random_code()
            if LateAccessCode.objects.filter(code=candidate).exists():
                continue
            try:
                with transaction.atomic():
                    late_code = LateAccessCode.objects.create(
                        code=candidate,
                        exam=exam,
                        generated_by=generated_by,
                        assigned_user=assigned_user,
                        max_usages=max_usages,
                        expires_at=expires_at,
                        reason=reason or "Late access granted",
                        notes=notes,
                    )
            except IntegrityError:
                # Lost a race for the same code; draw again
                continue
            break
        else:
            raise RuntimeError(f"Could not generate a unique late code after {attempts} attempts")

        logger.info(
            "Late code %s generated for exam %s by user %s (max_usages=%s, assigned_user=%s)",
            late_code.code, exam.id, generated_by.id, max_usages,
            assigned_user.id if assigned_user else None,
        )
        events.publish(
            events.late_code_generated,
            sender=LateAccessCode,
            late_code=late_code,
            exam=exam,
            actor=generated_by,
        )
        return late_code

    @staticmethod
    @transaction.atomic
    def validate_code(*, code, exam_id, user) -> LateAccessUsage:
        """
        Check ``code`` for ``user`` and consume one usage.

        Failure reasons, in order: invalid, deactivated, expired,
        already used by this user, exhausted, assigned to someone else.
        """
        now = timezone.now()
        late_code = (
            LateAccessCode.objects
            .select_for_update()
            .filter(code=normalize_code(code), exam_id=exam_id)
            .first()
        )
        if late_code is None:
            raise LateCodeInvalid()

        if late_code.status == LateAccessCode.Status.REVOKED:
            raise LateCodeDeactivated()

        if late_code.status == LateAccessCode.Status.EXPIRED or now > late_code.expires_at:
            raise LateCodeExpired()

        if late_code.usages.filter(user=user).exists():
            raise LateCodeAlreadyUsed()

        if late_code.usages_remaining <= 0:
            raise LateCodeExhausted()

        if late_code.assigned_user_id and late_code.assigned_user_id != user.id:
            logger.warning(
                "User %s tried late code %s assigned to user %s",
                user.id, late_code.code, late_code.assigned_user_id,
            )
            raise LateCodeNotYours()

        try:
            with transaction.atomic():
                usage = LateAccessUsage.objects.create(late_code=late_code, user=user, used_at=now)
        except IntegrityError:
            raise LateCodeAlreadyUsed()

        if late_code.sync_status():
            late_code.save(update_fields=["status", "updated_at"])

        logger.info(
            "Late code %s used by user %s for exam %s (%s usages remaining)",
            late_code.code, user.id, exam_id, late_code.usages_remaining,
        )
        events.publish(
            events.late_code_used,
            sender=LateAccessCode,
            late_code=late_code,
            usage=usage,
            user=user,
        )
        return usage

    @staticmethod
    def find_unspent_access(*, exam_id, user):
        """
        A usage that still admits ``user`` to ``exam_id``: its code is not
        revoked, not past expiry, and the usage has not opened an attempt yet.
        """
        return (
            LateAccessUsage.objects
            .select_related("late_code")
            .filter(
                user=user,
                attempt__isnull=True,
                late_code__exam_id=exam_id,
                late_code__expires_at__gt=timezone.now(),
            )
            .exclude(late_code__status__in=[LateAccessCode.Status.REVOKED, LateAccessCode.Status.EXPIRED])
            .order_by("-used_at")
            .first()
        )

    @classmethod
    def has_late_access(cls, *, exam_id, user) -> bool:
        return cls.find_unspent_access(exam_id=exam_id, user=user) is not None

    @staticmethod
    def list_codes(*, exam_id, user):
        exam = Exam.objects.filter(id=exam_id).first()
        if exam is None:
            raise ExamNotFound()
        if not can_manage_exam(user, exam):
            raise NotAllowedToManageCode()
        return (
            LateAccessCode.objects
            .filter(exam=exam)
            .select_related("generated_by", "assigned_user")
            .prefetch_related("usages")
        )

    @staticmethod
    @transaction.atomic
    def revoke_code(*, code_id, user) -> LateAccessCode:
        late_code = LateAccessCode.objects.select_for_update().filter(id=code_id).first()
        if late_code is None:
            raise LateCodeNotFound()

        if late_code.generated_by_id != user.id and not (user.is_superuser or getattr(user, "is_inspector", False)):
            raise NotAllowedToManageCode("Unauthorized: Only the code generator can deactivate it")

        late_code.status = LateAccessCode.Status.REVOKED
        late_code.revoked_by = user
        late_code.revoked_at = timezone.now()
        late_code.save(update_fields=["status", "revoked_by", "revoked_at", "updated_at"])

        logger.info("Late code %s revoked by user %s", late_code.code, user.id)
        events.publish(events.late_code_revoked, sender=LateAccessCode, late_code=late_code, actor=user)
        return late_code

    @staticmethod
    def expire_stale_codes(now=None) -> int:
        """Advisory sweep; validation checks expiry on its own."""
        now = now or timezone.now()
        count = LateAccessCode.objects.filter(
            status=LateAccessCode.Status.ACTIVE, expires_at__lte=now
        ).update(status=LateAccessCode.Status.EXPIRED, updated_at=now)
        if count:
            logger.info("Marked %s late code(s) as expired", count)
        return count
