from datetime import timedelta

import pytest
from django.core.management import call_command
from django.utils import timezone

from assessments.exceptions import (
    ExamNotFound,
    LateCodeAlreadyUsed,
    LateCodeDeactivated,
    LateCodeExhausted,
    LateCodeExpired,
    LateCodeInvalid,
    LateCodeNotYours,
    NotAllowedToGenerateCode,
    NotAllowedToManageCode,
)
from assessments.conf import get_setting
from cores.models import AuditLog
from late_access.models import LateAccessCode
from late_access.services import LateAccessRegistry

pytestmark = pytest.mark.django_db


def generate(exam, user, **options):
    return LateAccessRegistry.generate_code(exam_id=exam.id, generated_by=user, **options)


def validate(late_code, user, code=None):
    return LateAccessRegistry.validate_code(code=code or late_code.code, exam_id=late_code.exam_id, user=user)


# =========================================================
# Generation
# =========================================================

def test_generated_code_defaults(exam, teacher):
    late_code = generate(exam, teacher)

    assert len(late_code.code) == 8
    assert set(late_code.code) <= set(get_setting("LATE_CODE_ALPHABET"))
    assert not set(late_code.code) & set("01IO")
    assert late_code.max_usages == 1
    assert late_code.status == LateAccessCode.Status.ACTIVE
    assert timedelta(days=6, hours=23) < late_code.expires_at - timezone.now() <= timedelta(days=7)


def test_inspector_may_generate_for_any_exam(exam, inspector):
    assert generate(exam, inspector).generated_by == inspector


def test_other_teacher_may_not_generate(exam, make_user):
    with pytest.raises(NotAllowedToGenerateCode):
        generate(exam, make_user("teacher"))


def test_student_may_not_generate(exam, student):
    with pytest.raises(NotAllowedToGenerateCode):
        generate(exam, student)


def test_generate_for_missing_exam(teacher):
    with pytest.raises(ExamNotFound):
        LateAccessRegistry.generate_code(exam_id=987654, generated_by=teacher)


def test_generation_is_audited(exam, teacher, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        late_code = generate(exam, teacher)
    assert AuditLog.objects.filter(action='LATE_CODE_GENERATED', target_object_id=str(late_code.pk)).exists()


# =========================================================
# Validation
# =========================================================

def test_single_use_code_scenario(exam, teacher, student, other_student):
    late_code = generate(exam, teacher, max_usages=1)

    validate(late_code, student)
    with pytest.raises(LateCodeAlreadyUsed, match="already used"):
        validate(late_code, student)
    with pytest.raises(LateCodeExhausted, match="no remaining usages"):
        validate(late_code, other_student)

    late_code.refresh_from_db()
    assert late_code.status == LateAccessCode.Status.EXHAUSTED


def test_second_user_succeeds_before_first_use(exam, teacher, student, other_student):
    late_code = generate(exam, teacher, max_usages=1)
    validate(late_code, other_student)
    with pytest.raises(LateCodeExhausted):
        validate(late_code, student)


def test_usages_remaining_tracks_ledger(exam, teacher, make_user):
    late_code = generate(exam, teacher, max_usages=3)
    for used in range(1, 4):
        validate(late_code, make_user())
        late_code.refresh_from_db()
        assert late_code.usage_count == used
        assert late_code.usages_remaining == late_code.max_usages - used


def test_unknown_code(exam, student):
    with pytest.raises(LateCodeInvalid):
        LateAccessRegistry.validate_code(code="NOPE2345", exam_id=exam.id, user=student)


def test_code_is_bound_to_its_exam(exam, make_exam, teacher, student):
    late_code = generate(exam, teacher)
    other = make_exam(title="Other")
    with pytest.raises(LateCodeInvalid):
        LateAccessRegistry.validate_code(code=late_code.code, exam_id=other.id, user=student)


def test_code_input_is_normalized(exam, teacher, student):
    late_code = generate(exam, teacher)
    usage = validate(late_code, student, code=f"  {late_code.code.lower()} ")
    assert usage.late_code == late_code


def test_revoked_code(exam, teacher, student):
    late_code = generate(exam, teacher)
    LateAccessRegistry.revoke_code(code_id=late_code.id, user=teacher)
    with pytest.raises(LateCodeDeactivated):
        validate(late_code, student)


def test_expired_code(exam, teacher, student):
    late_code = generate(exam, teacher, expires_at=timezone.now() - timedelta(minutes=1))
    with pytest.raises(LateCodeExpired):
        validate(late_code, student)


def test_assigned_code(exam, teacher, student, other_student):
    late_code = generate(exam, teacher, assigned_user=student)
    with pytest.raises(LateCodeNotYours):
        validate(late_code, other_student)
    assert validate(late_code, student).user == student


def test_failed_validation_changes_nothing(exam, teacher, student):
    late_code = generate(exam, teacher, expires_at=timezone.now() - timedelta(minutes=1))
    with pytest.raises(LateCodeExpired):
        validate(late_code, student)
    late_code.refresh_from_db()
    assert late_code.status == LateAccessCode.Status.ACTIVE
    assert late_code.usage_count == 0


def test_used_code_stops_granting_access_once_revoked(exam, teacher, student):
    late_code = generate(exam, teacher)
    validate(late_code, student)
    assert LateAccessRegistry.has_late_access(exam_id=exam.id, user=student)

    LateAccessRegistry.revoke_code(code_id=late_code.id, user=teacher)
    assert not LateAccessRegistry.has_late_access(exam_id=exam.id, user=student)


# =========================================================
# Listing / revocation / sweep
# =========================================================

def test_list_codes_for_owner_and_inspector(exam, teacher, inspector, student):
    generate(exam, teacher)
    generate(exam, inspector)

    assert LateAccessRegistry.list_codes(exam_id=exam.id, user=teacher).count() == 2
    assert LateAccessRegistry.list_codes(exam_id=exam.id, user=inspector).count() == 2
    with pytest.raises(NotAllowedToManageCode):
        LateAccessRegistry.list_codes(exam_id=exam.id, user=student)


def test_only_generator_or_inspector_revokes(exam, teacher, inspector, make_user):
    late_code = generate(exam, teacher)
    with pytest.raises(NotAllowedToManageCode):
        LateAccessRegistry.revoke_code(code_id=late_code.id, user=make_user("teacher"))

    revoked = LateAccessRegistry.revoke_code(code_id=late_code.id, user=inspector)
    assert revoked.status == LateAccessCode.Status.REVOKED
    assert revoked.revoked_by == inspector
    assert revoked.revoked_at is not None


def test_expire_command(exam, teacher):
    stale = generate(exam, teacher, expires_at=timezone.now() - timedelta(hours=1))
    fresh = generate(exam, teacher)

    call_command("expire_late_codes")

    stale.refresh_from_db()
    fresh.refresh_from_db()
    assert stale.status == LateAccessCode.Status.EXPIRED
    assert fresh.status == LateAccessCode.Status.ACTIVE
