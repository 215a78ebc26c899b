from django.dispatch import receiver

from assessments import events

from . import audit


@receiver(events.attempt_abandoned)
def audit_abandoned_attempt(sender, attempt, tab_switches=None, **kwargs):
    audit.record(
        'ABANDONED',
        actor=attempt.user,
        target=attempt,
        details=f"Attempt on exam {attempt.exam_id} abandoned after {tab_switches} tab switches",
        ip_address=attempt.ip_address,
    )


@receiver(events.late_code_generated)
def audit_late_code_generated(sender, late_code, actor, **kwargs):
    audit.record(
        'LATE_CODE_GENERATED',
        actor=actor,
        target=late_code,
        details=f"Code {late_code.code} for exam {late_code.exam_id} (max usages {late_code.max_usages})",
    )


@receiver(events.late_code_revoked)
def audit_late_code_revoked(sender, late_code, actor, **kwargs):
    audit.record(
        'LATE_CODE_REVOKED',
        actor=actor,
        target=late_code,
        details=f"Code {late_code.code} for exam {late_code.exam_id}",
    )
