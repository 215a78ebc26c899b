"""
Outbound domain events for the attempt lifecycle and late-access codes.

Subscribers (stats, audit, notifications, gamification) connect to these
signals. ``publish`` defers delivery until the surrounding transaction
commits and uses ``send_robust``, so a failing subscriber is logged and can
never roll back or fail the transition that emitted the event.
"""
import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

attempt_started = Signal()
attempt_submitted = Signal()
attempt_graded = Signal()
attempt_abandoned = Signal()
attempt_expired = Signal()

late_code_generated = Signal()
late_code_used = Signal()
late_code_revoked = Signal()


def _deliver(signal, sender, payload):
    for receiver, result in signal.send_robust(sender=sender, **payload):
        if isinstance(result, Exception):
            logger.error(
                "Event subscriber %r failed: %s",
                receiver,
                result,
                exc_info=(type(result), result, result.__traceback__),
            )


def publish(signal, sender, **payload):
    """Fire-and-forget: deliver ``signal`` once the current transaction commits."""
    transaction.on_commit(lambda: _deliver(signal, sender, payload))
