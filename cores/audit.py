import logging

from .models import AuditLog

logger = logging.getLogger(__name__)


def record(action, *, actor=None, target=None, details="", ip_address=None):
    """Write one AuditLog row. ``target`` is any model instance (or None)."""
    if actor is not None and not getattr(actor, 'is_authenticated', False):
        actor = None
    return AuditLog.objects.create(
        actor=actor,
        action=action,
        target_model=type(target).__name__ if target is not None else "",
        target_object_id=str(target.pk) if target is not None else None,
        details=details,
        ip_address=ip_address,
    )
