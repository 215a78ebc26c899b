"""Project-wide DRF exception handler."""
import logging

from rest_framework.views import exception_handler

from assessments.exceptions import AuthorizationError, LateCodeNotYours

from . import audit

logger = logging.getLogger(__name__)


def _request_ip(request):
    if request is None:
        return None
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def api_exception_handler(exc, context):
    """
    Renders every API error as ``{"error": <message>, "code": <code>}``.

    Field validation errors keep their per-field messages under ``details``.
    Errors that carry ``retry_after_seconds`` (cool-down) also expose it in
    the body and as a ``Retry-After`` header.
    Authorization failures raised by the attempt engine or the late-code
    registry are logged and written to the audit trail.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(data, dict) and set(data) == {'detail'}:
        detail = data['detail']
        response.data = {"error": str(detail), "code": getattr(detail, 'code', 'error')}
    else:
        response.data = {"error": "Invalid input.", "code": "invalid", "details": data}

    retry_after = getattr(exc, 'retry_after_seconds', None)
    if retry_after is not None:
        response.data["retry_after_seconds"] = retry_after
        response['Retry-After'] = str(retry_after)

    if isinstance(exc, (AuthorizationError, LateCodeNotYours)):
        request = context.get('request')
        user = getattr(request, 'user', None)
        view = context.get('view')
        logger.warning(
            "Access denied (%s) for user %s on %s %s",
            response.data["code"],
            getattr(user, 'id', None),
            request.method if request else '-',
            request.path if request else type(view).__name__,
        )
        audit.record(
            'ACCESS_DENIED',
            actor=user,
            details=f"{response.data['code']}: {response.data['error']} ({request.path if request else ''})",
            ip_address=_request_ip(request),
        )

    return response
