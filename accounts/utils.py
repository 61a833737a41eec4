"""
Accounts app utility functions

Helpers for deriving the identity a request is throttled under.
"""


def get_client_ip(request) -> str:
    """
    Best-effort client address, honouring proxy headers.
    """
    forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    real_ip = request.META.get('HTTP_X_REAL_IP', '')
    if real_ip:
        return real_ip.strip()

    return request.META.get('REMOTE_ADDR') or 'unknown'


def get_rate_limit_identifier(request) -> str:
    """
    Identifier used by the rate limiter: the user id when authenticated,
    otherwise the network address.

    Args:
        request: Django or DRF request

    Returns:
        ``user:<id>`` or ``ip:<address>``
    """
    user = getattr(request, 'user', None)
    if user is not None and getattr(user, 'is_authenticated', False):
        return f"user:{user.pk}"
    return f"ip:{get_client_ip(request)}"
