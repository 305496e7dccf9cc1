from functools import wraps
from flask import abort, g
from flask_jwt_extended import verify_jwt_in_request
from milicard.services.policy import has_permissions, get_base_or_404


def require_permissions(*codes: str):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not has_permissions(*codes):
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_base_permissions(*codes: str):
    """Permission check plus base scoping for routes under ``/bases/<int:base_id>/...``.

    The resolved base is exposed as ``g.base``; a base outside the caller's scope is 403,
    an unknown base is 404.
    """
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not has_permissions(*codes):
                abort(403, description='Missing permission')
            g.base = get_base_or_404(int(kwargs['base_id']))
            return fn(*args, **kwargs)
        return wrapper
    return outer
