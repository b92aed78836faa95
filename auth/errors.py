"""
auth/errors.py -- Exceptions raised by the auth package.

Only wiring faults are exceptions. An ordinary authentication failure (no
cookie, unknown user, stale token, wrong secret) is never raised -- the
authenticator returns None and the caller falls through to "not logged in".

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when the authenticator or one of its collaborators is mis-wired.

    Examples: no cookie collaborator supplied, malformed options, an unknown
    crypt mode, or a userModel/contain table that does not exist. These are
    startup faults and must surface immediately rather than read as "no user".
    """
