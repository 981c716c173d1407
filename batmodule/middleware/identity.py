from __future__ import annotations


def _session_identity(scope) -> str | None:
    session = scope.get("session")
    session_id = getattr(session, "id", None)
    return str(session_id) if session_id else None


def _user_identity(scope) -> str | None:
    state = scope.get("state") or {}
    user = state.get("user") if isinstance(state, dict) else getattr(state, "user", None)
    if not user:
        return None
    user_id = user.get("user_id") if isinstance(user, dict) else getattr(user, "user_id", None)
    return str(user_id) if user_id is not None else None


# Tried in order, first non-empty identity wins
IDENTITY_RESOLVERS = (_session_identity, _user_identity)


def resolve_request_identity(scope) -> str | None:
    """Identity a CSRF token is bound to: session id, else authenticated user id."""
    for resolver in IDENTITY_RESOLVERS:
        identity = resolver(scope)
        if identity:
            return identity
    return None
