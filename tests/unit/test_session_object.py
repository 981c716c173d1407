"""Session change tracking and cookie policy (no store I/O)."""
from unittest.mock import MagicMock

import pytest

from batmodule.services.session_manager import (
    COOKIE_NAME,
    DEFAULT_MAX_AGE,
    Session,
    SessionManager,
)


def _manager(secure: bool = False) -> SessionManager:
    store = MagicMock()
    store.generate_id.side_effect = ["id-1", "id-2", "id-3"]
    return SessionManager("test-session-secret", store, secure=secure)


@pytest.mark.unit
class TestSessionTracking:
    def test_fresh_session_is_unmodified(self):
        session = Session("abc")
        assert session.is_new
        assert not session.modified
        assert session.user_id is None

    def test_setitem_marks_modified(self):
        session = Session("abc")
        session["userId"] = 1
        assert session.modified
        assert session.user_id == 1

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda s: s.update(a=1),
            lambda s: s.pop("x"),
            lambda s: s.setdefault("new", 1),
            lambda s: s.clear(),
            lambda s: s.__delitem__("x"),
        ],
    )
    def test_mutators_mark_modified(self, mutate):
        session = Session("abc", {"x": 1}, is_new=False)
        mutate(session)
        assert session.modified

    def test_reads_do_not_mark_modified(self):
        session = Session("abc", {"x": 1}, is_new=False)
        session.get("x")
        session.setdefault("x", 2)
        assert not session.modified

    def test_regenerate_keeps_data_and_remembers_stored_id(self):
        session = Session("old", {"userId": 5}, is_new=False)
        session.regenerate("new")
        assert session.id == "new"
        assert session.previous_id == "old"
        assert session["userId"] == 5
        assert session.modified

    def test_regenerate_of_unsaved_session_has_nothing_to_delete(self):
        session = Session("tmp")
        session.regenerate("new")
        assert session.previous_id is None

    def test_destroy_clears_data(self):
        session = Session("abc", {"userId": 5}, is_new=False)
        session.destroy()
        assert session.destroyed
        assert dict(session) == {}


@pytest.mark.unit
class TestSessionManagerCookies:
    def test_sign_unsign_round_trip(self):
        manager = _manager()
        assert manager.unsign(manager.sign("abc")) == "abc"

    def test_unsign_rejects_tampered_value(self):
        manager = _manager()
        signed = manager.sign("abc")
        assert manager.unsign("xyz" + signed[3:]) is None
        assert manager.unsign("no-signature") is None

    def test_unsign_rejects_other_secret(self):
        other = SessionManager("another-secret", MagicMock())
        assert _manager().unsign(other.sign("abc")) is None

    def test_cookie_flags_development(self):
        header = _manager().cookie_header("v", DEFAULT_MAX_AGE)
        assert header.startswith(f"{COOKIE_NAME}=v")
        assert "HttpOnly" in header
        assert "SameSite=lax" in header
        assert "Path=/" in header
        assert f"Max-Age={DEFAULT_MAX_AGE}" in header
        assert "Secure" not in header

    def test_cookie_secure_in_production(self):
        assert "Secure" in _manager(secure=True).cookie_header("v", 60)

    def test_expired_cookie(self):
        assert "Max-Age=0" in _manager().expired_cookie()

    def test_new_session_uses_store_ids(self):
        manager = _manager()
        session = manager.new_session()
        assert session.id == "id-1"
        assert session.cookie_max_age == DEFAULT_MAX_AGE
        manager.regenerate(session)
        assert session.id == "id-2"
