from conftest import make_session
from engine.visibility import can_see_word, session_view
from models.game import Role


def _session():
    session = make_session(current_word="mesa", current_category="objetos")
    session.impostor_id = "bob"
    for pid, p in session.participants.items():
        p.role = Role.IMPOSTOR if pid == "bob" else Role.PLAYER
    return session


def test_impostor_view_hides_word_without_touching_canonical_state():
    session = _session()

    view = session_view(session, "bob")

    assert view["current_word"] is None
    assert view["current_category"] is None
    assert view["impostor_id"] == "bob"
    assert session.current_word == "mesa"


def test_player_and_anonymous_views():
    session = _session()
    assert session_view(session, "ana")["current_word"] == "mesa"
    assert session_view(session)["current_word"] is None
    assert not can_see_word(session, "stranger")


def test_view_is_json_ready():
    view = session_view(_session(), "ana")
    assert view["phase"] == "lobby"
    assert isinstance(view["created_at"], str)
    assert view["participants"]["bob"]["role"] == "impostor"
