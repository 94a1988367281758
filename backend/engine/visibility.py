from typing import Any, Dict, Optional

from models.game import Role, Session


def can_see_word(session: Session, viewer_id: Optional[str]) -> bool:
    viewer = session.participants.get(viewer_id) if viewer_id else None
    return viewer is not None and viewer.role != Role.IMPOSTOR


def session_view(session: Session, viewer_id: Optional[str] = None) -> Dict[str, Any]:
    """
    JSON-ready projection of the session for one recipient.
    The impostor (and anonymous viewers) get the word and category nulled;
    the canonical session is never modified.
    """
    data = session.model_dump(mode="json")
    if not can_see_word(session, viewer_id):
        data["current_word"] = None
        data["current_category"] = None
    return data
