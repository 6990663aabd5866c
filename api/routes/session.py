"""
api/routes/session.py -- The caller's most recent login session.

Routes:
  GET    /session  -- newest session row for the authenticated user
  DELETE /session  -- delete that row; the previous one becomes current
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import SessionEnvelope, SessionResponse
from auth.dependencies import get_current_identity
from auth.models import Identity
from auth.sessions import SessionRegistry

router = APIRouter(prefix="/session")


@router.get("", response_model=SessionEnvelope, response_model_exclude_none=True)
def get_session(request: Request, identity: Identity = Depends(get_current_identity)) -> SessionEnvelope:
    sessions: SessionRegistry = request.app.state.sessions
    return SessionEnvelope(data=SessionResponse.from_domain(sessions.current_session(identity.id)))


@router.delete("", response_model=SessionEnvelope)
def delete_session(request: Request, identity: Identity = Depends(get_current_identity)) -> SessionEnvelope:
    sessions: SessionRegistry = request.app.state.sessions
    ended = sessions.end_current_session(identity.id)
    return SessionEnvelope(message="Session deleted.", data=SessionResponse.from_domain(ended))
