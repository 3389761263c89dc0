from fastapi import APIRouter, Depends, Request

from server.schemas import SessionListResponse
from server.services.session import SessionStore


router = APIRouter()


def get_store(request: Request) -> SessionStore:
    return request.app.state.store


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(store: SessionStore = Depends(get_store)) -> SessionListResponse:
    return store.list_sessions()
