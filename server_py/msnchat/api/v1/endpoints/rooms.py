from fastapi import APIRouter, Request

from msnchat.schemas.chat import HealthResponse, RoomsResponse

router = APIRouter()


@router.get("/rooms", response_model=RoomsResponse)
async def get_rooms(request: Request):
    """Список комнат для боковой панели клиента."""
    return RoomsResponse(rooms=list(request.app.state.chat_service.settings.ROOMS))


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    store = request.app.state.chat_service.store
    return HealthResponse(ok=True, backend=getattr(store, "active_backend", None) or store.name)
