from fastapi import APIRouter
from msnchat.api.v1.endpoints import messages, typing_status, rooms

api_router = APIRouter()
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(typing_status.router, prefix="/typing", tags=["typing"])
api_router.include_router(rooms.router, tags=["rooms"])
