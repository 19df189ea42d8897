from fastapi import Request

from msnchat.services.chat import ChatService


def get_chat_service(request: Request) -> ChatService:
    """
    Dependency для получения сервиса чата, созданного при старте приложения.
    """
    return request.app.state.chat_service
