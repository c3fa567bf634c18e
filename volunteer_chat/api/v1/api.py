from fastapi import APIRouter
from volunteer_chat.api.v1.endpoints import applications, chat

api_router = APIRouter()
api_router.include_router(chat.router, prefix="/opportunities", tags=["chat"])
api_router.include_router(applications.router, prefix="/opportunities", tags=["applications"])
