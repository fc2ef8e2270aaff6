from fastapi import APIRouter
from endpoints.auth import router as auth_router
from endpoints.user import router as user_router
from endpoints.clients import router as clients_router

api_router = APIRouter()
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(user_router, prefix="/user", tags=["user"])
api_router.include_router(clients_router, prefix="/clients", tags=["clients"])
