"""API router for version 1."""
from fastapi import APIRouter

from coach_push.api.v1.endpoints import push


api_router = APIRouter()
api_router.include_router(push.router)
