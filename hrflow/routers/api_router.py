from fastapi import APIRouter
from hrflow.routers import appraisals, onboarding, leave, notifications

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(appraisals.router)
api_router.include_router(onboarding.router)
api_router.include_router(leave.router)
api_router.include_router(notifications.router)
