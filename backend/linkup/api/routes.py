from fastapi import APIRouter
from .webhook import router as webhook_router
from .voice_jobs import router as voice_jobs_router
from .otp import router as otp_router

api_router = APIRouter()
api_router.include_router(webhook_router, prefix="/twilio", tags=["twilio"])
api_router.include_router(voice_jobs_router, prefix="/voice-jobs", tags=["voice-jobs"])
api_router.include_router(otp_router, prefix="/otp", tags=["otp"])
