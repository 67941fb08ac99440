from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import logging

from ..container import Container, get_container
from ..errors import VerificationError
from ..schemas.pydantic_schemas import OtpSendRequest, OtpVerifyRequest
from ..services.verify_client import APPROVED, CODE_NOT_FOUND

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/send")
async def send_otp(body: OtpSendRequest, container: Container = Depends(get_container)):
    if not body.phone_number:
        return JSONResponse(status_code=400, content={"message": "Phone number is required"})
    try:
        status = await container.verify.send(body.phone_number)
    except VerificationError as e:
        logger.error(f"Send OTP error: {e}")
        return JSONResponse(status_code=500, content={"message": "Failed to send verification code", "error": str(e)})
    return {"message": "Verification code sent successfully", "status": status}


@router.post("/verify")
async def verify_otp(body: OtpVerifyRequest, container: Container = Depends(get_container)):
    if not body.phone_number or not body.code:
        return JSONResponse(status_code=400, content={"message": "Phone number and verification code are required"})
    try:
        status = await container.verify.verify(body.phone_number, body.code)
    except VerificationError as e:
        logger.error(f"Verify OTP error: {e}")
        if e.code == CODE_NOT_FOUND:
            return JSONResponse(status_code=400, content={"message": "Invalid or expired verification code"})
        return JSONResponse(status_code=500, content={"message": "Verification failed", "error": str(e)})
    if status == APPROVED:
        return {"message": "Phone number verified successfully", "status": status}
    return JSONResponse(status_code=400, content={"message": "Invalid verification code", "status": status})
