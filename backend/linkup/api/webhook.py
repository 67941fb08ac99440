from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from typing import Any, Dict
import json
import logging

from ..container import Container, get_container
from ..errors import NotFoundError, StoreError, ValidationError
from ..schemas.pydantic_schemas import CompletionRequest
from ..services.ingestion import parse_callback

# Set up logger
logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_payload(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return dict(form)
    body = await request.body()
    if not body:
        return {}
    data = json.loads(body.decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Payload must be an object")
    return data


@router.post("/recording")
async def recording_webhook(request: Request, container: Container = Depends(get_container)):
    """Twilio recording-status callback.

    Only malformed requests get a 4xx. Downstream failures are acknowledged
    with 200 and an ``error`` body so Twilio does not redeliver the event.
    """
    logger.info("Received recording webhook from Twilio")
    try:
        payload = await _read_payload(request)
    except ValueError as e:
        logger.error(f"Failed to parse recording webhook: {str(e)}")
        raise HTTPException(status_code=400, detail="Malformed request body")

    try:
        callback = parse_callback(payload)
    except ValidationError as e:
        logger.error(f"Rejecting recording webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    result = await container.orchestrator.ingest(callback)
    if not result.success:
        logger.error(f"Recording {callback.recording_sid} not ingested at {result.stage}: {result.error}")
    return result.to_response()


@router.post("/complete-transcription")
async def complete_transcription(
    body: CompletionRequest,
    background_tasks: BackgroundTasks,
    wait: bool = False,
    container: Container = Depends(get_container),
):
    """Finish a voice job. Runs in the background unless ``wait=true``."""
    if not wait:
        background_tasks.add_task(_complete_logged, container, body.event_id, body.attempt)
        return {"status": "accepted", "event_id": body.event_id, "attempt": body.attempt}
    try:
        outcome = await container.completion.complete(body.event_id, body.attempt)
    except NotFoundError as e:
        return {"error": str(e)}
    except StoreError as e:
        logger.error(f"Completion for {body.event_id} failed: {e}")
        return {"error": str(e)}
    return outcome.to_response()


async def _complete_logged(container: Container, event_id: str, attempt: int) -> None:
    try:
        outcome = await container.completion.complete(event_id, attempt)
        logger.info(f"Completion for {event_id}: {outcome.status}")
    except Exception:
        logger.exception(f"Completion for {event_id} failed")
