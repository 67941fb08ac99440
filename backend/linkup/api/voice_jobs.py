from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import asyncio

from ..container import Container, get_container
from ..schemas.pydantic_schemas import VoiceJobListResponse, VoiceJobRead
from ..services.completion import recategorize_all

router = APIRouter()


@router.get("/", response_model=VoiceJobListResponse)
async def list_voice_jobs(
    status: Optional[str] = None,
    gig_type: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    container: Container = Depends(get_container),
):
    items, total = await asyncio.to_thread(container.store.list_jobs, status, gig_type, page, page_size)
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/{job_id}", response_model=VoiceJobRead)
async def get_voice_job(job_id: str, container: Container = Depends(get_container)):
    job = await asyncio.to_thread(container.store.find_by_id, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Voice job not found")
    return job


@router.post("/recategorize")
async def recategorize(container: Container = Depends(get_container)):
    fixed = await recategorize_all(container.store)
    return {"fixed": fixed}
