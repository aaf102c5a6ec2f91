from fastapi import APIRouter, Request

from app.infra.queue import is_async_enabled
from app.services.llm_service import llm_available


router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    data = {
        "status": "ok",
        "async_queue": {"enabled": bool(is_async_enabled())},
        "llm_available": bool(llm_available()),
    }
    return {"request_id": request.state.request_id, "data": data, "error": None}
