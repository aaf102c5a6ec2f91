from __future__ import annotations

import openai
from fastapi import APIRouter, Depends, Request

from app.api.deps import require_admin
from app.models.user import User
from app.services.llm_service import config_status, ping_model


router = APIRouter(tags=["llm"])


@router.get("/llm/status")
def llm_status(request: Request, user: User = Depends(require_admin)):
    data = config_status()
    data["sdk_version"] = getattr(openai, "__version__", None)
    # Chưa cấu hình LLM: chỉ trả về config, không gọi thử
    if data["llm_available"]:
        data["test_response"] = ping_model()
    return {"request_id": request.state.request_id, "data": data, "error": None}
