from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from app.api.deps import require_user
from app.core.permissions import can_access_route, get_permissions_for_role, redirect_for_role
from app.models.user import User


router = APIRouter(tags=["permissions"])


@router.get("/permissions/me")
def my_permissions(request: Request, user: User = Depends(require_user)):
    data = {
        "role": user.role,
        "permissions": get_permissions_for_role(user.role),
        "redirect_to": redirect_for_role(user.role),
    }
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/permissions/check")
def check_route(request: Request, path: str = Query(..., min_length=1), user: User = Depends(require_user)):
    data = {"path": path, "role": user.role, "allowed": can_access_route(user.role, path)}
    return {"request_id": request.state.request_id, "data": data, "error": None}
