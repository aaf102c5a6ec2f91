from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.api.deps import require_user
from app.models.user import User
from app.services import pricing


router = APIRouter(tags=["pricing"])


@router.get("/pricing/packages")
def list_packages(request: Request):
    data = {
        "packages": [pricing.package_out(p) for p in pricing.PRICING_PACKAGES],
        "popular": pricing.get_popular_package().id if pricing.get_popular_package() else None,
    }
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/pricing/recommendation")
def recommendation(request: Request, user: User = Depends(require_user)):
    rec = pricing.get_recommended_package(user.plan)
    data = {
        "current_plan": user.plan or "free",
        "show_upgrade": pricing.should_show_upgrade(user.plan),
        "recommended": pricing.package_out(rec) if rec else None,
    }
    return {"request_id": request.state.request_id, "data": data, "error": None}
