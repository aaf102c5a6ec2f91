from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permission, require_user
from app.models.user import User
from app.schemas.payments import PaymentRequestCreate
from app.services import payment_service, pricing


router = APIRouter(tags=["payments"])


@router.post("/payments/requests")
def create_request(
    request: Request,
    payload: PaymentRequestCreate,
    user: User = Depends(require_permission("payments.create")),
    db: Session = Depends(get_db),
):
    r = payment_service.create_payment_request(
        db, user, package_id=payload.package_id, phone=payload.phone, notes=payload.notes
    )
    data = payment_service.payment_out(r, with_transfer=True)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/payments/requests/me")
def my_requests(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)):
    rows = payment_service.list_user_requests(db, int(user.id))
    data = [payment_service.payment_out(r) for r in rows]
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/payments/status/{order_id}")
def payment_status(
    request: Request,
    order_id: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    r = payment_service.get_by_order_id(db, order_id, user)
    data = payment_service.payment_out(r, with_transfer=True)
    return {"request_id": request.state.request_id, "data": data, "error": None}


@router.get("/payments/subscription")
def my_subscription(request: Request, user: User = Depends(require_user), db: Session = Depends(get_db)):
    sub = payment_service.get_active_subscription(db, int(user.id))
    package_id = payment_service.get_current_package(db, int(user.id))
    pkg = pricing.get_package(package_id) or pricing.get_free_package()
    data = {
        "subscription": payment_service.subscription_out(sub),
        "package": pricing.package_out(pkg),
    }
    return {"request_id": request.state.request_id, "data": data, "error": None}
