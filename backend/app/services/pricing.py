from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PricingPackage(BaseModel):
    id: str
    display_name: str
    price: int  # VND
    period: str = ""
    token_quota: int
    max_students: int = 1
    features: List[str] = Field(default_factory=list)
    highlight: bool = False
    popular: bool = False

    @property
    def price_text(self) -> str:
        return format_price(self.price)


PRICING_PACKAGES: List[PricingPackage] = [
    PricingPackage(
        id="free",
        display_name="Miễn phí",
        price=0,
        token_quota=10000,
        max_students=1,
        features=["10.000 tokens/ngày", "5 bài học cơ bản", "Chat AI giới hạn", "Hỗ trợ cộng đồng"],
    ),
    PricingPackage(
        id="basic",
        display_name="Gói Basic",
        price=99000,
        period="/tháng",
        token_quota=50000,
        max_students=1,
        features=["50.000 tokens/ngày", "Tất cả bài học", "Chat AI không giới hạn", "Báo cáo tiến độ", "Hỗ trợ qua email"],
    ),
    PricingPackage(
        id="premium",
        display_name="Gói Premium",
        price=249000,
        period="/tháng",
        token_quota=200000,
        max_students=3,
        features=[
            "200.000 tokens/ngày",
            "Tất cả tính năng Basic",
            "Hỗ trợ 3 học sinh",
            "Báo cáo chi tiết",
            "Hỗ trợ ưu tiên",
            "Backup dữ liệu",
        ],
        highlight=True,
        popular=True,
    ),
    PricingPackage(
        id="teacher",
        display_name="Gói Teacher",
        price=499000,
        period="/tháng",
        token_quota=999999,
        max_students=30,
        features=[
            "Tokens không giới hạn",
            "Quản lý 30 học sinh",
            "Dashboard giáo viên",
            "Analytics chi tiết",
            "Hỗ trợ 24/7",
        ],
    ),
]

_BY_ID: Dict[str, PricingPackage] = {p.id: p for p in PRICING_PACKAGES}

# free -> basic -> premium -> teacher
_UPGRADE_PATH = {"free": "basic", "basic": "premium", "premium": "teacher"}


def get_package(package_id: str | None) -> Optional[PricingPackage]:
    return _BY_ID.get(str(package_id or "").strip().lower())


def get_free_package() -> PricingPackage:
    return _BY_ID["free"]


def get_active_packages() -> List[PricingPackage]:
    return [p for p in PRICING_PACKAGES if p.id != "free"]


def get_popular_package() -> Optional[PricingPackage]:
    return next((p for p in PRICING_PACKAGES if p.popular), None)


def format_price(price: int) -> str:
    """99000 -> '99.000 ₫' (vi-VN grouping)."""
    return f"{int(price):,}".replace(",", ".") + " ₫"


def get_savings_percentage(package_id: str) -> int:
    basic = get_package("basic")
    current = get_package(package_id)
    if not basic or not current or current.id == "free" or current.price <= basic.price:
        return 0
    value_ratio = (current.token_quota / current.max_students) / (basic.token_quota / basic.max_students)
    return max(0, int(round((value_ratio - 1) * 100)))


def should_show_upgrade(current_plan: str | None) -> bool:
    return (current_plan or "free") in {"free", "basic"}


def get_recommended_package(current_plan: str | None) -> Optional[PricingPackage]:
    nxt = _UPGRADE_PATH.get(current_plan or "free")
    return get_package(nxt) if nxt else None


def package_out(p: PricingPackage) -> dict:
    out = p.model_dump()
    out["price_text"] = p.price_text
    out["savings_percentage"] = get_savings_percentage(p.id)
    return out
