"""VietQR helpers (img.vietqr.io quick-link images) for bank-transfer payments."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import quote, urlencode

from app.core.config import settings


VIETQR_IMAGE_BASE = "https://img.vietqr.io/image"
TEMPLATES = {"compact", "compact2", "print", "qr_only"}

# BIN của các ngân hàng phổ biến
BANK_CODES: Dict[str, str] = {
    "Vietcombank": "970436",
    "Techcombank": "970407",
    "VPBank": "970432",
    "ACB": "970416",
    "MB Bank": "970422",
    "Sacombank": "970403",
    "VIB": "970441",
    "TPBank": "970423",
    "OCB": "970448",
    "Agribank": "970405",
    "BIDV": "970418",
    "VietinBank": "970415",
    "LP Bank": "970449",
    "MSB": "970426",
    "HDBank": "970437",
    "SHB": "970443",
    "Eximbank": "970431",
    "NCB": "970419",
    "GPBank": "970408",
    "SCB": "970429",
}


@dataclass(frozen=True)
class BankInfo:
    bank_name: str
    bank_bin: str
    account_number: str
    account_name: str


def configured_bank() -> BankInfo:
    return BankInfo(
        bank_name=settings.BANK_NAME,
        bank_bin=settings.BANK_BIN,
        account_number=settings.BANK_ACCOUNT_NUMBER,
        account_name=settings.BANK_ACCOUNT_NAME,
    )


def generate_vietqr_url(
    bank: BankInfo,
    *,
    amount: int | None = None,
    add_info: str | None = None,
    template: str | None = None,
) -> str:
    tpl = template or settings.VIETQR_TEMPLATE or "compact"
    if tpl not in TEMPLATES:
        tpl = "compact"

    params: Dict[str, str] = {}
    if amount and int(amount) > 0:
        params["amount"] = str(int(amount))
    if add_info:
        params["addInfo"] = add_info
    if bank.account_name:
        params["accountName"] = bank.account_name

    url = f"{VIETQR_IMAGE_BASE}/{bank.bank_bin}-{bank.account_number}-{tpl}.png"
    if params:
        url = f"{url}?{urlencode(params, quote_via=quote)}"
    return url


def generate_payment_qr(order_id: str, phone: str, amount: int) -> str:
    return generate_vietqr_url(configured_bank(), amount=amount, add_info=f"{order_id} {phone}")


def format_currency(amount: int) -> str:
    return f"{int(amount):,}".replace(",", ".")


def bank_transfer_instructions(amount: int, content: str) -> str:
    bank = configured_bank()
    return "\n".join(
        [
            f"Ngân hàng: {bank.bank_name}",
            f"Số tài khoản: {bank.account_number}",
            f"Chủ tài khoản: {bank.account_name}",
            f"Số tiền: {format_currency(amount)} VNĐ",
            f"Nội dung chuyển khoản: {content}",
        ]
    )


def validate_bank_info(bank: BankInfo) -> Dict[str, object]:
    errors: List[str] = []
    if not bank.bank_name:
        errors.append("Tên ngân hàng không được để trống")
    if not bank.bank_bin:
        errors.append("Mã BIN ngân hàng không được để trống")
    elif not re.fullmatch(r"\d{6}", bank.bank_bin):
        errors.append("Mã BIN phải có đúng 6 chữ số")
    if not bank.account_number:
        errors.append("Số tài khoản không được để trống")
    elif not re.fullmatch(r"\d{8,15}", bank.account_number):
        errors.append("Số tài khoản phải có từ 8-15 chữ số")
    if not bank.account_name:
        errors.append("Tên chủ tài khoản không được để trống")
    elif len(bank.account_name) < 2:
        errors.append("Tên chủ tài khoản phải có ít nhất 2 ký tự")
    return {"valid": not errors, "errors": errors}


def bank_name_from_bin(bin_code: str) -> Optional[str]:
    for name, code in BANK_CODES.items():
        if code == bin_code:
            return name
    return None


def bin_from_bank_name(bank_name: str) -> Optional[str]:
    needle = (bank_name or "").strip().lower()
    if not needle:
        return None
    for name, code in BANK_CODES.items():
        if needle in name.lower() or name.lower() in needle:
            return code
    return None
