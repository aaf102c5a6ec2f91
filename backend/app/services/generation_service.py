from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException

from app.services.llm_service import LLMResult, chat_completion, chat_json, llm_available

logger = logging.getLogger(__name__)

MAX_EXERCISE_COUNT = 50
MAX_TEST_QUESTIONS = 50

SUBJECT_ALIASES = {
    "toán": "math",
    "toan": "math",
    "math": "math",
    "tiếng việt": "literature",
    "tieng viet": "literature",
    "văn": "literature",
    "literature": "literature",
    "tiếng anh": "english",
    "tieng anh": "english",
    "english": "english",
}

SUBJECT_LABELS = {"math": "Toán", "literature": "Tiếng Việt", "english": "Tiếng Anh"}

DIFFICULTIES = {"easy": "dễ", "medium": "trung bình", "hard": "khó"}

_ARITH_RE = re.compile(r"(\d+)\s*([+\-×x*÷/:])\s*(\d+)\s*=\s*\?")


def normalize_subject(subject: str | None) -> str:
    s = " ".join(str(subject or "").strip().lower().split())
    if not s:
        raise HTTPException(status_code=400, detail="subject is required")
    return SUBJECT_ALIASES.get(s, s)


def _subject_label(subject: str) -> str:
    return SUBJECT_LABELS.get(subject, subject)


def _require_llm() -> None:
    if not llm_available():
        raise HTTPException(status_code=503, detail="LLM is not configured")


def _call_json(**kwargs: Any) -> Tuple[Dict[str, Any], LLMResult]:
    try:
        return chat_json(**kwargs)
    except ValueError as e:
        logger.warning("LLM returned unparsable JSON: %s", e)
        raise HTTPException(status_code=502, detail="LLM returned invalid JSON") from e
    except Exception as e:
        raise HTTPException(status_code=502, detail=f"LLM error: {type(e).__name__}") from e


def _arith_result(question: str) -> Optional[int]:
    m = _ARITH_RE.search(question or "")
    if not m:
        return None
    a, op, b = int(m.group(1)), m.group(2), int(m.group(3))
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op in {"×", "x", "*"}:
        return a * b
    if b == 0:
        return None
    return a // b


def fix_arithmetic_answer(question: str, options: List[str], answer: str) -> str:
    """For plain 'a op b = ?' questions pick the option holding the real result."""
    result = _arith_result(question)
    if result is None or not options:
        return answer
    pattern = re.compile(rf"(?<!\d){result}(?!\d)")
    for opt in options:
        if pattern.search(str(opt)):
            return str(opt)
    return answer


def _clean_exercise(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    q = str(raw.get("question") or "").strip()
    if not q:
        return None
    options = [str(o).strip() for o in (raw.get("options") or []) if str(o).strip()]
    answer = str(raw.get("answer") or "").strip()
    if options:
        answer = fix_arithmetic_answer(q, options, answer)
    out: Dict[str, Any] = {
        "question": q,
        "answer": answer,
        "explanation": str(raw.get("explanation") or "").strip(),
    }
    if options:
        out["options"] = options
    return out


def generate_exercises(
    *,
    subject: str,
    topic: str,
    grade: str = "Lớp 1",
    count: int = 5,
    difficulty: str = "medium",
) -> Tuple[List[Dict[str, Any]], LLMResult]:
    if not 1 <= int(count) <= MAX_EXERCISE_COUNT:
        raise HTTPException(status_code=400, detail=f"count must be between 1 and {MAX_EXERCISE_COUNT}")
    if difficulty not in DIFFICULTIES:
        raise HTTPException(status_code=400, detail="difficulty must be easy, medium or hard")
    subj = normalize_subject(subject)
    _require_llm()

    system = (
        "Bạn là giáo viên giàu kinh nghiệm theo chương trình Bộ GD&ĐT Việt Nam. "
        'Chỉ trả về JSON: {"exercises": [{"question": str, "options": [str] (tuỳ chọn), "answer": str, "explanation": str}]}'
    )
    user = (
        f"Tạo {int(count)} bài tập {_subject_label(subj)} chủ đề '{topic}' cho học sinh {grade}, "
        f"độ khó {DIFFICULTIES[difficulty]}. Với câu trắc nghiệm: 4 lựa chọn A, B, C, D."
    )
    obj, res = _call_json(
        messages=[{"role": "system", "content": system}, {"role": "user", "content": user}],
        temperature=0.7,
        max_tokens=3000,
    )
    items = [e for e in (_clean_exercise(x) for x in (obj.get("exercises") or []) if isinstance(x, dict)) if e]
    if not items:
        logger.warning("exercise generation returned no items subject=%s topic=%s", subj, topic)
        raise HTTPException(status_code=502, detail="LLM returned no exercises")
    return items[: int(count)], res


def generate_lesson_plan(*, subject: str, grade: str, topic: str, duration: int = 45) -> Tuple[str, LLMResult]:
    if not topic or not str(topic).strip():
        raise HTTPException(status_code=400, detail="topic is required")
    if not 10 <= int(duration) <= 180:
        raise HTTPException(status_code=400, detail="duration must be between 10 and 180 minutes")
    subj = normalize_subject(subject)
    _require_llm()

    system = "Bạn là chuyên gia soạn giáo án tiểu học và THCS. Trả lời bằng Markdown."
    user = (
        f"Soạn giáo án môn {_subject_label(subj)} cho {grade}, bài '{topic}', thời lượng {int(duration)} phút.\n"
        "Gồm: Mục tiêu, Chuẩn bị, Tiến trình dạy học (khởi động, hình thành kiến thức, luyện tập, vận dụng), "
        "Đánh giá, Bài tập về nhà."
    )
    try:
        res = chat_completion(
            messages=[{"role": "system", "content": system}, {"role": "user", "content": user}],
            temperature=0.5,
            max_tokens=3000,
        )
    except Exception as e:
        raise HTTPException(status_code=502, detail=f"LLM error: {type(e).__name__}") from e
    if not res.text.strip():
        raise HTTPException(status_code=502, detail="LLM returned an empty lesson plan")
    return res.text, res


def _clean_test_question(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    q = str(raw.get("question") or "").strip()
    if not q:
        return None
    options = [str(o).strip() for o in (raw.get("options") or []) if str(o).strip()]
    try:
        points = float(raw.get("points") or 1)
    except (TypeError, ValueError):
        points = 1.0
    answer = str(raw.get("answer") or "").strip()
    if options:
        answer = fix_arithmetic_answer(q, options, answer)
    return {"question": q, "options": options, "answer": answer, "points": points}


def generate_test(
    *,
    subject: str,
    grade: str,
    topic: str,
    question_count: int = 10,
    duration_minutes: int = 45,
) -> Tuple[Dict[str, Any], LLMResult]:
    if not 1 <= int(question_count) <= MAX_TEST_QUESTIONS:
        raise HTTPException(status_code=400, detail=f"question_count must be between 1 and {MAX_TEST_QUESTIONS}")
    if not 5 <= int(duration_minutes) <= 180:
        raise HTTPException(status_code=400, detail="duration_minutes must be between 5 and 180")
    subj = normalize_subject(subject)
    _require_llm()

    system = (
        "Bạn là giáo viên ra đề kiểm tra. Chỉ trả về JSON: "
        '{"title": str, "questions": [{"question": str, "options": [str], "answer": str, "points": number}]}'
    )
    user = (
        f"Ra đề kiểm tra {_subject_label(subj)} cho {grade}, chủ đề '{topic}', {int(question_count)} câu, "
        f"làm trong {int(duration_minutes)} phút. Tổng điểm 10."
    )
    obj, res = _call_json(
        messages=[{"role": "system", "content": system}, {"role": "user", "content": user}],
        temperature=0.5,
        max_tokens=4000,
    )
    questions = [
        q for q in (_clean_test_question(x) for x in (obj.get("questions") or []) if isinstance(x, dict)) if q
    ][: int(question_count)]
    if not questions:
        raise HTTPException(status_code=502, detail="LLM returned no questions")

    test = {
        "title": str(obj.get("title") or f"Kiểm tra {_subject_label(subj)} - {topic}"),
        "subject": subj,
        "grade": grade,
        "topic": topic,
        "duration_minutes": int(duration_minutes),
        "questions": questions,
        "total_points": round(sum(q["points"] for q in questions), 2),
    }
    return test, res
