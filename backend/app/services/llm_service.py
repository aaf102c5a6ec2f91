from __future__ import annotations

import ast
import json
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import OpenAI

from app.core.config import settings


logger = logging.getLogger(__name__)

_client: OpenAI | None = None


PLACEHOLDER_KEY_MARKERS = [
    "your_api_key",
    "your api key",
    "your-api-key",
    "replace_me",
    "replace-me",
    "changeme",
    "change_me",
    "sk-xxxxxxxx",
    "your_openai_api_key",
    "openai_api_key",
]


@dataclass
class LLMResult:
    text: str
    usage: Dict[str, int] = field(default_factory=dict)
    model: Optional[str] = None
    response_id: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return int(self.usage.get("total_tokens") or 0)


def looks_like_placeholder_key(k: str | None) -> bool:
    if not k:
        return False
    ks = (k or "").strip().lower()
    if not ks:
        return False
    if any(m in ks for m in PLACEHOLDER_KEY_MARKERS):
        return True
    # Placeholders thường chứa "your"/"demo"/"example" + "key"
    if not ks.startswith("sk-") and "key" in ks:
        if any(tok in ks for tok in ("your", "demo", "sample", "example", "replace")):
            return True
    if "xxxx" in ks:
        return True
    return False


def llm_available() -> bool:
    """Return True if we can call an LLM from this backend.

    Supported providers:
    - OpenAI API: set OPENAI_API_KEY
    - OpenAI-compatible servers (Ollama/LM Studio/gateways): set OPENAI_BASE_URL (key can be blank)
    """
    base_url = (settings.OPENAI_BASE_URL or "").strip()
    if not settings.OPENAI_API_KEY and not base_url:
        return False
    # OpenAI cloud + placeholder key luôn lỗi 401
    if not base_url and looks_like_placeholder_key(settings.OPENAI_API_KEY):
        return False
    return True


def config_status() -> Dict[str, Any]:
    """Current LLM wiring for the admin status page. Never includes the key itself."""

    base_url = (settings.OPENAI_BASE_URL or "").strip()
    return {
        "llm_available": llm_available(),
        "model": settings.OPENAI_CHAT_MODEL,
        "provider": "openai_compatible" if base_url else "openai",
        "base_url": base_url or None,
        "api_key_set": bool((settings.OPENAI_API_KEY or "").strip()),
        "api_key_is_placeholder": looks_like_placeholder_key(settings.OPENAI_API_KEY),
    }


def _parse_json_object_env(name: str, value: str | None) -> Dict[str, Any] | None:
    """Parse a JSON object from an env-var-like string."""

    raw = (value or "").strip()
    if not raw:
        return None
    try:
        obj = json.loads(raw)
    except ValueError as e:
        raise RuntimeError(
            f"{name} must be a valid JSON object string. Example: {name}={{\"foo\":\"bar\"}}. Error: {str(e)[:120]}"
        ) from e
    if not isinstance(obj, dict):
        raise RuntimeError(f"{name} must be a JSON object ({{...}}), got {type(obj).__name__}.")
    return obj


def _get_client() -> OpenAI:
    global _client
    if _client is not None:
        return _client

    base_url = (settings.OPENAI_BASE_URL or "").strip() or None
    api_key = (settings.OPENAI_API_KEY or "").strip() or None
    default_headers = _parse_json_object_env("OPENAI_EXTRA_HEADERS_JSON", settings.OPENAI_EXTRA_HEADERS_JSON)

    if not base_url and looks_like_placeholder_key(api_key):
        raise RuntimeError("API key looks like a placeholder. Please replace OPENAI_API_KEY in backend/.env.")

    # Local OpenAI-compatible server: dummy key is fine
    if not api_key and base_url:
        api_key = "local"

    if not api_key:
        raise RuntimeError("LLM is not configured. Set OPENAI_API_KEY or OPENAI_BASE_URL in backend/.env")

    kwargs: Dict[str, Any] = {
        "api_key": api_key,
        "timeout": float(settings.OPENAI_HTTP_TIMEOUT_SEC),
        "max_retries": int(settings.OPENAI_MAX_RETRIES),
        "default_headers": default_headers,
    }
    if base_url:
        kwargs["base_url"] = base_url
    _client = OpenAI(**kwargs)
    return _client


def estimate_tokens(text: str) -> int:
    """Rough token estimate (≈ 4 chars/token) for providers that omit usage."""
    return int(math.ceil(len(text or "") / 4.0))


def _message_chars(messages: List[Dict[str, Any]]) -> str:
    out = []
    for m in messages:
        content = m.get("content")
        if isinstance(content, str):
            out.append(content)
        elif isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and part.get("type") == "text":
                    out.append(str(part.get("text") or ""))
    return "\n".join(out)


def _usage_from_response(res: Any, messages: List[Dict[str, Any]], text: str) -> Dict[str, int]:
    usage = getattr(res, "usage", None)
    if usage is not None:
        prompt = int(getattr(usage, "prompt_tokens", 0) or 0)
        completion = int(getattr(usage, "completion_tokens", 0) or 0)
        total = int(getattr(usage, "total_tokens", 0) or 0) or (prompt + completion)
        if total > 0:
            return {"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": total}

    prompt = estimate_tokens(_message_chars(messages))
    completion = estimate_tokens(text)
    return {"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": prompt + completion}


def _extract_chat_completion_text(res: Any) -> str:
    """Best-effort extraction of assistant text from a Chat Completions response.

    Handles content as a plain string, as a list of content parts, and the
    non-standard ``reasoning_content`` field some providers fill instead.
    """

    def _parts_to_text(parts) -> str:
        if isinstance(parts, str):
            return parts.strip()
        if not isinstance(parts, list):
            return ""
        out = []
        for p in parts:
            if isinstance(p, str) and p.strip():
                out.append(p.strip())
                continue
            p_text = p.get("text") if isinstance(p, dict) else getattr(p, "text", None)
            if isinstance(p_text, str) and p_text.strip():
                out.append(p_text.strip())
        return "\n".join(out).strip()

    try:
        msg = res.choices[0].message
    except (AttributeError, IndexError, TypeError):
        return ""

    for key in ("content", "reasoning_content"):
        val = msg.get(key) if isinstance(msg, dict) else getattr(msg, key, None)
        t = _parts_to_text(val)
        if t:
            return t
    return ""


def chat_completion(
    *,
    messages: List[Dict[str, Any]],
    model: Optional[str] = None,
    temperature: float = 0.7,
    max_tokens: int = 1200,
    json_mode: bool = False,
) -> LLMResult:
    """Single chat.completions call. Raises on provider errors."""

    client = _get_client()
    model_id = model or settings.OPENAI_CHAT_MODEL
    kwargs: Dict[str, Any] = {
        "model": model_id,
        "messages": messages,
        "temperature": float(temperature),
        "max_tokens": int(max_tokens),
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    try:
        res = client.chat.completions.create(**kwargs)
    except Exception:
        logger.exception("LLM call failed model=%s", model_id)
        raise

    text = _extract_chat_completion_text(res)
    return LLMResult(
        text=text,
        usage=_usage_from_response(res, messages, text),
        model=getattr(res, "model", None) or model_id,
        response_id=getattr(res, "id", None),
    )


_THINK_RE = re.compile(r"<\s*(think|analysis)\s*>.*?<\s*/\s*\1\s*>", re.IGNORECASE | re.DOTALL)
_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)


def _preprocess_llm_text(s: str) -> str:
    """Strip <think>...</think> blocks and markdown fences."""
    s = (s or "").strip()
    if not s:
        return ""
    s = _THINK_RE.sub("", s).strip()
    if "```" in s:
        s = _FENCE_RE.sub("", s).strip()
    return s


def _extract_last_json_object(s: str) -> Dict[str, Any] | None:
    """Return the last valid JSON object found in text, or None."""
    dec = json.JSONDecoder()
    last_obj: Dict[str, Any] | None = None
    i = 0
    while True:
        i = s.find("{", i)
        if i < 0:
            break
        try:
            obj, end = dec.raw_decode(s[i:])
        except ValueError:
            i += 1
            continue
        if isinstance(obj, dict):
            last_obj = obj
        i = i + max(1, end)
    return last_obj


def _safe_json_loads(s: str) -> Dict[str, Any]:
    s2 = _preprocess_llm_text(s)
    if not s2:
        raise ValueError("Empty LLM response (expected JSON).")

    def _try_json(text: str) -> Dict[str, Any] | None:
        try:
            obj = json.loads(text)
        except ValueError:
            return None
        return obj if isinstance(obj, dict) else None

    # 1) exact JSON
    obj = _try_json(s2)
    if obj is not None:
        return obj

    # 2) trailing commas trước '}' / ']'
    s3 = re.sub(r",\s*([}\]])", r"\1", s2)
    obj = _try_json(s3)
    if obj is not None:
        return obj

    # 3) quét tìm JSON object cuối cùng
    obj = _extract_last_json_object(s3)
    if obj is not None:
        return obj

    # 4) quasi-JSON (single quotes, True/False/None)
    s4 = re.sub(r"\bnull\b", "None", s3, flags=re.IGNORECASE)
    s4 = re.sub(r"\btrue\b", "True", s4, flags=re.IGNORECASE)
    s4 = re.sub(r"\bfalse\b", "False", s4, flags=re.IGNORECASE)
    try:
        lit = ast.literal_eval(s4)
    except (ValueError, SyntaxError):
        lit = None
    if isinstance(lit, dict):
        return lit

    raise ValueError(f"Could not parse JSON from LLM output. Head={s2[:200]!r}")


def chat_json(
    *,
    messages: List[Dict[str, Any]],
    model: Optional[str] = None,
    temperature: float = 0.3,
    max_tokens: int = 1200,
) -> tuple[Dict[str, Any], LLMResult]:
    """Call the LLM in JSON mode and return (parsed object, raw result)."""

    try:
        res = chat_completion(
            messages=messages, model=model, temperature=temperature, max_tokens=max_tokens, json_mode=True
        )
    except Exception:
        # Một số server OpenAI-compatible không hỗ trợ response_format
        res = chat_completion(
            messages=messages, model=model, temperature=temperature, max_tokens=max_tokens, json_mode=False
        )
    return _safe_json_loads(res.text), res


def ping_model(model: Optional[str] = None, timeout_sec: float | None = None) -> Dict[str, Any]:
    """Lightweight connectivity/latency test. Never raises on normal failures."""

    model_id = model or settings.OPENAI_CHAT_MODEL
    timeout_sec = float(timeout_sec or settings.OPENAI_STATUS_TEST_TIMEOUT_SEC)
    messages = [
        {"role": "system", "content": "Output exactly one JSON object and nothing else."},
        {"role": "user", "content": 'Return ONLY JSON: {"ok": true}'},
    ]
    try:
        client = _get_client()
        t0 = time.time()
        res = client.chat.completions.create(
            model=model_id,
            messages=messages,
            temperature=0,
            max_tokens=64,
            timeout=timeout_sec,
        )
        dt = time.time() - t0
        raw_text = _extract_chat_completion_text(res)
        try:
            ok_value = _safe_json_loads(raw_text).get("ok")
            json_parse_ok = True
        except ValueError:
            ok_value = None
            json_parse_ok = False
        return {
            "ok": True,
            "latency_sec": round(dt, 3),
            "requested_model": model_id,
            "returned_model": getattr(res, "model", None),
            "content_head": _preprocess_llm_text(raw_text)[:160],
            "json_parse_ok": json_parse_ok,
            "ok_value": ok_value,
        }
    except Exception as e:
        logger.warning("LLM ping failed model=%s: %s", model_id, e)
        return {
            "ok": False,
            "error": f"{type(e).__name__}: {str(e)[:200]}",
            "timeout_sec": timeout_sec,
            "requested_model": model_id,
        }
