"""OpenAI Chat Completions driver."""
import time
from typing import Any, Dict, List, Optional

import requests

from app.core.config import get_settings
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

OPENAI_API_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"


def create_chat_completion(
    api_key: str,
    model: str,
    messages: List[Dict[str, str]],
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    top_p: Optional[float] = None
) -> Optional[Dict[str, Any]]:
    """
    Request a chat completion.

    Args:
        api_key: OpenAI API key
        model: Model name
        messages: [{"role": "system"|"user"|"assistant", "content": str}, ...]

    Returns:
        Completion response body, or None on any failure (logged)
    """
    if not api_key:
        logger.error("[OpenAI] API key is required")
        return None
    if not messages:
        logger.error("[OpenAI] Messages array is required and cannot be empty")
        return None

    body: Dict[str, Any] = {"model": model, "messages": messages}
    if max_tokens:
        body["max_tokens"] = max_tokens
    if temperature is not None:
        body["temperature"] = temperature
    if top_p is not None:
        body["top_p"] = top_p

    logger.info(f"[OpenAI] Chat completion request with model {model} ({len(messages)} messages)")
    try:
        response = requests.post(
            f"{OPENAI_API_BASE_URL}/chat/completions",
            json=body,
            headers={"Authorization": f"Bearer {api_key}", "User-Agent": "Fusion-Bridge/1.0"},
            timeout=settings.http_timeout_seconds
        )
    except requests.RequestException as e:
        logger.error(f"[OpenAI] Network error: {e}")
        return None

    if not response.ok:
        logger.error(f"[OpenAI] HTTP error: {response.status_code} - {response.text}")
        return None

    try:
        data = response.json()
    except ValueError:
        logger.error("[OpenAI] Response was not valid JSON")
        return None

    if not isinstance(data, dict) or not isinstance(data.get("choices"), list):
        logger.error(f"[OpenAI] Invalid response format: {data}")
        return None

    usage = data.get("usage") or {}
    logger.info(f"[OpenAI] Completion tokens: {usage.get('completion_tokens')}, total: {usage.get('total_tokens')}")
    return data


def test_api_key(
    api_key: str,
    model: str = DEFAULT_MODEL,
    max_tokens: int = 50,
    temperature: float = 0.7,
    top_p: float = 1.0
) -> Dict[str, Any]:
    """Send a tiny completion to check the key. Returns success, responseTime and usage."""
    if not api_key:
        return {"success": False, "errorMessage": "API key is required for testing"}

    start = time.monotonic()
    result = create_chat_completion(
        api_key,
        model,
        [
            {"role": "system", "content": "You are a helpful AI assistant. Respond briefly."},
            {"role": "user", "content": "Say \"API test successful\" if you can read this message."},
        ],
        max_tokens,
        temperature,
        top_p
    )
    response_time = int((time.monotonic() - start) * 1000)

    if result and result.get("choices"):
        usage = result.get("usage") or {}
        return {
            "success": True,
            "responseTime": response_time,
            "usage": {
                "promptTokens": usage.get("prompt_tokens"),
                "completionTokens": usage.get("completion_tokens"),
                "totalTokens": usage.get("total_tokens"),
            },
        }
    return {
        "success": False,
        "errorMessage": "API key may be invalid or the OpenAI service is temporarily unavailable. Check your API key and try again.",
        "responseTime": response_time,
    }
