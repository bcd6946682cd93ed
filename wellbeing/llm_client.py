import logging
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from wellbeing.google_helpers import GEMINI_API_BASE, GEMINI_API_KEY, GEMINI_MODEL, LLM_TIMEOUT

logger = logging.getLogger("wellbeing_hub")


class InferenceError(Exception):
    pass


class MalformedResponseError(InferenceError):
    """The service answered, but not with candidates[0].content.parts[0].text."""

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


class InferenceTransportError(InferenceError):
    """Connection failure, timeout, or a non-2xx status."""


def extract_first_text(result: Any) -> str:
    if not isinstance(result, dict):
        raise MalformedResponseError("response is not a JSON object", result)
    candidates = result.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise MalformedResponseError("no candidates in response", result)
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        raise MalformedResponseError("candidate has no content", result)
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        raise MalformedResponseError("candidate content has no parts", result)
    text = parts[0].get("text")
    if not isinstance(text, str) or not text:
        raise MalformedResponseError("first part carries no text", result)
    return text


class GeminiChatClient:
    """
    Minimal wrapper for chat-style use against the Generative Language API:

        text = await chat_llm.invoke([HumanMessage(...), AIMessage(...), ...])

    One HTTP call per invoke, no retries.
    """

    def __init__(
        self,
        model_name: str = GEMINI_MODEL,
        *,
        api_key: str = GEMINI_API_KEY,
        api_base: str = GEMINI_API_BASE,
        timeout: float | None = LLM_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model_name = model_name
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self.last_usage: Optional[Dict[str, int]] = None

    @property
    def endpoint(self) -> str:
        return f"{self._api_base}/models/{self.model_name}:generateContent"

    def _to_gemini_contents(self, messages: List[BaseMessage]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for m in messages:
            if isinstance(m, AIMessage):
                role = "model"
            elif isinstance(m, (HumanMessage, SystemMessage)):
                role = "user"
            else:
                role = "user"
            out.append({"role": role, "parts": [{"text": str(m.content)}]})
        return out

    def build_payload(self, messages: List[BaseMessage]) -> Dict[str, Any]:
        return {"contents": self._to_gemini_contents(messages)}

    def _merge_usage(self, usage_metadata: Any) -> None:
        if not isinstance(usage_metadata, dict):
            return
        inc = {
            "prompt_token_count": int(usage_metadata.get("promptTokenCount", 0) or 0),
            "candidates_token_count": int(usage_metadata.get("candidatesTokenCount", 0) or 0),
            "total_token_count": int(usage_metadata.get("totalTokenCount", 0) or 0),
        }
        if self.last_usage is None:
            self.last_usage = inc
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + v

    async def invoke(self, messages: List[BaseMessage]) -> str:
        payload = self.build_payload(messages)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.endpoint,
                    params={"key": self._api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise InferenceTransportError(f"{type(e).__name__}: {e}") from e

        try:
            result = resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"response body is not JSON: {e}") from e

        text = extract_first_text(result)
        self._merge_usage(result.get("usageMetadata"))
        return text
