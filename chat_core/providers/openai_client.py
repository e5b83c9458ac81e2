"""OpenAI Provider 适配器。

使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
- 流式: stream=true，响应为 SSE 风格的 "data: {...}" 行，增量在 choices[].delta.content，
  以 "data: [DONE]" 结束。

该 Provider 支持视觉模型：多段内容会原样转换为 text / image_url 数组发送。
"""

import json
from typing import Any, Dict, List, Optional

import httpx

from chat_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from chat_core.domain.models import ChatMessage, ImagePart, ProviderOptions, TextPart
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import ChunkCallback


class OpenAIClient:
    """OpenAI 客户端实现。"""

    name = "openai"
    supports_vision = True

    # ---- 非流式 ----

    def complete(self, messages: List[ChatMessage], options: ProviderOptions) -> str:
        payload = self._build_payload(messages, options, stream=False)
        try:
            with httpx.Client(timeout=options.timeout, trust_env=False) as client:
                resp = client.post(
                    f"{options.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(options),
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        self._raise_for_status(resp.status_code, resp.text)
        try:
            data = resp.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            raise ApiError(
                code="UNEXPECTED_RESPONSE",
                message=f"Unexpected response format: {resp.text[:200]}",
                http_status=502,
                provider=self.name,
            )

    # ---- 流式 ----

    def stream_complete(
        self,
        messages: List[ChatMessage],
        on_chunk: ChunkCallback,
        options: ProviderOptions,
    ) -> None:
        payload = self._build_payload(messages, options, stream=True)
        try:
            with httpx.Client(timeout=options.timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{options.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(options),
                ) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        self._raise_for_status(resp.status_code, resp.text)
                    for line in resp.iter_lines():
                        data_str = self._frame_payload(line)
                        if data_str is None:
                            continue
                        if data_str == "[DONE]":
                            break
                        text = self._parse_stream_frame(data_str)
                        if text:
                            on_chunk(text)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)

    @staticmethod
    def _frame_payload(line: str) -> Optional[str]:
        """从一行 SSE 中取出 data 部分；空行、注释与其他字段返回 None。"""

        line = line.strip()
        if not line or line.startswith(":"):
            return None
        if line.startswith("data:"):
            return line[5:].strip() or None
        if line.startswith(("event:", "id:", "retry:")):
            return None
        return line

    def _parse_stream_frame(self, data_str: str) -> str:
        try:
            frame = json.loads(data_str)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed OpenAI frame", extra={"extra": {"frame": data_str[:200]}})
            return ""
        if not isinstance(frame, dict):
            return ""
        if frame.get("error"):
            err = frame["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise ApiError(code="STREAM_ERROR", message=str(message), http_status=502, provider=self.name)
        choices = frame.get("choices")
        if not isinstance(choices, list):
            if choices is not None:
                logger.warning("Skipping unexpected OpenAI frame", extra={"extra": {"frame": data_str[:200]}})
            return ""
        parts: List[str] = []
        for choice in choices:
            delta = (choice.get("delta") or {}) if isinstance(choice, dict) else None
            if not isinstance(delta, dict):
                logger.warning("Skipping unexpected OpenAI choice", extra={"extra": {"frame": data_str[:200]}})
                continue
            content = delta.get("content")
            if isinstance(content, str):
                parts.append(content)
        return "".join(parts)

    # ---- 健康检查 / 模型 ----

    def check_liveness(self, options: ProviderOptions) -> str:
        resp = self._get(f"{options.base_url}/models", options)
        return resp.headers.get("openai-version") or self.name

    def list_models(self, options: ProviderOptions) -> List[str]:
        resp = self._get(f"{options.base_url}/models", options)
        try:
            data = resp.json()
        except ValueError:
            return []
        ids = [m.get("id") for m in (data.get("data") or []) if isinstance(m, dict) and m.get("id")]
        return sorted(ids)

    # ---- 辅助方法 ----

    def _get(self, url: str, options: ProviderOptions) -> httpx.Response:
        try:
            with httpx.Client(timeout=options.timeout, trust_env=False) as client:
                resp = client.get(url, headers=self._headers(options))
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        self._raise_for_status(resp.status_code, resp.text)
        return resp

    def _headers(self, options: ProviderOptions) -> Dict[str, str]:
        if not options.api_key:
            raise ValidationError(code="MISSING_API_KEY", message="OpenAI API key not set")
        return {
            "Authorization": f"Bearer {options.api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, messages: List[ChatMessage], options: ProviderOptions, stream: bool) -> dict:
        return {
            "model": options.model,
            "messages": [self._message_to_payload(m) for m in messages],
            "temperature": options.temperature,
            "stream": stream,
        }

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        if isinstance(message.content, str):
            return {"role": message.role, "content": message.content}
        parts: List[Dict[str, Any]] = []
        for part in message.content:
            if isinstance(part, TextPart):
                parts.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                parts.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{part.mime_type};base64,{part.data_base64}"},
                    }
                )
        return {"role": message.role, "content": parts}

    def _raise_for_status(self, status_code: int, body: str) -> None:
        if status_code < 400:
            return
        detail = body
        try:
            decoded = json.loads(body)
            err = decoded.get("error") if isinstance(decoded, dict) else None
            if isinstance(err, dict) and err.get("message"):
                detail = str(err["message"])
        except (json.JSONDecodeError, TypeError):
            pass
        logger.error("OpenAI API error", extra={"extra": {"status": status_code, "body": (body or "")[:500]}})
        if status_code == 429:
            raise RateLimitError(
                code="RATE_LIMIT",
                message=f"API returned status 429: {detail}",
                http_status=429,
                provider=self.name,
            )
        raise ApiError(
            code="API_ERROR",
            message=f"API returned status {status_code}: {detail}",
            http_status=status_code,
            provider=self.name,
        )
