"""Ollama Provider 适配器。

Ollama 是本地运行的 LLM 服务：
- 对话: POST {base_url}/api/chat
- 流式: 同一端点，stream=true，响应为逐行 JSON（NDJSON），
  每行形如 {"message": {"content": "Δ"}}，最后一行带 {"done": true}。
- 版本: GET {base_url}/api/version
- 模型列表: GET {base_url}/api/tags

Ollama 不支持多段内容数组，发送前会把多段内容压平成纯文本（图片被丢弃）。
"""

import json
from typing import Any, Dict, List

import httpx

from chat_core.domain.exceptions import ApiError, NetworkError, RateLimitError
from chat_core.domain.models import ChatMessage, ProviderOptions
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import ChunkCallback


class OllamaClient:
    """Ollama 客户端实现。"""

    name = "ollama"
    supports_vision = False

    # ---- 非流式 ----

    def complete(self, messages: List[ChatMessage], options: ProviderOptions) -> str:
        payload = self._build_payload(messages, options, stream=False)
        try:
            with httpx.Client(timeout=options.timeout, trust_env=False) as client:
                resp = client.post(f"{options.base_url}/api/chat", json=payload)
        except httpx.RequestError as e:
            raise NetworkError(
                code="NETWORK_ERROR",
                message=f"Request failed. Is Ollama running? {e}",
                provider=self.name,
            )
        self._raise_for_status(resp.status_code, resp.text)
        try:
            data = resp.json()
            return data["message"]["content"] or ""
        except (ValueError, KeyError, TypeError):
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
        url = f"{options.base_url}/api/chat"
        logger.debug("Sending stream request to Ollama", extra={"extra": {"url": url, "model": options.model}})
        try:
            with httpx.Client(timeout=options.timeout, trust_env=False) as client:
                with client.stream("POST", url, json=payload) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        self._raise_for_status(resp.status_code, resp.text)
                    for line in resp.iter_lines():
                        if self._handle_line(line, on_chunk):
                            break
        except httpx.RequestError as e:
            raise NetworkError(
                code="NETWORK_ERROR",
                message=f"Streaming failed. Is Ollama running? {e}",
                provider=self.name,
            )

    def _handle_line(self, line: str, on_chunk: ChunkCallback) -> bool:
        """处理一行 NDJSON，返回 True 表示收到结束标记。"""

        line = line.strip()
        if not line:
            return False
        try:
            frame = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed Ollama frame", extra={"extra": {"line": line[:200]}})
            return False
        if not isinstance(frame, dict):
            logger.warning("Skipping unexpected Ollama frame", extra={"extra": {"line": line[:200]}})
            return False
        if frame.get("error"):
            raise ApiError(code="STREAM_ERROR", message=str(frame["error"]), http_status=502, provider=self.name)
        message = frame.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str) and content:
                on_chunk(content)
        elif not frame.get("done"):
            logger.warning("Unexpected Ollama response format", extra={"extra": {"line": line[:200]}})
        return bool(frame.get("done"))

    # ---- 健康检查 / 模型 ----

    def check_liveness(self, options: ProviderOptions) -> str:
        data = self._get_json(f"{options.base_url}/api/version", options)
        return str(data.get("version", "unknown"))

    def list_models(self, options: ProviderOptions) -> List[str]:
        data = self._get_json(f"{options.base_url}/api/tags", options)
        return [m.get("name", "") for m in data.get("models", []) if isinstance(m, dict)]

    # ---- 辅助方法 ----

    def _get_json(self, url: str, options: ProviderOptions) -> Dict[str, Any]:
        try:
            with httpx.Client(timeout=options.timeout, trust_env=False) as client:
                resp = client.get(url)
        except httpx.RequestError as e:
            raise NetworkError(
                code="NETWORK_ERROR",
                message=f"Cannot connect to Ollama server: {e}",
                provider=self.name,
            )
        self._raise_for_status(resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError:
            data = {}
        return data if isinstance(data, dict) else {}

    def _build_payload(self, messages: List[ChatMessage], options: ProviderOptions, stream: bool) -> dict:
        return {
            "model": options.model,
            "messages": [self._message_to_payload(m) for m in messages],
            "stream": stream,
            "options": {"temperature": options.temperature},
        }

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        # 多段内容只保留文本部分
        return {"role": message.role, "content": message.text()}

    def _raise_for_status(self, status_code: int, body: str) -> None:
        if status_code < 400:
            return
        detail = body
        try:
            decoded = json.loads(body)
            if isinstance(decoded, dict) and decoded.get("error"):
                detail = str(decoded["error"])
        except (json.JSONDecodeError, TypeError):
            pass
        logger.error("Ollama API error", extra={"extra": {"status": status_code, "body": (body or "")[:500]}})
        error_cls = RateLimitError if status_code == 429 else ApiError
        raise error_cls(
            code="RATE_LIMIT" if status_code == 429 else "API_ERROR",
            message=f"API returned status {status_code}: {detail}",
            http_status=status_code,
            provider=self.name,
        )
