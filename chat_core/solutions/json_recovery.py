"""从 LLM 的自由文本输出中恢复 JSON。

模型经常在 JSON 外面包一层 markdown 代码块，或者在前后附带说明文字。
恢复顺序：
1. 去掉首尾空白；
2. 以 ```json 或 ``` 开头时去掉开头和结尾的围栏；
3. 否则若包含 "{"，截取第一个 "{" 到最后一个 "}"；
4. 严格 json.loads。

本模块永不抛异常，无法恢复时返回 None。
"""

import json
from typing import Any, Dict, Optional


def extract_json_text(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        body = text[len("```json"):] if text.startswith("```json") else text[3:]
        body = body.strip()
        if body.endswith("```"):
            body = body[:-3]
        return body.strip()
    if "{" in text:
        start = text.find("{")
        end = text.rfind("}")
        if end > start:
            return text[start:end + 1]
    return text


def recover_json(text: Any) -> Optional[Any]:
    if not isinstance(text, str):
        return None
    try:
        return json.loads(extract_json_text(text))
    except (ValueError, RecursionError):
        # 嵌套过深的输出会让 json.loads 递归溢出
        return None


def recover_json_object(text: Any) -> Optional[Dict[str, Any]]:
    """只接受 JSON 对象，其它类型（数组、数字等）视为无法恢复。"""

    value = recover_json(text)
    return value if isinstance(value, dict) else None
