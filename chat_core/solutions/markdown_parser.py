"""从 markdown 文本中提取围栏代码块。

规则：
- 去掉行首空白后以 ``` 开头的行打开一个代码块，``` 后的第一个词作为语言（可为空）。
- 之后的行原样收集，直到遇到一行（去掉首尾空白后）恰好为 ``` 的关闭围栏。
- 末尾未闭合的代码块被丢弃，不产生部分结果。
- order 按出现顺序从 0 开始编号。
"""

from typing import Any, Dict, Iterator, List, Optional

from chat_core.domain.models import CodeBlock

FENCE = "```"


def _opening_language(line: str) -> Optional[str]:
    rest = line.lstrip()[len(FENCE):].strip()
    if not rest:
        return None
    return rest.split()[0]


def iter_code_blocks(content: str) -> Iterator[CodeBlock]:
    order = 0
    language: Optional[str] = None
    buffer: Optional[List[str]] = None
    for line in content.split("\n"):
        if buffer is None:
            if line.lstrip().startswith(FENCE):
                language = _opening_language(line)
                buffer = []
            continue
        if line.strip() == FENCE:
            yield CodeBlock(code="\n".join(buffer), language=language, order=order)
            order += 1
            buffer = None
            language = None
        else:
            buffer.append(line)


def extract_code_blocks(content: Any) -> List[CodeBlock]:
    """提取全部代码块；非字符串输入返回空列表。"""

    if not isinstance(content, str):
        return []
    return list(iter_code_blocks(content))


def unique_languages(blocks: List[CodeBlock]) -> List[str]:
    seen: List[str] = []
    for block in blocks:
        if block.language and block.language not in seen:
            seen.append(block.language)
    return seen


def extract_metadata(content: Any) -> Dict[str, Any]:
    """基于代码块列表计算的统计信息，供 LLM 分析与打包使用。"""

    if not isinstance(content, str):
        return {
            "has_code_blocks": False,
            "code_block_count": 0,
            "languages": [],
            "content_length": 0,
        }
    blocks = extract_code_blocks(content)
    return {
        "has_code_blocks": bool(blocks),
        "code_block_count": len(blocks),
        "languages": unique_languages(blocks),
        "content_length": len(content),
    }
