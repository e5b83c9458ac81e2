"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取各个 LLM 流程的 system prompt 文本，
用于构造 ChatMessage(role="system")：

- solution_router: 解决方案匹配
- metadata_extractor: 元数据提取
- prompt_analyzer: 系统提示词分类
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_system_prompt(name: str, locale: str = "en") -> str:
    """根据流程名称和语言加载系统提示词文本。"""

    fname = PROMPTS_DIR / locale / f"{name}_system.md"
    return fname.read_text(encoding="utf-8").strip()
