"""解决方案库相关流程：代码块解析、打包、LLM 元数据提取与路由。"""

from chat_core.solutions.library import InMemorySolutionLibrary
from chat_core.solutions.llm_extractor import LLMExtractor
from chat_core.solutions.packager import Packager
from chat_core.solutions.router import SolutionRouter

__all__ = ["InMemorySolutionLibrary", "LLMExtractor", "Packager", "SolutionRouter"]
