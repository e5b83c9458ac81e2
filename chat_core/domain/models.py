"""统一的对话、流式事件与解决方案数据模型。

本模块定义了 chat_core 内部在不同组件之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant），content 可以是纯文本或多段内容。
- ProviderOptions: 调用某个 Provider 时的模型/地址/温度等参数。
- StreamEvent: ConversationWorker 广播给订阅者的生命周期事件。
- CodeBlock / SolutionCandidate / MatchResult: 解决方案库相关结构。

所有 Provider 适配器（如 OllamaClient、OpenAIClient）都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union


# LLM 消息角色类型
Role = Literal["system", "user", "assistant"]

Difficulty = Literal["beginner", "intermediate", "advanced"]

DIFFICULTIES = ("beginner", "intermediate", "advanced")


@dataclass(frozen=True)
class TextPart:
    """多段内容中的文本片段。"""

    text: str


@dataclass(frozen=True)
class ImagePart:
    """多段内容中的内联图片（base64 编码），仅视觉模型可用。"""

    data_base64: str
    mime_type: str = "image/png"


Part = Union[TextPart, ImagePart]

# content 要么是纯文本，要么是 TextPart/ImagePart 列表
Content = Union[str, List[Part]]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色，如 system/user/assistant。
    - content: 纯文本，或 TextPart/ImagePart 组成的列表。
    - id: 持久化后由存储层分配的稳定 ID；流式过程中的临时消息为 None。
    - meta: 附加元数据，不直接发给 Provider。
    """

    role: Role
    content: Content
    id: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def has_images(self) -> bool:
        if isinstance(self.content, str):
            return False
        return any(isinstance(p, ImagePart) for p in self.content)

    def text(self) -> str:
        """返回消息的纯文本部分，多段内容按换行拼接，图片被忽略。"""

        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if isinstance(p, TextPart))


@dataclass
class ProviderOptions:
    """单次 Provider 调用的参数。"""

    model: str
    base_url: str
    temperature: float = 0.7
    vision_model: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 30.0


# ---- 流式事件 ----


@dataclass(frozen=True)
class Started:
    conversation_id: str
    triggering_message_id: Optional[str]


@dataclass(frozen=True)
class ChunkAppended:
    """一次增量后的累计文本（不是 delta），晚到的订阅者只看最后一条即可同步。"""

    conversation_id: str
    cumulative_text: str


@dataclass(frozen=True)
class Completed:
    conversation_id: str
    final_message: ChatMessage


@dataclass(frozen=True)
class Failed:
    conversation_id: str
    error: str


StreamEvent = Union[Started, ChunkAppended, Completed, Failed]


# ---- 解决方案库 ----


@dataclass(frozen=True)
class CodeBlock:
    """markdown 中的一个代码块，order 为其在原文中的位置（从 0 开始）。"""

    code: str
    language: Optional[str]
    order: int


@dataclass(frozen=True)
class SolutionTag:
    tag_type: Literal["topic", "difficulty", "language"]
    tag_value: str


@dataclass
class SolutionCandidate:
    """尚未持久化的解决方案。

    Packager 负责确定性地填充 query/answer/code_blocks/languages，
    LLMExtractor 的结果再通过 merge_llm_metadata 补充 title/topics/difficulty/description。
    只有人工确认后才会被 commit 到解决方案库，此时才有 id。
    """

    query: str
    answer: str
    code_blocks: List[CodeBlock] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    title: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    difficulty: Optional[Difficulty] = None
    description: Optional[str] = None
    tags: List[SolutionTag] = field(default_factory=list)
    id: Optional[str] = None


@dataclass(frozen=True)
class ExtractedMetadata:
    """LLMExtractor 的输出，缺失字段已填默认值。"""

    title: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    difficulty: Optional[str] = None
    description: Optional[str] = None
    languages: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MatchResult:
    """路由结果。

    - solution_id 为 None 表示模型认为没有可用的解决方案（NoMatch）。
    - accepted 仅当 solution_id 有效且 confidence >= threshold 时为 True；
      低于阈值时仍保留 solution_id 与 confidence，供界面展示与人工选择。
    """

    solution_id: Optional[str]
    confidence: float
    accepted: bool
    reasoning: str = ""

    @classmethod
    def no_match(cls, confidence: float = 0.0, reasoning: str = "") -> "MatchResult":
        return cls(solution_id=None, confidence=confidence, accepted=False, reasoning=reasoning)
