"""把一次问答（用户问题 + 助手回答）打包为 SolutionCandidate。

打包是确定性的：代码块与语言来自 markdown_parser，不调用 LLM。
LLM 提取出的元数据通过 merge_llm_metadata 合并进来，结果仍只在内存中，
直到人工确认后才会提交到解决方案库。
"""

from dataclasses import replace
from typing import List

from chat_core.domain.exceptions import PackagingError
from chat_core.domain.models import DIFFICULTIES, ExtractedMetadata, SolutionCandidate, SolutionTag
from chat_core.solutions.markdown_parser import extract_code_blocks, unique_languages

MIN_QUERY_LENGTH = 3
MIN_ANSWER_LENGTH = 10


class Packager:
    def package(self, question: str, answer: str) -> SolutionCandidate:
        blocks = extract_code_blocks(answer)
        return SolutionCandidate(
            query=question or "",
            answer=answer or "",
            code_blocks=blocks,
            languages=unique_languages(blocks),
        )

    def validate_and_package(self, question: str, answer: str) -> SolutionCandidate:
        """打包前校验问答对是否值得保存。

        Raises:
            PackagingError: NO_CODE_BLOCKS / QUERY_TOO_SHORT / ANSWER_TOO_SHORT
        """

        candidate = self.package(question, answer)
        if not candidate.code_blocks:
            raise PackagingError(code="NO_CODE_BLOCKS", message="Answer contains no code blocks")
        if len(candidate.query.strip()) < MIN_QUERY_LENGTH:
            raise PackagingError(code="QUERY_TOO_SHORT", message="Question is too short")
        if len(candidate.answer.strip()) < MIN_ANSWER_LENGTH:
            raise PackagingError(code="ANSWER_TOO_SHORT", message="Answer is too short")
        return candidate

    def merge_llm_metadata(self, candidate: SolutionCandidate, metadata: ExtractedMetadata) -> SolutionCandidate:
        """合并 LLM 元数据并生成标签，返回新的 candidate（原对象不变）。"""

        difficulty = metadata.difficulty if metadata.difficulty in DIFFICULTIES else None
        # 解析出的语言优先，模型给出的语言只在没有代码块语言时使用
        languages = candidate.languages or [lang for lang in metadata.languages if lang]
        merged = replace(
            candidate,
            title=metadata.title,
            topics=list(metadata.topics),
            difficulty=difficulty,
            description=metadata.description,
            languages=list(languages),
        )
        merged.tags = build_tags(merged)
        return merged


def build_tags(candidate: SolutionCandidate) -> List[SolutionTag]:
    tags: List[SolutionTag] = []
    seen = set()

    def add(tag_type, value):
        key = (tag_type, value)
        if value and key not in seen:
            seen.add(key)
            tags.append(SolutionTag(tag_type=tag_type, tag_value=value))

    for topic in candidate.topics:
        add("topic", topic)
    if candidate.difficulty:
        add("difficulty", candidate.difficulty)
    for lang in candidate.languages:
        add("language", lang)
    return tags
