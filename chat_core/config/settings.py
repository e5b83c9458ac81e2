"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CORE_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class ChatSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 主对话 Provider ----
    llm_provider: Literal["ollama", "openai"] = Field(
        default="ollama",
        description="主对话使用的 Provider：ollama 或 openai",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="主对话生成温度")

    # Ollama
    ollama_url: str = Field(default="http://localhost:11434", description="Ollama 服务地址")
    ollama_model: str = Field(default="llama3.2", description="Ollama 对话模型")

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API 基础URL")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI 对话模型")
    openai_vision_model: str = Field(
        default="gpt-4o",
        description="消息包含图片时强制使用的视觉模型",
    )

    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 解决方案路由 ----
    enable_solution_router: bool = Field(default=True, description="是否在调用 LLM 前先查找已保存的解决方案")
    solution_router_threshold: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="路由匹配的最低置信度",
    )

    # ---- 元数据提取（路由与提示词分析复用同一配置） ----
    solution_extraction_provider: Literal["ollama", "openai"] = Field(default="ollama")
    solution_extraction_ollama_model: str = Field(default="llama3.2")
    solution_extraction_openai_model: str = Field(default="gpt-4o-mini")

    orchestrator_enabled: bool = Field(default=False, description="是否启用系统提示词分类")
    orchestrator_prompts: Dict[str, str] = Field(
        default_factory=dict,
        description="类别 → 系统提示词；类别名可用 \"coding/elixir\" 形式表示子类别",
    )

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("ollama_url", "openai_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = ChatSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = ChatSettings
