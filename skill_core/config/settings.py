"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("AGENT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
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


class Settings(BaseSettings):
    """引擎配置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    default_provider: str = Field(
        default="openai",
        description="默认使用的 Provider 名称，例如 openai、kimi、glm",
    )
    default_model: str = Field(
        default="chat",
        description="逻辑模型名，由 providers.registry 映射为具体厂商模型",
    )

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API 基础URL")
    kimi_api_key: Optional[str] = Field(default=None, description="Kimi API 密钥")
    kimi_base_url: str = Field(default="https://api.moonshot.cn/v1", description="Kimi API 基础URL")
    glm_api_key: Optional[str] = Field(default=None, description="GLM API 密钥")
    glm_base_url: str = Field(
        default="https://open.bigmodel.cn/api/paas/v4",
        description="GLM API 基础URL",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 对话引擎 ----
    model_timeout: float = Field(
        default=60.0,
        gt=0,
        description="等待模型下一段流式输出的最长时间（秒）",
    )
    skill_timeout: float = Field(default=30.0, gt=0, description="单次技能调用超时时间（秒）")
    max_tool_depth: int = Field(
        default=10,
        ge=1,
        le=50,
        description="单次 prompt 内允许的工具调用轮数上限",
    )
    max_context_turns: int = Field(
        default=200,
        ge=1,
        description="发送给模型的历史轮次上限（按 turn 计）",
    )
    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 向量检索 ----
    embedding_model: str = Field(default="text-embedding-3-small", description="Embedding 模型名")
    embedding_base_url: str = Field(default="https://api.openai.com/v1", description="Embedding API 基础URL")
    embedding_api_key: Optional[str] = Field(default=None, description="Embedding API 密钥，缺省复用 openai_api_key")
    chunk_size: int = Field(default=800, ge=50, description="文档切块字符数")
    chunk_overlap: int = Field(default=100, ge=0, description="相邻切块重叠字符数")
    default_top_k: int = Field(default=5, ge=1, le=100, description="检索默认返回条数")

    # ---- 外部接口 ----
    workspace_root: str = Field(
        default_factory=lambda: str(Path.cwd()),
        description="技能解析相对路径时使用的根目录",
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:3001"],
        description="HTTP 服务允许的跨域来源",
    )
    port: int = Field(default=5000, ge=1, le=65535, description="HTTP 服务端口")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key", "kimi_api_key", "glm_api_key", "embedding_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("chunk_overlap")
    @classmethod
    def validate_overlap(cls, v: int, info) -> int:
        size = info.data.get("chunk_size")
        if size is not None and v >= size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return v

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


settings = Settings()
