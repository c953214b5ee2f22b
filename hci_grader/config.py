"""应用配置管理。

使用 Pydantic Settings 统一读取环境变量，便于在本地/生产之间切换。
这里只放进程启动时就确定的配置；教师在界面里修改的 API Key、提示词
等保存在数据库的 ``GraderSettings`` 单例中，见 ``services/settings.py``。
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """核心配置项。

    - ``database_url``：默认使用本地 SQLite，便于快速启动。
    - ``openrouter_*``：OpenAI 兼容接口的地址与兜底密钥。
    - ``batch_*``：批量上传 worker 池与重试策略。
    """

    database_url: str = Field(
        default="sqlite:///./storage/hci_grader.db", description="SQLAlchemy 数据库 URL"
    )
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="OpenAI 兼容接口地址"
    )
    openrouter_api_key: Optional[str] = Field(
        default=None, description="数据库中未保存密钥时使用的兜底 API Key"
    )
    site_url: str = Field(default="http://localhost:8000", description="HTTP-Referer 头")
    app_title: str = Field(default="HCI Grader", description="X-Title 头与 API 标题")

    rubric_model: str = "openai/gpt-4o"
    extraction_model: str = "openai/gpt-4o"
    vision_model: str = "openai/gpt-4o"
    llm_timeout_seconds: float = 120.0

    batch_max_workers: int = Field(default=4, ge=1)
    batch_max_attempts: int = Field(default=3, ge=1)
    batch_retry_backoff_seconds: float = Field(default=2.0, ge=0)

    max_upload_bytes: int = Field(default=20 * 1024 * 1024, ge=1)

    log_level: str = "INFO"

    model_config = {
        "env_prefix": "HCI_GRADER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """缓存后的全局配置实例。"""

    return Settings()


def configure_logging(settings: Settings) -> None:
    """初始化根 logger，并压低第三方 HTTP 客户端的日志噪音。"""

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
