"""设置单例的读写与进程内快照。

请求处理函数不直接查询 ``GraderSettings``，而是通过依赖注入拿到
``SettingsStore`` 中的不可变 ``GradingConfig`` 快照；保存设置后由
路由显式调用 ``reload`` 替换快照。
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from hci_grader.config import Settings, get_settings
from hci_grader.models import GraderSettings
from hci_grader.schemas.settings import SettingsRead, SettingsUpdate


logger = logging.getLogger(__name__)


def mask_api_key(key: Optional[str]) -> str:
    """仅保留首尾各 4 位，短 Key 全部打码。"""

    if not key:
        return ""
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}...{key[-4:]}"


@dataclass(frozen=True)
class GradingConfig:
    """一次请求内使用的设置快照。"""

    api_key: Optional[str]
    ai_system_prompt: str
    grading_agent_prompt: str
    default_models: tuple[str, str, str]
    extract_rubrics: bool
    split_into_questions: bool
    extraction_context: str

    @classmethod
    def from_row(cls, row: GraderSettings, settings: Settings) -> "GradingConfig":
        return cls(
            api_key=row.openrouter_api_key or settings.openrouter_api_key,
            ai_system_prompt=row.ai_system_prompt,
            grading_agent_prompt=row.grading_agent_prompt,
            default_models=(row.default_model_1, row.default_model_2, row.default_model_3),
            extract_rubrics=row.extract_rubrics,
            split_into_questions=row.split_into_questions,
            extraction_context=row.extraction_context or "",
        )


class SettingsService:
    """封装设置单例行的查询、创建与更新。"""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self) -> Optional[GraderSettings]:
        return self.db.query(GraderSettings).order_by(GraderSettings.id.asc()).first()

    def get_or_create(self) -> tuple[GraderSettings, bool]:
        row = self.get()
        if row is not None:
            return row, False
        row = GraderSettings()
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info("Created default grader settings id=%s", row.id)
        return row, True

    def apply(self, row: GraderSettings, payload: SettingsUpdate) -> GraderSettings:
        data = payload.model_dump(exclude_unset=True, exclude_none=True)
        api_key = data.pop("open_router_api_key", None)
        if api_key is not None and api_key != mask_api_key(row.openrouter_api_key):
            row.openrouter_api_key = api_key.strip()
        for key, value in data.items():
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return row

    @staticmethod
    def serialize(row: GraderSettings) -> SettingsRead:
        return SettingsRead(
            id=row.id,
            open_router_api_key=mask_api_key(row.openrouter_api_key),
            has_api_key=bool(row.openrouter_api_key),
            ai_system_prompt=row.ai_system_prompt,
            grading_agent_prompt=row.grading_agent_prompt,
            default_model_1=row.default_model_1,
            default_model_2=row.default_model_2,
            default_model_3=row.default_model_3,
            extract_rubrics=row.extract_rubrics,
            split_into_questions=row.split_into_questions,
            extraction_context=row.extraction_context or "",
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class SettingsStore:
    """持有 ``GradingConfig`` 快照，替换时加锁。"""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self._lock = threading.Lock()
        self._config: Optional[GradingConfig] = None

    def reload(self, db: Session) -> GradingConfig:
        """读取（必要时创建）设置行并替换快照。"""

        row, _ = SettingsService(db).get_or_create()
        config = GradingConfig.from_row(row, self.settings)
        with self._lock:
            self._config = config
        return config

    def get(self, db: Session) -> GradingConfig:
        with self._lock:
            config = self._config
        if config is None:
            config = self.reload(db)
        return config
