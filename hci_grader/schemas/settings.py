"""设置接口模型。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from hci_grader.schemas.base import CamelModel


class SettingsUpdate(CamelModel):
    """未提供的字段保持原值；回传脱敏后的 Key 视为未修改。"""

    open_router_api_key: Optional[str] = None
    ai_system_prompt: Optional[str] = None
    grading_agent_prompt: Optional[str] = None
    default_model_1: Optional[str] = None
    default_model_2: Optional[str] = None
    default_model_3: Optional[str] = None
    extract_rubrics: Optional[bool] = None
    split_into_questions: Optional[bool] = None
    extraction_context: Optional[str] = None


class SettingsRead(CamelModel):
    id: int
    open_router_api_key: str
    has_api_key: bool
    ai_system_prompt: str
    grading_agent_prompt: str
    default_model_1: str
    default_model_2: str
    default_model_3: str
    extract_rubrics: bool
    split_into_questions: bool
    extraction_context: str
    created_at: datetime
    updated_at: datetime
