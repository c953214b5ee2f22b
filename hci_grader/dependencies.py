"""FastAPI 依赖注入工具。"""

from collections.abc import Iterator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from hci_grader.config import Settings, get_settings
from hci_grader.services.ai import OpenRouterJSONClient
from hci_grader.services.batch import BatchProcessor
from hci_grader.services.settings import GradingConfig, SettingsStore


def get_db(request: Request) -> Iterator[Session]:
    """FastAPI 依赖，用于获取数据库会话。"""

    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_settings_store(request: Request) -> SettingsStore:
    return request.app.state.settings_store


def get_grading_config(
    store: SettingsStore = Depends(get_settings_store),
    db: Session = Depends(get_db),
) -> GradingConfig:
    """当前的设置快照。"""

    return store.get(db)


def get_llm_client(
    config: GradingConfig = Depends(get_grading_config),
    settings: Settings = Depends(get_settings),
) -> OpenRouterJSONClient:
    return OpenRouterJSONClient(settings, config.api_key)


def get_batch_processor(request: Request) -> BatchProcessor:
    return request.app.state.batch_processor
