"""设置 API。保存后显式刷新进程内的设置快照。"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from hci_grader.dependencies import get_db, get_settings_store
from hci_grader.schemas.settings import SettingsRead, SettingsUpdate
from hci_grader.services.settings import SettingsService, SettingsStore

router = APIRouter()


@router.get("", response_model=SettingsRead)
def get_grader_settings(db: Session = Depends(get_db)):
    """读取设置；不存在时以默认值创建，重复调用不会产生第二行。"""
    row, _ = SettingsService(db).get_or_create()
    return SettingsService.serialize(row)


@router.post("", response_model=SettingsRead)
def save_grader_settings(
    data: SettingsUpdate,
    response: Response,
    db: Session = Depends(get_db),
    store: SettingsStore = Depends(get_settings_store),
):
    service = SettingsService(db)
    row, created = service.get_or_create()
    row = service.apply(row, data)
    store.reload(db)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return SettingsService.serialize(row)


@router.put("", response_model=SettingsRead)
def update_grader_settings(
    data: SettingsUpdate,
    db: Session = Depends(get_db),
    store: SettingsStore = Depends(get_settings_store),
):
    service = SettingsService(db)
    row = service.get()
    if not row:
        raise HTTPException(status_code=404, detail="Settings not found")
    row = service.apply(row, data)
    store.reload(db)
    return SettingsService.serialize(row)
