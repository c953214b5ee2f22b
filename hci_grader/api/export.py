"""成绩导出 API。"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from hci_grader.dependencies import get_db
from hci_grader.services.export import export_assignment_csv

router = APIRouter()


@router.get("")
def export_grades(assignment_id: int = Query(..., alias="assignmentId"), db: Session = Depends(get_db)):
    """导出作业成绩 CSV（每份提交一行）。"""
    filename, content = export_assignment_csv(db, assignment_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
