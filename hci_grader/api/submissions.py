"""提交 API。"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from hci_grader.dependencies import get_db
from hci_grader.models import Assignment, Submission
from hci_grader.schemas.submissions import (
    SubmissionCreate,
    SubmissionDetail,
    SubmissionRead,
    SubmissionUpdate,
)
from hci_grader.services.submissions import create_submission, serialize_submission

router = APIRouter()


@router.get("", response_model=List[SubmissionRead])
def list_submissions(
    assignment_id: int = Query(..., alias="assignmentId"), db: Session = Depends(get_db)
):
    return (
        db.query(Submission)
        .filter(Submission.assignment_id == assignment_id)
        .order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .all()
    )


@router.post("", response_model=SubmissionDetail, status_code=status.HTTP_201_CREATED)
def create_submission_endpoint(data: SubmissionCreate, db: Session = Depends(get_db)):
    """创建提交，可同时带上各题答案。"""
    assignment = db.get(Assignment, data.assignment_id)
    if not assignment:
        raise HTTPException(status_code=404, detail="Assignment not found")

    submission = create_submission(
        db,
        assignment,
        data.student_name,
        data.student_email,
        [(answer.question_id, answer.answer_text) for answer in data.answers],
        submitted_at=data.submitted_at,
    )
    return serialize_submission(submission, with_answers=True)


@router.get("/{submission_id}", response_model=SubmissionDetail)
def get_submission(submission_id: int, db: Session = Depends(get_db)):
    submission = db.get(Submission, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    return serialize_submission(submission, with_answers=True)


@router.put("/{submission_id}", response_model=SubmissionRead)
def update_submission(submission_id: int, data: SubmissionUpdate, db: Session = Depends(get_db)):
    submission = db.get(Submission, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")

    for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(submission, key, value)

    db.commit()
    db.refresh(submission)
    return submission


@router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_submission(submission_id: int, db: Session = Depends(get_db)):
    """删除提交，其下所有答案在同一事务中删除。"""
    submission = db.get(Submission, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")

    db.delete(submission)
    db.commit()
