"""答案 API：作答文本与各维度评价的读写。"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hci_grader.dependencies import get_db
from hci_grader.models import Answer, Question, Submission
from hci_grader.schemas.submissions import (
    AnswerCreate,
    AnswerRead,
    AnswerUpdate,
    AnswerUpdateWithId,
)
from hci_grader.services.submissions import serialize_answer, set_evaluations

router = APIRouter()


def _apply_update(db: Session, answer: Answer, data: AnswerUpdate) -> AnswerRead:
    rubrics = list(answer.question.rubrics)
    if data.answer_text is not None:
        answer.answer_text = data.answer_text
    if data.criteria_evaluations is not None:
        set_evaluations(answer, data.criteria_evaluations, rubrics)
    db.commit()
    db.refresh(answer)
    return serialize_answer(answer, rubrics)


@router.get("", response_model=List[AnswerRead])
def list_answers(
    submission_id: Optional[int] = Query(default=None, alias="submissionId"),
    question_id: Optional[int] = Query(default=None, alias="questionId"),
    db: Session = Depends(get_db),
):
    """按提交或题目筛选答案，两个参数至少提供一个。"""
    if submission_id is None and question_id is None:
        raise HTTPException(status_code=400, detail="submissionId or questionId is required")

    query = db.query(Answer)
    if submission_id is not None:
        query = query.filter(Answer.submission_id == submission_id)
    if question_id is not None:
        query = query.filter(Answer.question_id == question_id)
    return [serialize_answer(answer) for answer in query.order_by(Answer.id.asc()).all()]


@router.post("", response_model=AnswerRead, status_code=status.HTTP_201_CREATED)
def create_answer(data: AnswerCreate, db: Session = Depends(get_db)):
    submission = db.get(Submission, data.submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    question = db.get(Question, data.question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    if question.assignment_id != submission.assignment_id:
        raise HTTPException(
            status_code=400, detail="Question does not belong to the submission's assignment"
        )

    rubrics = list(question.rubrics)
    answer = Answer(
        submission_id=submission.id,
        question_id=question.id,
        answer_text=data.answer_text,
        criteria_evaluations_json=[],
        points_percentage=0,
    )
    set_evaluations(answer, data.criteria_evaluations, rubrics)
    db.add(answer)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=400, detail="An answer for this question already exists"
        ) from exc
    db.refresh(answer)
    return serialize_answer(answer, rubrics)


@router.put("", response_model=AnswerRead)
def update_answer_by_body(data: AnswerUpdateWithId, db: Session = Depends(get_db)):
    """兼容在请求体中携带 ``id`` 的更新方式。"""
    answer = db.get(Answer, data.id)
    if not answer:
        raise HTTPException(status_code=404, detail="Answer not found")
    return _apply_update(db, answer, data)


@router.get("/{answer_id}", response_model=AnswerRead)
def get_answer(answer_id: int, db: Session = Depends(get_db)):
    answer = db.get(Answer, answer_id)
    if not answer:
        raise HTTPException(status_code=404, detail="Answer not found")
    return serialize_answer(answer)


@router.put("/{answer_id}", response_model=AnswerRead)
def update_answer(answer_id: int, data: AnswerUpdate, db: Session = Depends(get_db)):
    answer = db.get(Answer, answer_id)
    if not answer:
        raise HTTPException(status_code=404, detail="Answer not found")
    return _apply_update(db, answer, data)


@router.delete("/{answer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_answer(answer_id: int, db: Session = Depends(get_db)):
    answer = db.get(Answer, answer_id)
    if not answer:
        raise HTTPException(status_code=404, detail="Answer not found")

    db.delete(answer)
    db.commit()
