"""题目 CRUD API。"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from hci_grader.dependencies import get_db
from hci_grader.models import Assignment, Question
from hci_grader.schemas.assignments import QuestionCreate, QuestionRead, QuestionUpdate

router = APIRouter()
logger = logging.getLogger(__name__)

WEIGHT_WARNING_HEADER = "X-Points-Warning"


@router.get("", response_model=List[QuestionRead])
def list_questions(
    response: Response,
    assignment_id: int = Query(..., alias="assignmentId"),
    db: Session = Depends(get_db),
):
    """按题号列出作业下的题目；权重之和不为 100 时通过响应头提示。"""
    questions = (
        db.query(Question)
        .filter(Question.assignment_id == assignment_id)
        .order_by(Question.question_number.asc(), Question.id.asc())
        .all()
    )
    total = sum(q.points_percentage for q in questions)
    if questions and abs(total - 100) > 0.01:
        message = f"Question weights sum to {total:g}%, expected 100%"
        logger.warning("Assignment %s: %s", assignment_id, message)
        response.headers[WEIGHT_WARNING_HEADER] = message
    return questions


@router.post("", response_model=QuestionRead, status_code=status.HTTP_201_CREATED)
def create_question(data: QuestionCreate, db: Session = Depends(get_db)):
    if not db.get(Assignment, data.assignment_id):
        raise HTTPException(status_code=404, detail="Assignment not found")

    question = Question(**data.model_dump())
    db.add(question)
    db.commit()
    db.refresh(question)
    return question


@router.get("/{question_id}", response_model=QuestionRead)
def get_question(question_id: int, db: Session = Depends(get_db)):
    question = db.get(Question, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return question


@router.put("/{question_id}", response_model=QuestionRead)
def update_question(question_id: int, data: QuestionUpdate, db: Session = Depends(get_db)):
    question = db.get(Question, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")

    for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(question, key, value)

    db.commit()
    db.refresh(question)
    return question


@router.delete("/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_question(question_id: int, db: Session = Depends(get_db)):
    question = db.get(Question, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")

    db.delete(question)
    db.commit()
