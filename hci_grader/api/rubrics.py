"""评分细则 CRUD API。"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from hci_grader.dependencies import get_db
from hci_grader.models import Answer, Question, Rubric
from hci_grader.schemas.assignments import RubricCreate, RubricRead, RubricUpdate
from hci_grader.services.scoring import score_answer
from hci_grader.services.submissions import serialize_rubric

router = APIRouter()


def _rescore_question(db: Session, question_id: int) -> None:
    """评分细则变化后重算该题所有答案的百分比。"""

    rubrics = db.query(Rubric).filter(Rubric.question_id == question_id).order_by(Rubric.id).all()
    for answer in db.query(Answer).filter(Answer.question_id == question_id):
        evaluations = answer.criteria_evaluations_json or []
        valid = []
        for evaluation in evaluations:
            rubric = next((r for r in rubrics if r.id == evaluation.get("rubric_id")), None)
            if rubric is None:
                continue
            index = evaluation.get("selected_level_index")
            if index is not None and not 0 <= index < len(rubric.levels_json or []):
                evaluation = {**evaluation, "selected_level_index": None}
            valid.append(evaluation)
        if valid != evaluations:
            answer.criteria_evaluations_json = valid
        score_answer(answer, rubrics)


@router.get("", response_model=List[RubricRead])
def list_rubrics(question_id: int = Query(..., alias="questionId"), db: Session = Depends(get_db)):
    rubrics = db.query(Rubric).filter(Rubric.question_id == question_id).order_by(Rubric.id).all()
    return [serialize_rubric(rubric) for rubric in rubrics]


@router.post("", response_model=RubricRead, status_code=status.HTTP_201_CREATED)
def create_rubric(data: RubricCreate, db: Session = Depends(get_db)):
    if not db.get(Question, data.question_id):
        raise HTTPException(status_code=404, detail="Question not found")

    rubric = Rubric(
        question_id=data.question_id,
        criteria_name=data.criteria_name,
        description=data.description,
        levels_json=[level.model_dump() for level in data.levels],
    )
    db.add(rubric)
    db.flush()
    _rescore_question(db, data.question_id)
    db.commit()
    db.refresh(rubric)
    return serialize_rubric(rubric)


@router.get("/{rubric_id}", response_model=RubricRead)
def get_rubric(rubric_id: int, db: Session = Depends(get_db)):
    rubric = db.get(Rubric, rubric_id)
    if not rubric:
        raise HTTPException(status_code=404, detail="Rubric not found")
    return serialize_rubric(rubric)


@router.put("/{rubric_id}", response_model=RubricRead)
def update_rubric(rubric_id: int, data: RubricUpdate, db: Session = Depends(get_db)):
    rubric = db.get(Rubric, rubric_id)
    if not rubric:
        raise HTTPException(status_code=404, detail="Rubric not found")

    update_data = data.model_dump(exclude_unset=True, exclude_none=True)
    if "levels" in update_data:
        rubric.levels_json = update_data.pop("levels")
    for key, value in update_data.items():
        setattr(rubric, key, value)

    db.flush()
    _rescore_question(db, rubric.question_id)
    db.commit()
    db.refresh(rubric)
    return serialize_rubric(rubric)


@router.delete("/{rubric_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rubric(rubric_id: int, db: Session = Depends(get_db)):
    rubric = db.get(Rubric, rubric_id)
    if not rubric:
        raise HTTPException(status_code=404, detail="Rubric not found")

    question_id = rubric.question_id
    db.delete(rubric)
    db.flush()
    _rescore_question(db, question_id)
    db.commit()
