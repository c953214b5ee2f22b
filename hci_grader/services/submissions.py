"""提交与答案的创建、评分写入与序列化。"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from hci_grader.exceptions import ValidationFailedError
from hci_grader.models import Answer, Assignment, ProcessingStatus, Rubric, Submission
from hci_grader.schemas.assignments import RubricRead
from hci_grader.schemas.submissions import (
    AnswerRead,
    CriteriaEvaluation,
    SubmissionDetail,
    SubmissionRead,
)
from hci_grader.services.scoring import (
    InvalidSelectionError,
    is_fully_graded,
    score_answer,
    selections_from_evaluations,
    validate_selections,
)


logger = logging.getLogger(__name__)

EXTRACTED_TEXT_LIMIT = 10_000


def serialize_rubric(rubric: Rubric) -> RubricRead:
    return RubricRead(
        id=rubric.id,
        question_id=rubric.question_id,
        criteria_name=rubric.criteria_name,
        description=rubric.description or "",
        levels=rubric.levels_json or [],
        created_at=rubric.created_at,
        updated_at=rubric.updated_at,
    )


def serialize_answer(answer: Answer, rubrics: Optional[Sequence[Rubric]] = None) -> AnswerRead:
    if rubrics is None:
        rubrics = answer.question.rubrics if answer.question else []
    selections = selections_from_evaluations(answer.criteria_evaluations_json)
    return AnswerRead(
        id=answer.id,
        submission_id=answer.submission_id,
        question_id=answer.question_id,
        answer_text=answer.answer_text,
        criteria_evaluations=[
            CriteriaEvaluation.model_validate(item)
            for item in answer.criteria_evaluations_json or []
        ],
        points_percentage=answer.points_percentage,
        graded=is_fully_graded(rubrics, selections),
        created_at=answer.created_at,
        updated_at=answer.updated_at,
    )


def serialize_submission(submission: Submission, with_answers: bool = False):
    base = SubmissionRead.model_validate(submission)
    if not with_answers:
        return base
    return SubmissionDetail(
        **base.model_dump(),
        extracted_text=submission.extracted_text,
        answers=[serialize_answer(answer) for answer in submission.answers],
    )


def set_evaluations(
    answer: Answer,
    evaluations: Sequence[CriteriaEvaluation],
    rubrics: Sequence[Rubric],
) -> None:
    """校验并写入评价，同时重算 ``points_percentage``。"""

    rubric_ids = {rubric.id for rubric in rubrics}
    seen: set[int] = set()
    for evaluation in evaluations:
        if evaluation.rubric_id not in rubric_ids:
            raise ValidationFailedError(
                f"Rubric {evaluation.rubric_id} does not belong to this question"
            )
        if evaluation.rubric_id in seen:
            raise ValidationFailedError(f"Duplicate evaluation for rubric {evaluation.rubric_id}")
        seen.add(evaluation.rubric_id)

    payload = [evaluation.model_dump() for evaluation in evaluations]
    try:
        validate_selections(rubrics, selections_from_evaluations(payload))
    except InvalidSelectionError as exc:
        raise ValidationFailedError(str(exc)) from exc

    answer.criteria_evaluations_json = payload
    score_answer(answer, rubrics)


def create_submission(
    db: Session,
    assignment: Assignment,
    student_name: str,
    student_email: str,
    answers: Sequence[tuple[int, str]] = (),
    *,
    submitted_at: Optional[datetime] = None,
    extracted_text: Optional[str] = None,
    batch_upload_id: Optional[int] = None,
    skip_empty: bool = False,
) -> Submission:
    """在一个事务中创建提交及其答案。

    ``answers`` 为 ``(question_id, answer_text)`` 列表；题目必须属于该作业。
    """

    question_ids = {question.id for question in assignment.questions}
    seen: set[int] = set()
    for question_id, _ in answers:
        if question_id not in question_ids:
            raise ValidationFailedError(
                f"Question {question_id} does not belong to assignment {assignment.id}"
            )
        if question_id in seen:
            raise ValidationFailedError(f"Duplicate answer for question {question_id}")
        seen.add(question_id)

    submission = Submission(
        assignment_id=assignment.id,
        student_name=student_name,
        student_email=student_email,
        processing_status=ProcessingStatus.COMPLETED,
        extracted_text=extracted_text[:EXTRACTED_TEXT_LIMIT] if extracted_text else None,
        batch_upload_id=batch_upload_id,
    )
    if submitted_at is not None:
        submission.submitted_at = submitted_at
    for question_id, text in answers:
        if skip_empty and not (text or "").strip():
            continue
        submission.answers.append(
            Answer(
                question_id=question_id,
                answer_text=text or "",
                criteria_evaluations_json=[],
                points_percentage=0,
            )
        )
    db.add(submission)
    db.commit()
    db.refresh(submission)
    logger.info(
        "Created submission %s for assignment %s with %d answers",
        submission.id,
        assignment.id,
        len(submission.answers),
    )
    return submission
