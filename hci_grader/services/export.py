"""成绩导出为 CSV。"""

from __future__ import annotations

import csv
import io
from typing import Any, Optional

from sqlalchemy.orm import Session

from hci_grader.exceptions import NotFoundError
from hci_grader.models import Answer, Assignment, Question, Submission


def answer_points(answer: Optional[Answer], question: Question) -> float:
    if answer is None:
        return 0
    return round((answer.points_percentage / 100) * question.max_points, 2)


def answer_feedback(answer: Optional[Answer], question: Question) -> str:
    """按评分细则顺序拼接各维度反馈。"""

    if answer is None:
        return ""
    by_rubric = {
        evaluation.get("rubric_id"): evaluation.get("feedback") or ""
        for evaluation in answer.criteria_evaluations_json or []
    }
    parts = [by_rubric.get(rubric.id, "").strip() for rubric in question.rubrics]
    return "\n\n".join(part for part in parts if part)


def build_grade_rows(assignment: Assignment, submissions: list[Submission]) -> list[list[Any]]:
    """表头 + 每份提交一行：3 列学生信息，每题 3 列，最后一列总分。"""

    questions = sorted(assignment.questions, key=lambda q: q.question_number)
    header: list[Any] = ["Student Name", "Student Email", "Submitted At"]
    for question in questions:
        number = question.question_number
        header.extend([f"Q{number} Answer", f"Q{number} Points", f"Q{number} Feedback"])
    header.append("Total Points")

    rows = [header]
    for submission in submissions:
        answers = {answer.question_id: answer for answer in submission.answers}
        row: list[Any] = [
            submission.student_name,
            submission.student_email,
            submission.submitted_at.isoformat() if submission.submitted_at else "",
        ]
        total = 0.0
        for question in questions:
            answer = answers.get(question.id)
            points = answer_points(answer, question)
            total += points
            row.extend(
                [
                    answer.answer_text if answer else "",
                    points,
                    answer_feedback(answer, question),
                ]
            )
        row.append(round(total, 2))
        rows.append(row)
    return rows


def render_csv(rows: list[list[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def export_assignment_csv(db: Session, assignment_id: int) -> tuple[str, str]:
    """返回 ``(文件名, CSV 文本)``。"""

    assignment = db.get(Assignment, assignment_id)
    if not assignment:
        raise NotFoundError("Assignment not found")
    submissions = (
        db.query(Submission)
        .filter(Submission.assignment_id == assignment_id)
        .order_by(Submission.submitted_at.asc(), Submission.id.asc())
        .all()
    )
    content = render_csv(build_grade_rows(assignment, submissions))
    safe_title = "".join(ch if ch.isalnum() or ch in "-_ " else "_" for ch in assignment.title)
    return f"{safe_title.strip() or 'assignment'}_grades.csv", content
