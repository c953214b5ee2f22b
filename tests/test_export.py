import csv
import io

from fastapi.testclient import TestClient

from hci_grader.models import Answer, Submission
from hci_grader.services.export import answer_feedback, answer_points, build_grade_rows


def _submission_with_first_answer(session, assignment) -> Submission:
    q1 = assignment.questions[0]
    clarity, accuracy = q1.rubrics
    submission = Submission(
        assignment_id=assignment.id, student_name="Ada", student_email="ada@example.com"
    )
    submission.answers.append(
        Answer(
            question_id=q1.id,
            answer_text="Usability is effectiveness, efficiency and satisfaction.",
            criteria_evaluations_json=[
                {"rubric_id": accuracy.id, "selected_level_index": 0, "feedback": "Inaccurate."},
                {"rubric_id": clarity.id, "selected_level_index": 2, "feedback": "Very clear."},
            ],
            points_percentage=50,
        )
    )
    session.add(submission)
    session.commit()
    return submission


def test_grade_rows_have_triplet_per_question(session, graded_assignment) -> None:
    submission = _submission_with_first_answer(session, graded_assignment)
    header, row = build_grade_rows(graded_assignment, [submission])

    assert len(header) == 3 + 3 * 2 + 1
    assert header[3:6] == ["Q1 Answer", "Q1 Points", "Q1 Feedback"]
    assert header[-1] == "Total Points"

    # 50% of a 60% question on a 100 point assignment
    assert row[4] == 30.0
    assert row[5] == "Very clear.\n\nInaccurate."
    # question 2 has no answer
    assert row[6:9] == ["", 0, ""]
    assert row[-1] == 30.0


def test_feedback_for_missing_answer_is_empty(graded_assignment) -> None:
    assert answer_feedback(None, graded_assignment.questions[1]) == ""


def test_answer_points_scale_with_assignment_total(session, graded_assignment) -> None:
    submission = _submission_with_first_answer(session, graded_assignment)
    q1 = graded_assignment.questions[0]
    graded_assignment.total_points = 50
    session.commit()

    assert q1.max_points == 30
    assert answer_points(submission.answers[0], q1) == 15.0
    assert answer_points(None, q1) == 0


def test_export_endpoint_returns_csv(client: TestClient, session, graded_assignment) -> None:
    _submission_with_first_answer(session, graded_assignment)

    response = client.get("/api/export", params={"assignmentId": graded_assignment.id})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="HCI Midterm_grades.csv"' in response.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(response.text)))
    assert len(rows) == 2
    assert rows[1][:2] == ["Ada", "ada@example.com"]
    assert rows[1][6:9] == ["", "0", ""]
    assert rows[1][-1] == "30.0"


def test_export_missing_assignment(client: TestClient) -> None:
    response = client.get("/api/export", params={"assignmentId": 404})
    assert response.status_code == 404
    assert response.json() == {"error": "Assignment not found"}
