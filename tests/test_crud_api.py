from fastapi.testclient import TestClient

from hci_grader.models import Answer, Question, Rubric, Submission

from tests.conftest import ACCURACY_LEVELS, CLARITY_LEVELS


def _create_assignment(client: TestClient, **overrides) -> dict:
    payload = {"title": "HCI Final", "description": "Final exam", **overrides}
    response = client.post("/api/assignments", json=payload)
    assert response.status_code == 201
    return response.json()


def _create_question(client: TestClient, assignment_id: int, number: int, weight: float) -> dict:
    response = client.post(
        "/api/questions",
        json={
            "assignmentId": assignment_id,
            "questionText": f"Question {number}",
            "questionNumber": number,
            "pointsPercentage": weight,
        },
    )
    assert response.status_code == 201
    return response.json()


def test_assignment_crud(client: TestClient) -> None:
    created = _create_assignment(client)
    assert created["totalPoints"] == 100

    response = client.put(f"/api/assignments/{created['id']}", json={"totalPoints": 50})
    assert response.status_code == 200
    assert response.json()["totalPoints"] == 50
    assert response.json()["title"] == "HCI Final"

    listing = client.get("/api/assignments").json()
    assert [item["id"] for item in listing] == [created["id"]]

    assert client.delete(f"/api/assignments/{created['id']}").status_code == 204
    response = client.get(f"/api/assignments/{created['id']}")
    assert response.status_code == 404
    assert response.json() == {"error": "Assignment not found"}


def test_assignment_requires_positive_points(client: TestClient) -> None:
    response = client.post("/api/assignments", json={"title": "Bad", "totalPoints": 0})
    assert response.status_code == 400
    assert "error" in response.json()


def test_question_weights_warning_header(client: TestClient) -> None:
    assignment = _create_assignment(client)
    _create_question(client, assignment["id"], 1, 60)
    _create_question(client, assignment["id"], 2, 30)

    response = client.get("/api/questions", params={"assignmentId": assignment["id"]})
    assert response.status_code == 200
    assert [q["questionNumber"] for q in response.json()] == [1, 2]
    assert "90" in response.headers["X-Points-Warning"]


def test_question_for_missing_assignment(client: TestClient) -> None:
    response = client.post(
        "/api/questions",
        json={"assignmentId": 999, "questionText": "Q", "questionNumber": 1},
    )
    assert response.status_code == 404


def test_rubric_requires_at_least_one_level(client: TestClient) -> None:
    assignment = _create_assignment(client)
    question = _create_question(client, assignment["id"], 1, 100)
    response = client.post(
        "/api/rubrics",
        json={"questionId": question["id"], "criteriaName": "Clarity", "levels": []},
    )
    assert response.status_code == 400

    response = client.post(
        "/api/rubrics",
        json={
            "questionId": question["id"],
            "criteriaName": "Clarity",
            "levels": [{"name": "Great", "percentage": 120}],
        },
    )
    assert response.status_code == 400


def test_answer_evaluation_scores_and_graded_flag(client: TestClient, graded_assignment) -> None:
    q1 = graded_assignment.questions[0]
    clarity, accuracy = q1.rubrics
    submission = client.post(
        "/api/submissions",
        json={
            "assignmentId": graded_assignment.id,
            "studentName": "Ada",
            "studentEmail": "ada@example.com",
            "answers": [{"questionId": q1.id, "answerText": "Usability is..."}],
        },
    ).json()
    answer_id = submission["answers"][0]["id"]
    assert submission["answers"][0]["graded"] is False

    response = client.put(
        f"/api/answers/{answer_id}",
        json={
            "criteriaEvaluations": [
                {"rubricId": clarity.id, "selectedLevelIndex": 2, "feedback": "Clear."},
                {"rubricId": accuracy.id, "selectedLevelIndex": 0, "feedback": "Wrong."},
            ]
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["pointsPercentage"] == 50
    assert body["graded"] is True


def test_answer_update_by_body_id(client: TestClient, graded_assignment, session) -> None:
    q1 = graded_assignment.questions[0]
    submission = Submission(
        assignment_id=graded_assignment.id, student_name="Bo", student_email="bo@example.com"
    )
    submission.answers.append(Answer(question_id=q1.id, answer_text="draft"))
    session.add(submission)
    session.commit()
    answer_id = submission.answers[0].id

    response = client.put("/api/answers", json={"id": answer_id, "answerText": "final"})
    assert response.status_code == 200
    assert response.json()["answerText"] == "final"


def test_invalid_evaluations_are_rejected(client: TestClient, graded_assignment, session) -> None:
    q1, q2 = graded_assignment.questions
    clarity = q1.rubrics[0]
    submission = Submission(
        assignment_id=graded_assignment.id, student_name="Cy", student_email="cy@example.com"
    )
    submission.answers.append(Answer(question_id=q1.id, answer_text="text"))
    session.add(submission)
    session.commit()
    answer_id = submission.answers[0].id

    out_of_range = client.put(
        f"/api/answers/{answer_id}",
        json={"criteriaEvaluations": [{"rubricId": clarity.id, "selectedLevelIndex": 5}]},
    )
    assert out_of_range.status_code == 400

    other_rubric = Rubric(question_id=q2.id, criteria_name="Depth", levels_json=ACCURACY_LEVELS)
    session.add(other_rubric)
    session.commit()
    foreign = client.put(
        f"/api/answers/{answer_id}",
        json={"criteriaEvaluations": [{"rubricId": other_rubric.id, "selectedLevelIndex": 0}]},
    )
    assert foreign.status_code == 400

    duplicate = client.put(
        f"/api/answers/{answer_id}",
        json={
            "criteriaEvaluations": [
                {"rubricId": clarity.id, "selectedLevelIndex": 0},
                {"rubricId": clarity.id, "selectedLevelIndex": 1},
            ]
        },
    )
    assert duplicate.status_code == 400


def test_duplicate_answer_for_question_rejected(client: TestClient, graded_assignment) -> None:
    q1 = graded_assignment.questions[0]
    submission = client.post(
        "/api/submissions",
        json={
            "assignmentId": graded_assignment.id,
            "studentName": "Di",
            "studentEmail": "di@example.com",
            "answers": [{"questionId": q1.id, "answerText": "one"}],
        },
    ).json()

    response = client.post(
        "/api/answers",
        json={"submissionId": submission["id"], "questionId": q1.id, "answerText": "two"},
    )
    assert response.status_code == 400


def test_submission_rejects_foreign_question(client: TestClient, graded_assignment) -> None:
    other = _create_assignment(client, title="Other")
    foreign = _create_question(client, other["id"], 1, 100)
    response = client.post(
        "/api/submissions",
        json={
            "assignmentId": graded_assignment.id,
            "studentName": "Ed",
            "studentEmail": "ed@example.com",
            "answers": [{"questionId": foreign["id"], "answerText": "x"}],
        },
    )
    assert response.status_code == 400


def test_answers_listing_requires_filter(client: TestClient) -> None:
    response = client.get("/api/answers")
    assert response.status_code == 400


def test_deleting_assignment_cascades(client: TestClient, graded_assignment, session) -> None:
    q1 = graded_assignment.questions[0]
    client.post(
        "/api/submissions",
        json={
            "assignmentId": graded_assignment.id,
            "studentName": "Fay",
            "studentEmail": "fay@example.com",
            "answers": [{"questionId": q1.id, "answerText": "answer"}],
        },
    )

    assert client.delete(f"/api/assignments/{graded_assignment.id}").status_code == 204
    session.expire_all()
    assert session.query(Question).count() == 0
    assert session.query(Rubric).count() == 0
    assert session.query(Submission).count() == 0
    assert session.query(Answer).count() == 0


def test_deleting_submission_removes_only_its_answers(
    client: TestClient, graded_assignment, session
) -> None:
    q1, q2 = graded_assignment.questions
    submission = client.post(
        "/api/submissions",
        json={
            "assignmentId": graded_assignment.id,
            "studentName": "Gus",
            "studentEmail": "gus@example.com",
            "answers": [
                {"questionId": q1.id, "answerText": "first"},
                {"questionId": q2.id, "answerText": "second"},
            ],
        },
    ).json()
    detail = client.get(f"/api/submissions/{submission['id']}").json()
    assert len(detail["answers"]) == 2

    response = client.delete(f"/api/submissions/{submission['id']}")

    assert response.status_code == 204
    session.expire_all()
    assert session.query(Answer).filter_by(submission_id=submission["id"]).count() == 0
    assert client.get(f"/api/submissions/{submission['id']}").status_code == 404
    assert client.get(f"/api/assignments/{graded_assignment.id}").status_code == 200
    assert session.query(Question).count() == 2
    assert session.query(Rubric).count() == 2


def test_rubric_change_rescores_answers(client: TestClient, graded_assignment, session) -> None:
    q1 = graded_assignment.questions[0]
    clarity, accuracy = q1.rubrics
    submission = Submission(
        assignment_id=graded_assignment.id, student_name="Gus", student_email="gus@example.com"
    )
    submission.answers.append(
        Answer(
            question_id=q1.id,
            answer_text="text",
            criteria_evaluations_json=[
                {"rubric_id": clarity.id, "selected_level_index": 2, "feedback": ""},
                {"rubric_id": accuracy.id, "selected_level_index": 0, "feedback": ""},
            ],
            points_percentage=50,
        )
    )
    session.add(submission)
    session.commit()

    assert client.delete(f"/api/rubrics/{accuracy.id}").status_code == 204
    session.expire_all()
    answer = session.query(Answer).one()
    assert answer.points_percentage == 100
    assert [e["rubric_id"] for e in answer.criteria_evaluations_json] == [clarity.id]


def test_rubric_levels_round_trip_in_camel_case(client: TestClient, graded_assignment) -> None:
    q2 = graded_assignment.questions[1]
    response = client.post(
        "/api/rubrics",
        json={"questionId": q2.id, "criteriaName": "Depth", "levels": CLARITY_LEVELS},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["criteriaName"] == "Depth"
    assert [level["percentage"] for level in body["levels"]] == [0, 50, 100]
