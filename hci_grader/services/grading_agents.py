"""Grading Agent Service：评分建议的 prompt 构建、调用与合并。

流程：加载 Agent / 题目 / 评分细则 / 上下文 → 构建 prompt → LLM
（JSON 模式）→ 按 ``SuggestionResponse`` 严格解析 → 可选地合并回答案。
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from hci_grader.exceptions import NotFoundError, ValidationFailedError
from hci_grader.models import Answer, GradingAgent, Question, Rubric, Submission
from hci_grader.schemas.agents import (
    AgentSuggestRequest,
    AgentSuggestResponse,
    CriterionSuggestion,
    SuggestionResponse,
)
from hci_grader.services.ai import OpenRouterJSONClient, validate_payload
from hci_grader.services.scoring import score_answer
from hci_grader.services.settings import GradingConfig
from hci_grader.services.submissions import serialize_answer


logger = logging.getLogger(__name__)

AGENT_COLORS = ["#3B82F6", "#10B981", "#F59E0B", "#EF4444", "#8B5CF6", "#EC4899"]
DEFAULT_AGENT_NAMES = ("g1", "g2", "g3")
FEEDBACK_SEPARATOR = "\n\n----\n\n"

OUTPUT_CONTRACT = """Return your evaluation as ONE JSON object with exactly this structure:
{
  "suggestions": [
    {
      "rubricId": 123,
      "suggestedLevelIndex": 0,
      "justification": "Why this level was chosen, written to the student.",
      "improvementSuggestion": "One concrete way the student can improve."
    }
  ]
}
Include one entry per rubric criterion, using the numeric rubric IDs given below.
Return ONLY valid JSON."""


def build_system_prompt(grading_agent_prompt: str) -> str:
    return f"{grading_agent_prompt.strip()}\n\n{OUTPUT_CONTRACT}"


def describe_rubrics(rubrics: Sequence[Rubric]) -> str:
    blocks = []
    for rubric in rubrics:
        levels = "\n".join(
            f"  Level {idx}: {level.get('name', '')} ({level.get('percentage', 0)}%)"
            f" - {level.get('description', '')}"
            for idx, level in enumerate(rubric.levels_json or [])
        )
        blocks.append(f"Criteria: {rubric.criteria_name} (ID: {rubric.id})\n{levels}")
    return "\n\n".join(blocks)


def build_user_prompt(
    question_text: str,
    rubrics: Sequence[Rubric],
    answer_text: str,
    other_answers: Sequence[str] = (),
    prior_suggestions: Sequence[dict[str, Any]] = (),
    full_submission: Sequence[tuple[int, str, str]] = (),
) -> str:
    """拼装 user prompt；各上下文块只在有内容时注入。

    ``prior_suggestions`` 形如 ``{"answer_text": str, "suggestions": [...]}``，
    ``full_submission`` 为 ``(题号, 题目, 答案)`` 列表。
    """

    parts = [
        f"## Question:\n{question_text}",
        f"## Rubrics:\n{describe_rubrics(rubrics)}",
    ]

    if other_answers:
        lines = [
            f"Student {idx}: {text}" for idx, text in enumerate(other_answers, start=1)
        ]
        parts.append("## All Student Answers (for calibration):\n" + "\n\n".join(lines))

    if prior_suggestions:
        rubric_names = {rubric.id: rubric.criteria_name for rubric in rubrics}
        lines = []
        for idx, prior in enumerate(prior_suggestions, start=1):
            lines.append(f"Student {idx} answer: {prior['answer_text']}")
            for suggestion in prior["suggestions"]:
                name = rubric_names.get(suggestion.get("rubric_id"), suggestion.get("rubric_id"))
                lines.append(
                    f"- {name}: Level {suggestion.get('suggested_level_index')}."
                    f" {suggestion.get('justification', '')}"
                )
        parts.append(
            "## Your Previous Evaluations of Other Students (stay consistent):\n"
            + "\n".join(lines)
        )

    if full_submission:
        lines = [
            f"Question {number}: {text}\nAnswer: {answer or '(no answer)'}"
            for number, text, answer in full_submission
        ]
        parts.append(
            "## This Student's Full Submission (for holistic context):\n" + "\n\n".join(lines)
        )

    parts.append(f"## Current Student's Answer to Grade:\n{answer_text}")
    parts.append(
        "Please evaluate this answer and suggest the appropriate level for each criteria."
    )
    return "\n\n".join(parts)


def format_agent_feedback(agent: GradingAgent, suggestion: CriterionSuggestion) -> str:
    body = " ".join(
        part.strip()
        for part in (suggestion.justification, suggestion.improvement_suggestion)
        if part and part.strip()
    )
    if not body:
        return ""
    return f"{agent.name} ({agent.model}) feedback:\n{body}"


def _drop_agent_feedback(feedback: str, agent: GradingAgent) -> str:
    prefix = f"{agent.name} ("
    kept = []
    for block in (feedback or "").split(FEEDBACK_SEPARATOR):
        if not block.strip():
            continue
        first_line = block.split("\n", 1)[0]
        if first_line.startswith(prefix) and first_line.endswith(") feedback:"):
            continue
        kept.append(block)
    return FEEDBACK_SEPARATOR.join(kept)


def merge_agent_suggestions(
    answer: Answer,
    agent: GradingAgent,
    suggestions: Sequence[CriterionSuggestion],
    rubrics: Sequence[Rubric],
) -> Answer:
    """把一个 Agent 的建议合并进答案并重算百分比。

    - 同一 Agent 之前的建议与反馈被替换；
    - 反馈以 ``FEEDBACK_SEPARATOR`` 追加在已有反馈之后；
    - 尚未评分的维度采用建议的等级（下标越界时只保存建议）。
    """

    rubric_map = {rubric.id: rubric for rubric in rubrics}
    evaluations: list[dict[str, Any]] = copy.deepcopy(answer.criteria_evaluations_json or [])
    by_rubric = {evaluation["rubric_id"]: evaluation for evaluation in evaluations}

    for suggestion in suggestions:
        rubric = rubric_map.get(suggestion.rubric_id)
        if rubric is None:
            logger.warning(
                "Agent %s suggested unknown rubric %s; skipped", agent.id, suggestion.rubric_id
            )
            continue

        evaluation = by_rubric.get(rubric.id)
        if evaluation is None:
            evaluation = {
                "rubric_id": rubric.id,
                "selected_level_index": None,
                "feedback": "",
                "agent_suggestions": [],
            }
            evaluations.append(evaluation)
            by_rubric[rubric.id] = evaluation

        others = [
            item
            for item in evaluation.get("agent_suggestions") or []
            if item.get("agent_id") != agent.id
        ]
        others.append(
            {
                "agent_id": agent.id,
                "suggested_level_index": suggestion.suggested_level_index,
                "justification": suggestion.justification,
                "improvement_suggestion": suggestion.improvement_suggestion,
            }
        )
        evaluation["agent_suggestions"] = others

        in_range = 0 <= suggestion.suggested_level_index < len(rubric.levels_json or [])
        if evaluation.get("selected_level_index") is None:
            if in_range:
                evaluation["selected_level_index"] = suggestion.suggested_level_index
            else:
                logger.warning(
                    "Agent %s suggested level %s out of range for rubric %s",
                    agent.id,
                    suggestion.suggested_level_index,
                    rubric.id,
                )

        text = format_agent_feedback(agent, suggestion)
        if text:
            existing = _drop_agent_feedback(evaluation.get("feedback", ""), agent)
            evaluation["feedback"] = (
                f"{existing}{FEEDBACK_SEPARATOR}{text}" if existing else text
            )

    answer.criteria_evaluations_json = evaluations
    score_answer(answer, rubrics)
    return answer


def strip_agent_suggestions(db: Session, agent: GradingAgent) -> int:
    """删除 Agent 前，从该题所有答案中移除其建议。返回受影响的答案数。"""

    touched = 0
    answers = db.query(Answer).filter(Answer.question_id == agent.question_id).all()
    for answer in answers:
        evaluations = copy.deepcopy(answer.criteria_evaluations_json or [])
        changed = False
        for evaluation in evaluations:
            suggestions = evaluation.get("agent_suggestions") or []
            kept = [item for item in suggestions if item.get("agent_id") != agent.id]
            if len(kept) != len(suggestions):
                evaluation["agent_suggestions"] = kept
                changed = True
        if changed:
            answer.criteria_evaluations_json = evaluations
            touched += 1
    return touched


def create_default_agents(
    db: Session, question: Question, models: Sequence[str]
) -> list[GradingAgent]:
    """幂等创建 g1..g3，已存在的同名 Agent 保持不变。"""

    existing = {
        agent.name
        for agent in db.query(GradingAgent).filter(GradingAgent.question_id == question.id)
    }
    for idx, name in enumerate(DEFAULT_AGENT_NAMES):
        if name in existing:
            continue
        db.add(
            GradingAgent(
                question_id=question.id,
                name=name,
                color=AGENT_COLORS[idx % len(AGENT_COLORS)],
                model=models[idx],
            )
        )
    db.commit()
    return (
        db.query(GradingAgent)
        .filter(GradingAgent.question_id == question.id)
        .order_by(GradingAgent.created_at.asc(), GradingAgent.id.asc())
        .all()
    )


class GradingAgentService:
    """提供评分建议相关的核心业务逻辑。"""

    def __init__(self, llm: OpenRouterJSONClient, config: GradingConfig) -> None:
        self.llm = llm
        self.config = config

    def _prior_suggestions(
        self, db: Session, agent: GradingAgent, exclude_answer_id: Optional[int]
    ) -> list[dict[str, Any]]:
        priors = []
        answers = db.query(Answer).filter(Answer.question_id == agent.question_id).all()
        for other in answers:
            if other.id == exclude_answer_id:
                continue
            mine = []
            for evaluation in other.criteria_evaluations_json or []:
                for item in evaluation.get("agent_suggestions") or []:
                    if item.get("agent_id") == agent.id:
                        mine.append({**item, "rubric_id": evaluation["rubric_id"]})
            if mine:
                priors.append({"answer_text": other.answer_text, "suggestions": mine})
        return priors

    def _full_submission(
        self, submission: Submission, exclude_question_id: int
    ) -> list[tuple[int, str, str]]:
        by_question = {answer.question_id: answer.answer_text for answer in submission.answers}
        if set(by_question) <= {exclude_question_id}:
            return []
        return [
            (question.question_number, question.question_text, by_question.get(question.id, ""))
            for question in submission.assignment.questions
        ]

    def parse_suggestions(self, payload: dict[str, Any]) -> list[CriterionSuggestion]:
        """严格解析 LLM 输出；缺失反馈只记录警告，保留为空字符串。"""

        response = validate_payload(SuggestionResponse, payload)
        for suggestion in response.suggestions:
            if not suggestion.justification.strip():
                logger.warning("Missing justification for rubric %s", suggestion.rubric_id)
            if not suggestion.improvement_suggestion.strip():
                logger.warning(
                    "Missing improvementSuggestion for rubric %s", suggestion.rubric_id
                )
        return response.suggestions

    def suggest(self, db: Session, request: AgentSuggestRequest) -> AgentSuggestResponse:
        agent = db.get(GradingAgent, request.agent_id)
        if not agent:
            raise NotFoundError("Grading agent not found")

        answer: Optional[Answer] = None
        if request.answer_id is not None:
            answer = db.get(Answer, request.answer_id)
            if not answer:
                raise NotFoundError("Answer not found")
            if answer.question_id != agent.question_id:
                raise ValidationFailedError("Answer does not belong to the agent's question")
            answer_text = answer.answer_text
        else:
            answer_text = request.answer_text or ""
        if not answer_text.strip():
            raise ValidationFailedError("answerId or a non-empty answerText is required")

        question = agent.question
        rubrics = list(question.rubrics)
        if not rubrics:
            raise ValidationFailedError("The question has no rubrics to grade against")

        other_answers = list(request.other_answers)
        if request.include_other_answers and not other_answers:
            other_answers = [
                other.answer_text
                for other in question.answers
                if other.answer_text.strip() and (answer is None or other.id != answer.id)
            ]
        priors = (
            self._prior_suggestions(db, agent, answer.id if answer else None)
            if request.include_prior_suggestions
            else []
        )
        full_submission = (
            self._full_submission(answer.submission, question.id)
            if answer is not None and request.include_full_submission
            else []
        )

        payload = self.llm.complete_json(
            build_system_prompt(self.config.grading_agent_prompt),
            build_user_prompt(
                question.question_text,
                rubrics,
                answer_text,
                other_answers=other_answers,
                prior_suggestions=priors,
                full_submission=full_submission,
            ),
            agent.model,
        )
        suggestions = self.parse_suggestions(payload)
        logger.info(
            "Agent %s (%s) returned %d suggestions", agent.name, agent.model, len(suggestions)
        )

        answer_read = None
        if answer is not None and request.apply:
            merge_agent_suggestions(answer, agent, suggestions, rubrics)
            db.commit()
            db.refresh(answer)
            answer_read = serialize_answer(answer, rubrics)

        return AgentSuggestResponse(
            agent_id=agent.id,
            agent_name=agent.name,
            model=agent.model,
            suggestions=suggestions,
            answer=answer_read,
        )
