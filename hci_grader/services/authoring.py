"""AI 辅助出题：评分细则生成（多轮对话）与试卷结构抽取。"""

from __future__ import annotations

import json
import logging

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from hci_grader.config import Settings
from hci_grader.schemas.authoring import (
    ConversationMessage,
    ExamExtractionRequest,
    ExamExtractionResponse,
    GeneratedRubrics,
    RubricGenerationRequest,
    RubricGenerationResponse,
)
from hci_grader.services.ai import OpenRouterJSONClient, parse_json_payload, validate_payload
from hci_grader.services.settings import GradingConfig


logger = logging.getLogger(__name__)

RUBRIC_JSON_CONTRACT = """Please respond with a JSON object in the following format:
{
  "rubrics": [
    {
      "criteriaName": "Criterion Name",
      "description": "Brief explanation of what this criterion assesses",
      "levels": [
        {
          "name": "Level Name (e.g., Excellent, Good, Fair, Poor)",
          "description": "Detailed description of performance at this level",
          "percentage": 100
        }
      ]
    }
  ],
  "explanation": "Overall explanation of the rubric design choices"
}

Important: The percentage values should be from 0-100 representing the percentage of points for this level of performance in this specific criterion. Typically, the highest level should be 100%, and lower levels should have progressively lower percentages."""

EXAM_SYSTEM_PROMPT = """You are an expert at analyzing exam documents and extracting structured information.

Your task is to analyze the provided exam text and extract:
1. All questions with their text and point values
2. Grading rubrics or criteria for each question (if requested)

Guidelines:
- If point values are given, calculate the percentage each question represents of the total
- If no point values are given, distribute points evenly
- Ensure all percentages in questions sum to 100%
- Each rubric level's percentage should range from 0-100, where 100 is perfect performance"""

EXAM_JSON_CONTRACT = """Return a JSON object with the following structure:
{
  "questions": [
    {
      "questionText": "The full text of the question",
      "questionNumber": 1,
      "pointsPercentage": 25.0,
      "rubrics": [
        {
          "criteriaName": "Accuracy",
          "description": "What this criterion assesses",
          "levels": [
            {"name": "Excellent", "description": "Answer is completely accurate", "percentage": 100},
            {"name": "Poor", "description": "Answer is largely inaccurate", "percentage": 25}
          ]
        }
      ]
    }
  ],
  "totalPoints": 100,
  "summary": "Brief summary of the exam structure"
}

IMPORTANT: The sum of all question pointsPercentage values MUST equal 100."""


def build_rubric_user_message(request: RubricGenerationRequest) -> str:
    if request.current_rubrics:
        current = json.dumps(
            [rubric.model_dump(by_alias=True) for rubric in request.current_rubrics], indent=2
        )
        message = (
            "I have the following existing rubrics that I want you to refine based on my request:"
            f"\n\nCURRENT RUBRICS:\n{current}\n\nUSER REQUEST: {request.user_prompt}\n\n"
            "Please refine these rubrics according to my request. Keep the same criteria unless "
            "I ask to add/remove them. Maintain the structure and improve based on my feedback."
        )
    else:
        message = request.user_prompt
        if request.number_of_levels:
            message += (
                f"\n\nPlease create rubrics with {request.number_of_levels} performance levels."
            )
    return f"{message}\n\n{RUBRIC_JSON_CONTRACT}"


def build_exam_user_message(
    text: str, split_into_questions: bool, extract_rubrics: bool, extraction_context: str
) -> str:
    rules = []
    if split_into_questions:
        rules.append("Extract each question as a separate item.")
    else:
        rules.append(
            "Treat the whole document as ONE question: return exactly one entry in "
            '"questions" with pointsPercentage 100.'
        )
    if extract_rubrics:
        rules.append(
            "Include at least one rubric per question with 3-5 performance levels. If the "
            "document has explicit rubrics, use those; otherwise create appropriate ones."
        )
    else:
        rules.append('Do NOT create rubrics: return an empty "rubrics" list for every question.')
    if extraction_context.strip():
        rules.append(f"Additional context from the instructor: {extraction_context.strip()}")

    instructions = "\n".join(f"- {rule}" for rule in rules)
    return (
        f"Here is the extracted exam content:\n\n{text}\n\n"
        f"Instructions:\n{instructions}\n\n{EXAM_JSON_CONTRACT}"
    )


class AuthoringService:
    """封装评分细则生成与试卷抽取。"""

    def __init__(
        self, llm: OpenRouterJSONClient, config: GradingConfig, settings: Settings
    ) -> None:
        self.llm = llm
        self.config = config
        self.settings = settings

    def generate_rubrics(self, request: RubricGenerationRequest) -> RubricGenerationResponse:
        """返回的对话历史不含 system prompt，并以模型原始回复结尾。"""

        history: list[BaseMessage] = []
        for message in request.conversation_history:
            if message.role == "user":
                history.append(HumanMessage(content=message.content))
            else:
                history.append(AIMessage(content=message.content))
        user_message = build_rubric_user_message(request)

        raw = self.llm.complete(
            [
                SystemMessage(content=self.config.ai_system_prompt),
                *history,
                HumanMessage(content=user_message),
            ],
            self.settings.rubric_model,
            temperature=0.7,
            json_mode=True,
        )
        parsed = validate_payload(GeneratedRubrics, parse_json_payload(raw))

        conversation = [
            *request.conversation_history,
            ConversationMessage(role="user", content=user_message),
            ConversationMessage(role="assistant", content=raw),
        ]
        logger.info("Generated %d rubrics", len(parsed.rubrics))
        return RubricGenerationResponse(
            rubrics=parsed.rubrics,
            explanation=parsed.explanation,
            conversation_history=conversation,
        )

    def extract_exam(self, request: ExamExtractionRequest) -> ExamExtractionResponse:
        """请求中的开关优先，未提供时使用设置中的默认值。"""

        split = (
            self.config.split_into_questions
            if request.split_into_questions is None
            else request.split_into_questions
        )
        with_rubrics = (
            self.config.extract_rubrics
            if request.extract_rubrics is None
            else request.extract_rubrics
        )
        context = (
            self.config.extraction_context
            if request.extraction_context is None
            else request.extraction_context
        )

        result = self.llm.structured_predict(
            ExamExtractionResponse,
            EXAM_SYSTEM_PROMPT,
            build_exam_user_message(request.text, split, with_rubrics, context),
            self.settings.extraction_model,
            temperature=0.2,
            max_tokens=8192,
        )

        questions = result.questions
        if not split and questions:
            if len(questions) > 1:
                logger.warning(
                    "Model returned %d questions in single-question mode", len(questions)
                )
            questions = [
                questions[0].model_copy(update={"question_number": 1, "points_percentage": 100})
            ]
        if not with_rubrics:
            questions = [q.model_copy(update={"rubrics": []}) for q in questions]
        return ExamExtractionResponse(
            questions=questions,
            total_points=result.total_points or 100,
            summary=result.summary or "Exam extracted successfully",
        )
