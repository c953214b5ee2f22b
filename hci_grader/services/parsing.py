"""提交解析：把抽取出的全文映射到各道题的答案。"""

from __future__ import annotations

import logging
from typing import Sequence

from hci_grader.config import Settings
from hci_grader.exceptions import GraderError, ValidationFailedError
from hci_grader.models import Confidence, Question
from hci_grader.schemas.parsing import (
    LLMParseResponse,
    LLMStudentMetadata,
    ParsedAnswer,
    ParseResult,
    StudentMetadata,
)
from hci_grader.services.ai import OpenRouterJSONClient


logger = logging.getLogger(__name__)

UNKNOWN_STUDENT = "Unknown Student"
UNKNOWN_EMAIL = "no-email@unknown.com"
METADATA_TEXT_LIMIT = 2000

PARSE_SYSTEM_PROMPT = """You are an expert at parsing student exam/assignment submissions and mapping answers to specific questions.

Your task:
1. Carefully analyze the provided submission text
2. Match each part of the submission to the corresponding question from the provided list
3. Extract the complete answer for each question
4. Assign a confidence score based on how certain the match is

MATCHING STRATEGY (in order of priority):
1. Question Numbers: look for explicit question numbers (e.g. "Question 1:", "Q1:", "1.", "1)")
2. Keywords and Semantics: match keywords and meaning from the question text to content in the submission
3. Sequential Order: if no other clues, assume answers are in the same order as questions

CONFIDENCE LEVELS:
- high: question number explicitly mentioned OR very clear semantic match
- medium: good keyword match OR reasonable semantic similarity
- low: weak match OR guessing based on order
- If NO answer is found, still include the question with empty answerText and confidence "low"

EXTRACTION RULES:
- Extract the COMPLETE answer, do not truncate or summarize
- Preserve the student's original wording and formatting
- Do not add your own commentary or corrections"""

METADATA_SYSTEM_PROMPT = (
    "You are an expert at extracting student information from exam submissions. "
    "Extract the student's name and email address (or student ID if no email is present)."
)


def build_parse_user_prompt(
    text: str, questions: Sequence[Question], extraction_context: str = ""
) -> str:
    listing = "\n\n".join(
        f"Question {q.question_number} (ID: {q.id}):\n{q.question_text}" for q in questions
    )
    prompt = f"""ASSIGNMENT QUESTIONS:

{listing}

==========================================

STUDENT SUBMISSION:

{text}

==========================================

Return ONLY a valid JSON object with this EXACT structure:
{{
  "answers": [
    {{"questionId": 123, "answerText": "the complete extracted answer", "confidence": "high|medium|low"}}
  ],
  "summary": "Brief summary like: 'Extracted 3/4 answers with high confidence'",
  "warnings": ["Any issues like: 'Could not find answer for Question 2'"]
}}

Include an entry for EVERY question and use the exact numeric question IDs above."""
    if extraction_context.strip():
        prompt += f"\n\nADDITIONAL CONTEXT FROM THE INSTRUCTOR:\n{extraction_context.strip()}"
    return prompt


def parse_submission_text(
    text: str,
    questions: Sequence[Question],
    llm: OpenRouterJSONClient,
    settings: Settings,
    extraction_context: str = "",
) -> ParseResult:
    """结果按题目顺序每题一条；只有一道题时不调用 LLM。"""

    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationFailedError("No text could be extracted from the input")
    if not questions:
        raise ValidationFailedError("No questions found for this assignment")

    ordered = sorted(questions, key=lambda q: q.question_number)
    if len(ordered) == 1:
        question = ordered[0]
        return ParseResult(
            answers=[
                ParsedAnswer(
                    question_id=question.id,
                    question_number=question.question_number,
                    question_text=question.question_text,
                    answer_text=cleaned,
                    confidence=Confidence.HIGH,
                )
            ],
            summary="Single-question assignment: the entire submission is used as the answer",
            warnings=[],
        )

    logger.info("Parsing submission: %d chars, %d questions", len(cleaned), len(ordered))
    response = llm.structured_predict(
        LLMParseResponse,
        PARSE_SYSTEM_PROMPT,
        build_parse_user_prompt(cleaned, ordered, extraction_context),
        settings.extraction_model,
        temperature=0.1,
        max_tokens=8192,
    )

    by_question = {}
    for item in response.answers:
        by_question.setdefault(item.question_id, item)
    answers = []
    for question in ordered:
        found = by_question.get(question.id)
        answers.append(
            ParsedAnswer(
                question_id=question.id,
                question_number=question.question_number,
                question_text=question.question_text,
                answer_text=found.answer_text if found else "",
                confidence=found.confidence if found else Confidence.LOW,
            )
        )
    parsed = sum(1 for answer in answers if answer.answer_text)
    return ParseResult(
        answers=answers,
        summary=response.summary or f"Parsed {parsed} of {len(ordered)} answers",
        warnings=response.warnings,
    )


def extract_student_metadata(
    text: str, llm: OpenRouterJSONClient, settings: Settings
) -> StudentMetadata:
    """识别学生姓名与邮箱；任何失败都回退为占位值。"""

    user_prompt = f"""From the following text, extract the student's name and email address (or ID).

TEXT:
{(text or "")[:METADATA_TEXT_LIMIT]}

Return ONLY a valid JSON object with this structure:
{{"name": "Student Full Name", "email": "student@email.com or student_id"}}

If you cannot find the name, use "{UNKNOWN_STUDENT}". If you cannot find an email or ID, use "{UNKNOWN_EMAIL}"."""
    try:
        result = llm.structured_predict(
            LLMStudentMetadata,
            METADATA_SYSTEM_PROMPT,
            user_prompt,
            settings.extraction_model,
            temperature=0.1,
            max_tokens=200,
        )
    except GraderError as exc:
        logger.warning("Student metadata extraction failed: %s", exc.message)
        return StudentMetadata(name=UNKNOWN_STUDENT, email=UNKNOWN_EMAIL)
    return StudentMetadata(
        name=(result.name or "").strip() or UNKNOWN_STUDENT,
        email=(result.email or "").strip() or UNKNOWN_EMAIL,
    )
