"""API 路由包入口。"""

from fastapi import APIRouter

from hci_grader.api import (
    answers,
    assignments,
    authoring,
    batch,
    export,
    grading_agents,
    parsing,
    questions,
    rubrics,
    settings,
    submissions,
)

router = APIRouter(prefix="/api")

# 注册子路由
router.include_router(assignments.router, prefix="/assignments", tags=["作业"])
router.include_router(questions.router, prefix="/questions", tags=["题目"])
router.include_router(rubrics.router, prefix="/rubrics", tags=["评分细则"])
router.include_router(submissions.router, prefix="/submissions", tags=["提交"])
router.include_router(answers.router, prefix="/answers", tags=["答案"])
router.include_router(grading_agents.router, prefix="/grading-agents", tags=["评分代理"])
router.include_router(grading_agents.suggest_router, prefix="/agent-suggest", tags=["评分代理"])
router.include_router(settings.router, prefix="/settings", tags=["设置"])
router.include_router(authoring.rubric_router, prefix="/ai-rubric", tags=["AI 辅助"])
router.include_router(authoring.exam_router, prefix="/extract-exam", tags=["AI 辅助"])
router.include_router(parsing.router, prefix="/parse-submission", tags=["提交解析"])
router.include_router(batch.router, prefix="/batch-upload", tags=["批量上传"])
router.include_router(export.router, prefix="/export", tags=["导出"])
