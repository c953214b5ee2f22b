"""评分 Agent API：CRUD、默认 Agent 与评分建议。"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hci_grader.dependencies import get_db, get_grading_config, get_llm_client
from hci_grader.models import GradingAgent, Question
from hci_grader.schemas.agents import (
    AgentSuggestRequest,
    AgentSuggestResponse,
    DefaultAgentsRequest,
    GradingAgentCreate,
    GradingAgentRead,
    GradingAgentUpdate,
)
from hci_grader.services.ai import OpenRouterJSONClient
from hci_grader.services.grading_agents import (
    GradingAgentService,
    create_default_agents,
    strip_agent_suggestions,
)
from hci_grader.services.settings import GradingConfig

router = APIRouter()
suggest_router = APIRouter()

DUPLICATE_AGENT_DETAIL = "An agent with this name already exists for the question"


@router.get("", response_model=List[GradingAgentRead])
def list_agents(question_id: int = Query(..., alias="questionId"), db: Session = Depends(get_db)):
    return (
        db.query(GradingAgent)
        .filter(GradingAgent.question_id == question_id)
        .order_by(GradingAgent.created_at.asc(), GradingAgent.id.asc())
        .all()
    )


@router.post("", response_model=GradingAgentRead, status_code=status.HTTP_201_CREATED)
def create_agent(data: GradingAgentCreate, db: Session = Depends(get_db)):
    if not db.get(Question, data.question_id):
        raise HTTPException(status_code=404, detail="Question not found")

    agent = GradingAgent(**data.model_dump())
    db.add(agent)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_AGENT_DETAIL) from exc
    db.refresh(agent)
    return agent


@router.post("/defaults", response_model=List[GradingAgentRead])
def create_defaults(
    data: DefaultAgentsRequest,
    db: Session = Depends(get_db),
    config: GradingConfig = Depends(get_grading_config),
):
    """幂等创建 g1..g3，模型取自设置中的默认模型。"""
    question = db.get(Question, data.question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return create_default_agents(db, question, config.default_models)


@router.put("", response_model=GradingAgentRead)
def update_agent(data: GradingAgentUpdate, db: Session = Depends(get_db)):
    agent = db.get(GradingAgent, data.agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")

    for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        if key != "agent_id":
            setattr(agent, key, value)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_AGENT_DETAIL) from exc
    db.refresh(agent)
    return agent


@router.delete("")
def delete_agent(agent_id: int = Query(..., alias="agentId"), db: Session = Depends(get_db)):
    """删除 Agent，并从该题所有答案中移除它的建议。"""
    agent = db.get(GradingAgent, agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")

    strip_agent_suggestions(db, agent)
    db.delete(agent)
    db.commit()
    return {"success": True}


@suggest_router.post("", response_model=AgentSuggestResponse)
def agent_suggest(
    data: AgentSuggestRequest,
    db: Session = Depends(get_db),
    llm: OpenRouterJSONClient = Depends(get_llm_client),
    config: GradingConfig = Depends(get_grading_config),
):
    """请求某个 Agent 对答案给出各维度的建议等级与反馈。"""
    return GradingAgentService(llm, config).suggest(db, data)
