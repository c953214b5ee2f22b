"""清理重复的评分代理：同一题目下同名的代理只保留最早创建的一个。"""
import sys
from collections import defaultdict
from pathlib import Path

# 添加项目根目录到 path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.orm import Session

from hci_grader.db import session_scope
from hci_grader.models import GradingAgent


def remove_duplicate_agents(db: Session) -> int:
    """返回删除的代理数量。"""

    groups: dict[tuple[int, str], list[GradingAgent]] = defaultdict(list)
    agents = db.query(GradingAgent).order_by(GradingAgent.created_at.asc(), GradingAgent.id.asc())
    for agent in agents:
        groups[(agent.question_id, agent.name)].append(agent)

    deleted = 0
    for (question_id, name), members in groups.items():
        if len(members) < 2:
            continue
        keep, *extras = members
        print(f"  题目 {question_id} / {name}: 保留 #{keep.id}，删除 {len(extras)} 个")
        for agent in extras:
            db.delete(agent)
            deleted += 1
    return deleted


def cleanup():
    print("=" * 50)
    print("清理重复的评分代理")
    print("=" * 50)

    with session_scope() as db:
        deleted = remove_duplicate_agents(db)

    if deleted:
        print(f"\n✓ 已删除 {deleted} 个重复代理")
    else:
        print("\n✓ 没有发现重复代理")


if __name__ == "__main__":
    cleanup()
