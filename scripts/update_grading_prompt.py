"""把数据库中保存的评分代理提示词重置为内置默认值。"""
import sys
from pathlib import Path

# 添加项目根目录到 path
sys.path.insert(0, str(Path(__file__).parent.parent))

from hci_grader.db import session_scope
from hci_grader.models.settings import DEFAULT_GRADING_AGENT_PROMPT
from hci_grader.services.settings import SettingsService


def update_prompt():
    with session_scope() as db:
        row, created = SettingsService(db).get_or_create()
        if created:
            print("设置不存在，已按默认值创建")
            return
        if row.grading_agent_prompt == DEFAULT_GRADING_AGENT_PROMPT:
            print("评分代理提示词已是默认值，无需更新")
            return
        row.grading_agent_prompt = DEFAULT_GRADING_AGENT_PROMPT
    print("✓ 评分代理提示词已更新（重启服务或保存一次设置后生效）")


if __name__ == "__main__":
    update_prompt()
