"""评分系统相关枚举定义 - 处理状态、批量上传状态、置信度等。"""

import enum


class ProcessingStatus(str, enum.Enum):
    """提交的处理状态。

    手工录入的提交直接为 ``COMPLETED``；批量上传时随文件处理推进。
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchStatus(str, enum.Enum):
    """批量上传整体状态。"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"      # 全部成功
    PARTIAL = "partial"          # 部分失败
    FAILED = "failed"            # 全部失败


class FileStatus(str, enum.Enum):
    """批量上传中单个文件的状态。"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class FileStep(str, enum.Enum):
    """单个文件处理的当前步骤，与进度百分比一一对应。"""
    EXTRACTING_TEXT = "extracting_text"
    EXTRACTING_METADATA = "extracting_metadata"
    PARSING_ANSWERS = "parsing_answers"
    CREATING_SUBMISSION = "creating_submission"


STEP_PROGRESS = {
    FileStep.EXTRACTING_TEXT: 10,
    FileStep.EXTRACTING_METADATA: 30,
    FileStep.PARSING_ANSWERS: 60,
    FileStep.CREATING_SUBMISSION: 80,
}


class Confidence(str, enum.Enum):
    """答案与题目匹配的置信度。"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
