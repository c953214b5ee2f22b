"""API 模型基类：对外统一使用 camelCase 字段名。"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """请求既接受 camelCase 也接受字段原名，响应按 camelCase 输出。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
