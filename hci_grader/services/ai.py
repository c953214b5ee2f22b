"""OpenRouter/LangChain 集成的通用工具。

所有 LLM 调用都走 OpenAI 兼容的 chat-completion 接口，JSON 输出一律
请求 ``response_format={"type": "json_object"}``，并在解析前剥离可能
包裹在外面的 Markdown 代码块。
"""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, Optional, Sequence, TypeVar

import openai
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ValidationError

from hci_grader.config import Settings
from hci_grader.exceptions import (
    LLMAuthenticationError,
    LLMNotConfiguredError,
    LLMUpstreamError,
    MalformedResponseError,
)


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_CODE_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)

OCR_INSTRUCTION = (
    "Please extract all text from this image. Preserve the structure and formatting "
    "as much as possible. If this is a handwritten or typed exam/assignment submission, "
    "extract all the answers and questions visible."
)


def strip_code_fence(text: str) -> str:
    """去掉 ```json ... ``` 之类的外层代码块。"""

    stripped = text.strip()
    match = _CODE_FENCE_RE.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def parse_json_payload(text: str) -> dict[str, Any]:
    """把模型回复解析为 JSON 对象，失败时抛出 ``MalformedResponseError``。"""

    cleaned = strip_code_fence(text or "")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error("LLM returned invalid JSON: %s", cleaned[:500])
        raise MalformedResponseError(f"Invalid JSON from model: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedResponseError("Model reply is not a JSON object")
    return payload


def validate_payload(schema: type[T], payload: dict[str, Any]) -> T:
    """按严格的 pydantic 结构校验 LLM 输出。"""

    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        logger.error("LLM reply does not match %s: %s", schema.__name__, exc)
        raise MalformedResponseError(str(exc)) from exc


class OpenRouterJSONClient:
    """使用 LangChain 封装的 OpenAI 兼容 chat-completion 客户端。"""

    def __init__(
        self,
        settings: Settings,
        api_key: Optional[str],
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ) -> None:
        self.settings = settings
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_chat(
        self,
        model: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatOpenAI:
        if not self.is_available:
            raise LLMNotConfiguredError(
                "OpenRouter API key not configured. Please add it in Settings."
            )
        return ChatOpenAI(
            model=model,
            api_key=self.api_key,
            base_url=self.settings.openrouter_base_url,
            temperature=self.temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.max_tokens,
            timeout=self.settings.llm_timeout_seconds,
            max_retries=0,
            default_headers={
                "HTTP-Referer": self.settings.site_url,
                "X-Title": self.settings.app_title,
            },
        )

    def complete(
        self,
        messages: Sequence[BaseMessage],
        model: str,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> str:
        """发送一轮对话并返回模型的原始文本回复。"""

        chat = self._get_chat(model, temperature, max_tokens)
        runnable = chat.bind(response_format={"type": "json_object"}) if json_mode else chat
        prompt_chars = sum(len(str(m.content)) for m in messages)
        logger.info(
            "LLM call model=%s messages=%d prompt_chars=%d json=%s",
            model,
            len(messages),
            prompt_chars,
            json_mode,
        )
        try:
            result = runnable.invoke(list(messages))
        except openai.AuthenticationError as exc:
            raise LLMAuthenticationError(
                "Invalid OpenRouter API key. Please check your settings."
            ) from exc
        except openai.APIError as exc:
            logger.warning("LLM call failed model=%s: %s", model, exc)
            raise LLMUpstreamError(str(exc)) from exc
        content = result.content
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        if not content:
            raise LLMUpstreamError("No response from AI")
        return content

    def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict[str, Any]:
        """单轮 system + user 对话，返回解析后的 JSON 对象。"""

        raw = self.complete(
            [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)],
            model,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True,
        )
        return parse_json_payload(raw)

    def structured_predict(
        self,
        schema: type[T],
        system_prompt: str,
        user_prompt: str,
        model: str,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> T:
        """根据 prompt 生成并校验结构化结果。"""

        payload = self.complete_json(
            system_prompt,
            user_prompt,
            model,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return validate_payload(schema, payload)

    def describe_image(self, data: bytes, mime_type: str) -> str:
        """用视觉模型识别图片中的文字。"""

        encoded = base64.b64encode(data).decode("ascii")
        message = HumanMessage(
            content=[
                {"type": "text", "text": OCR_INSTRUCTION},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type or 'image/png'};base64,{encoded}"},
                },
            ]
        )
        return self.complete([message], self.settings.vision_model, max_tokens=4096)
