"""Client for the Grok chat completion API."""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .model import AgentOutput, CompletionRequest, FunctionDefinition, Message, ToolCall

__all__ = [
    "API_BASE_URL",
    "GROK_BETA",
    "Client",
    "CompletionModel",
    "CompletionResponse",
    "ToolDefinition",
    "Usage",
]

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.x.ai/v1"
GROK_BETA = "grok-2-latest"
CONTENT_TYPE_JSON = "application/json"
USER_AGENT = "andaengine"


def _field(data: Any, key: str, kind: type | tuple[type, ...]) -> Any:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, kind):
        raise ValueError(f"invalid type for field `{key}`")
    return value


def _optional(data: dict[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    value = data.get(key)
    if value is not None and not isinstance(value, kind):
        raise ValueError(f"invalid type for field `{key}`")
    return value


@dataclass
class Usage:
    """Token usage statistics from a Grok response."""

    prompt_tokens: int
    total_tokens: int

    @classmethod
    def from_dict(cls, data: Any) -> Usage:
        return cls(
            prompt_tokens=_field(data, "prompt_tokens", int),
            total_tokens=_field(data, "total_tokens", int),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"prompt_tokens": self.prompt_tokens, "total_tokens": self.total_tokens}

    def __str__(self) -> str:
        return f"Prompt tokens: {self.prompt_tokens} Total tokens: {self.total_tokens}"


@dataclass
class _Function:
    name: str
    arguments: str

    @classmethod
    def from_dict(cls, data: Any) -> _Function:
        return cls(
            name=_field(data, "name", str), arguments=_field(data, "arguments", str)
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "arguments": self.arguments}


@dataclass
class _ToolCallOutput:
    id: str
    type: str
    function: _Function

    @classmethod
    def from_dict(cls, data: Any) -> _ToolCallOutput:
        return cls(
            id=_field(data, "id", str),
            type=_field(data, "type", str),
            function=_Function.from_dict(_field(data, "function", dict)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "function": self.function.to_dict()}


@dataclass
class _MessageOutput:
    role: str
    content: str | None = None
    refusal: str | None = None
    tool_calls: list[_ToolCallOutput] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> _MessageOutput:
        role = _field(data, "role", str)
        calls = _optional(data, "tool_calls", list)
        return cls(
            role=role,
            content=_optional(data, "content", str),
            refusal=_optional(data, "refusal", str),
            tool_calls=None
            if calls is None
            else [_ToolCallOutput.from_dict(call) for call in calls],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "refusal": self.refusal,
            "tool_calls": None
            if self.tool_calls is None
            else [call.to_dict() for call in self.tool_calls],
        }


@dataclass
class _Choice:
    index: int
    message: _MessageOutput
    finish_reason: str

    @classmethod
    def from_dict(cls, data: Any) -> _Choice:
        return cls(
            index=_field(data, "index", int),
            message=_MessageOutput.from_dict(_field(data, "message", dict)),
            finish_reason=_field(data, "finish_reason", str),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "message": self.message.to_dict(),
            "finish_reason": self.finish_reason,
        }


@dataclass
class CompletionResponse:
    """Completion response from the Grok API."""

    id: str
    object: str
    created: int
    model: str
    choices: list[_Choice]
    usage: Usage | None = None

    @classmethod
    def from_dict(cls, data: Any) -> CompletionResponse:
        usage = _optional(data, "usage", dict) if isinstance(data, dict) else None
        return cls(
            id=_field(data, "id", str),
            object=_field(data, "object", str),
            created=_field(data, "created", int),
            model=_field(data, "model", str),
            choices=[_Choice.from_dict(c) for c in _field(data, "choices", list)],
            usage=None if usage is None else Usage.from_dict(usage),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "choices": [choice.to_dict() for choice in self.choices],
            "usage": None if self.usage is None else self.usage.to_dict(),
        }

    def to_agent_output(self, full_history: list[dict[str, Any]]) -> AgentOutput:
        """Turn the last choice into an agent output, extending the history."""
        if not self.choices:
            raise ValueError("No completion choice")
        choice = self.choices[-1]
        message = choice.message
        history = [*full_history, message.to_dict()]
        tool_calls = (
            None
            if message.tool_calls is None
            else [
                ToolCall(id=tc.id, name=tc.function.name, args=tc.function.arguments)
                for tc in message.tool_calls
            ]
        )
        output = AgentOutput(
            content=message.content or "",
            tool_calls=tool_calls,
            full_history=history,
        )
        if choice.finish_reason not in ("stop", "tool_calls"):
            output.failed_reason = choice.finish_reason
        if message.refusal is not None:
            output.failed_reason = message.refusal
        return output


@dataclass
class ToolDefinition:
    """A tool offered to the model; Grok does not accept strict mode."""

    type: str
    function: FunctionDefinition

    @classmethod
    def from_function(cls, function: FunctionDefinition) -> ToolDefinition:
        return cls(type="function", function=dataclasses.replace(function, strict=None))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "function": self.function.to_dict()}


class Client:
    """HTTP client for the Grok API, authenticated with a bearer key."""

    def __init__(
        self,
        api_key: str,
        endpoint: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint or API_BASE_URL
        self._http = httpx.AsyncClient(
            headers={
                "Content-Type": CONTENT_TYPE_JSON,
                "Accept": CONTENT_TYPE_JSON,
                "Authorization": f"Bearer {api_key}",
                "User-Agent": USER_AGENT,
            },
            timeout=httpx.Timeout(180.0, connect=10.0),
            transport=transport,
        )

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def post(self, path: str, payload: Any) -> httpx.Response:
        """POST ``payload`` as JSON to ``path`` under the endpoint."""
        url = f"{self.endpoint}{path}"
        if not url.startswith("https://"):
            raise ValueError(f"URL must use https: {url}")
        return await self._http.post(url, json=payload)

    def completion_model(self, model: str) -> CompletionModel:
        """Create a completion model, defaulting to ``grok-2-latest``."""
        return CompletionModel(self, model or GROK_BETA)


class CompletionModel:
    """Chat completion model served by the Grok API."""

    def __init__(self, client: Client, model: str) -> None:
        self.client = client
        self.model = model

    def build_request(
        self, req: CompletionRequest
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        """Return the request body and the message history it carries."""
        history: list[dict[str, Any]] = []
        if req.system is not None:
            history.append(
                Message(role="system", content=req.system, name=req.system_name).to_dict()
            )
        if req.documents:
            history.append(Message(role="user", content=f"{req.documents}").to_dict())
        history.extend(req.chat_history)
        if req.prompt:
            history.append(
                Message(role="user", content=req.prompt, name=req.prompter_name).to_dict()
            )

        body: dict[str, Any] = {"model": self.model, "messages": list(history)}
        if req.temperature is not None:
            body["temperature"] = req.temperature
        if req.max_tokens is not None:
            body["max_tokens"] = req.max_tokens
        if req.response_format is not None:
            body["response_format"] = req.response_format
        if req.stop is not None:
            body["stop"] = req.stop
        if req.tools:
            body["tools"] = [
                ToolDefinition.from_function(tool).to_dict() for tool in req.tools
            ]
            body["tool_choice"] = "required" if req.tool_choice_required else "auto"
        return body, history

    async def completion(self, req: CompletionRequest) -> AgentOutput:
        """Run a chat completion for ``req``."""
        body, history = self.build_request(req)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Grok completions request: %s", json.dumps(body))

        response = await self.client.post("/chat/completions", body)
        if not response.is_success:
            raise RuntimeError(f"Grok completions error: {response.text}")
        text = response.text
        try:
            res = CompletionResponse.from_dict(json.loads(text))
        except (ValueError, TypeError) as err:
            raise RuntimeError(f"Grok completions error: {err}, body: {text}") from err
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Grok completions response: %s", json.dumps(res.to_dict()))
        return res.to_agent_output(history)