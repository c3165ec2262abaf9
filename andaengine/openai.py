"""Client for OpenAI-compatible completion and embedding APIs."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .model import (
    AgentOutput,
    CompletionRequest,
    Embedding,
    FunctionDefinition,
    Message,
    ToolCall,
)

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.openai.com/v1"
CONTENT_TYPE_JSON = "application/json"
USER_AGENT = "andaengine"

TEXT_EMBEDDING_3_LARGE = "text-embedding-3-large"
TEXT_EMBEDDING_3_SMALL = "text-embedding-3-small"
TEXT_EMBEDDING_ADA_002 = "text-embedding-ada-002"

O1 = "o1"
O3_MINI = "o3-mini"

MAX_DOCUMENTS = 1024

_EMBEDDING_DIMS = {
    TEXT_EMBEDDING_3_LARGE: 3072,
    TEXT_EMBEDDING_3_SMALL: 1536,
    TEXT_EMBEDDING_ADA_002: 1536,
}


def _field(data: dict[str, Any], key: str) -> Any:
    if not isinstance(data, dict):
        raise ValueError("expected an object")
    if key not in data:
        raise ValueError(f"missing field {key!r}")
    return data[key]


@dataclass
class Usage:
    """Token usage reported by the API."""

    prompt_tokens: int
    total_tokens: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Usage:
        return cls(
            prompt_tokens=int(_field(data, "prompt_tokens")),
            total_tokens=int(_field(data, "total_tokens")),
        )

    def __str__(self) -> str:
        return f"Prompt tokens: {self.prompt_tokens} Total tokens: {self.total_tokens}"


@dataclass
class EmbeddingData:
    object: str
    embedding: list[float]
    index: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmbeddingData:
        return cls(
            object=str(_field(data, "object")),
            embedding=[float(v) for v in _field(data, "embedding")],
            index=int(_field(data, "index")),
        )


@dataclass
class EmbeddingResponse:
    """Response body of the embeddings endpoint."""

    object: str
    data: list[EmbeddingData]
    model: str
    usage: Usage

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmbeddingResponse:
        return cls(
            object=str(_field(data, "object")),
            data=[EmbeddingData.from_dict(item) for item in _field(data, "data")],
            model=str(_field(data, "model")),
            usage=Usage.from_dict(_field(data, "usage")),
        )

    def to_embeddings(self, texts: list[str]) -> list[Embedding]:
        """Pair each returned vector with its input text, in order."""
        if len(self.data) != len(texts):
            raise ValueError(
                f"Expected {len(texts)} embeddings, got {len(self.data)}"
            )
        return [
            Embedding(text=text, vec=item.embedding)
            for item, text in zip(self.data, texts)
        ]


@dataclass
class Function:
    name: str
    arguments: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Function:
        return cls(
            name=str(_field(data, "name")), arguments=str(_field(data, "arguments"))
        )


@dataclass
class ToolCallOutput:
    id: str
    type: str
    function: Function

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCallOutput:
        return cls(
            id=str(_field(data, "id")),
            type=str(_field(data, "type")),
            function=Function.from_dict(_field(data, "function")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {
                "name": self.function.name,
                "arguments": self.function.arguments,
            },
        }


@dataclass
class MessageOutput:
    role: str
    content: str | None = None
    refusal: str | None = None
    tool_calls: list[ToolCallOutput] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessageOutput:
        tool_calls = data.get("tool_calls")
        return cls(
            role=str(_field(data, "role")),
            content=data.get("content"),
            refusal=data.get("refusal"),
            tool_calls=None
            if tool_calls is None
            else [ToolCallOutput.from_dict(tc) for tc in tool_calls],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "refusal": self.refusal,
            "tool_calls": None
            if self.tool_calls is None
            else [tc.to_dict() for tc in self.tool_calls],
        }


@dataclass
class Choice:
    index: int
    message: MessageOutput
    finish_reason: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Choice:
        return cls(
            index=int(_field(data, "index")),
            message=MessageOutput.from_dict(_field(data, "message")),
            finish_reason=str(_field(data, "finish_reason")),
        )


@dataclass
class ToolDefinition:
    """A tool offered to the model."""

    type: str
    function: FunctionDefinition

    @classmethod
    def from_function(cls, function: FunctionDefinition) -> ToolDefinition:
        return cls(type="function", function=function)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "function": self.function.to_dict()}


@dataclass
class CompletionResponse:
    """Response body of the chat completions endpoint."""

    id: str
    object: str
    created: int
    model: str
    choices: list[Choice] = field(default_factory=list)
    usage: Usage | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompletionResponse:
        usage = data.get("usage") if isinstance(data, dict) else None
        return cls(
            id=str(_field(data, "id")),
            object=str(_field(data, "object")),
            created=int(_field(data, "created")),
            model=str(_field(data, "model")),
            choices=[Choice.from_dict(c) for c in _field(data, "choices")],
            usage=None if usage is None else Usage.from_dict(usage),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": c.index,
                    "message": c.message.to_dict(),
                    "finish_reason": c.finish_reason,
                }
                for c in self.choices
            ],
            "usage": None
            if self.usage is None
            else {
                "prompt_tokens": self.usage.prompt_tokens,
                "total_tokens": self.usage.total_tokens,
            },
        }

    def to_agent_output(self, full_history: list[dict[str, Any]]) -> AgentOutput:
        """Turn the last choice into an agent output, extending the history."""
        if not self.choices:
            raise ValueError("No completion choice")
        choice = self.choices[-1]
        message = choice.message
        history = [*full_history, message.to_dict()]
        output = AgentOutput(
            content=message.content or "",
            tool_calls=None
            if message.tool_calls is None
            else [
                ToolCall(id=tc.id, name=tc.function.name, args=tc.function.arguments)
                for tc in message.tool_calls
            ],
            full_history=history,
        )
        if choice.finish_reason not in ("stop", "tool_calls"):
            output.failed_reason = choice.finish_reason
        if message.refusal is not None:
            output.failed_reason = message.refusal
        return output


class Client:
    """HTTP client for the API, authenticated with a bearer key."""

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

    def embedding_model(self, model: str) -> EmbeddingModel:
        """Create an embedding model; unknown models get 0 dimensions."""
        return EmbeddingModel(self, model, _EMBEDDING_DIMS.get(model, 0))

    def completion_model(self, model: str) -> CompletionModel:
        """Create a completion model, defaulting to ``o3-mini``."""
        return CompletionModel(self, model or O3_MINI)


class EmbeddingModel:
    """Embedding model served by the API."""

    def __init__(self, client: Client, model: str, ndims: int) -> None:
        self.client = client
        self.model = model
        self._ndims = ndims

    def ndims(self) -> int:
        return self._ndims

    async def _request(self, payload: Any) -> EmbeddingResponse:
        response = await self.client.post("/embeddings", payload)
        if not response.is_success:
            raise RuntimeError(f"OpenAI embeddings error: {response.text}")
        try:
            return EmbeddingResponse.from_dict(response.json())
        except (ValueError, TypeError) as err:
            raise RuntimeError(f"OpenAI embeddings error: {err}") from err

    async def embed(self, texts: list[str]) -> list[Embedding]:
        """Embed several texts, returning embeddings in input order."""
        texts = list(texts)
        if len(texts) > MAX_DOCUMENTS:
            raise ValueError(f"Too many documents, max is {MAX_DOCUMENTS}")
        res = await self._request({"model": self.model, "input": texts})
        return res.to_embeddings(texts)

    async def embed_query(self, text: str) -> Embedding:
        """Embed a single query text."""
        res = await self._request({"model": self.model, "input": text})
        if not res.data:
            raise RuntimeError("no embedding data")
        return Embedding(text=text, vec=res.data[-1].embedding)


class CompletionModel:
    """Chat completion model served by the API."""

    def __init__(self, client: Client, model: str) -> None:
        self.client = client
        self.model = model

    def is_new_model(self) -> bool:
        return self.model.startswith("o1-")

    def build_request(
        self, req: CompletionRequest
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        """Return the request body and the message history it carries."""
        is_new = self.is_new_model()
        history: list[dict[str, Any]] = []
        if req.system is not None:
            history.append(
                Message(
                    role="developer" if is_new else "system",
                    content=req.system,
                    name=req.system_name,
                ).to_dict()
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
            key = "max_completion_tokens" if is_new else "max_tokens"
            body[key] = req.max_tokens
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
            logger.debug("OpenAI completions request: %s", json.dumps(body))

        response = await self.client.post("/chat/completions", body)
        if not response.is_success:
            raise RuntimeError(f"OpenAI completions error: {response.text}")
        text = response.text
        try:
            res = CompletionResponse.from_dict(json.loads(text))
        except (ValueError, TypeError) as err:
            raise RuntimeError(
                f"OpenAI completions error: {err}, body: {text}"
            ) from err
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("OpenAI completions response: %s", json.dumps(res.to_dict()))
        return res.to_agent_output(history)