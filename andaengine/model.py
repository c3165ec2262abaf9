"""Model abstractions: completion and embedding features and shared data types."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, NoReturn, Protocol

MOCK_NDIMS = 384


class FeatureNotImplementedError(NotImplementedError):
    """Raised by placeholder implementations; ``feature`` names the operation."""

    def __init__(self, feature: str) -> None:
        super().__init__("not implemented")
        self.feature = feature


def _refuse(feature: str, request: Any) -> NoReturn:
    error = FeatureNotImplementedError(feature)
    error.request = request
    raise error


@dataclass
class Embedding:
    """An embedding vector for a piece of text."""

    text: str
    vec: list[float]


@dataclass
class ToolCall:
    """A tool invocation requested by a model."""

    id: str
    name: str
    args: str
    result: Any = None


@dataclass
class AgentOutput:
    """The result of running a completion."""

    content: str = ""
    failed_reason: str | None = None
    tool_calls: list[ToolCall] | None = None
    full_history: list[dict[str, Any]] | None = None


@dataclass
class FunctionDefinition:
    """A function exposed to a model as a tool."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)
    strict: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }
        if self.strict is not None:
            data["strict"] = self.strict
        return data


@dataclass
class Message:
    """A chat message."""

    role: str
    content: Any = ""
    name: str | None = None
    tool_call_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            data["name"] = self.name
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        return data


@dataclass
class CompletionRequest:
    """A request for a model completion."""

    system: str | None = None
    system_name: str | None = None
    prompt: str = ""
    prompter_name: str | None = None
    chat_history: list[dict[str, Any]] = field(default_factory=list)
    documents: str = ""
    tools: list[FunctionDefinition] = field(default_factory=list)
    tool_choice_required: bool = False
    temperature: float | None = None
    max_tokens: int | None = None
    response_format: dict[str, Any] | None = None
    stop: list[str] | None = None


class CompletionFeatures(Protocol):
    async def completion(self, req: CompletionRequest) -> AgentOutput: ...


class EmbeddingFeatures(Protocol):
    def ndims(self) -> int: ...

    async def embed(self, texts: list[str]) -> list[Embedding]: ...

    async def embed_query(self, text: str) -> Embedding: ...


class NotImplementedModel:
    """Placeholder model whose operations always fail."""

    async def completion(self, req: CompletionRequest) -> AgentOutput:
        """Fail with :class:`FeatureNotImplementedError`."""
        _refuse("completion", req)

    def ndims(self) -> int:
        return 0

    async def embed(self, texts: list[str]) -> list[Embedding]:
        """Fail with :class:`FeatureNotImplementedError`."""
        _refuse("embed", texts)

    async def embed_query(self, text: str) -> Embedding:
        """Fail with :class:`FeatureNotImplementedError`."""
        _refuse("embed_query", text)


class MockModel:
    """Model that echoes prompts and returns zero embeddings."""

    async def completion(self, req: CompletionRequest) -> AgentOutput:
        tool_calls = [
            ToolCall(id=tool.name, name=tool.name, args=req.prompt)
            for tool in req.tools
        ]
        return AgentOutput(content=req.prompt, tool_calls=tool_calls or None)

    def ndims(self) -> int:
        return MOCK_NDIMS

    async def embed(self, texts: list[str]) -> list[Embedding]:
        return [Embedding(text=text, vec=[0.0] * MOCK_NDIMS) for text in texts]

    async def embed_query(self, text: str) -> Embedding:
        return Embedding(text="test", vec=[0.0] * MOCK_NDIMS)


@dataclass
class Model:
    """Combines a completion implementation with an embedding implementation."""

    completer: CompletionFeatures
    embedder: EmbeddingFeatures

    @classmethod
    def with_completer(cls, completer: CompletionFeatures) -> Model:
        return cls(completer=completer, embedder=NotImplementedModel())

    @classmethod
    def not_implemented(cls) -> Model:
        return cls(completer=NotImplementedModel(), embedder=NotImplementedModel())

    @classmethod
    def mock_implemented(cls) -> Model:
        return cls(completer=MockModel(), embedder=MockModel())

    async def completion(self, req: CompletionRequest) -> AgentOutput:
        return await self.completer.completion(req)

    def ndims(self) -> int:
        return self.embedder.ndims()

    async def embed(self, texts) -> list[Embedding]:
        return await self.embedder.embed(list(texts))

    async def embed_query(self, text: str) -> Embedding:
        return await self.embedder.embed_query(text)


@dataclass(frozen=True)
class ImageDetail:
    url: str
    detail: str


@dataclass(frozen=True)
class AudioDetail:
    data: str
    format: str


def _require(data: dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ValueError(f"missing field {key!r}")
    return data[key]


def _require_str(data: dict[str, Any], key: str) -> str:
    value = _require(data, key)
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _require_dict(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = _require(data, key)
    if not isinstance(value, dict):
        raise ValueError(f"field {key!r} must be an object")
    return value


class HybridContent:
    """Message content that is text, an image or audio, tagged by ``type``."""

    TYPE: ClassVar[str] = ""
    _registry: ClassVar[dict[str, type[HybridContent]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.TYPE:
            HybridContent._registry[cls.TYPE] = cls

    def _payload(self) -> dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def _from_payload(cls, data: dict[str, Any]) -> HybridContent:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, data: Any) -> HybridContent:
        if not isinstance(data, dict):
            raise ValueError("content must be an object")
        tag = _require(data, "type")
        variant = HybridContent._registry.get(tag)
        if variant is None:
            raise ValueError(f"unknown content type {tag!r}")
        return variant._from_payload(data)

    @classmethod
    def from_text(cls, text: str) -> HybridContent:
        return TextContent(text=text)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.TYPE, **self._payload()}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> HybridContent:
        return cls.from_dict(json.loads(text))


@dataclass(frozen=True)
class TextContent(HybridContent):
    TYPE: ClassVar[str] = "text"
    text: str

    def _payload(self) -> dict[str, Any]:
        return {"text": self.text}

    @classmethod
    def _from_payload(cls, data: dict[str, Any]) -> HybridContent:
        return cls(text=_require_str(data, "text"))


@dataclass(frozen=True)
class ImageContent(HybridContent):
    TYPE: ClassVar[str] = "image"
    image_url: ImageDetail

    def _payload(self) -> dict[str, Any]:
        return {
            "image_url": {"url": self.image_url.url, "detail": self.image_url.detail}
        }

    @classmethod
    def _from_payload(cls, data: dict[str, Any]) -> HybridContent:
        detail = _require_dict(data, "image_url")
        return cls(
            image_url=ImageDetail(
                url=_require_str(detail, "url"), detail=_require_str(detail, "detail")
            )
        )


@dataclass(frozen=True)
class AudioContent(HybridContent):
    TYPE: ClassVar[str] = "audio"
    input_audio: AudioDetail

    def _payload(self) -> dict[str, Any]:
        return {
            "input_audio": {
                "data": self.input_audio.data,
                "format": self.input_audio.format,
            }
        }

    @classmethod
    def _from_payload(cls, data: dict[str, Any]) -> HybridContent:
        audio = _require_dict(data, "input_audio")
        return cls(
            input_audio=AudioDetail(
                data=_require_str(audio, "data"), format=_require_str(audio, "format")
            )
        )