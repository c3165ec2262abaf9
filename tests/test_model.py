import pytest

from andaengine.model import (
    AudioContent,
    AudioDetail,
    CompletionRequest,
    FunctionDefinition,
    HybridContent,
    ImageContent,
    ImageDetail,
    Message,
    MockModel,
    Model,
    NotImplementedModel,
    TextContent,
    ToolCall,
)


def test_hybrid_content_text():
    content = TextContent(text="Hello, world!")
    text = content.to_json()
    assert text == '{"type":"text","text":"Hello, world!"}'
    assert HybridContent.from_json(text) == content
    assert HybridContent.from_text("Hello, world!") == content


def test_hybrid_content_image():
    content = ImageContent(
        image_url=ImageDetail(url="https://example.com/image.jpg", detail="high")
    )
    text = content.to_json()
    assert text == (
        '{"type":"image","image_url":'
        '{"url":"https://example.com/image.jpg","detail":"high"}}'
    )
    assert HybridContent.from_json(text) == content


def test_hybrid_content_audio_round_trip():
    content = AudioContent(input_audio=AudioDetail(data="AAAA", format="wav"))
    data = content.to_dict()
    assert data["type"] == "audio"
    assert HybridContent.from_dict(data) == content


@pytest.mark.parametrize(
    "data",
    [
        {"type": "video", "url": "x"},
        {"text": "no type"},
        {"type": "text"},
        {"type": "image", "image_url": "not an object"},
        ["type", "text"],
    ],
)
def test_hybrid_content_rejects_bad_input(data):
    with pytest.raises(ValueError):
        HybridContent.from_dict(data)


def test_message_to_dict_omits_missing_fields():
    assert Message(role="user", content="hi").to_dict() == {
        "role": "user",
        "content": "hi",
    }
    assert Message(role="system", content="x", name="bot").to_dict()["name"] == "bot"


def test_function_definition_to_dict():
    fd = FunctionDefinition(name="f", description="d", parameters={"type": "object"})
    assert "strict" not in fd.to_dict()
    fd.strict = True
    assert fd.to_dict()["strict"] is True


@pytest.mark.asyncio
async def test_mock_completion_with_tools():
    model = Model.mock_implemented()
    req = CompletionRequest(
        prompt="ping",
        tools=[FunctionDefinition(name="tool_a", description="a")],
    )
    out = await model.completion(req)
    assert out.content == "ping"
    assert out.tool_calls == [ToolCall(id="tool_a", name="tool_a", args="ping")]


@pytest.mark.asyncio
async def test_mock_completion_without_tools():
    out = await MockModel().completion(CompletionRequest(prompt="ping"))
    assert out.content == "ping"
    assert out.tool_calls is None


@pytest.mark.asyncio
async def test_mock_embeddings():
    model = Model.mock_implemented()
    assert model.ndims() == 384
    embeddings = await model.embed(iter(["a", "b"]))
    assert [e.text for e in embeddings] == ["a", "b"]
    assert all(e.vec == [0.0] * 384 for e in embeddings)
    query = await model.embed_query("anything")
    assert query.text == "test"
    assert len(query.vec) == 384


@pytest.mark.asyncio
async def test_not_implemented_model():
    model = Model.not_implemented()
    assert model.ndims() == 0
    with pytest.raises(NotImplementedError, match="not implemented"):
        await model.completion(CompletionRequest(prompt="x"))
    with pytest.raises(NotImplementedError):
        await model.embed(["x"])
    with pytest.raises(NotImplementedError):
        await model.embed_query("x")


@pytest.mark.asyncio
async def test_with_completer_has_no_embedder():
    model = Model.with_completer(MockModel())
    out = await model.completion(CompletionRequest(prompt="hi"))
    assert out.content == "hi"
    assert model.ndims() == 0
    assert isinstance(model.embedder, NotImplementedModel)
    with pytest.raises(NotImplementedError):
        await model.embed_query("x")