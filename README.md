# andaengine

Building blocks for AI agents, all async:

- `andaengine.store`: namespaced object storage over a pluggable backend, plus
  wrappers for vector search.
- `andaengine.model`: the data types shared by model clients (completion
  requests, agent output, tool calls, embeddings), a `Model` that combines a
  completer and an embedder, and `HybridContent` message parts.
- `andaengine.openai` and `andaengine.xai`: chat completion clients for the
  OpenAI and Grok APIs (OpenAI also offers embeddings), built on `httpx`.
- `andaengine.ledger`: tools that let an agent query balances and transfer
  tokens on ICRC-1 ledgers.

## Install

```
pip install andaengine
```

To run the tests:

```
pip install "andaengine[test]"
pytest
```

## Object storage

`Store` wraps any backend with async `get`, `put`, `list_with_offset`,
`delete` and `rename_if_not_exists`; `InMemoryObjectStore` is one kept in
process memory. Every call takes a namespace and a path, which are joined with
`join_path` (empty segments dropped) and lowercased with `path_lowercase`
(ASCII letters only), so each agent or tool keeps its objects apart.

```python
import asyncio
from andaengine.store import InMemoryObjectStore, PutMode, Store

async def main():
    store = Store(InMemoryObjectStore())
    await store.store_put("my_agent", "notes/a", PutMode.CREATE, b"hello")
    data, meta = await store.store_get("my_agent", "notes/a")
    print(data, meta.size)                       # b'hello' 5
    print(await store.store_list("my_agent", "notes", ""))
    await store.store_rename_if_not_exists("my_agent", "notes/a", "notes/b")
    await store.store_delete("my_agent", "notes/b")

asyncio.run(main())
```

- `PutMode.CREATE` raises `ObjectAlreadyExistsError` if the object exists;
  `PutMode.OVERWRITE` replaces it.
- `store_get` on a missing object raises `ObjectNotFoundError`; deleting a
  missing object is not an error.
- `store_list(namespace, prefix, offset)` returns the `ObjectMeta` of objects
  under `prefix` (or the whole store when `prefix` is `None`) whose location
  sorts after `offset`, in sorted order.
- Both errors derive from `ObjectStoreError` and carry the offending `path`.

`MAX_STORE_OBJECT_SIZE` (2 MB) is provided as a constant; the store itself does
not enforce it.

`VectorStore` forwards `top_n` and `top_n_ids` to a search implementation.
`VectorStore.not_implemented()` uses `NotImplementedVectorSearch`, which raises
`FeatureNotImplementedError` on every call; `MockVectorSearch` returns the
first `n` of the results it was given (none by default).

## Models

`Model` combines a completer and an embedder:

- `Model.mock_implemented()` uses `MockModel`, which echoes the prompt as the
  content, returns one tool call per offered tool, and returns zero vectors of
  384 dimensions.
- `Model.not_implemented()` raises `FeatureNotImplementedError` for every
  operation and reports 0 dimensions.
- `Model.with_completer(completer)` pairs a completer with no embedder.

```python
import asyncio
from andaengine.model import CompletionRequest, Model

model = Model.mock_implemented()
output = asyncio.run(model.completion(CompletionRequest(prompt="hi")))
print(output.content)   # hi
```

`HybridContent` is a text, image or audio message part (`TextContent`,
`ImageContent`, `AudioContent`) serialised to tagged JSON:

```python
from andaengine.model import HybridContent

part = HybridContent.from_text("Hello, world!")
print(part.to_json())   # {"type":"text","text":"Hello, world!"}
assert HybridContent.from_json(part.to_json()) == part
```

## OpenAI and Grok clients

```python
from andaengine import openai, xai
from andaengine.model import Model

client = openai.Client("placeholder")                   # API key
completer = client.completion_model("")                 # defaults to o3-mini
embedder = client.embedding_model("text-embedding-3-small")   # 1536 dimensions

grok = xai.Client("placeholder").completion_model("")   # defaults to grok-2-latest
model = Model(completer=completer, embedder=embedder)
```

- Both clients accept an `endpoint` (the default API base URL is used when it
  is empty) and a keyword-only `httpx` `transport`. Requests are only sent to
  `https://` URLs. Clients are async context managers; `aclose()` closes them.
- `CompletionModel.build_request(req)` returns the JSON body and the message
  history without making a network call. Models whose name starts with `o1-`
  send the system prompt with the `developer` role and use
  `max_completion_tokens`. Grok tool definitions drop `strict`.
- `completion(req)` returns an `AgentOutput`; a finish reason other than
  `stop` or `tool_calls`, or a refusal, is put in `failed_reason`. HTTP or
  decoding failures raise `RuntimeError`.
- `EmbeddingModel.embed(texts)` accepts at most 1024 texts; unknown embedding
  model names report 0 dimensions.

## Ledger tools

`ICPLedgers` maps token symbols to a ledger canister `Principal` and its
decimals. `ICPLedgers.load(ctx, canisters, from_user_subaccount)` reads them
from each ledger's `icrc1_metadata`. `BalanceOfTool` and `TransferTool` expose
balance queries and transfers to an agent, each with a JSON-schema
`definition()` for function calling.

```python
from andaengine.ledger import ICPLedgers, Principal, TransferTool

ledgers = ICPLedgers(
    ledgers={
        "ICP": (Principal.from_text("ryjl3-tyaaa-aaaaa-aaaba-cai"), 8),
        "PANDA": (Principal.from_text("druyg-tyaaa-aaaaq-aactq-cai"), 8),
    },
    from_user_subaccount=True,
)
print(TransferTool(ledgers).description())
# Transfer ICP, PANDA tokens to the specified account on ICP blockchain.
```

Canister calls go through a context object you supply, with async
`canister_query(canister, method, args)` and
`canister_update(canister, method, args)`; `TransferTool.call` also needs
`ctx.id()`, the principal that sends the tokens. A transfer checks the sender's
balance first and raises `ValueError("insufficient balance")` when it is too
low. `TransferTool` takes an `explorer_url` for the link in its result message.

## What this package does not do

- There is no command-line program and no HTTP server; everything is a library.
- It does not talk to an ICP network: `Principal` handles only the text form
  and ledger calls need a caller object you provide.
- There is no vector database: `VectorStore` needs a search implementation, and
  the only ones included are the failing placeholder and the mock.
- The only object store included keeps data in memory; nothing is persisted.