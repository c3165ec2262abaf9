[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "andaengine"
version = "0.1.0"
description = "Namespaced object storage, vector search interfaces, OpenAI and Grok model clients, and ICRC-1 ledger tools for AI agents"
requires-python = ">=3.10"
dependencies = [
    "httpx",
]
keywords = ["ai", "agents", "llm", "openai", "grok", "icrc-1", "ledger", "object-store"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["andaengine"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
