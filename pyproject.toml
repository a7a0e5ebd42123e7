[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "msgstore"
version = "0.1.0"
description = "Message store service skeleton: MongoDB and Kafka components with retried startup and graceful shutdown"
requires-python = ">=3.11"
keywords = ["messages", "mongodb", "kafka", "retry", "backoff", "lifecycle", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Database",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "pyyaml>=6.0",
    "termcolor>=2.3",
    "aiohttp>=3.9",
    "pymongo>=4.6",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[project.scripts]
msgstore = "msgstore.main:main"

[tool.hatch.build.targets.wheel]
packages = ["msgstore"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
ignore_missing_imports = true
