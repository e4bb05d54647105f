[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "poolbackends"
version = "0.1.0"
description = "Connection managers for async object pools: Redis, PostgreSQL, AMQP, Memcached and blocking drivers"
requires-python = ">=3.10"
dependencies = [
    "redis",
]
keywords = [
    "pool",
    "connection-pool",
    "asyncio",
    "redis",
    "postgresql",
    "amqp",
    "memcached",
    "statement-cache",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Framework :: AsyncIO",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["poolbackends"]

[tool.hatch.build.targets.sdist]
include = [
    "poolbackends",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
