[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rediscore"
version = "0.1.0"
description = "Redis cache helpers with RedisJSON commands, sorted-set indexing and a mutable JSON value tree"
requires-python = ">=3.10"
keywords = ["redis", "rejson", "redisjson", "cache", "json"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
]
dependencies = [
    "redis",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["rediscore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
