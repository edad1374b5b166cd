[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pesession"
version = "0.1.0"
description = "Reader for Plan Explorer .pesession archives: session index, embedded showplans, trace events, waits and runtime aggregates"
requires-python = ">=3.10"
dependencies = []
keywords = ["sql-server", "showplan", "plan-explorer", "pesession", "nrbf", "query-analysis"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Front-Ends",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pesession"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
