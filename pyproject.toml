[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sodapop"
version = "0.1.0"
description = "SQL SELECT building, pagination, model helpers and array column types"
requires-python = ">=3.10"
dependencies = []
keywords = ["sql", "query-builder", "pagination", "database", "postgres-arrays"]
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
    "Topic :: Database :: Front-Ends",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sodapop"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
