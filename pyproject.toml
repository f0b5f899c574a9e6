[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "prisma-runtime"
version = "0.1.0"
description = "Runtime for Prisma clients: engine binary management, query engine process control and data proxy access"
requires-python = ">=3.10"
keywords = ["prisma", "orm", "database", "query-engine", "graphql", "data-proxy"]
classifiers = [
    "Development Status :: 3 - Alpha",
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
dependencies = [
    "requests>=2.25",
    "platformdirs>=3.0",
    "python-dotenv>=0.19",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[tool.hatch.build.targets.wheel]
packages = ["prisma_runtime"]

[tool.hatch.build.targets.sdist]
include = ["prisma_runtime", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
