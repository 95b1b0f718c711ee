[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cukerun"
version = "0.1.0"
description = "Gherkin feature parsing, Scenario Outline expansion, tag expressions, retry options and scenario scheduling"
requires-python = ">=3.10"
dependencies = []
keywords = ["bdd", "gherkin", "cucumber", "testing", "scenario", "tags", "retry"]
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
    "Topic :: Software Development :: Testing :: BDD",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["cukerun"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
