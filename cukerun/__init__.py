"""Gherkin parsing, Scenario Outline expansion, tag expressions, retries and scenario scheduling."""

__version__ = "0.1.0"

__all__ = [
    "gherkin",
    "tagexpr",
    "feature",
    "duration",
    "retry",
    "storage",
    "tracker",
]