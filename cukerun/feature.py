"""Scenario Outline expansion and counting helpers for parsed features."""

from __future__ import annotations

import copy
import dataclasses
import re
from pathlib import Path
from typing import Sequence

from cukerun.gherkin import Feature, LineCol, Scenario

_TEMPLATE = re.compile(r"<([^>\s]+)>")


class ExpandExamplesError(Exception):
    """Raised when a Scenario Outline refers to an unknown `<placeholder>`."""

    def __init__(self, pos: LineCol, name: str, path: Path | None = None) -> None:
        self.pos = pos
        self.name = name
        self.path = path
        super().__init__(str(self))

    def __str__(self) -> str:
        where = str(self.path) if self.path is not None else ""
        return (
            f"Failed to resolve <{self.name}> at "
            f"{where}:{self.pos.line}:{self.pos.col}"
        )


def _substitute(
    text: str,
    row: Sequence[tuple[str, str]],
    pos: LineCol,
    path: Path | None,
) -> str:
    missing: list[str] = []

    def replacement(match: re.Match[str]) -> str:
        name = match.group(1)
        for key, value in row:
            if key == name:
                return value
        missing.append(name)
        return ""

    replaced = _TEMPLATE.sub(replacement, text)
    if missing:
        raise ExpandExamplesError(pos, missing[-1], path)
    return replaced


def _expand_scenario(scenario: Scenario, path: Path | None) -> list[Scenario]:
    if not scenario.examples:
        return [scenario]

    expanded_all: list[Scenario] = []
    for example in scenario.examples:
        if example.table is None or not example.table.rows:
            continue
        header, *value_rows = example.table.rows
        for index, values in enumerate(value_rows):
            row = list(zip(header, values))
            expanded = copy.deepcopy(scenario)
            # Distinct positions keep outlines with equal examples apart.
            expanded.position = LineCol(
                example.position.line + index + 2, example.position.col
            )
            expanded.tags.extend(example.tags)
            expanded.name = _substitute(
                expanded.name, row, expanded.position, path
            )
            for step in expanded.steps:
                step.value = _substitute(step.value, row, step.position, path)
                if step.docstring is not None:
                    step.docstring = _substitute(
                        step.docstring, row, step.position, path
                    )
                if step.table is not None:
                    step.table.rows = [
                        [_substitute(cell, row, step.position, path) for cell in cells]
                        for cells in step.table.rows
                    ]
            expanded_all.append(expanded)
    return expanded_all


def _expand_all(scenarios: Sequence[Scenario], path: Path | None) -> list[Scenario]:
    return [
        expanded
        for scenario in scenarios
        for expanded in _expand_scenario(scenario, path)
    ]


def expand_examples(feature: Feature) -> Feature:
    """Returns a copy of `feature` with every Scenario Outline expanded.

    Raises `ExpandExamplesError` on a placeholder no Examples column defines.
    """
    rules = [
        dataclasses.replace(rule, scenarios=_expand_all(rule.scenarios, feature.path))
        for rule in feature.rules
    ]
    scenarios = _expand_all(feature.scenarios, feature.path)
    return dataclasses.replace(feature, rules=rules, scenarios=scenarios)


def count_scenarios(feature: Feature) -> int:
    """Counts the feature's scenarios, including those inside rules."""
    return len(feature.scenarios) + sum(len(rule.scenarios) for rule in feature.rules)


def count_steps(feature: Feature) -> int:
    """Counts the steps of all the feature's scenarios, including rules."""
    return sum(len(s.steps) for s in feature.scenarios) + sum(
        len(s.steps) for rule in feature.rules for s in rule.scenarios
    )