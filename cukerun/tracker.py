"""Tracking of started and finished features and rules while scenarios run."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import groupby
from typing import Iterable

from cukerun.feature import count_scenarios
from cukerun.gherkin import Feature, Rule
from cukerun.storage import ScheduledScenario


@dataclass(frozen=True)
class LifecycleEvent:
    """A feature or rule has started or finished.

    `rule` is `None` for an event of the feature itself.
    """

    feature: Feature
    rule: Rule | None = None
    finished: bool = False


class ProgressTracker:
    """Counts finished scenarios of running features and rules."""

    def __init__(self) -> None:
        self._features: dict[Feature, int] = {}
        self._rules: dict[tuple[Feature, Rule], int] = {}

    def start_scenarios(
        self, runnable: Iterable[ScheduledScenario]
    ) -> list[LifecycleEvent]:
        """Marks scenarios as started.

        Returns the started events of features and rules for which one of
        these scenarios is the first: features first, then rules.
        """
        scheduled = list(runnable)

        started_features: list[Feature] = []
        for feature, _ in groupby(item.feature for item in scheduled):
            if feature not in self._features:
                self._features[feature] = 0
                started_features.append(feature)

        started_rules: list[tuple[Feature, Rule]] = []
        pairs = (
            (item.feature, item.rule) for item in scheduled if item.rule is not None
        )
        for key, _ in groupby(pairs):
            if key not in self._rules:
                self._rules[key] = 0
                started_rules.append(key)

        return [LifecycleEvent(feature) for feature in started_features] + [
            LifecycleEvent(feature, rule) for feature, rule in started_rules
        ]

    def rule_scenario_finished(
        self, feature: Feature, rule: Rule, is_retried: bool
    ) -> LifecycleEvent | None:
        """Counts a finished scenario of `rule`.

        Returns the rule's finished event once all its scenarios are done.
        A scenario that is going to be retried is not counted.
        """
        if is_retried:
            return None
        key = (feature, rule)
        if key not in self._rules:
            raise LookupError(f"No Rule {rule.name}")
        self._rules[key] += 1
        if self._rules[key] != len(rule.scenarios):
            return None
        del self._rules[key]
        return LifecycleEvent(feature, rule, finished=True)

    def feature_scenario_finished(
        self, feature: Feature, is_retried: bool
    ) -> LifecycleEvent | None:
        """Counts a finished scenario of `feature`.

        Returns the feature's finished event once all its scenarios,
        including those of its rules, are done.
        """
        if is_retried:
            return None
        if feature not in self._features:
            raise LookupError(f"No Feature {feature.name}")
        self._features[feature] += 1
        if self._features[feature] != count_scenarios(feature):
            return None
        del self._features[feature]
        return LifecycleEvent(feature, finished=True)

    def finish_all(self) -> list[LifecycleEvent]:
        """Finishes every rule and feature still running, rules first."""
        events = [
            LifecycleEvent(feature, rule, finished=True)
            for feature, rule in self._rules
        ]
        events.extend(
            LifecycleEvent(feature, finished=True) for feature in self._features
        )
        self._rules.clear()
        self._features.clear()
        return events