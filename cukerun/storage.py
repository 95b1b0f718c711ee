"""Storage of scenarios waiting to be run, sorted by how they may run."""

from __future__ import annotations

import enum
import itertools
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Iterable

from cukerun.gherkin import Feature, Rule, Scenario
from cukerun.retry import RetryOptions, RetryOptionsWithDeadline, RunnerCli

_ids = itertools.count()


def new_scenario_id() -> int:
    """Returns a new unique scenario ID; a retried run gets a fresh one."""
    return next(_ids)


class ScenarioType(enum.Enum):
    """Whether scenarios run one by one or concurrently."""

    SERIAL = "serial"
    CONCURRENT = "concurrent"


WhichScenarioFn = Callable[[Feature, "Rule | None", Scenario], ScenarioType]
RetryOptionsFn = Callable[
    [Feature, "Rule | None", Scenario, RunnerCli], "RetryOptions | None"
]


def default_which_scenario(
    feature: Feature, rule: Rule | None, scenario: Scenario
) -> ScenarioType:
    """Serial if the scenario, its rule or its feature is tagged ``@serial``."""
    rule_tags: Iterable[str] = rule.tags if rule is not None else ()
    tags = itertools.chain(scenario.tags, rule_tags, feature.tags)
    if any(tag == "serial" for tag in tags):
        return ScenarioType.SERIAL
    return ScenarioType.CONCURRENT


@dataclass(frozen=True)
class ScheduledScenario:
    """A scenario taken from the storage, ready to be run."""

    id: int
    feature: Feature
    rule: Rule | None
    scenario: Scenario
    scenario_type: ScenarioType
    retries: RetryOptions | None


@dataclass(frozen=True)
class _Entry:
    id: int
    feature: Feature
    rule: Rule | None
    scenario: Scenario
    retries: RetryOptionsWithDeadline | None


class ScenarioStorage:
    """Scenarios of inserted features, kept per `ScenarioType`."""

    def __init__(self) -> None:
        self._scenarios: dict[ScenarioType, list[_Entry]] = {}
        self._finished = False

    def insert(
        self,
        feature: Feature,
        which_scenario: WhichScenarioFn,
        retry_options: RetryOptionsFn,
        cli: RunnerCli,
    ) -> None:
        """Splits `feature` into scenarios, sorts them by type and stores them."""
        pairs: list[tuple[Rule | None, Scenario]] = [
            (None, scenario) for scenario in feature.scenarios
        ]
        pairs.extend(
            (rule, scenario) for rule in feature.rules for scenario in rule.scenarios
        )
        grouped: dict[ScenarioType, list[tuple]] = {}
        for rule, scenario in pairs:
            retries = retry_options(feature, rule, scenario, cli)
            item = (new_scenario_id(), feature, rule, scenario, retries)
            which = which_scenario(feature, rule, scenario)
            grouped.setdefault(which, []).append(item)
        self._insert_scenarios(grouped)

    def insert_retried_scenario(
        self,
        feature: Feature,
        rule: Rule | None,
        scenario: Scenario,
        scenario_type: ScenarioType,
        retries: RetryOptions | None,
    ) -> None:
        """Stores a scenario to be retried under a new ID."""
        self._insert_scenarios(
            {scenario_type: [(new_scenario_id(), feature, rule, scenario, retries)]}
        )

    def _insert_scenarios(self, scenarios: dict[ScenarioType, list[tuple]]) -> None:
        now = time.monotonic()
        with_retries: dict[ScenarioType, list[_Entry]] = {}
        without_retries: dict[ScenarioType, list[_Entry]] = {}
        for which, values in scenarios.items():
            for id_, feature, rule, scenario, retries in values:
                if retries is None or retries.retries.current == 0:
                    # An initial run does not wait for the retry delay.
                    deadline = retries.without_deadline() if retries else None
                    without_retries.setdefault(which, []).append(
                        _Entry(id_, feature, rule, scenario, deadline)
                    )
                else:
                    with_retries.setdefault(which, []).append(
                        _Entry(id_, feature, rule, scenario, retries.with_deadline(now))
                    )

        for which, entries in with_retries.items():
            stored = self._scenarios.setdefault(which, [])
            for entry in entries:
                stored.insert(0, entry)

        if ScenarioType.SERIAL not in without_retries:
            for which, entries in without_retries.items():
                self._scenarios.setdefault(which, []).extend(entries)
        else:
            # New scenarios go in front, so serial ones run close to their
            # concurrent neighbours instead of after all earlier ones.
            for which, entries in without_retries.items():
                old = self._scenarios.get(which, [])
                self._scenarios[which] = entries + old

    def get(
        self, max_concurrent_scenarios: int | None
    ) -> tuple[list[ScheduledScenario], timedelta | None]:
        """Takes the scenarios ready to run and the least delay of the others.

        A single serial scenario is preferred; otherwise up to
        `max_concurrent_scenarios` concurrent ones (all of them if `None`).
        """
        if max_concurrent_scenarios == 0:
            return [], None

        min_left: timedelta | None = None

        def drain(which: ScenarioType, count: int | None) -> list[ScheduledScenario]:
            nonlocal min_left
            stored = self._scenarios.get(which)
            if not stored:
                return []
            taken: list[ScheduledScenario] = []
            kept: list[_Entry] = []
            for entry in stored:
                if count is not None and len(taken) >= count:
                    kept.append(entry)
                    continue
                left = (
                    entry.retries.left_until_retry()
                    if entry.retries is not None
                    else None
                )
                if left is None:
                    taken.append(
                        ScheduledScenario(
                            entry.id,
                            entry.feature,
                            entry.rule,
                            entry.scenario,
                            which,
                            entry.retries.to_options() if entry.retries else None,
                        )
                    )
                else:
                    min_left = left if min_left is None else min(min_left, left)
                    kept.append(entry)
            self._scenarios[which] = kept
            return taken

        runnable = drain(ScenarioType.SERIAL, 1) or drain(
            ScenarioType.CONCURRENT, max_concurrent_scenarios
        )
        return runnable, min_left

    def finish(self) -> None:
        """Marks that no more features will be inserted."""
        self._finished = True

    def is_finished(self, fail_fast: bool) -> bool:
        """Tells whether nothing is left to run.

        With `fail_fast`, scenarios not run yet are disregarded.
        """
        return self._finished and (
            fail_fast or all(not entries for entries in self._scenarios.values())
        )