"""Retry options of scenarios, resolved from tags and command-line settings."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import timedelta
from itertools import chain
from typing import Sequence

from cukerun.duration import DurationError, parse_duration
from cukerun.gherkin import Feature, Rule, Scenario
from cukerun.tagexpr import TagOperation

_RETRY_COUNT = re.compile(r"\+?[0-9]+")


@dataclass
class RunnerCli:
    """Command-line options of the basic runner."""

    concurrency: int | None = None
    fail_fast: bool = False
    retry: int | None = None
    retry_after: timedelta | None = None
    retry_tag_filter: TagOperation | None = None


@dataclass(frozen=True)
class Retries:
    """Number of the current attempt and of the attempts still left."""

    current: int
    left: int

    @classmethod
    def initial(cls, left: int) -> Retries:
        """Retries of a scenario that has not been run yet."""
        return cls(current=0, left=left)

    def next_try(self) -> Retries | None:
        """The retries of the next attempt, or `None` if none are left."""
        if self.left <= 0:
            return None
        return Retries(current=self.current + 1, left=self.left - 1)


@dataclass(frozen=True)
class RetryOptions:
    """How many times, and after what delay, a failed scenario is retried."""

    retries: Retries
    after: timedelta | None = None

    def next_try(self) -> RetryOptions | None:
        """Options of the next attempt, or `None` if no attempts are left."""
        retries = self.retries.next_try()
        if retries is None:
            return None
        return RetryOptions(retries=retries, after=self.after)

    @classmethod
    def parse_from_tags(
        cls,
        feature: Feature,
        rule: Rule | None,
        scenario: Scenario,
        cli: RunnerCli,
    ) -> RetryOptions | None:
        """Resolves options from scenario, rule and feature tags and `cli`.

        The first ``@retry`` tag found (scenario first, then rule, then
        feature) wins; values it leaves out come from `cli`.
        """
        options = _parse_tags(scenario.tags)
        if options is None and rule is not None:
            options = _parse_tags(rule.tags)
        if options is None:
            options = _parse_tags(feature.tags)

        if cli.retry_tag_filter is not None:
            rule_tags = rule.tags if rule is not None else []
            matched = cli.retry_tag_filter.eval(
                chain(scenario.tags, rule_tags, feature.tags)
            )
        else:
            matched = cli.retry is not None or cli.retry_after is not None

        if options is None and not matched:
            return None

        num, after = options if options is not None else (None, None)
        if num is None:
            num = cli.retry if cli.retry is not None else 1
        if after is None:
            after = cli.retry_after
        return cls(retries=Retries.initial(num), after=after)

    def with_deadline(self, now: float) -> RetryOptionsWithDeadline:
        """Options that delay the retry by `after`, counted from `now`."""
        return RetryOptionsWithDeadline(
            retries=self.retries,
            after=(self.after, now) if self.after is not None else None,
        )

    def without_deadline(self) -> RetryOptionsWithDeadline:
        """Options that allow running right away, ignoring `after`."""
        return RetryOptionsWithDeadline(
            retries=self.retries,
            after=(self.after, None) if self.after is not None else None,
        )


@dataclass(frozen=True)
class RetryOptionsWithDeadline:
    """Retry options with the monotonic instant the delay is counted from."""

    retries: Retries
    after: tuple[timedelta, float | None] | None = None

    def left_until_retry(self, now: float | None = None) -> timedelta | None:
        """Time left before the retry may run, or `None` if it may run now."""
        if self.after is None:
            return None
        delay, since = self.after
        if since is None:
            return None
        current = time.monotonic() if now is None else now
        left = delay - timedelta(seconds=current - since)
        return left if left >= timedelta(0) else None

    def to_options(self) -> RetryOptions:
        """Drops the deadline, keeping the retries and the delay."""
        return RetryOptions(
            retries=self.retries,
            after=self.after[0] if self.after is not None else None,
        )


def _parse_tags(
    tags: Sequence[str],
) -> tuple[int | None, timedelta | None] | None:
    for tag in tags:
        if tag.startswith("retry"):
            return _parse_retry_tag(tag[len("retry"):])
    return None


def _parse_retry_tag(rest: str) -> tuple[int | None, timedelta | None]:
    num: int | None = None
    if rest.startswith("(") and ")" in rest:
        count, _, tail = rest[1:].partition(")")
        if _RETRY_COUNT.fullmatch(count):
            num, rest = int(count), tail

    after: timedelta | None = None
    if rest.startswith(".after("):
        body = rest[len(".after("):]
        if ")" in body:
            text = body.partition(")")[0]
            try:
                after = parse_duration(text)
            except DurationError:
                after = None
    return num, after