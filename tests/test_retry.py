from datetime import timedelta

import pytest

from cukerun.duration import parse_duration
from cukerun.gherkin import parse_feature
from cukerun.retry import (
    Retries,
    RetryOptions,
    RetryOptionsWithDeadline,
    RunnerCli,
)
from cukerun.tagexpr import parse_tag_expression

SCENARIO_FEATURE = """
Feature: only scenarios
  Scenario: no tags
    Given a step

  @retry
  Scenario: tag
    Given a step

  @retry(5)
  Scenario: tag with explicit value
    Given a step

  @retry.after(3s)
  Scenario: tag with explicit after
    Given a step

  @retry(5).after(15s)
  Scenario: tag with explicit value and after
    Given a step
"""

RULE_FEATURE = """
Feature: only scenarios
  Rule: no tags
    Scenario: no tags
      Given a step

    @retry
    Scenario: tag
      Given a step

    @retry(5)
    Scenario: tag with explicit value
      Given a step

    @retry.after(3s)
    Scenario: tag with explicit after
      Given a step

    @retry(5).after(15s)
    Scenario: tag with explicit value and after
      Given a step

  @retry(3).after(5s)
  Rule: retry tag
    Scenario: no tags
      Given a step

    @retry
    Scenario: tag
      Given a step

    @retry(5)
    Scenario: tag with explicit value
      Given a step

    @retry.after(3s)
    Scenario: tag with explicit after
      Given a step

    @retry(5).after(15s)
    Scenario: tag with explicit value and after
      Given a step
"""

FEATURE_FEATURE = """
@retry(8)
Feature: only scenarios
  Scenario: no tags
    Given a step

  @retry
  Scenario: tag
    Given a step

  @retry(5)
  Scenario: tag with explicit value
    Given a step

  @retry.after(3s)
  Scenario: tag with explicit after
    Given a step

  @retry(5).after(15s)
  Scenario: tag with explicit value and after
    Given a step

  Rule: no tags
    Scenario: no tags
      Given a step

    @retry
    Scenario: tag
      Given a step

    @retry(5)
    Scenario: tag with explicit value
      Given a step

    @retry.after(3s)
    Scenario: tag with explicit after
      Given a step

    @retry(5).after(15s)
    Scenario: tag with explicit value and after
      Given a step

  @retry(3).after(5s)
  Rule: retry tag
    Scenario: no tags
      Given a step

    @retry
    Scenario: tag
      Given a step

    @retry(5)
    Scenario: tag with explicit value
      Given a step

    @retry.after(3s)
    Scenario: tag with explicit after
      Given a step

    @retry(5).after(15s)
    Scenario: tag with explicit value and after
      Given a step
"""


def opts(left, after_secs=None):
    after = timedelta(seconds=after_secs) if after_secs is not None else None
    return RetryOptions(retries=Retries(current=0, left=left), after=after)


def make_cli(retry=None, after=None, tag_filter=None):
    return RunnerCli(
        concurrency=None,
        fail_fast=False,
        retry=retry,
        retry_after=parse_duration(after) if after is not None else None,
        retry_tag_filter=(
            parse_tag_expression(tag_filter) if tag_filter is not None else None
        ),
    )


def resolve(feature, rule_index, scenario_index, cli):
    if rule_index is None:
        return RetryOptions.parse_from_tags(
            feature, None, feature.scenarios[scenario_index], cli
        )
    rule = feature.rules[rule_index]
    return RetryOptions.parse_from_tags(
        feature, rule, rule.scenarios[scenario_index], cli
    )


def check(text, cli, expected):
    feature = parse_feature(text)
    for (rule_index, scenario_index), want in expected.items():
        assert resolve(feature, rule_index, scenario_index, cli) == want, (
            rule_index,
            scenario_index,
        )


def test_scenario_tags_empty_cli():
    check(
        SCENARIO_FEATURE,
        make_cli(),
        {
            (None, 0): None,
            (None, 1): opts(1),
            (None, 2): opts(5),
            (None, 3): opts(1, 3),
            (None, 4): opts(5, 15),
        },
    )


def test_scenario_tags_cli_retries():
    check(
        SCENARIO_FEATURE,
        make_cli(retry=7),
        {
            (None, 0): opts(7),
            (None, 1): opts(7),
            (None, 2): opts(5),
            (None, 3): opts(7, 3),
            (None, 4): opts(5, 15),
        },
    )


def test_scenario_tags_cli_retry_after():
    check(
        SCENARIO_FEATURE,
        make_cli(retry=7, after="5s"),
        {
            (None, 0): opts(7, 5),
            (None, 1): opts(7, 5),
            (None, 2): opts(5, 5),
            (None, 3): opts(7, 3),
            (None, 4): opts(5, 15),
        },
    )


def test_scenario_tags_cli_retry_filter():
    check(
        SCENARIO_FEATURE,
        make_cli(retry=7, tag_filter="@retry"),
        {
            (None, 0): None,
            (None, 1): opts(7),
            (None, 2): opts(5),
            (None, 3): opts(7, 3),
            (None, 4): opts(5, 15),
        },
    )


def test_scenario_tags_cli_retry_after_and_filter():
    check(
        SCENARIO_FEATURE,
        make_cli(retry=7, after="5s", tag_filter="@retry"),
        {
            (None, 0): None,
            (None, 1): opts(7, 5),
            (None, 2): opts(5, 5),
            (None, 3): opts(7, 3),
            (None, 4): opts(5, 15),
        },
    )


def test_rule_tags_empty_cli():
    check(
        RULE_FEATURE,
        make_cli(),
        {
            (0, 0): None,
            (0, 1): opts(1),
            (0, 2): opts(5),
            (0, 3): opts(1, 3),
            (0, 4): opts(5, 15),
            (1, 0): opts(3, 5),
            (1, 1): opts(1),
            (1, 2): opts(5),
            (1, 3): opts(1, 3),
            (1, 4): opts(5, 15),
        },
    )


def test_rule_tags_cli_retry_after_and_filter():
    check(
        RULE_FEATURE,
        make_cli(retry=7, after="5s", tag_filter="@retry"),
        {
            (0, 0): None,
            (0, 1): opts(7, 5),
            (0, 2): opts(5, 5),
            (0, 3): opts(7, 3),
            (0, 4): opts(5, 15),
            (1, 0): opts(3, 5),
            (1, 1): opts(7, 5),
            (1, 2): opts(5, 5),
            (1, 3): opts(7, 3),
            (1, 4): opts(5, 15),
        },
    )


def test_feature_tags_empty_cli():
    check(
        FEATURE_FEATURE,
        make_cli(),
        {
            (None, 0): opts(8),
            (None, 1): opts(1),
            (None, 2): opts(5),
            (None, 3): opts(1, 3),
            (None, 4): opts(5, 15),
            (0, 0): opts(8),
            (0, 1): opts(1),
            (0, 2): opts(5),
            (0, 3): opts(1, 3),
            (0, 4): opts(5, 15),
            (1, 0): opts(3, 5),
            (1, 1): opts(1),
            (1, 2): opts(5),
            (1, 3): opts(1, 3),
            (1, 4): opts(5, 15),
        },
    )


def test_feature_tags_cli_retry_after_and_filter():
    check(
        FEATURE_FEATURE,
        make_cli(retry=7, after="5s", tag_filter="@retry"),
        {
            (None, 0): opts(8, 5),
            (None, 1): opts(7, 5),
            (None, 2): opts(5, 5),
            (None, 3): opts(7, 3),
            (None, 4): opts(5, 15),
            (0, 0): opts(8, 5),
            (0, 1): opts(7, 5),
            (0, 2): opts(5, 5),
            (0, 3): opts(7, 3),
            (0, 4): opts(5, 15),
            (1, 0): opts(3, 5),
            (1, 1): opts(7, 5),
            (1, 2): opts(5, 5),
            (1, 3): opts(7, 3),
            (1, 4): opts(5, 15),
        },
    )


def test_filter_matching_plain_tag_uses_cli_values():
    feature = parse_feature(
        "Feature: f\n  @flaky\n  Scenario: s\n    Given a step\n"
    )
    cli = make_cli(retry=2, after="1s", tag_filter="@flaky")
    assert resolve(feature, None, 0, cli) == opts(2, 1)


def test_invalid_count_is_ignored():
    feature = parse_feature(
        "Feature: f\n  @retry(x)\n  Scenario: s\n    Given a step\n"
    )
    assert resolve(feature, None, 0, make_cli()) == opts(1)


def test_invalid_after_duration_is_ignored():
    feature = parse_feature(
        "Feature: f\n  @retry(2).after(soon)\n  Scenario: s\n    Given a step\n"
    )
    assert resolve(feature, None, 0, make_cli()) == opts(2)


def test_retries_initial_and_next_try():
    retries = Retries.initial(3)
    assert retries == Retries(current=0, left=3)
    assert retries.next_try() == Retries(current=1, left=2)


def test_retries_exhausted():
    assert Retries(current=2, left=0).next_try() is None


def test_retry_options_next_try_keeps_delay():
    options = opts(2, 4)
    assert options.next_try() == RetryOptions(
        retries=Retries(current=1, left=1), after=timedelta(seconds=4)
    )
    assert RetryOptions(retries=Retries(current=3, left=0)).next_try() is None


def test_with_deadline_counts_down():
    deadline = opts(1, 5).with_deadline(100.0)
    assert deadline.after == (timedelta(seconds=5), 100.0)
    assert deadline.left_until_retry(102.0) == timedelta(seconds=3)
    assert deadline.left_until_retry(105.0) == timedelta(0)
    assert deadline.left_until_retry(106.0) is None


def test_without_deadline_is_ready():
    deadline = opts(1, 5).without_deadline()
    assert deadline.after == (timedelta(seconds=5), None)
    assert deadline.left_until_retry(0.0) is None


def test_no_delay_is_ready():
    deadline = opts(1).with_deadline(10.0)
    assert deadline.after is None
    assert deadline.left_until_retry(10.0) is None


@pytest.mark.parametrize("options", [opts(1), opts(4, 2)])
def test_to_options_round_trip(options):
    assert options.with_deadline(50.0).to_options() == options
    assert options.without_deadline().to_options() == options


def test_to_options_from_explicit_deadline():
    deadline = RetryOptionsWithDeadline(
        retries=Retries(current=1, left=2), after=(timedelta(seconds=7), 3.0)
    )
    assert deadline.to_options() == RetryOptions(
        retries=Retries(current=1, left=2), after=timedelta(seconds=7)
    )