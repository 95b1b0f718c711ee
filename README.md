# cukerun

Building blocks for running Gherkin scenarios from Python: a parser for
English `.feature` files, Scenario Outline expansion, boolean tag
expressions, human-readable durations, retry options resolved from tags, a
storage that schedules scenarios serially or concurrently, and a tracker that
tells when features and rules start and finish.

## Installation

```
pip install cukerun
```

For development, with the test tools:

```
pip install -e ".[test]"
pytest
```

## Parsing features

```python
from cukerun.gherkin import parse_feature
from cukerun.feature import expand_examples, count_scenarios, count_steps

feature = parse_feature("""
Feature: Hungry
  Scenario Outline: eating
    Given there are <start> cucumbers
    When I eat <eat> cucumbers
    Then I should have <left> cucumbers

    Examples:
      | start | eat | left |
      |    12 |   5 |    7 |
      |    20 |   4 |   16 |
""", path=None)

feature = expand_examples(feature)
print(count_scenarios(feature), count_steps(feature))  # 2 6
```

`cukerun.gherkin` holds the document model (`Feature`, `Rule`, `Background`,
`Scenario`, `Examples`, `Step`, `Table`, `LineCol`). Files are read with
`parse_feature_file(path)`. Malformed input, or a `# language:` other than
English, raises `GherkinParseError`.

`expand_examples` returns a copy of the feature in which each outline becomes
one scenario per Examples row, with the row's values put in place of
`<placeholders>` in the name, step texts, doc strings and step tables, and the
Examples tags added. A placeholder that no column defines raises
`ExpandExamplesError`, which carries the placeholder `name`, its `pos` and the
feature's `path`.

## Tag expressions

```python
from cukerun.tagexpr import parse_tag_expression

op = parse_tag_expression("@fast and not @flaky")
op.eval(["fast"])           # True
op.eval(["fast", "flaky"])  # False
```

Tags passed to `eval` are written without `@`, as the parser stores them.
`not` binds tighter than `and`, which binds tighter than `or`; parentheses
group. Malformed expressions raise `TagExpressionError`.

## Durations

`cukerun.duration.parse_duration` turns text such as `12min5s`, `300ms` or
`2s` into a `timedelta`, and raises `DurationError` otherwise.

## Retries

Scenarios can be retried with tags such as `@retry`, `@retry(5)`,
`@retry.after(3s)` and `@retry(5).after(15s)`. A tag on the scenario takes
precedence over one on its rule, which takes precedence over one on the
feature.

```python
from datetime import timedelta
from cukerun.retry import RetryOptions, RunnerCli
from cukerun.tagexpr import parse_tag_expression

cli = RunnerCli(retry=7, retry_after=timedelta(seconds=5),
                retry_tag_filter=parse_tag_expression("@retry"))
options = RetryOptions.parse_from_tags(feature, None, feature.scenarios[0], cli)
```

Values a tag leaves out come from `RunnerCli`; without either, a retry count
of 1 is used. With `retry_tag_filter` set, only scenarios whose tags match it
(or that carry a retry tag) get options; without it, `retry` or `retry_after`
applies to every scenario. `RetryOptions.next_try()` gives the options of the
next attempt, or `None` when none are left.

## Scheduling scenarios

```python
from cukerun.retry import RetryOptions, RunnerCli
from cukerun.storage import ScenarioStorage, default_which_scenario
from cukerun.tracker import ProgressTracker

storage = ScenarioStorage()
storage.insert(feature, default_which_scenario, RetryOptions.parse_from_tags, RunnerCli())
storage.finish()

tracker = ProgressTracker()
runnable, wait = storage.get(64)
started = tracker.start_scenarios(runnable)   # LifecycleEvent objects
for item in runnable:
    ...  # run item.scenario
    event = tracker.feature_scenario_finished(item.feature, is_retried=False)
print(storage.is_finished(fail_fast=False))   # True once all were taken
```

`default_which_scenario` makes a scenario `ScenarioType.SERIAL` if it, its
rule or its feature is tagged `@serial`, and `CONCURRENT` otherwise.
`get` returns a single serial scenario if one is ready, else up to the given
number of concurrent ones, together with the shortest time a retried scenario
still has to wait. Retried scenarios go back in with
`insert_retried_scenario` and a fresh ID from `new_scenario_id`.
`ProgressTracker.rule_scenario_finished` and `feature_scenario_finished`
return a finished `LifecycleEvent` once the last scenario is counted, and
`finish_all` closes whatever is still open.

## What it does not do

The package does not execute scenarios: it has no step registry, no matching
of step text to functions, no before or after hooks, no event stream and no
command-line program. `RunnerCli` only holds settings for the pieces above.
Running the scheduled scenarios is left to the code that uses it.