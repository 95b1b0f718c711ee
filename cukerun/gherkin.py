"""Gherkin document model and a parser for English `.feature` files."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Union

_HEADER = re.compile(
    r"^(Feature|Rule|Background|Scenario Outline|Scenario Template|Scenarios"
    r"|Scenario|Examples|Example):(.*)$"
)
_STEP = re.compile(r"^(Given|When|Then|And|But|\*)(?:\s+(.*))?$")
_LANGUAGE = re.compile(r"^#\s*language\s*:\s*(\S+)\s*$")
_ROW_ESCAPES = {"|": "|", "\\": "\\", "n": "\n"}
_PRIMARY_TYPES = ("Given", "When", "Then")


@dataclass(frozen=True, order=True)
class LineCol:
    """One-based line and column of an element in a `.feature` file."""

    line: int
    col: int


@dataclass
class Table:
    """Data table: a list of rows of trimmed cells."""

    rows: list[list[str]]
    position: LineCol


@dataclass
class Step:
    """A single step; `ty` is the resolved Given/When/Then type."""

    keyword: str
    ty: str
    value: str
    position: LineCol
    docstring: str | None = None
    table: Table | None = None

    def __hash__(self) -> int:
        return hash((self.keyword, self.value, self.position))


@dataclass
class Examples:
    """Examples block of a scenario outline."""

    keyword: str
    name: str
    position: LineCol
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    table: Table | None = None


@dataclass
class Background:
    """Steps run before every scenario of a feature or rule."""

    keyword: str
    name: str
    position: LineCol
    description: str | None = None
    steps: list[Step] = field(default_factory=list)


@dataclass
class Scenario:
    """A scenario or scenario outline."""

    keyword: str
    name: str
    position: LineCol
    description: str | None = None
    steps: list[Step] = field(default_factory=list)
    examples: list[Examples] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    def __hash__(self) -> int:
        return hash((self.name, self.position))


@dataclass
class Rule:
    """A rule grouping scenarios inside a feature."""

    keyword: str
    name: str
    position: LineCol
    description: str | None = None
    background: Background | None = None
    scenarios: list[Scenario] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    def __hash__(self) -> int:
        return hash((self.name, self.position))


@dataclass
class Feature:
    """A parsed `.feature` document."""

    keyword: str
    name: str
    position: LineCol
    description: str | None = None
    background: Background | None = None
    scenarios: list[Scenario] = field(default_factory=list)
    rules: list[Rule] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    path: Path | None = None

    def __hash__(self) -> int:
        return hash((self.name, self.path, self.position))


class GherkinParseError(Exception):
    """Raised when a `.feature` document cannot be read or parsed."""

    def __init__(
        self, message: str, line: int | None = None, path: Path | None = None
    ) -> None:
        self.message = message
        self.line = line
        self.path = path
        super().__init__(message)

    def __str__(self) -> str:
        where = [str(part) for part in (self.path, self.line) if part is not None]
        return f"{':'.join(where)}: {self.message}" if where else self.message


_Block = Union[Feature, Rule, Background, Scenario, Examples]


class _Parser:
    def __init__(self, text: str, path: Path | None) -> None:
        self._lines: Iterator[tuple[int, str]] = iter(
            enumerate(text.splitlines(), 1)
        )
        self._path = path
        self._feature: Feature | None = None
        self._rule: Rule | None = None
        self._block: _Block | None = None
        self._scenario: Scenario | None = None
        self._step: Step | None = None
        self._last_ty: str | None = None
        self._tags: list[str] = []
        self._tags_line: int | None = None
        self._description_open = False

    def _error(self, message: str, line: int | None) -> GherkinParseError:
        return GherkinParseError(message, line, self._path)

    def parse(self) -> Feature:
        for lineno, raw in self._lines:
            self._handle(lineno, raw)
        if self._feature is None:
            raise self._error("expected a Feature", None)
        if self._tags:
            raise self._error("tags are not followed by anything", self._tags_line)
        return self._feature

    def _handle(self, lineno: int, raw: str) -> None:
        stripped = raw.strip()
        if not stripped:
            return
        pos = LineCol(lineno, len(raw) - len(raw.lstrip()) + 1)
        if stripped.startswith("#"):
            language = _LANGUAGE.match(stripped)
            if language and self._feature is None and language.group(1).lower() != "en":
                raise self._error(
                    f"language {language.group(1)} isn't supported", lineno
                )
            return
        if stripped.startswith("@"):
            self._read_tags(stripped, lineno)
            return
        header = _HEADER.match(stripped)
        if header:
            self._header(header.group(1), header.group(2).strip(), pos)
            return
        if self._tags:
            raise self._error(
                "tags must precede a Feature, Rule, Scenario or Examples",
                self._tags_line,
            )
        if stripped.startswith(('"""', "```")):
            self._docstring(stripped[:3], pos)
        elif stripped.startswith("|"):
            self._row(stripped, pos)
        elif step := _STEP.match(stripped):
            self._add_step(step.group(1), (step.group(2) or "").strip(), pos)
        else:
            self._description(stripped, lineno)

    def _read_tags(self, stripped: str, lineno: int) -> None:
        for token in stripped.split():
            if token.startswith("#"):
                break
            if not token.startswith("@") or len(token) < 2:
                raise self._error(f"invalid tag {token!r}", lineno)
            self._tags.append(token[1:])
        if self._tags_line is None:
            self._tags_line = lineno

    def _take_tags(self) -> list[str]:
        tags, self._tags, self._tags_line = self._tags, [], None
        return tags

    def _header(self, keyword: str, name: str, pos: LineCol) -> None:
        if keyword == "Feature":
            if self._feature is not None:
                raise self._error("only one Feature is allowed", pos.line)
            self._feature = Feature(
                keyword, name, pos, tags=self._take_tags(), path=self._path
            )
            self._block = self._feature
        elif self._feature is None:
            raise self._error(f"expected a Feature, found {keyword}", pos.line)
        elif keyword == "Rule":
            self._rule = Rule(keyword, name, pos, tags=self._take_tags())
            self._feature.rules.append(self._rule)
            self._block = self._rule
            self._scenario = None
        elif keyword == "Background":
            if self._tags:
                raise self._error("tags are not allowed on Background", pos.line)
            container: Feature | Rule = self._rule or self._feature
            if container.background is not None or container.scenarios:
                raise self._error("unexpected Background", pos.line)
            background = Background(keyword, name, pos)
            container.background = background
            self._block = background
            self._scenario = None
        elif keyword in ("Examples", "Scenarios"):
            if self._scenario is None:
                raise self._error("Examples outside of a Scenario", pos.line)
            examples = Examples(keyword, name, pos, tags=self._take_tags())
            self._scenario.examples.append(examples)
            self._block = examples
        else:
            scenario = Scenario(keyword, name, pos, tags=self._take_tags())
            (self._rule or self._feature).scenarios.append(scenario)
            self._scenario = scenario
            self._block = scenario
        self._step = None
        self._last_ty = None
        self._description_open = True

    def _add_step(self, word: str, value: str, pos: LineCol) -> None:
        if not isinstance(self._block, (Scenario, Background)):
            raise self._error("step outside of a Scenario or Background", pos.line)
        ty = word if word in _PRIMARY_TYPES else (self._last_ty or "Given")
        step = Step(f"{word} ", ty, value, pos)
        self._block.steps.append(step)
        self._step = step
        self._last_ty = ty
        self._description_open = False

    def _row(self, stripped: str, pos: LineCol) -> None:
        cells = self._cells(stripped, pos)
        if isinstance(self._block, Examples):
            owner: Step | Examples = self._block
        elif self._step is not None and self._step.docstring is None:
            owner = self._step
        else:
            raise self._error("unexpected table row", pos.line)
        if owner.table is None:
            owner.table = Table([], pos)
        rows = owner.table.rows
        if rows and len(cells) != len(rows[0]):
            raise self._error("inconsistent cell count", pos.line)
        rows.append(cells)
        self._description_open = False

    def _cells(self, stripped: str, pos: LineCol) -> list[str]:
        if len(stripped) < 2 or not stripped.endswith("|"):
            raise self._error("table row must end with '|'", pos.line)
        cells: list[str] = []
        current: list[str] = []
        chars = iter(stripped[1:])
        for ch in chars:
            if ch == "\\":
                following = next(chars, "")
                current.append(_ROW_ESCAPES.get(following, "\\" + following))
            elif ch == "|":
                cells.append("".join(current).strip())
                current = []
            else:
                current.append(ch)
        if "".join(current).strip():
            raise self._error("table row must end with '|'", pos.line)
        return cells

    def _docstring(self, delimiter: str, pos: LineCol) -> None:
        step = self._step
        if (
            step is None
            or not isinstance(self._block, (Scenario, Background))
            or step.docstring is not None
            or step.table is not None
        ):
            raise self._error("unexpected doc string", pos.line)
        indent = pos.col - 1
        escaped = "\\" + "\\".join(delimiter)
        body: list[str] = []
        for _, raw in self._lines:
            if raw.strip() == delimiter:
                break
            lead = len(raw) - len(raw.lstrip(" "))
            body.append(raw[min(lead, indent):].replace(escaped, delimiter))
        else:
            raise self._error("unterminated doc string", pos.line)
        step.docstring = "\n".join(body)
        self._description_open = False

    def _description(self, stripped: str, lineno: int) -> None:
        block = self._block
        if block is None or not self._description_open:
            raise self._error(f"unexpected line: {stripped}", lineno)
        if block.description is None:
            block.description = stripped
        else:
            block.description = f"{block.description}\n{stripped}"


def parse_feature(text: str, path: str | Path | None = None) -> Feature:
    """Parses Gherkin `text` into a `Feature`, recording `path` if given."""
    return _Parser(text, Path(path) if path is not None else None).parse()


def parse_feature_file(path: str | Path) -> Feature:
    """Reads and parses the `.feature` file at `path`."""
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise GherkinParseError(f"failed to read: {exc}", None, file_path) from exc
    return parse_feature(text, file_path)