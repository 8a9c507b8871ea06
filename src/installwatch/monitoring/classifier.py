"""Line classification against ordered recognizers.

A recognizer pairs a regular expression with an outcome kind and an optional
capture group holding the detail to extract. The classifier tries recognizers
in order and the first match wins, so error markers must come before failure
markers, which come before success markers.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from .models import Classification, OutcomeKind

logger = logging.getLogger(__name__)

CLASSIFIABLE_KINDS = (OutcomeKind.ERROR, OutcomeKind.FAILURE, OutcomeKind.SUCCESS)


@dataclass(frozen=True)
class Recognizer:
    """Predicate over a single log line plus an extraction rule.

    Attributes:
        kind: Outcome assigned when the pattern matches.
        pattern: Compiled pattern searched anywhere in the line.
        detail_group: Capture group (name or index) holding the detail, None for no detail.
        name: Label used in logs and classifications.
    """

    kind: OutcomeKind
    pattern: re.Pattern[str]
    detail_group: str | int | None = "detail"
    name: str = ""

    def __post_init__(self) -> None:
        if self.kind not in CLASSIFIABLE_KINDS:
            raise ValueError(f"Recognizers cannot produce '{self.kind.value}' outcomes")
        if not self.name:
            object.__setattr__(self, "name", f"{self.kind.value}:{self.pattern.pattern}")

    @classmethod
    def compile(
        cls,
        kind: OutcomeKind | str,
        pattern: str,
        *,
        detail_group: str | int | None = "detail",
        name: str = "",
        ignore_case: bool = False,
    ) -> Recognizer:
        """Build a recognizer from a pattern string.

        Args:
            kind: Outcome kind or its string value.
            pattern: Regular expression searched in each line.
            detail_group: Capture group holding the detail.
            name: Optional label.
            ignore_case: Compile the pattern case-insensitively.

        Returns:
            The recognizer.

        Raises:
            ValueError: If the kind is unknown or the pattern does not compile.
        """
        flags = re.IGNORECASE if ignore_case else 0
        try:
            compiled = re.compile(pattern, flags)
        except re.error as e:
            raise ValueError(f"Invalid recognizer pattern {pattern!r}: {e}") from e
        return cls(OutcomeKind(kind), compiled, detail_group, name)

    def match(self, line: str) -> Classification | None:
        """Classify a line, or return None if the pattern does not match."""
        found = self.pattern.search(line)
        if found is None:
            return None
        return Classification(
            kind=self.kind,
            detail=self._extract(found),
            line=line,
            recognizer=self.name,
        )

    def _extract(self, found: re.Match[str]) -> str | None:
        if self.detail_group is None:
            return None
        try:
            value = found.group(self.detail_group)
        except IndexError:
            return None
        if value is None:
            return None
        return value.strip() or None


class PatternClassifier:
    """Stateless, ordered set of recognizers.

    Example:
        >>> classifier = PatternClassifier.from_preset("generic")
        >>> classifier.classify("[ERROR] cannot continue").detail
        'cannot continue'
    """

    def __init__(self, recognizers: Iterable[Recognizer]):
        self._recognizers: tuple[Recognizer, ...] = tuple(recognizers)
        if not self._recognizers:
            raise ValueError("PatternClassifier needs at least one recognizer")

    def classify(self, line: str) -> Classification | None:
        """Return the first matching classification for a line, or None."""
        for recognizer in self._recognizers:
            classification = recognizer.match(line)
            if classification is not None:
                logger.debug(
                    f"Line classified as {classification.kind.value} by {recognizer.name}"
                )
                return classification
        return None

    def __iter__(self) -> Iterator[Recognizer]:
        return iter(self._recognizers)

    def __len__(self) -> int:
        return len(self._recognizers)

    @classmethod
    def from_preset(cls, name: str) -> PatternClassifier:
        """Build a classifier from a named recognizer preset.

        Raises:
            ValueError: If no preset has that name.
        """
        from ..installers import RECOGNIZER_PRESETS

        try:
            return cls(RECOGNIZER_PRESETS[name])
        except KeyError:
            available = ", ".join(sorted(RECOGNIZER_PRESETS))
            raise ValueError(f"Unknown recognizer preset '{name}'. Available: {available}") from None

    @classmethod
    def from_config(cls, entries: Iterable[dict[str, Any]]) -> PatternClassifier:
        """Build a classifier from configuration mappings.

        Each entry needs ``kind`` and ``pattern`` and may set ``detail_group``,
        ``name`` and ``ignore_case``.

        Raises:
            ValueError: If an entry is missing keys or holds invalid values.
        """
        recognizers = []
        for index, entry in enumerate(entries):
            try:
                kind = entry["kind"]
                pattern = entry["pattern"]
            except (KeyError, TypeError) as e:
                raise ValueError(f"Recognizer #{index} needs 'kind' and 'pattern'") from e
            recognizers.append(
                Recognizer.compile(
                    kind,
                    pattern,
                    detail_group=entry.get("detail_group", "detail"),
                    name=entry.get("name", ""),
                    ignore_case=bool(entry.get("ignore_case", False)),
                )
            )
        return cls(recognizers)
