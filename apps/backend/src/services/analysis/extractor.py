"""Incremental extraction of partial analysis results from streamed JSON.

The model writes one large JSON object token by token. `PartialJsonExtractor`
is fed the whole accumulated text after every delta but only scans the
characters it has not seen yet, keeping tokenizer state (string/escape flags
and a bracket stack) between calls.

What it reports:

- once the root object has closed, the strict parse of that object;
- before that, every top-level field whose value has unambiguously closed
  (strings on their closing quote, containers on their matching bracket,
  numbers and literals on the delimiter that follows them);
- for the still-open section array, each element object that has closed and
  carries a section name.

A value is never reported from an incomplete representation, so a field may
show up one delta late but never truncated.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from schemas.analysis import SECTION_NAME_FIELD, SECTIONS_FIELD


logger = logging.getLogger(__name__)

_STRING_SPECIAL = re.compile(r'["\\]')
_SCALAR_END = frozenset(",}]") | frozenset(" \t\r\n")


class PartialJsonExtractor:
    """Best-effort partial object from a growing JSON text.

    Returned dicts share nested values with the extractor's state; treat them
    as read-only.
    """

    def __init__(
        self,
        sections_field: str = SECTIONS_FIELD,
        section_key: str = SECTION_NAME_FIELD,
    ) -> None:
        self._sections_field = sections_field
        self._section_key = section_key
        self.reset()

    def reset(self) -> None:
        self._scanned = 0
        self._stack: list[str] = []
        self._in_string = False
        self._escaped = False
        self._root_start = -1
        self._root_end = -1

        # Top-level member being read
        self._expect_key = False
        self._key_start = -1
        self._key: str | None = None
        self._value_start = -1
        self._scalar_open = False

        # Element of the open section array being read
        self._in_sections = False
        self._element_start = -1

        self._fields: dict[str, Any] = {}
        self._sections: list[dict[str, Any]] = []
        self._document: dict[str, Any] | None = None
        self._dirty = False
        self._last: dict[str, Any] | None = None

    @property
    def result(self) -> dict[str, Any] | None:
        """The most recently reported partial result."""
        return self._last

    @property
    def root_closed(self) -> bool:
        return self._root_end >= 0

    def root_text(self, accumulated: str) -> str | None:
        """The closed root object within `accumulated`, without surrounding prose."""
        if self._root_end < 0:
            return None
        return accumulated[self._root_start : self._root_end + 1]

    def feed(self, accumulated: str) -> dict[str, Any] | None:
        """Scan newly appended text and report what changed.

        Args:
            accumulated: Entire text received so far. Each call must extend
                the previous one; shorter text restarts the scan.

        Returns:
            The updated partial result, or None when nothing new was learned.
        """
        if len(accumulated) < self._scanned:
            logger.debug("Accumulated text shrank; restarting extraction")
            self.reset()

        self._scan(accumulated)
        if not self._dirty:
            return None
        self._dirty = False

        snapshot = self._snapshot()
        if not snapshot or snapshot == self._last:
            return None
        self._last = snapshot
        return snapshot

    def _snapshot(self) -> dict[str, Any]:
        if self._document is not None:
            return self._document
        snapshot = dict(self._fields)
        if self._sections and self._sections_field not in snapshot:
            snapshot[self._sections_field] = list(self._sections)
        return snapshot

    # ------------------------------------------------------------------ #
    # Tokenizer
    # ------------------------------------------------------------------ #

    def _scan(self, text: str) -> None:  # noqa: C901
        i = self._scanned
        n = len(text)

        while i < n and self._root_end < 0:
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                    i += 1
                    continue
                match = _STRING_SPECIAL.search(text, i)
                if match is None:
                    i = n
                    break
                i = match.start()
                if text[i] == "\\":
                    self._escaped = True
                else:
                    self._in_string = False
                    self._on_string_closed(text, i)
                i += 1
                continue

            ch = text[i]

            # Skip prose or a code-fence opener before the root object
            if self._root_start < 0:
                if ch == "{":
                    self._root_start = i
                    self._stack.append(ch)
                    self._expect_key = True
                i += 1
                continue

            depth = len(self._stack)

            if self._scalar_open:
                if ch not in _SCALAR_END:
                    i += 1
                    continue
                self._scalar_open = False
                self._record_field(text[self._value_start : i])

            if ch == '"':
                self._in_string = True
                if depth == 1:
                    if self._expect_key:
                        self._key_start = i
                    else:
                        self._value_start = i
            elif ch in "{[":
                if depth == 1 and not self._expect_key:
                    self._value_start = i
                    self._in_sections = ch == "[" and self._key == self._sections_field
                elif depth == 2 and self._in_sections and ch == "{":
                    self._element_start = i
                self._stack.append(ch)
            elif ch in "}]":
                self._stack.pop()
                depth = len(self._stack)
                if depth == 0:
                    self._root_end = i
                    if not self._on_root_closed(text):
                        # Braces in leading prose; the analysis starts later
                        self.reset()
                elif depth == 1 and self._value_start >= 0:
                    self._record_field(text[self._value_start : i + 1])
                    self._in_sections = False
                elif depth == 2 and self._in_sections and self._element_start >= 0:
                    self._record_section(text[self._element_start : i + 1])
                    self._element_start = -1
            elif depth == 1:
                if ch == ":":
                    self._expect_key = False
                elif ch == ",":
                    self._expect_key = True
                    self._key = None
                    self._value_start = -1
                elif not ch.isspace() and not self._expect_key:
                    self._value_start = i
                    self._scalar_open = True
            i += 1

        self._scanned = n if self._root_end >= 0 else i

    def _on_string_closed(self, text: str, end: int) -> None:
        if len(self._stack) != 1:
            return
        if self._expect_key:
            if self._key_start >= 0:
                try:
                    self._key = json.loads(text[self._key_start : end + 1])
                except ValueError:
                    self._key = None
                self._key_start = -1
        elif self._value_start >= 0:
            self._record_field(text[self._value_start : end + 1])

    def _record_field(self, raw: str) -> None:
        key = self._key
        self._value_start = -1
        if key is None:
            return
        try:
            value = json.loads(raw)
        except ValueError:
            return
        if key not in self._fields or self._fields[key] != value:
            self._fields[key] = value
            self._dirty = True

    def _record_section(self, raw: str) -> None:
        try:
            section = json.loads(raw)
        except ValueError:
            return
        if isinstance(section, dict) and section.get(self._section_key):
            self._sections.append(section)
            self._dirty = True

    def _on_root_closed(self, text: str) -> bool:
        """Adopt the closed root; False if it held nothing worth keeping."""
        try:
            document = json.loads(text[self._root_start : self._root_end + 1])
        except ValueError:
            document = None
        if isinstance(document, dict) and document:
            self._document = document
            self._dirty = True
            return True
        if self._fields or self._sections:
            logger.debug("Root object closed but is not valid JSON; keeping fields")
            return True
        return False
