"""
line_diff.py
------------
RxBundle - Prescription Document Bundle Builder - Line-level comparison
-----------------------------------------------------------------------
Compares a generated Bundle against a reference fixture, line by line, for
display.  Both documents are serialised the same way (``pretty_json``:
2-space indent, insertion key order) and compared by *position*:

    row i = (left[i] or "", right[i] or "", left[i] == right[i])

There is no alignment, insertion/deletion detection or LCS matching.  One
inserted line shifts every following row to "changed" even though the
content only moved.  This is a drift detector for fixtures, not a semantic
or structural comparison.

Generated ids and timestamps differ on every run, so ``compare_documents``
masks them by default (``mask_volatile``): timestamp fields become
``"<volatile>"`` and every UUID-shaped substring becomes ``"<uuid>"``.  Pass
``ignore_volatile=False`` for the raw comparison.

Public API:
    DiffRow, DiffResult     Pydantic result models (JSON: leftLine/rightLine/same).
    diff_lines()            Positional diff of two texts.
    pretty_json()           The shared serialisation convention.
    mask_volatile()         Deep copy with volatile values masked.
    compare_documents()     Reference (left) vs generated (right).
    load_reference_bundle() Read the reference fixture from disk.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from config import get_settings

logger = logging.getLogger(__name__)

VOLATILE_FIELDS: FrozenSet[str] = frozenset({"lastUpdated", "timestamp"})
VOLATILE_MASK = "<volatile>"
UUID_MASK = "<uuid>"

_UUID_RE = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


class DiffRow(BaseModel):
    """One line position.  ``same`` is True iff both sides are identical."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    left_line:  str = Field(alias="leftLine")
    right_line: str = Field(alias="rightLine")
    same:       bool


class DiffResult(BaseModel):
    """Ordered rows, one per line position of the longer text."""
    model_config = ConfigDict(frozen=True)

    rows: Tuple[DiffRow, ...] = ()

    @property
    def changed_count(self) -> int:
        return sum(1 for row in self.rows if not row.same)

    @property
    def all_same(self) -> bool:
        return all(row.same for row in self.rows)

    def changed_rows(self) -> List[Tuple[int, DiffRow]]:
        """(0-based position, row) for every differing row."""
        return [(i, row) for i, row in enumerate(self.rows) if not row.same]


def _split_lines(text: str) -> List[str]:
    return text.split("\n") if text else []


def diff_lines(left: str, right: str) -> DiffResult:
    """
    Positional line diff of *left* and *right*.

    Lines are split on ``"\\n"`` only, so ``"\\r"`` and Unicode line
    separators stay part of the line and compare byte for byte.  A trailing
    newline yields a final empty line; empty text has no lines.

    Returns exactly ``max(line_count(left), line_count(right))`` rows.  A
    side that has run out of lines contributes ``""`` to the comparison;
    nothing is inserted into either text.
    """
    left_lines = _split_lines(left)
    right_lines = _split_lines(right)
    rows: List[DiffRow] = []
    for i in range(max(len(left_lines), len(right_lines))):
        l_text = left_lines[i] if i < len(left_lines) else ""
        r_text = right_lines[i] if i < len(right_lines) else ""
        rows.append(DiffRow(left_line=l_text, right_line=r_text, same=l_text == r_text))
    return DiffResult(rows=tuple(rows))


def pretty_json(obj: Any) -> str:
    """Serialise *obj* as 2-space indented JSON, keys in insertion order."""
    return json.dumps(obj, indent=2, ensure_ascii=False)


def mask_volatile(obj: Any, fields: FrozenSet[str] = VOLATILE_FIELDS) -> Any:
    """
    Return a deep copy of *obj* with run-specific values masked.

    Values under any key in *fields* become ``"<volatile>"``; UUID-shaped
    substrings in any other string become ``"<uuid>"`` (so
    ``"urn:uuid:3f2b…"`` → ``"urn:uuid:<uuid>"``).  *obj* is not modified.
    """
    if isinstance(obj, dict):
        return {
            key: VOLATILE_MASK if key in fields else mask_volatile(value, fields)
            for key, value in obj.items()
        }
    if isinstance(obj, list):
        return [mask_volatile(item, fields) for item in obj]
    if isinstance(obj, str):
        return _UUID_RE.sub(UUID_MASK, obj)
    return obj


def compare_documents(
    generated: Any,
    reference: Any,
    *,
    ignore_volatile: bool = True,
    fields: FrozenSet[str] = VOLATILE_FIELDS,
) -> DiffResult:
    """
    Diff a generated Bundle against a reference Bundle.

    The reference is the left column and the generated document the right,
    matching the side-by-side compare view.

    Args:
        generated:       Generated Bundle (dict).
        reference:       Reference Bundle (dict), read-only.
        ignore_volatile: Mask timestamps and generated identifiers on both
                         sides before serialising.
        fields:          Keys treated as volatile.
    """
    if ignore_volatile:
        generated = mask_volatile(generated, fields)
        reference = mask_volatile(reference, fields)
    result = diff_lines(pretty_json(reference), pretty_json(generated))
    logger.info(
        "line_diff: compared %d lines, %d differ (ignore_volatile=%s).",
        len(result.rows),
        result.changed_count,
        ignore_volatile,
    )
    return result


def load_reference_bundle(path: Optional[str] = None) -> Any:
    """
    Load the reference Bundle fixture.

    Args:
        path: JSON file path.  Defaults to ``Settings.reference_bundle_path``.

    Raises:
        FileNotFoundError: when the fixture does not exist.
        json.JSONDecodeError: when it is not valid JSON.
    """
    fixture = path or get_settings().reference_bundle_path
    with open(fixture, "r", encoding="utf-8") as f:
        return json.load(f)
