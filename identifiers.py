"""
identifiers.py
--------------
RxBundle - Prescription Document Bundle Builder - Identifier generation
-----------------------------------------------------------------------
Produces the version-4-shaped UUID strings used as resource ids and, wrapped
as ``urn:uuid:<id>``, as the cross-reference keys between Bundle entries.

Identifiers are drawn from a process-local ``random.Random``.  They only
need to be unique within one assembly run, not cryptographically unique,
so a seeded generator is a valid (and reproducible) source for tests.

Public API:
    generate_identifier()   One identifier from the module-level source.
    IdentifierGenerator     Per-run generator that never repeats itself.
    is_identifier()         Shape check (8-4-4-4-12, version 4, RFC variant).
    as_reference()          ``"urn:uuid:" + id``.
"""

from __future__ import annotations

import logging
import random
import re
import uuid
from typing import List, Optional, Set

logger = logging.getLogger(__name__)

URN_UUID_PREFIX = "urn:uuid:"

# 8-4-4-4-12 lowercase hex, version nibble 4, variant nibble 8/9/a/b.
_IDENTIFIER_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"
)

_default_rng = random.Random()


def generate_identifier(rng: Optional[random.Random] = None) -> str:
    """
    Return one UUIDv4-shaped identifier.

    Args:
        rng: Random source to draw 128 bits from.  Defaults to the
             module-level source.

    Returns:
        str: 36-character identifier, e.g. ``"3f2b9c1e-8d4a-4f6b-9a2c-1e5d7b3c9f0a"``.
    """
    source = rng if rng is not None else _default_rng
    # uuid.UUID(version=4) overwrites the version and variant bits.
    return str(uuid.UUID(int=source.getrandbits(128), version=4))


def is_identifier(value: object) -> bool:
    """True when *value* is a string in canonical UUIDv4 form."""
    return isinstance(value, str) and bool(_IDENTIFIER_RE.match(value))


def as_reference(identifier: str) -> str:
    """Wrap *identifier* as a ``urn:uuid:`` reference string."""
    return f"{URN_UUID_PREFIX}{identifier}"


class IdentifierGenerator:
    """
    Identifier source for a single assembly run.

    Every value returned by ``generate()`` is distinct from every other value
    this instance has returned; a (vanishingly unlikely) collision is simply
    redrawn.  Create a new instance per run so nothing carries over.

    Args:
        seed: Optional seed for a reproducible sequence.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = random.Random(seed)
        self._issued: Set[str] = set()
        self._order: List[str] = []

    def generate(self) -> str:
        while True:
            candidate = generate_identifier(self._rng)
            if candidate not in self._issued:
                break
            logger.debug("identifiers: redrawing colliding identifier %s", candidate)
        self._issued.add(candidate)
        self._order.append(candidate)
        return candidate

    @property
    def issued(self) -> List[str]:
        """Identifiers handed out so far, in generation order."""
        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)
