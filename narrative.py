"""
narrative.py
------------
RxBundle - Prescription Document Bundle Builder - Narrative rendering
---------------------------------------------------------------------
Renders the human-readable ``text.div`` block carried by every resource in
the Bundle.  Output is cosmetic: no other module reads it back, and the
cross-reference logic in record_factory / assembler never depends on it.

Each block is an XHTML ``<div>`` with a "Generated Narrative" header and a
shaded inner box holding the key facts for the resource kind.

Public API:
    render()      Kind + field mapping → XHTML string.  Never raises.
    text_block()  Same, wrapped as a FHIR ``Narrative`` dict.
"""

from __future__ import annotations

from html import escape
from typing import Any, Callable, Dict, List, Mapping, Optional

XHTML_NAMESPACE = "http://www.w3.org/1999/xhtml"

_BOX_STYLE = (
    "display: inline-block; background-color: #d9e0e7; padding: 6px; "
    "margin: 4px; border: 1px solid #8da1b4; border-radius: 5px;"
)


def _text(value: Any) -> str:
    """Escape *value* for XHTML; None renders as an empty segment."""
    if value is None:
        return ""
    return escape(str(value), quote=False)


def _composition(fields: Mapping[str, Any]) -> List[str]:
    return [
        f"status: {_text(fields.get('status'))}",
        f"date: {_text(fields.get('date'))}",
    ]


def _patient(fields: Mapping[str, Any]) -> List[str]:
    return [f"{_text(fields.get('name'))}, DoB: {_text(fields.get('birth_date'))}"]


def _practitioner(fields: Mapping[str, Any]) -> List[str]:
    return [f"name: {_text(fields.get('name'))}"]


def _medication_request(fields: Mapping[str, Any]) -> List[str]:
    return [
        f"medication: {_text(fields.get('medication'))}",
        f"dosage: {_text(fields.get('dosage'))}",
    ]


def _condition(fields: Mapping[str, Any]) -> List[str]:
    return [_text(fields.get("text"))]


def _generic(fields: Mapping[str, Any]) -> List[str]:
    return [f"{_text(key)}: {_text(value)}" for key, value in fields.items()]


_RENDERERS: Dict[str, Callable[[Mapping[str, Any]], List[str]]] = {
    "Composition":       _composition,
    "Patient":           _patient,
    "Practitioner":      _practitioner,
    "MedicationRequest": _medication_request,
    "Condition":         _condition,
}


def render(kind: str, fields: Optional[Mapping[str, Any]] = None) -> str:
    """
    Render the narrative ``div`` for a resource.

    Args:
        kind:   FHIR resourceType, e.g. ``"Patient"``.  Unknown kinds fall
                back to one ``key: value`` paragraph per field.
        fields: Key facts for the kind.  Missing keys render as empty text.

    Returns:
        str: XHTML fragment rooted at ``<div xmlns="http://www.w3.org/1999/xhtml">``.
    """
    renderer = _RENDERERS.get(kind, _generic)
    lines = renderer(fields or {})
    body = "".join(f"<p>{line}</p>" for line in lines)
    return (
        f'<div xmlns="{XHTML_NAMESPACE}">'
        f'<p class="res-header-id"><b>Generated Narrative: {_text(kind)}</b></p>'
        f'<div style="{_BOX_STYLE}">{body}</div>'
        "</div>"
    )


def text_block(kind: str, fields: Optional[Mapping[str, Any]] = None) -> Dict[str, str]:
    """Return ``{"status": "generated", "div": render(kind, fields)}``."""
    return {"status": "generated", "div": render(kind, fields)}
