"""
assembler.py
------------
RxBundle - Prescription Document Bundle Builder - Document assembly
-------------------------------------------------------------------
Turns a validated FormState into a FHIR R4 ``document`` Bundle:

  1. allocate one identifier per record (Binary only with an attachment),
  2. build every record via record_factory with its cross-identifiers,
  3. build the envelope (bundle id, meta, identifier, timestamp),
  4. concatenate entries in canonical order:

         Composition, Patient, Practitioner,
         MedicationRequest × N (form order), Condition, [Binary]

Every ``urn:uuid:`` reference inside any record resolves to exactly one
entry's ``fullUrl`` (referential closure).  ``audit_bundle`` checks this and
the ordering rules on any Bundle dict, generated or loaded.

Timestamps come from the local clock with an explicit UTC offset
(``2024-01-01T10:00:00.000+05:30``), never a bare ``Z``.

Public API:
    build_prescription_bundle()  Validate, then assemble.  The usual entry point.
    assemble_bundle()            Assemble an already-validated form.
    allocate_ids()               Identifier allocation for one run.
    build_envelope()             Bundle-level fields without entries.
    collect_references()         Every reference string inside a resource.
    audit_bundle()               Structural violations of a Bundle (list of str).
    iso_with_offset()            Local timestamp with UTC offset.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from langsmith import traceable

from config import Settings, get_settings
from identifiers import URN_UUID_PREFIX, IdentifierGenerator, as_reference
from record_factory import (
    PROFILES,
    ReferenceIds,
    build_binary,
    build_composition,
    build_condition,
    build_medication_request,
    build_patient,
    build_practitioner,
)
from schemas import FormState
from validation import require_valid

logger = logging.getLogger(__name__)

BUNDLE_ID_PREFIX = "Prescription-"
BUNDLE_VERSION_ID = "1"

SECURITY_LABELS: List[Dict[str, str]] = [{
    "system":  "http://terminology.hl7.org/CodeSystem/v3-Confidentiality",
    "code":    "V",
    "display": "very restricted",
}]


def iso_with_offset(dt: Optional[datetime] = None) -> str:
    """
    ISO-8601 timestamp (millisecond precision) with an explicit UTC offset.

    Naive datetimes are interpreted in the local timezone; aware ones are
    converted to it.  Defaults to now.
    """
    moment = (dt or datetime.now()).astimezone()
    return moment.isoformat(timespec="milliseconds")


def allocate_ids(form: FormState, generator: IdentifierGenerator) -> ReferenceIds:
    """
    Generate one identifier per record *form* will produce.

    The Binary identifier is only drawn when the form carries an attachment.
    """
    return ReferenceIds(
        composition=generator.generate(),
        patient=generator.generate(),
        practitioner=generator.generate(),
        orders=tuple(generator.generate() for _ in form.orders),
        condition=generator.generate(),
        binary=generator.generate() if form.has_attachment else None,
    )


def build_envelope(
    generator: IdentifierGenerator,
    *,
    timestamp: str,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """
    Bundle-level fields with an empty ``entry`` list.

    Args:
        generator: Source for the bundle id and bundle identifier value.
        timestamp: ISO-8601 timestamp with offset (meta.lastUpdated and
                   Bundle.timestamp).
        settings:  Overrides ``config.get_settings()``.
    """
    settings = settings or get_settings()
    return {
        "resourceType": "Bundle",
        "id":           f"{BUNDLE_ID_PREFIX}{generator.generate()}",
        "meta": {
            "versionId":   BUNDLE_VERSION_ID,
            "lastUpdated": timestamp,
            "profile":     [PROFILES["Bundle"]],
            "security":    [dict(label) for label in SECURITY_LABELS],
        },
        "identifier": {
            "system": settings.bundle_identifier_system,
            "value":  generator.generate(),
        },
        "type":      "document",
        "timestamp": timestamp,
        "entry":     [],
    }


def _entry(resource: Dict[str, Any]) -> Dict[str, Any]:
    return {"fullUrl": as_reference(resource["id"]), "resource": resource}


@traceable
def assemble_bundle(
    form: FormState,
    *,
    generator: Optional[IdentifierGenerator] = None,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """
    Assemble the document Bundle for an already-validated *form*.

    Does not re-validate; use ``build_prescription_bundle`` for untrusted input.

    Args:
        form:      Validated FormState.
        generator: Identifier source for this run.  A fresh one is created
                   when omitted, so runs never share identifiers.
        now:       Generation time.  Defaults to the local clock.
        settings:  Overrides ``config.get_settings()``.

    Returns:
        dict: A FHIR R4 Bundle of type ``document``.
    """
    generator = generator or IdentifierGenerator()
    settings = settings or get_settings()
    timestamp = iso_with_offset(now)

    ids = allocate_ids(form, generator)

    composition = build_composition(
        form.meta,
        ids,
        identifier_value=generator.generate(),
        patient_name=form.patient.name,
        practitioner_name=form.practitioner.name,
        last_updated=timestamp,
        settings=settings,
    )
    patient = build_patient(form.patient, ids.patient, last_updated=timestamp, settings=settings)
    practitioner = build_practitioner(
        form.practitioner, ids.practitioner, last_updated=timestamp, settings=settings
    )
    orders = [
        build_medication_request(item, order_id, ids, form)
        for item, order_id in zip(form.orders, ids.orders)
    ]
    condition = build_condition(
        form.diagnosis,
        ids.condition,
        patient_id=ids.patient,
        patient_name=form.patient.name,
    )

    bundle = build_envelope(generator, timestamp=timestamp, settings=settings)
    entries = bundle["entry"]
    entries.append(_entry(composition))
    entries.append(_entry(patient))
    entries.append(_entry(practitioner))
    entries.extend(_entry(order) for order in orders)
    entries.append(_entry(condition))
    if ids.binary is not None:
        entries.append(_entry(build_binary(form.attachment, ids.binary)))

    logger.info(
        "assembler: built document bundle %s: %d entries (%d orders, attachment=%s).",
        bundle["id"],
        len(entries),
        len(orders),
        ids.binary is not None,
    )
    return bundle


def build_prescription_bundle(
    form: FormState,
    *,
    generator: Optional[IdentifierGenerator] = None,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """
    Validate *form* and assemble its Bundle.

    Raises:
        FormValidationError: when the form is incomplete.  Nothing is
            generated in that case.

    Example::

        from assembler import build_prescription_bundle
        from schemas import FormState

        bundle = build_prescription_bundle(FormState.model_validate(payload))
    """
    require_valid(form)
    return assemble_bundle(form, generator=generator, now=now, settings=settings)


# ---------------------------------------------------------------------------
# Structural audit
# ---------------------------------------------------------------------------

def collect_references(node: Any) -> List[str]:
    """Return every ``reference`` string found anywhere inside *node*, in document order."""
    found: List[str] = []
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "reference" and isinstance(value, str):
                found.append(value)
            else:
                found.extend(collect_references(value))
    elif isinstance(node, list):
        for item in node:
            found.extend(collect_references(item))
    return found


def _order_violations(types: List[str]) -> List[str]:
    problems: List[str] = []
    expected_head = ["Composition", "Patient", "Practitioner"]
    if types[:3] != expected_head:
        problems.append(f"entries must start with {expected_head}, got {types[:3]}")
        return problems
    rest = types[3:]
    if rest and rest[-1] == "Binary":
        rest = rest[:-1]
    if not rest or rest[-1] != "Condition":
        problems.append("Condition must follow the MedicationRequest entries")
        return problems
    middle = rest[:-1]
    if any(t != "MedicationRequest" for t in middle):
        problems.append(f"unexpected entries between Practitioner and Condition: {middle}")
    return problems


def audit_bundle(bundle: Dict[str, Any]) -> List[str]:
    """
    Check a document Bundle's structure.

    Checks:
      - every entry's fullUrl is ``urn:uuid:<resource.id>`` and ids are unique,
      - every reference in every resource matches exactly one entry fullUrl,
      - entries follow the canonical order,
      - the Composition section lists every MedicationRequest in entry order
        followed by the Binary (if any).

    Returns:
        list[str]: One message per violation; empty when the Bundle is sound.
    """
    problems: List[str] = []
    entries = bundle.get("entry") or []
    if not entries:
        return ["bundle has no entries"]

    full_urls = [entry.get("fullUrl", "") for entry in entries]
    url_counts = Counter(full_urls)
    for url, count in url_counts.items():
        if count > 1:
            problems.append(f"fullUrl {url} appears {count} times")

    for index, entry in enumerate(entries):
        resource = entry.get("resource") or {}
        expected = f"{URN_UUID_PREFIX}{resource.get('id', '')}"
        if entry.get("fullUrl") != expected:
            problems.append(
                f"entry[{index}] fullUrl {entry.get('fullUrl')!r} does not match resource id"
            )
        for ref in collect_references(resource):
            if url_counts.get(ref, 0) != 1:
                problems.append(
                    f"entry[{index}] {resource.get('resourceType')} reference {ref} "
                    "does not resolve to exactly one entry"
                )

    types = [(entry.get("resource") or {}).get("resourceType", "") for entry in entries]
    problems.extend(_order_violations(types))

    composition = (entries[0].get("resource") or {})
    if composition.get("resourceType") == "Composition":
        sections = composition.get("section") or [{}]
        listed = [item.get("reference") for item in sections[0].get("entry") or []]
        expected_listed = [
            url for url, rtype in zip(full_urls, types) if rtype in ("MedicationRequest", "Binary")
        ]
        if listed != expected_listed:
            problems.append("Composition section entries do not match MedicationRequest/Binary entries")

    return problems

