"""
validation.py
-------------
RxBundle - Prescription Document Bundle Builder - Form completeness gate
------------------------------------------------------------------------
Checks a FormState before any identifier is generated.  Every violated rule
is collected (not just the first), in a fixed order, so the editing surface
can show the user all corrections at once.  A rejected form never reaches
the assembler, so a rejected run allocates nothing.

Rules, in reporting order:
    practitioner_required     Practitioner name and license
    patient_required          Patient name, record number, birth date
    diagnosis_required        Diagnosis text
    document_meta_required    Title, date, status
    document_status_allowed   Status is "final" or "draft"
    orders_required           At least one medication order
    order_item_required       Drug name and dosage instructions, per order
    attachment_content_type   Attachment (if any) is a non-empty PDF

Key functions:
    - validate_form_state: FormState → ValidationResult (never raises)
    - require_valid: raise FormValidationError unless the form is valid
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from langsmith import traceable
from pydantic import BaseModel, ConfigDict, Field

from errors import FormValidationError
from schemas import PDF_CONTENT_TYPE, FormState

logger = logging.getLogger(__name__)

ALLOWED_DOCUMENT_STATUSES: Tuple[str, ...] = ("final", "draft")


class ValidationIssue(BaseModel):
    """
    One violated rule.

    Attributes:
        rule:        Stable rule identifier (see module docstring).
        field_group: Form section the rule belongs to.
        message:     Human-readable message naming every missing field.
        position:    1-based order position for per-order rules, else None.
    """
    model_config = ConfigDict(frozen=True)

    rule:        str
    field_group: str
    message:     str
    position:    Optional[int] = None


class ValidationResult(BaseModel):
    """Outcome of ``validate_form_state``: ``ok`` is True iff ``issues`` is empty."""
    model_config = ConfigDict(frozen=True)

    issues: Tuple[ValidationIssue, ...] = Field(default=())

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def messages(self) -> List[str]:
        return [issue.message for issue in self.issues]


def _missing(labelled: List[Tuple[str, str]]) -> List[str]:
    """Return the labels whose value is blank."""
    return [label for label, value in labelled if not value]


def _issue(rule: str, group: str, missing: List[str], position: Optional[int] = None) -> ValidationIssue:
    prefix = f"Medication #{position}: " if position is not None else ""
    return ValidationIssue(
        rule=rule,
        field_group=group,
        message=f"{prefix}{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required.",
        position=position,
    )


@traceable
def validate_form_state(form: FormState) -> ValidationResult:
    """
    Check *form* for completeness.

    Args:
        form: The FormState to check.

    Returns:
        ValidationResult: ``ok`` True when the form may be assembled;
        otherwise ``issues`` lists every violated rule in reporting order.
    """
    issues: List[ValidationIssue] = []

    practitioner = form.practitioner
    missing = _missing([
        ("Practitioner name", practitioner.name),
        ("Practitioner license", practitioner.license_number),
    ])
    if missing:
        issues.append(_issue("practitioner_required", "practitioner", missing))

    patient = form.patient
    missing = _missing([
        ("Patient name", patient.name),
        ("Patient record number", patient.record_number),
        ("Patient birth date", patient.birth_date),
    ])
    if missing:
        issues.append(_issue("patient_required", "patient", missing))

    if not form.diagnosis.text:
        issues.append(_issue("diagnosis_required", "diagnosis", ["Diagnosis text"]))

    meta = form.meta
    missing = _missing([
        ("Document title", meta.title),
        ("Document date", meta.date),
        ("Document status", meta.status),
    ])
    if missing:
        issues.append(_issue("document_meta_required", "meta", missing))
    if meta.status and meta.status not in ALLOWED_DOCUMENT_STATUSES:
        issues.append(ValidationIssue(
            rule="document_status_allowed",
            field_group="meta",
            message=(
                f"Document status '{meta.status}' is not allowed "
                f"(expected one of: {', '.join(ALLOWED_DOCUMENT_STATUSES)})."
            ),
        ))

    if not form.orders:
        issues.append(ValidationIssue(
            rule="orders_required",
            field_group="orders",
            message="At least one medication order is required.",
        ))

    for position, item in enumerate(form.orders, start=1):
        missing = _missing([
            ("drug name", item.drug_text),
            ("dosage instructions", item.dosage_text),
        ])
        if missing:
            issues.append(_issue("order_item_required", "orders", missing, position=position))

    attachment = form.attachment
    if attachment is not None:
        if attachment.content_type != PDF_CONTENT_TYPE:
            issues.append(ValidationIssue(
                rule="attachment_content_type",
                field_group="attachment",
                message=(
                    f"Attachment content type '{attachment.content_type}' is not allowed; "
                    f"only {PDF_CONTENT_TYPE} attachments are accepted."
                ),
            ))
        elif not attachment.data:
            issues.append(ValidationIssue(
                rule="attachment_content_type",
                field_group="attachment",
                message="Attachment is empty.",
            ))

    result = ValidationResult(issues=tuple(issues))
    if not result.ok:
        logger.warning(
            "validation: form rejected with %d issue(s): %s",
            len(result.issues),
            "; ".join(result.messages),
        )
    return result


def require_valid(form: FormState) -> None:
    """
    Raise ``FormValidationError`` carrying every issue unless *form* is valid.

    Raises:
        FormValidationError: when ``validate_form_state(form).ok`` is False.
    """
    result = validate_form_state(form)
    if not result.ok:
        raise FormValidationError(result.issues)
