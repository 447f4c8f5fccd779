"""
schemas.py
----------
RxBundle - Prescription Document Bundle Builder - Pydantic Data Contracts
-------------------------------------------------------------------------
Pydantic v2 models describing the FormState: the immutable snapshot of the
prescription form that the editing surface hands to the assembly engine.

Validation policy
-----------------
These models only *shape* the input; they never reject a form for being
incomplete.  Blank strings are valid model states so that the Validator
(validation.py) can report every missing field at once instead of the
first one Pydantic trips over.  What the models do guarantee:

  1. String cleanliness - every text field is coerced to str (None → ""),
     stripped of ASCII control characters and surrounding whitespace.

  2. Numeric timing - ``frequency`` / ``period`` accept ints, floats,
     numeric strings or blanks.  Blank, non-numeric and non-positive values
     become ``None`` (no timing information).

  3. Immutability - all models are frozen and ``orders`` is a tuple, so
     the engine can never mutate the caller's form.

  4. Naming tolerance - fields accept snake_case and the camelCase names
     the editing surface uses (``licenseNumber``, ``birthDate``,
     ``drugText`` …), plus the short names of the original form
     (``license``, ``mrn``, ``medicationText``).

Public API
----------
    Practitioner, Patient, Diagnosis, DocumentMeta, OrderItem, Attachment
    FormState               The complete form snapshot.
    PDF_CONTENT_TYPE        The only accepted attachment content type.

Usage::

    from schemas import FormState

    form = FormState.model_validate(payload)   # payload: dict from JSON
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DEFAULT_PERIOD_UNIT = "d"

# ---------------------------------------------------------------------------
# Sanitisation helpers
# ---------------------------------------------------------------------------

# ASCII control characters to strip: \x00–\x08, \x0b–\x0c, \x0e–\x1f, \x7f
# Preserved: \x09 (tab), \x0a (newline), \x0d (carriage-return).
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def _sanitise_string(value: Any) -> str:
    """
    Coerce *value* to str and strip control characters and whitespace.

    Never raises; ``None`` becomes the empty string.
    """
    if value is None:
        return ""
    return _CONTROL_CHAR_RE.sub("", str(value)).strip()


def _coerce_positive_number(value: Any) -> Optional[Union[int, float]]:
    """Return a positive int/float for *value*, or None when absent or unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug("schemas: non-numeric timing value %r treated as absent", value)
        return None
    if number <= 0:
        return None
    return int(number) if number.is_integer() else number


_MODEL_CONFIG = ConfigDict(
    frozen=True,                 # FormState is a value; the engine never mutates it
    extra="ignore",              # silently drop UI-only keys (ids, flags, …)
    populate_by_name=True,
)


class _FormModel(BaseModel):
    """Base for form sections: every ``str`` field is sanitised before validation."""

    model_config = _MODEL_CONFIG

    @field_validator("*", mode="before")
    @classmethod
    def _clean_strings(cls, v: Any, info: ValidationInfo) -> Any:
        field = cls.model_fields.get(info.field_name)
        if field is not None and field.annotation is str:
            return _sanitise_string(v)
        return v


# ---------------------------------------------------------------------------
# Form sections
# ---------------------------------------------------------------------------

class Practitioner(_FormModel):
    """The prescribing practitioner (document author)."""

    name:           str = ""
    license_number: str = Field(
        default="",
        validation_alias=AliasChoices("license_number", "licenseNumber", "license"),
    )


class Patient(_FormModel):
    """The patient the prescription is issued for (document subject)."""

    name:          str = ""
    record_number: str = Field(
        default="",
        validation_alias=AliasChoices("record_number", "recordNumber", "mrn"),
    )
    birth_date:    str = Field(default="", validation_alias=AliasChoices("birth_date", "birthDate"))
    gender:        str = ""
    phone:         str = ""


class Diagnosis(_FormModel):
    """
    The condition the prescription treats.

    ``code`` and ``clinical_status`` may be blank; the record factory
    substitutes its defaults.
    """

    text:            str = ""
    code:            str = ""
    clinical_status: str = Field(
        default="",
        validation_alias=AliasChoices("clinical_status", "clinicalStatus"),
    )


class DocumentMeta(_FormModel):
    """Composition-level metadata: title, status (final / draft) and date."""

    title:  str = ""
    status: str = ""
    date:   str = ""


class OrderItem(_FormModel):
    """
    One prescribed medication, mapped to a MedicationRequest.

    Only ``drug_text`` and ``dosage_text`` are required (enforced by the
    Validator).  Everything else shapes optional dosage sub-blocks.
    """

    drug_text:              str = Field(
        default="",
        validation_alias=AliasChoices("drug_text", "drugText", "medicationText"),
    )
    drug_code:              str = Field(
        default="",
        validation_alias=AliasChoices("drug_code", "drugCode", "medicationCode"),
    )
    dosage_text:            str = Field(default="", validation_alias=AliasChoices("dosage_text", "dosageText"))
    additional_instruction: str = Field(
        default="",
        validation_alias=AliasChoices("additional_instruction", "additionalInstruction"),
    )
    frequency:              Optional[Union[int, float]] = None
    period:                 Optional[Union[int, float]] = None
    period_unit:            str = Field(
        default=DEFAULT_PERIOD_UNIT,
        validation_alias=AliasChoices("period_unit", "periodUnit"),
    )
    route:                  str = ""
    method:                 str = ""
    reason_text:            str = Field(
        default="",
        validation_alias=AliasChoices("reason_text", "reasonText", "reason"),
    )
    authored_on:            str = Field(default="", validation_alias=AliasChoices("authored_on", "authoredOn"))

    @field_validator("frequency", "period", mode="before")
    @classmethod
    def coerce_timing(cls, v: Any) -> Optional[Union[int, float]]:
        """Blank / non-numeric / non-positive timing values mean "no timing"."""
        return _coerce_positive_number(v)


class Attachment(BaseModel):
    """
    Binary attachment supplied by the surface as raw bytes.

    The engine base64-encodes ``data`` when building the Binary resource;
    reading the file and checking its type happen before the form arrives.
    """

    model_config = _MODEL_CONFIG

    data:         bytes
    content_type: str = Field(
        default=PDF_CONTENT_TYPE,
        validation_alias=AliasChoices("content_type", "contentType"),
    )
    filename:     str = ""

    @field_validator("content_type", "filename", mode="before")
    @classmethod
    def clean_text(cls, v: Any) -> str:
        return _sanitise_string(v)


# ---------------------------------------------------------------------------
# FormState: the complete snapshot
# ---------------------------------------------------------------------------

class FormState(BaseModel):
    """
    Immutable snapshot of the prescription form.

    Attributes:
        practitioner: Author of the prescription.
        patient:      Subject of the prescription.
        diagnosis:    Condition the orders treat.
        meta:         Document title / status / date.
        orders:       Medication orders, in entry order (order is preserved
                      all the way into the Bundle).
        attachment:   Optional PDF attachment.
    """

    model_config = _MODEL_CONFIG

    practitioner: Practitioner = Field(default_factory=Practitioner)
    patient:      Patient = Field(default_factory=Patient)
    diagnosis:    Diagnosis = Field(
        default_factory=Diagnosis,
        validation_alias=AliasChoices("diagnosis", "condition"),
    )
    meta:         DocumentMeta = Field(
        default_factory=DocumentMeta,
        validation_alias=AliasChoices("meta", "documentMeta", "composition"),
    )
    orders:       Tuple[OrderItem, ...] = Field(
        default=(),
        validation_alias=AliasChoices("orders", "orderItems", "medications"),
    )
    attachment:   Optional[Attachment] = None

    @property
    def has_attachment(self) -> bool:
        """True when an attachment with a non-empty payload is present."""
        return self.attachment is not None and bool(self.attachment.data)
