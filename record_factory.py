"""
record_factory.py
-----------------
RxBundle - Prescription Document Bundle Builder - FHIR R4 record builders
-------------------------------------------------------------------------
Builds each resource of the prescription document Bundle from one slice of
the FormState plus the already-generated identifiers it must point at.
Resources are plain dicts, ready for ``json.dumps``.

Six resource kinds are produced:
  • Composition        - the document header; its single section lists every
                         MedicationRequest (input order) then the Binary.
  • Patient            - the subject; MR identifier, name, telecom, gender.
  • Practitioner       - the author; medical-license identifier.
  • MedicationRequest  - one per order; references Patient, Practitioner
                         and Condition.
  • Condition          - the diagnosis; references Patient.
  • Binary             - the optional PDF attachment (base64 payload).

SNOMED CT is used for every coded concept.  Codes for additional
instruction / route / method are fixed placeholders with the user's text as
display; mapping free text to real codes is left to a terminology server.

Public API:
    ReferenceIds                 Identifiers of every record in one Bundle.
    build_composition()          Header record.
    build_patient()              Subject record.
    build_practitioner()         Author record.
    build_medication_request()   Order record.
    build_dosage()               Dosage instruction for one order.
    build_condition()            Diagnosis record.
    build_binary()               Attachment record (only with bytes).
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from config import Settings, get_settings
from errors import PreconditionViolation
from identifiers import as_reference
from narrative import text_block
from schemas import (
    DEFAULT_PERIOD_UNIT,
    PDF_CONTENT_TYPE,
    Attachment,
    Diagnosis,
    DocumentMeta,
    FormState,
    OrderItem,
    Patient,
    Practitioner,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Code systems and profiles
# ---------------------------------------------------------------------------

_SNOMED_SYSTEM            = "http://snomed.info/sct"
_IDENTIFIER_TYPE_SYSTEM   = "http://terminology.hl7.org/CodeSystem/v2-0203"
_CONDITION_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"

_PROFILE_BASE = "https://nrces.in/ndhm/fhir/r4/StructureDefinition"

PROFILES: Dict[str, str] = {
    "Bundle":            f"{_PROFILE_BASE}/DocumentBundle",
    "Composition":       f"{_PROFILE_BASE}/PrescriptionRecord",
    "Patient":           f"{_PROFILE_BASE}/Patient",
    "Practitioner":      f"{_PROFILE_BASE}/Practitioner",
    "MedicationRequest": f"{_PROFILE_BASE}/MedicationRequest",
    "Condition":         f"{_PROFILE_BASE}/Condition",
    "Binary":            f"{_PROFILE_BASE}/Binary",
}

PRESCRIPTION_RECORD_CODING: Dict[str, str] = {
    "system":  _SNOMED_SYSTEM,
    "code":    "440545006",
    "display": "Prescription record",
}

# Placeholder codes; display carries the prescriber's own wording.
ADDITIONAL_INSTRUCTION_CODE = "311504000"
ROUTE_CODE                  = "26643006"
METHOD_CODE                 = "421521009"

DEFAULT_CLINICAL_STATUS = "active"
DEFAULT_DIAGNOSIS_CODE  = "21522001"

RECORD_VERSION_ID = "1"


class ReferenceIds(BaseModel):
    """
    Identifiers for every record of one Bundle.

    ``orders`` is positional: ``orders[i]`` belongs to ``form.orders[i]``.
    ``binary`` is None when the form has no attachment.
    """
    model_config = ConfigDict(frozen=True)

    composition:  str
    patient:      str
    practitioner: str
    condition:    str
    orders:       Tuple[str, ...] = ()
    binary:       Optional[str] = None

    def all_ids(self) -> List[str]:
        """All record ids in canonical entry order."""
        ids = [self.composition, self.patient, self.practitioner, *self.orders, self.condition]
        if self.binary is not None:
            ids.append(self.binary)
        return ids


def _meta(resource_type: str, last_updated: Optional[str] = None) -> Dict[str, Any]:
    """
    Resource ``meta``.  Header-type records (Composition, Patient,
    Practitioner) carry version and lastUpdated; the rest carry only the
    profile.
    """
    meta: Dict[str, Any] = {}
    if last_updated is not None:
        meta["versionId"] = RECORD_VERSION_ID
        meta["lastUpdated"] = last_updated
    meta["profile"] = [PROFILES[resource_type]]
    return meta


def _reference(identifier: str, display: Optional[str] = None) -> Dict[str, str]:
    ref = {"reference": as_reference(identifier)}
    if display:
        ref["display"] = display
    return ref


def _snomed(code: str, display: str) -> Dict[str, Any]:
    return {"coding": [{"system": _SNOMED_SYSTEM, "code": code, "display": display}]}


# ---------------------------------------------------------------------------
# Composition (header)
# ---------------------------------------------------------------------------

def section_entries(ids: ReferenceIds) -> List[Dict[str, str]]:
    """
    The Composition's table of contents: every MedicationRequest in input
    order, followed by the Binary when present.
    """
    entries = [
        {"reference": as_reference(order_id), "type": "MedicationRequest"}
        for order_id in ids.orders
    ]
    if ids.binary is not None:
        entries.append({"reference": as_reference(ids.binary), "type": "Binary"})
    return entries


def build_composition(
    meta: DocumentMeta,
    ids: ReferenceIds,
    *,
    identifier_value: str,
    patient_name: str,
    practitioner_name: str,
    last_updated: str,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """
    Construct the Composition (document header).

    Args:
        meta:              Title / status / date from the form.
        ids:               Identifiers of every record in the Bundle.
        identifier_value:  Fresh business identifier for the Composition.
        patient_name:      Display text for the subject reference.
        practitioner_name: Display text for the author reference.
        last_updated:      ISO-8601 timestamp with UTC offset.
        settings:          Overrides ``config.get_settings()``.

    Returns:
        dict: A FHIR R4 Composition resource.
    """
    settings = settings or get_settings()
    return {
        "resourceType": "Composition",
        "id":           ids.composition,
        "meta":         _meta("Composition", last_updated),
        "language":     settings.document_language,
        "text":         text_block("Composition", {"status": meta.status, "date": meta.date}),
        "identifier": {
            "system": settings.composition_identifier_system,
            "value":  identifier_value,
        },
        "status": meta.status,
        "type": {
            "coding": [dict(PRESCRIPTION_RECORD_CODING)],
            "text":   PRESCRIPTION_RECORD_CODING["display"],
        },
        "subject": _reference(ids.patient, patient_name),
        "date":    meta.date,
        "author":  [_reference(ids.practitioner, practitioner_name)],
        "title":   meta.title,
        "section": [{
            "title": PRESCRIPTION_RECORD_CODING["display"],
            "code":  {"coding": [dict(PRESCRIPTION_RECORD_CODING)]},
            "entry": section_entries(ids),
        }],
    }


# ---------------------------------------------------------------------------
# Patient / Practitioner
# ---------------------------------------------------------------------------

def build_patient(
    patient: Patient,
    patient_id: str,
    *,
    last_updated: str,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """Construct the Patient resource.  Telecom and gender only when supplied."""
    settings = settings or get_settings()
    resource: Dict[str, Any] = {
        "resourceType": "Patient",
        "id":           patient_id,
        "meta":         _meta("Patient", last_updated),
        "text":         text_block("Patient", {"name": patient.name, "birth_date": patient.birth_date}),
        "identifier": [{
            "type": {
                "coding": [{
                    "system":  _IDENTIFIER_TYPE_SYSTEM,
                    "code":    "MR",
                    "display": "Medical record number",
                }],
            },
            "system": settings.patient_identifier_system,
            "value":  patient.record_number,
        }],
        "name": [{"text": patient.name}],
    }
    if patient.phone:
        resource["telecom"] = [{"system": "phone", "value": patient.phone, "use": "home"}]
    if patient.gender:
        resource["gender"] = patient.gender
    resource["birthDate"] = patient.birth_date
    return resource


def build_practitioner(
    practitioner: Practitioner,
    practitioner_id: str,
    *,
    last_updated: str,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """Construct the Practitioner resource with its medical-license identifier."""
    settings = settings or get_settings()
    return {
        "resourceType": "Practitioner",
        "id":           practitioner_id,
        "meta":         _meta("Practitioner", last_updated),
        "text":         text_block("Practitioner", {"name": practitioner.name}),
        "identifier": [{
            "type": {
                "coding": [{
                    "system":  _IDENTIFIER_TYPE_SYSTEM,
                    "code":    "MD",
                    "display": "Medical License number",
                }],
            },
            "system": settings.practitioner_identifier_system,
            "value":  practitioner.license_number,
        }],
        "name": [{"text": practitioner.name}],
    }


# ---------------------------------------------------------------------------
# MedicationRequest (order)
# ---------------------------------------------------------------------------

def medication_concept(item: OrderItem) -> Dict[str, Any]:
    """
    ``medicationCodeableConcept`` for *item*.

    Coded (SNOMED coding, drug text as display) only when a drug code is
    present after trimming; otherwise free text only.  Never both.
    """
    code = item.drug_code.strip()
    if code:
        return {"coding": [{"system": _SNOMED_SYSTEM, "code": code, "display": item.drug_text}]}
    return {"text": item.drug_text}


def attach_additional_instruction(dosage: Dict[str, Any], item: OrderItem) -> None:
    """Add ``additionalInstruction`` when the order has one."""
    if item.additional_instruction:
        dosage["additionalInstruction"] = [
            _snomed(ADDITIONAL_INSTRUCTION_CODE, item.additional_instruction)
        ]


def attach_timing(dosage: Dict[str, Any], item: OrderItem) -> None:
    """
    Add ``timing.repeat`` when frequency or period is set.

    Partial timing is allowed; ``periodUnit`` falls back to days.
    """
    if item.frequency is None and item.period is None:
        return
    repeat: Dict[str, Any] = {}
    if item.frequency is not None:
        repeat["frequency"] = item.frequency
    if item.period is not None:
        repeat["period"] = item.period
    repeat["periodUnit"] = item.period_unit or DEFAULT_PERIOD_UNIT
    dosage["timing"] = {"repeat": repeat}


def attach_route(dosage: Dict[str, Any], item: OrderItem) -> None:
    """Add ``route`` when the order names one."""
    if item.route:
        dosage["route"] = _snomed(ROUTE_CODE, item.route)


def attach_method(dosage: Dict[str, Any], item: OrderItem) -> None:
    """Add ``method`` when the order names one."""
    if item.method:
        dosage["method"] = _snomed(METHOD_CODE, item.method)


DOSAGE_STEPS: Tuple[Callable[[Dict[str, Any], OrderItem], None], ...] = (
    attach_additional_instruction,
    attach_timing,
    attach_route,
    attach_method,
)


def build_dosage(item: OrderItem) -> Dict[str, Any]:
    """Dosage instruction: the free-text dosage plus each applicable sub-block."""
    dosage: Dict[str, Any] = {"text": item.dosage_text}
    for step in DOSAGE_STEPS:
        step(dosage, item)
    return dosage


def build_medication_request(
    item: OrderItem,
    order_id: str,
    ids: ReferenceIds,
    form: FormState,
) -> Dict[str, Any]:
    """
    Construct one MedicationRequest.

    Args:
        item:     The order line.
        order_id: This record's identifier.
        ids:      Identifiers of the shared Patient / Practitioner / Condition.
        form:     The full form (names for displays, diagnosis for the
                  reason code, document date for the authoredOn fallback).

    Returns:
        dict: A FHIR R4 MedicationRequest resource.
    """
    diagnosis = form.diagnosis
    return {
        "resourceType": "MedicationRequest",
        "id":           order_id,
        "meta":         _meta("MedicationRequest"),
        "text":         text_block(
            "MedicationRequest",
            {"medication": item.drug_text, "dosage": item.dosage_text},
        ),
        "status": "active",
        "intent": "order",
        "medicationCodeableConcept": medication_concept(item),
        "subject":    _reference(ids.patient, form.patient.name),
        "authoredOn": item.authored_on or form.meta.date,
        "requester":  _reference(ids.practitioner, form.practitioner.name),
        "reasonCode": [
            _snomed(diagnosis.code or DEFAULT_DIAGNOSIS_CODE, item.reason_text or diagnosis.text)
        ],
        "reasonReference":   [_reference(ids.condition, "Condition")],
        "dosageInstruction": [build_dosage(item)],
    }


# ---------------------------------------------------------------------------
# Condition (diagnosis)
# ---------------------------------------------------------------------------

def build_condition(
    diagnosis: Diagnosis,
    condition_id: str,
    *,
    patient_id: str,
    patient_name: str,
) -> Dict[str, Any]:
    """
    Construct the Condition.  Clinical status defaults to ``active`` and the
    diagnosis code to the placeholder ``21522001`` when unset.
    """
    status = diagnosis.clinical_status or DEFAULT_CLINICAL_STATUS
    return {
        "resourceType": "Condition",
        "id":           condition_id,
        "meta":         _meta("Condition"),
        "text":         text_block("Condition", {"text": diagnosis.text}),
        "clinicalStatus": {
            "coding": [{
                "system":  _CONDITION_CLINICAL_SYSTEM,
                "code":    status,
                "display": status.capitalize(),
            }],
        },
        "code": {
            "coding": [{
                "system":  _SNOMED_SYSTEM,
                "code":    diagnosis.code or DEFAULT_DIAGNOSIS_CODE,
                "display": diagnosis.text,
            }],
            "text": diagnosis.text,
        },
        "subject": _reference(patient_id, patient_name),
    }


# ---------------------------------------------------------------------------
# Binary (attachment)
# ---------------------------------------------------------------------------

def build_binary(attachment: Optional[Attachment], binary_id: Optional[str]) -> Dict[str, Any]:
    """
    Construct the Binary resource for the PDF attachment.

    Callers branch on ``FormState.has_attachment``; this builder is never a
    call-and-null.

    Raises:
        PreconditionViolation: when there are no attachment bytes or no id.
    """
    if attachment is None or not attachment.data:
        raise PreconditionViolation("build_binary called without attachment bytes.")
    if not binary_id:
        raise PreconditionViolation("build_binary called without a Binary identifier.")
    logger.debug("record_factory: encoding %d-byte attachment as Binary %s", len(attachment.data), binary_id)
    return {
        "resourceType": "Binary",
        "id":           binary_id,
        "meta":         _meta("Binary"),
        "contentType":  PDF_CONTENT_TYPE,
        "data":         base64.b64encode(attachment.data).decode("ascii"),
    }
