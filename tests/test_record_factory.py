"""
test_record_factory.py
----------------------
RxBundle - Prescription Document Bundle Builder - Test Suite for record_factory.py
----------------------------------------------------------------------------------
Tests cover:
    - medicationCodeableConcept: coded XOR free text
    - dosage steps: each sub-block present iff its source field is set
    - partial timing and the default period unit
    - MedicationRequest references, reason code and authoredOn fallback
    - Condition defaults (clinical status, diagnosis code)
    - Composition section order
    - Patient / Practitioner identifiers
    - Binary: base64 payload, PreconditionViolation without bytes

Run:
    pytest tests/test_record_factory.py -v --tb=short
"""

import base64
import sys
import os

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Settings
from errors import PreconditionViolation
from record_factory import (
    DEFAULT_DIAGNOSIS_CODE,
    PROFILES,
    ReferenceIds,
    attach_additional_instruction,
    attach_method,
    attach_route,
    attach_timing,
    build_binary,
    build_composition,
    build_condition,
    build_dosage,
    build_medication_request,
    build_patient,
    build_practitioner,
    medication_concept,
)
from schemas import Attachment, Diagnosis, OrderItem

IDS = ReferenceIds(
    composition="c0000000-0000-4000-8000-000000000001",
    patient="c0000000-0000-4000-8000-000000000002",
    practitioner="c0000000-0000-4000-8000-000000000003",
    orders=(
        "c0000000-0000-4000-8000-000000000004",
        "c0000000-0000-4000-8000-000000000005",
    ),
    condition="c0000000-0000-4000-8000-000000000006",
)

NOW = "2024-01-01T10:00:00.000+05:30"


# ── Medication representation ──────────────────────────────────────────────────

def test_medication_is_coded_when_code_present():
    concept = medication_concept(OrderItem(drug_text="Azithromycin", drug_code=" 1145423002 "))
    assert "text" not in concept
    assert concept["coding"][0]["code"] == "1145423002"
    assert concept["coding"][0]["display"] == "Azithromycin"


@pytest.mark.parametrize("code", ["", "   "])
def test_medication_is_free_text_without_code(code):
    concept = medication_concept(OrderItem(drug_text="Drug A", drug_code=code))
    assert concept == {"text": "Drug A"}


# ── Dosage steps ───────────────────────────────────────────────────────────────

def test_bare_dosage_has_text_only():
    assert build_dosage(OrderItem(dosage_text="Take once")) == {"text": "Take once"}


def test_additional_instruction_step():
    dosage = {}
    attach_additional_instruction(dosage, OrderItem(additional_instruction="With food"))
    assert dosage["additionalInstruction"][0]["coding"][0]["display"] == "With food"
    empty = {}
    attach_additional_instruction(empty, OrderItem())
    assert empty == {}


def test_timing_with_frequency_and_period():
    dosage = {}
    attach_timing(dosage, OrderItem(frequency=2, period=1, period_unit="wk"))
    assert dosage["timing"] == {"repeat": {"frequency": 2, "period": 1, "periodUnit": "wk"}}


def test_partial_timing_uses_default_unit():
    dosage = {}
    attach_timing(dosage, OrderItem(frequency=3, period_unit=""))
    assert dosage["timing"] == {"repeat": {"frequency": 3, "periodUnit": "d"}}
    only_period = {}
    attach_timing(only_period, OrderItem(period=8))
    assert only_period["timing"]["repeat"] == {"period": 8, "periodUnit": "d"}


def test_no_timing_without_frequency_or_period():
    dosage = {}
    attach_timing(dosage, OrderItem(period_unit="h"))
    assert "timing" not in dosage


def test_route_and_method_steps():
    dosage = {}
    item = OrderItem(route="Oral Route", method="Swallow")
    attach_route(dosage, item)
    attach_method(dosage, item)
    assert dosage["route"]["coding"][0]["display"] == "Oral Route"
    assert dosage["method"]["coding"][0]["display"] == "Swallow"
    untouched = {}
    attach_route(untouched, OrderItem())
    attach_method(untouched, OrderItem())
    assert untouched == {}


def test_full_dosage_key_order():
    item = OrderItem(
        dosage_text="One tablet",
        additional_instruction="With food",
        frequency=1,
        period=1,
        route="Oral",
        method="Swallow",
    )
    assert list(build_dosage(item)) == ["text", "additionalInstruction", "timing", "route", "method"]


# ── MedicationRequest ──────────────────────────────────────────────────────────

def test_medication_request_references(make_form):
    form = make_form()
    resource = build_medication_request(form.orders[0], IDS.orders[0], IDS, form)
    assert resource["resourceType"] == "MedicationRequest"
    assert resource["id"] == IDS.orders[0]
    assert resource["subject"]["reference"] == f"urn:uuid:{IDS.patient}"
    assert resource["requester"]["reference"] == f"urn:uuid:{IDS.practitioner}"
    assert resource["reasonReference"][0]["reference"] == f"urn:uuid:{IDS.condition}"
    assert resource["status"] == "active"
    assert resource["intent"] == "order"
    assert resource["meta"] == {"profile": [PROFILES["MedicationRequest"]]}
    assert "medication: Drug A" in resource["text"]["div"]


def test_medication_request_authored_on_falls_back_to_document_date(make_form):
    form = make_form(orders=[
        {"drugText": "A", "dosageText": "x"},
        {"drugText": "B", "dosageText": "y", "authoredOn": "2023-12-31"},
    ])
    first = build_medication_request(form.orders[0], IDS.orders[0], IDS, form)
    second = build_medication_request(form.orders[1], IDS.orders[1], IDS, form)
    assert first["authoredOn"] == "2024-01-01"
    assert second["authoredOn"] == "2023-12-31"


def test_reason_code_uses_diagnosis_code_or_placeholder(make_form):
    form = make_form()
    resource = build_medication_request(form.orders[0], IDS.orders[0], IDS, form)
    coding = resource["reasonCode"][0]["coding"][0]
    assert coding["code"] == DEFAULT_DIAGNOSIS_CODE
    assert coding["display"] == "Cough"

    coded = make_form(diagnosis={"code": "49727002"}, orders=[
        {"drugText": "A", "dosageText": "x", "reasonText": "Dry cough"},
    ])
    coding = build_medication_request(coded.orders[0], IDS.orders[0], IDS, coded)["reasonCode"][0]["coding"][0]
    assert coding["code"] == "49727002"
    assert coding["display"] == "Dry cough"


# ── Condition ──────────────────────────────────────────────────────────────────

def test_condition_defaults():
    resource = build_condition(Diagnosis(text="Cough"), IDS.condition, patient_id=IDS.patient, patient_name="P")
    status = resource["clinicalStatus"]["coding"][0]
    assert status["code"] == "active"
    assert status["display"] == "Active"
    assert resource["code"]["coding"][0]["code"] == "21522001"
    assert resource["code"]["text"] == "Cough"
    assert resource["subject"] == {"reference": f"urn:uuid:{IDS.patient}", "display": "P"}


def test_condition_uses_supplied_values():
    diagnosis = Diagnosis(text="Fever", code="386661006", clinical_status="resolved")
    resource = build_condition(diagnosis, IDS.condition, patient_id=IDS.patient, patient_name="P")
    assert resource["clinicalStatus"]["coding"][0]["code"] == "resolved"
    assert resource["code"]["coding"][0]["code"] == "386661006"


# ── Composition ────────────────────────────────────────────────────────────────

def test_composition_section_lists_orders_then_binary(make_form):
    ids = IDS.model_copy(update={"binary": "c0000000-0000-4000-8000-000000000007"})
    resource = build_composition(
        make_form().meta,
        ids,
        identifier_value="c0000000-0000-4000-8000-000000000008",
        patient_name="P",
        practitioner_name="Dr. X",
        last_updated=NOW,
    )
    entries = resource["section"][0]["entry"]
    assert [e["reference"] for e in entries] == [
        f"urn:uuid:{IDS.orders[0]}",
        f"urn:uuid:{IDS.orders[1]}",
        f"urn:uuid:{ids.binary}",
    ]
    assert [e["type"] for e in entries] == ["MedicationRequest", "MedicationRequest", "Binary"]
    assert resource["subject"]["reference"] == f"urn:uuid:{IDS.patient}"
    assert resource["author"][0]["reference"] == f"urn:uuid:{IDS.practitioner}"
    assert resource["meta"]["lastUpdated"] == NOW
    assert resource["type"]["coding"][0]["code"] == "440545006"


def test_composition_uses_configured_systems(make_form):
    settings = Settings(composition_identifier_system="urn:test:phr", document_language="en-US")
    resource = build_composition(
        make_form().meta,
        IDS,
        identifier_value="x",
        patient_name="P",
        practitioner_name="Dr. X",
        last_updated=NOW,
        settings=settings,
    )
    assert resource["identifier"] == {"system": "urn:test:phr", "value": "x"}
    assert resource["language"] == "en-US"


# ── Patient / Practitioner ─────────────────────────────────────────────────────

def test_patient_identifier_and_optional_fields(make_form):
    resource = build_patient(make_form().patient, IDS.patient, last_updated=NOW)
    assert resource["identifier"][0]["value"] == "M-1"
    assert resource["identifier"][0]["type"]["coding"][0]["code"] == "MR"
    assert resource["telecom"][0]["value"] == "+1"
    assert resource["gender"] == "male"
    assert resource["birthDate"] == "2000-01-01"

    bare = build_patient(make_form(patient={"phone": "", "gender": ""}).patient, IDS.patient, last_updated=NOW)
    assert "telecom" not in bare
    assert "gender" not in bare


def test_practitioner_license_identifier(make_form):
    resource = build_practitioner(make_form().practitioner, IDS.practitioner, last_updated=NOW)
    assert resource["identifier"][0]["value"] == "L-1"
    assert resource["identifier"][0]["type"]["coding"][0]["code"] == "MD"
    assert resource["name"] == [{"text": "Dr. X"}]


# ── Binary ─────────────────────────────────────────────────────────────────────

def test_binary_payload_is_base64(pdf_bytes):
    resource = build_binary(Attachment(data=pdf_bytes), "c0000000-0000-4000-8000-000000000007")
    assert resource["contentType"] == "application/pdf"
    assert base64.b64decode(resource["data"]) == pdf_bytes
    assert "text" not in resource


def test_binary_without_bytes_is_a_precondition_violation():
    with pytest.raises(PreconditionViolation):
        build_binary(None, "c0000000-0000-4000-8000-000000000007")
    with pytest.raises(PreconditionViolation):
        build_binary(Attachment(data=b""), "c0000000-0000-4000-8000-000000000007")


def test_binary_without_identifier_is_a_precondition_violation(pdf_bytes):
    with pytest.raises(PreconditionViolation):
        build_binary(Attachment(data=pdf_bytes), None)
