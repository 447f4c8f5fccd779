"""
Shared fixtures for all tests.

``minimal_payload`` is the smallest complete form: one free-text order and
no attachment.  ``make_form`` builds a FormState from it with section-level
overrides so each test only spells out what it cares about.
"""

import copy
import sys
import os

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from schemas import FormState  # noqa: E402

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n"

MINIMAL_PAYLOAD = {
    "practitioner": {"name": "Dr. X", "licenseNumber": "L-1"},
    "patient": {
        "name": "P",
        "recordNumber": "M-1",
        "birthDate": "2000-01-01",
        "gender": "male",
        "phone": "+1",
    },
    "diagnosis": {"text": "Cough", "code": "", "clinicalStatus": "active"},
    "meta": {"title": "Rx", "status": "final", "date": "2024-01-01"},
    "orders": [{"drugText": "Drug A", "dosageText": "Take once"}],
}


@pytest.fixture
def minimal_payload():
    return copy.deepcopy(MINIMAL_PAYLOAD)


@pytest.fixture
def make_form():
    def _make(**sections):
        payload = copy.deepcopy(MINIMAL_PAYLOAD)
        for key, value in sections.items():
            if isinstance(value, dict) and isinstance(payload.get(key), dict):
                payload[key].update(value)
            else:
                payload[key] = value
        return FormState.model_validate(payload)
    return _make


@pytest.fixture
def pdf_bytes():
    return PDF_BYTES
