"""
test_line_diff.py
-----------------
RxBundle - Prescription Document Bundle Builder - Test Suite for line_diff.py
-----------------------------------------------------------------------------
Tests cover:
    - row count is the longer side's line count; missing lines read as ""
    - identical texts are all-same, empty texts give no rows
    - positional comparison: one inserted line marks every later row changed
    - lines split on "\n" only: CRLF differs from LF, U+2028 stays in its row
    - mask_volatile: timestamps and UUIDs masked, input untouched
    - compare_documents: reference on the left, masking on by default
    - the reference fixture loads and is structurally sound

Run:
    pytest tests/test_line_diff.py -v --tb=short
"""

import copy
import json
import sys
import os

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from assembler import audit_bundle, build_prescription_bundle
from line_diff import (
    UUID_MASK,
    VOLATILE_MASK,
    DiffRow,
    compare_documents,
    diff_lines,
    load_reference_bundle,
    mask_volatile,
    pretty_json,
)
from mock_data.sample_form import SAMPLE_FORM
from schemas import FormState

SAMPLE_UUID = "3f2b9c1e-8d4a-4f6b-9a2c-1e5d7b3c9f0a"


# ── diff_lines ─────────────────────────────────────────────────────────────────

def test_identical_texts_are_all_same():
    text = "a\nb\nc"
    result = diff_lines(text, text)
    assert len(result.rows) == 3
    assert result.all_same is True
    assert result.changed_count == 0


def test_row_count_is_the_longer_side():
    result = diff_lines("a\nb", "a\nb\nc\nd")
    assert len(result.rows) == 4
    assert result.rows[2] == DiffRow(left_line="", right_line="c", same=False)
    assert result.rows[3].left_line == ""


def test_shorter_right_side_reads_as_empty():
    result = diff_lines("x\ny\nz", "x")
    assert [row.right_line for row in result.rows] == ["x", "", ""]
    assert [row.same for row in result.rows] == [True, False, False]


def test_empty_texts_produce_no_rows():
    result = diff_lines("", "")
    assert result.rows == ()
    assert result.all_same is True


def test_inserted_line_shifts_every_later_row():
    left = "a\nb\nc\nd"
    right = "a\nX\nb\nc\nd"
    result = diff_lines(left, right)
    assert len(result.rows) == 5
    assert [row.same for row in result.rows] == [True, False, False, False, False]
    assert [index for index, _ in result.changed_rows()] == [1, 2, 3, 4]


def test_crlf_and_lf_lines_differ():
    result = diff_lines("a\r\nb", "a\nb")
    assert len(result.rows) == 2
    assert result.rows[0] == DiffRow(left_line="a\r", right_line="a", same=False)
    assert result.rows[1].same is True
    assert result.all_same is False


def test_unicode_line_separator_stays_in_its_row():
    result = diff_lines("Drug\u2028A\nnext", "Drug\u2028A\nnext")
    assert len(result.rows) == 2
    assert result.rows[0].left_line == "Drug\u2028A"
    assert result.all_same is True


def test_trailing_newline_adds_an_empty_row():
    result = diff_lines("a\nb\n", "a\nb")
    assert len(result.rows) == 3
    assert result.rows[2] == DiffRow(left_line="", right_line="", same=True)


def test_row_serialises_with_camel_case_names():
    row = diff_lines("a", "b").rows[0]
    assert row.model_dump(by_alias=True) == {"leftLine": "a", "rightLine": "b", "same": False}


# ── pretty_json / mask_volatile ────────────────────────────────────────────────

def test_pretty_json_keeps_insertion_order_and_unicode():
    text = pretty_json({"b": 1, "a": "café"})
    assert text.splitlines() == ["{", '  "b": 1,', '  "a": "café"', "}"]


def test_mask_volatile_masks_timestamps_and_uuids():
    doc = {
        "timestamp": "2024-01-01T10:00:00.000+05:30",
        "meta": {"lastUpdated": "2024-01-01T10:00:00.000+05:30"},
        "fullUrl": f"urn:uuid:{SAMPLE_UUID}",
        "id": f"Prescription-{SAMPLE_UUID}",
        "status": "final",
        "count": 2,
    }
    masked = mask_volatile(doc)
    assert masked["timestamp"] == VOLATILE_MASK
    assert masked["meta"]["lastUpdated"] == VOLATILE_MASK
    assert masked["fullUrl"] == f"urn:uuid:{UUID_MASK}"
    assert masked["id"] == f"Prescription-{UUID_MASK}"
    assert masked["status"] == "final"
    assert masked["count"] == 2


def test_mask_volatile_does_not_modify_input():
    doc = {"timestamp": "t", "entry": [{"fullUrl": f"urn:uuid:{SAMPLE_UUID}"}]}
    original = copy.deepcopy(doc)
    mask_volatile(doc)
    assert doc == original


# ── compare_documents ──────────────────────────────────────────────────────────

def test_reference_is_the_left_column():
    result = compare_documents({"side": "generated"}, {"side": "reference"}, ignore_volatile=False)
    changed = result.changed_rows()
    assert len(changed) == 1
    _, row = changed[0]
    assert "reference" in row.left_line
    assert "generated" in row.right_line


def test_two_generated_bundles_match_once_masked():
    form = FormState.model_validate(SAMPLE_FORM)
    first = build_prescription_bundle(form)
    second = build_prescription_bundle(form)
    assert compare_documents(first, second).all_same is True


def test_raw_comparison_reports_identifier_drift():
    form = FormState.model_validate(SAMPLE_FORM)
    first = build_prescription_bundle(form)
    second = build_prescription_bundle(form)
    raw = compare_documents(first, second, ignore_volatile=False)
    assert raw.all_same is False
    assert len(raw.rows) == len(pretty_json(first).split("\n"))


def test_line_separator_in_drug_name_keeps_row_count(make_form):
    bundle = build_prescription_bundle(make_form(orders=[
        {"drugText": "Drug\u2028A", "dosageText": "Take once"},
    ]))
    text = pretty_json(bundle)
    assert "\u2028" in text
    result = compare_documents(bundle, bundle, ignore_volatile=False)
    assert len(result.rows) == text.count("\n") + 1
    assert result.all_same is True


def test_compare_accepts_custom_volatile_fields():
    generated = {"status": "final", "date": "2024-01-02"}
    reference = {"status": "final", "date": "2024-01-01"}
    assert compare_documents(generated, reference).all_same is False
    assert compare_documents(generated, reference, fields=frozenset({"date"})).all_same is True


# ── Reference fixture ──────────────────────────────────────────────────────────

def test_reference_fixture_is_a_sound_document_bundle():
    reference = load_reference_bundle()
    assert reference["resourceType"] == "Bundle"
    assert reference["type"] == "document"
    assert audit_bundle(reference) == []


def test_reference_fixture_describes_the_sample_form():
    reference = load_reference_bundle()
    types = [entry["resource"]["resourceType"] for entry in reference["entry"]]
    assert types.count("MedicationRequest") == len(SAMPLE_FORM["orders"])
    patient = reference["entry"][1]["resource"]
    assert patient["name"][0]["text"] == SAMPLE_FORM["patient"]["name"]


def test_load_reference_bundle_from_explicit_path(tmp_path):
    path = tmp_path / "ref.json"
    path.write_text(json.dumps({"resourceType": "Bundle"}), encoding="utf-8")
    assert load_reference_bundle(str(path)) == {"resourceType": "Bundle"}


def test_load_reference_bundle_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_reference_bundle(str(tmp_path / "absent.json"))
