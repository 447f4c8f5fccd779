"""
cli.py
------
RxBundle - Prescription Document Bundle Builder - Command-line interface
------------------------------------------------------------------------
Builds Bundles from form JSON files and compares Bundles against the
reference fixture without running the HTTP server.

Commands:
    build FORM_JSON [--attachment PDF] [--output FILE]
        Validate the form, assemble the Bundle, print or write it.
        Exit 2 with every validation issue when the form is incomplete.
    compare GENERATED_JSON [--reference FILE] [--raw] [--only-changes]
        Positional line diff, reference on the left.  Exit 1 when any
        row differs.
    sample [--output FILE]
        Build the Bundle for mock_data/sample_form.py.

Run:
    python cli.py build form.json --attachment report.pdf -o bundle.json
    python cli.py compare bundle.json --only-changes
"""

from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import sys
from typing import List, Optional

from assembler import build_prescription_bundle
from config import get_settings
from errors import FormValidationError
from line_diff import DiffResult, compare_documents, load_reference_bundle, pretty_json
from mock_data.sample_form import SAMPLE_FORM
from schemas import Attachment, FormState

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DIFFERENT = 1
EXIT_INVALID = 2


def _read_json(path: str):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _emit(text: str, output: Optional[str]) -> None:
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        logger.info("cli: wrote %s", output)
    else:
        print(text)


def _load_form(path: str, attachment_path: Optional[str]) -> FormState:
    payload = _read_json(path)
    if attachment_path:
        with open(attachment_path, "rb") as f:
            payload["attachment"] = Attachment(
                data=f.read(),
                content_type=mimetypes.guess_type(attachment_path)[0] or "application/octet-stream",
                filename=attachment_path,
            )
    return FormState.model_validate(payload)


def _build_and_emit(form: FormState, output: Optional[str]) -> int:
    try:
        bundle = build_prescription_bundle(form)
    except FormValidationError as exc:
        print("Form is incomplete:", file=sys.stderr)
        for message in exc.messages:
            print(f"  - {message}", file=sys.stderr)
        return EXIT_INVALID
    _emit(pretty_json(bundle), output)
    return EXIT_OK


def format_rows(result: DiffResult, *, only_changes: bool = False, width: int = 60) -> List[str]:
    """Render diff rows as ``NNNN ! left | right`` lines (``!`` marks changed rows)."""
    lines: List[str] = []
    for index, row in enumerate(result.rows, start=1):
        if only_changes and row.same:
            continue
        marker = " " if row.same else "!"
        lines.append(f"{index:>4} {marker} {row.left_line[:width]:<{width}} | {row.right_line[:width]}")
    return lines


def cmd_build(args: argparse.Namespace) -> int:
    return _build_and_emit(_load_form(args.form, args.attachment), args.output)


def cmd_sample(args: argparse.Namespace) -> int:
    return _build_and_emit(FormState.model_validate(SAMPLE_FORM), args.output)


def cmd_compare(args: argparse.Namespace) -> int:
    generated = _read_json(args.generated)
    reference = load_reference_bundle(args.reference)
    result = compare_documents(generated, reference, ignore_volatile=not args.raw)
    for line in format_rows(result, only_changes=args.only_changes):
        print(line)
    print(f"\n{result.changed_count} of {len(result.rows)} line(s) differ.")
    return EXIT_OK if result.all_same else EXIT_DIFFERENT


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build and compare FHIR prescription document Bundles.")
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Build a Bundle from a form JSON file.")
    build.add_argument("form", help="Path to the form JSON.")
    build.add_argument("--attachment", type=str, default="", help="PDF to embed as a Binary entry.")
    build.add_argument("-o", "--output", type=str, default="", help="Write the Bundle here instead of stdout.")
    build.set_defaults(func=cmd_build)

    sample = sub.add_parser("sample", help="Build the Bundle for the bundled sample form.")
    sample.add_argument("-o", "--output", type=str, default="", help="Write the Bundle here instead of stdout.")
    sample.set_defaults(func=cmd_sample)

    compare = sub.add_parser("compare", help="Line-diff a Bundle against the reference fixture.")
    compare.add_argument("generated", help="Path to the generated Bundle JSON.")
    compare.add_argument("--reference", type=str, default="", help="Reference Bundle (default: configured fixture).")
    compare.add_argument("--raw", action="store_true", help="Do not mask timestamps and generated ids.")
    compare.add_argument("--only-changes", action="store_true", help="Print differing rows only.")
    compare.set_defaults(func=cmd_compare)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(levelname)s [%(name)s] %(message)s",
    )
    args = _parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
