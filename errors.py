"""
errors.py
---------
RxBundle - Prescription Document Bundle Builder - Error types
--------------------------------------------------------------
Two exceptions make up the whole error surface of the assembly engine:

    FormValidationError   The FormState failed one or more completeness
                          rules.  Carries every violated rule so the caller
                          can correct the form in a single pass.  Raised
                          before any identifier is generated.
    PreconditionViolation An internal builder was called with inputs its
                          caller should have ruled out (e.g. the Binary
                          builder without attachment bytes).  Indicates an
                          integration bug, never shown to end users.

No I/O errors originate in the core; file reads and base64 decoding live
in the CLI and HTTP surfaces.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Sequence

if TYPE_CHECKING:
    from validation import ValidationIssue


class FormValidationError(Exception):
    """Raised when a FormState fails the completeness rules in validation.py."""

    def __init__(self, issues: Sequence["ValidationIssue"]) -> None:
        self.issues = list(issues)
        summary = "; ".join(issue.message for issue in self.issues)
        super().__init__(f"Form validation failed ({len(self.issues)} issue(s)): {summary}")

    @property
    def messages(self) -> List[str]:
        return [issue.message for issue in self.issues]


class PreconditionViolation(Exception):
    """Raised when a record builder is invoked with inputs its caller must exclude."""
