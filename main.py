"""
main.py
-------
RxBundle - Prescription Document Bundle Builder - FastAPI server
----------------------------------------------------------------
HTTP surface over the assembly engine.  The browser form posts its state
as JSON; the server validates it, assembles the document Bundle and, on
request, diffs it against the reference fixture.  Nothing is stored.

Endpoints:
    GET  /health    - Service health check
    POST /bundle    - Validate the form and return the document Bundle
    POST /compare   - Build the Bundle and line-diff it against a reference

Attachments arrive base64-encoded in ``attachment_base64`` (the browser
reads the file); the server decodes them to bytes before assembly.  It is
the only attachment channel: a form-embedded ``attachment`` key gets 422.
"""

import base64
import binascii
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from assembler import build_prescription_bundle
from config import get_settings
from errors import FormValidationError
from line_diff import compare_documents, load_reference_bundle
from schemas import PDF_CONTENT_TYPE, Attachment, FormState

load_dotenv()

logging.basicConfig(
    level=get_settings().log_level,
    format="%(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# ── Config ─────────────────────────────────────────────────────────────────────

VERSION = "1.0.0"
SERVICE_NAME = "RxBundle Prescription Document Builder"

# ── FastAPI app ────────────────────────────────────────────────────────────────

app = FastAPI(
    title=SERVICE_NAME,
    version=VERSION,
    description="Builds FHIR R4 prescription document Bundles from form input.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request models ─────────────────────────────────────────────────────────────

class BundleRequest(BaseModel):
    """Request body for POST /bundle."""
    form: Dict[str, Any]
    attachment_base64: Optional[str] = None
    attachment_content_type: str = PDF_CONTENT_TYPE


class CompareRequest(BundleRequest):
    """Request body for POST /compare.  ``reference`` overrides the fixture."""
    reference: Optional[Dict[str, Any]] = None
    ignore_volatile: bool = Field(default=True)


# ── Helpers ────────────────────────────────────────────────────────────────────

def _decode_attachment(encoded: Optional[str], content_type: str) -> Optional[Attachment]:
    """
    Decode the base64 attachment sent by the browser.

    Accepts a bare base64 string or a ``data:<type>;base64,<payload>`` URL.

    Raises:
        HTTPException: 422 when the payload is not valid base64.
    """
    if not encoded or not encoded.strip():
        return None
    payload = encoded.strip()
    if payload.startswith("data:") and "," in payload:
        header, payload = payload.split(",", 1)
        content_type = header[len("data:"):].split(";", 1)[0] or content_type
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=422, detail=f"attachment_base64 is not valid base64: {exc}")
    return Attachment(data=data, content_type=content_type)


def _form_from_request(request: BundleRequest) -> FormState:
    """
    Build the FormState for *request*.

    Attachments travel only in ``attachment_base64``; an ``attachment`` key
    inside ``form`` is rejected, since its string payload would be encoded
    a second time.

    Raises:
        HTTPException: 422 for a form-embedded attachment, bad base64 or a
            malformed form.
    """
    if "attachment" in request.form:
        raise HTTPException(
            status_code=422,
            detail="Send the attachment in attachment_base64, not inside form.",
        )
    attachment = _decode_attachment(request.attachment_base64, request.attachment_content_type)
    payload = dict(request.form)
    if attachment is not None:
        payload["attachment"] = attachment
    try:
        return FormState.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        )


def _build(request: BundleRequest) -> Dict[str, Any]:
    """
    Validate and assemble.  Validation failures become 422 with every issue.
    """
    form = _form_from_request(request)
    try:
        return build_prescription_bundle(form)
    except FormValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "message": "Form validation failed.",
                "issues": [issue.model_dump() for issue in exc.issues],
            },
        )


# ── Endpoints ──────────────────────────────────────────────────────────────────

@app.get("/health")
def health_check() -> dict:
    """
    Return service health status.

    Returns:
        dict: service, version, status, timestamp.
    """
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/bundle")
def create_bundle(request: BundleRequest) -> dict:
    """
    Validate the submitted form and return its document Bundle.

    Returns:
        dict: The FHIR R4 Bundle.  422 with ``issues`` when the form is incomplete.
    """
    return _build(request)


@app.post("/compare")
def compare_bundle(request: CompareRequest) -> dict:
    """
    Build the Bundle and diff it, line by line, against a reference.

    The reference is the request's ``reference`` or, when absent, the
    configured fixture.  Rows are positional (see line_diff.py).

    Returns:
        dict: bundle_id, rows [{leftLine, rightLine, same}], changed_count, all_same.
    """
    bundle = _build(request)
    if request.reference is not None:
        reference = request.reference
    else:
        try:
            reference = load_reference_bundle()
        except (OSError, ValueError) as exc:
            logger.error("main: reference fixture unavailable: %s", exc)
            raise HTTPException(status_code=503, detail="Reference bundle fixture is unavailable.")
    result = compare_documents(bundle, reference, ignore_volatile=request.ignore_volatile)
    return {
        "bundle_id": bundle["id"],
        "rows": [row.model_dump(by_alias=True) for row in result.rows],
        "changed_count": result.changed_count,
        "all_same": result.all_same,
    }
