"""
config.py
---------
RxBundle - Prescription Document Bundle Builder - Runtime configuration
-----------------------------------------------------------------------
Reads the handful of deployment-specific values from the environment (a
``.env`` file in the working directory is loaded first via python-dotenv).
Everything has a default, so the engine runs with no configuration at all.

Environment variables:
    BUNDLE_IDENTIFIER_SYSTEM        Bundle.identifier.system       (http://hip.in)
    COMPOSITION_IDENTIFIER_SYSTEM   Composition.identifier.system  (https://ndhm.in/phr)
    PATIENT_IDENTIFIER_SYSTEM       Patient MR identifier system   (https://healthid.ndhm.gov.in)
    PRACTITIONER_IDENTIFIER_SYSTEM  Practitioner license system    (https://doctor.ndhm.gov.in)
    DOCUMENT_LANGUAGE               Composition.language           (en-IN)
    REFERENCE_BUNDLE_PATH           Fixture used by compare        (mock_data/reference_bundle.json)
    LOG_LEVEL                       Logging level for entry points (INFO)
"""

from __future__ import annotations

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()

_HERE = os.path.dirname(os.path.abspath(__file__))

DEFAULT_REFERENCE_BUNDLE_PATH = os.path.join(_HERE, "mock_data", "reference_bundle.json")


class Settings(BaseModel):
    """Resolved configuration values.  Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    bundle_identifier_system:       str = "http://hip.in"
    composition_identifier_system:  str = "https://ndhm.in/phr"
    patient_identifier_system:      str = "https://healthid.ndhm.gov.in"
    practitioner_identifier_system: str = "https://doctor.ndhm.gov.in"
    document_language:              str = "en-IN"
    reference_bundle_path:          str = DEFAULT_REFERENCE_BUNDLE_PATH
    log_level:                      str = "INFO"


def _env(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value or default


def load_settings() -> Settings:
    """Build a fresh ``Settings`` from the current environment."""
    defaults = Settings()
    return Settings(
        bundle_identifier_system=_env("BUNDLE_IDENTIFIER_SYSTEM", defaults.bundle_identifier_system),
        composition_identifier_system=_env(
            "COMPOSITION_IDENTIFIER_SYSTEM", defaults.composition_identifier_system
        ),
        patient_identifier_system=_env("PATIENT_IDENTIFIER_SYSTEM", defaults.patient_identifier_system),
        practitioner_identifier_system=_env(
            "PRACTITIONER_IDENTIFIER_SYSTEM", defaults.practitioner_identifier_system
        ),
        document_language=_env("DOCUMENT_LANGUAGE", defaults.document_language),
        reference_bundle_path=_env("REFERENCE_BUNDLE_PATH", defaults.reference_bundle_path),
        log_level=_env("LOG_LEVEL", defaults.log_level).upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded once.  Tests call ``get_settings.cache_clear()``."""
    return load_settings()
