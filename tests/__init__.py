"""
tests/
------
RxBundle - Prescription Document Bundle Builder - Test Package
--------------------------------------------------------------
Contains the pytest suites for the document builder.

Test Modules:
    - test_identifiers.py: identifier shape, per-run uniqueness, seeding
    - test_narrative.py: XHTML narrative rendering
    - test_schemas.py: form models, field names, sanitisation, coercion
    - test_validation.py: completeness rules and issue collection
    - test_record_factory.py: per-resource builders and dosage steps
    - test_assembler.py: bundle ordering, referential closure, audit
    - test_line_diff.py: positional diff, masking, reference fixture
    - test_main.py: FastAPI endpoints
    - test_cli.py: command-line build / sample / compare
"""
