"""
sample_form.py
--------------
RxBundle - Prescription Document Bundle Builder
Sample prescription form payload, shaped the way the editing surface sends
it (camelCase keys).  Used by ``cli.py sample``, the HTTP tests and as the
source of mock_data/reference_bundle.json.

The first order is fully specified (coded drug, instruction, timing, route,
method); the second is free text with dosage text only.
"""

SAMPLE_FORM = {
    "practitioner": {
        "name": "Dr. DEF",
        "licenseNumber": "21-1521-3828-3227",
    },
    "patient": {
        "name": "ABC",
        "recordNumber": "22-7225-4829-5255",
        "birthDate": "1981-01-12",
        "gender": "male",
        "phone": "+919818512600",
    },
    "diagnosis": {
        "text": "Abdominal pain",
        "code": "21522001",
        "clinicalStatus": "active",
    },
    "meta": {
        "title": "Prescription record",
        "status": "final",
        "date": "2024-01-15",
    },
    "orders": [
        {
            "drugText": "Azithromycin 250 mg oral tablet",
            "drugCode": "1145423002",
            "dosageText": "One tablet at once",
            "additionalInstruction": "With or after food",
            "frequency": 1,
            "period": 1,
            "periodUnit": "d",
            "route": "Oral Route",
            "method": "Swallow",
            "reasonText": "Abdominal pain",
            "authoredOn": "2024-01-15",
        },
        {
            "drugText": "Paracetemol 500mg Oral Tab",
            "drugCode": "",
            "dosageText": "Take two tablets orally with or after meal once a day",
            "additionalInstruction": "",
            "frequency": None,
            "period": None,
            "periodUnit": "d",
            "route": "",
            "method": "",
            "reasonText": "Abdominal pain",
            "authoredOn": "2024-01-15",
        },
    ],
}
