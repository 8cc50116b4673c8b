"""
JSON schema for patient demographics.

Applied after Pydantic parsing so that every format problem in a payload is
reported at once, with the field path, instead of stopping at the first one.
"""

PATIENT_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Patient demographics",
    "type": "object",
    "properties": {
        "first_name": {"type": "string", "minLength": 1},
        "last_name": {"type": "string", "minLength": 1},
        "date_of_birth": {
            "type": ["string", "null"],
            "pattern": "^\\d{4}-\\d{2}-\\d{2}$",
            "description": "ISO 8601 date (YYYY-MM-DD).",
        },
        "gender": {
            "type": ["string", "null"],
            "enum": ["male", "female", "other", "prefer_not_to_say", None],
        },
        "medical_record_number": {"type": ["string", "null"], "maxLength": 64},
        "phone": {
            "type": ["string", "null"],
            "pattern": "^\\+?[0-9 ()\\-]{7,20}$",
        },
        "address_zip_code": {
            "type": ["string", "null"],
            "pattern": "^[0-9A-Za-z \\-]{3,10}$",
        },
        "emergency_contact_phone": {
            "type": ["string", "null"],
            "pattern": "^\\+?[0-9 ()\\-]{7,20}$",
        },
    },
}
