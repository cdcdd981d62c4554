"""Closed table of placeable field types.

Every ``FieldType`` has exactly one ``FieldSpec`` row; the input modality a
signer gets when filling a field is read from that row and nowhere else.
"""
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum as PyEnum
from typing import Optional

from email_validator import validate_email, EmailNotValidError

from modules.documents.exceptions import ValidationError


class FieldType(str, PyEnum):
    SIGNATURE = "signature"
    INITIALS = "initials"
    NAME = "name"
    EMAIL = "email"
    DATE = "date"
    ADDRESS = "address"
    TITLE = "title"
    COMPANY = "company"
    PHONE = "phone"


class InputMode(str, PyEnum):
    SIGNATURE = "signature"  # drawn or typed graphical artifact
    DATE = "date"
    EMAIL = "email"
    TEXT = "text"


@dataclass(frozen=True)
class FieldSpec:
    label: str
    placeholder: str
    input_mode: InputMode


FIELD_SPECS = {
    FieldType.SIGNATURE: FieldSpec("Signature", "Sign here", InputMode.SIGNATURE),
    FieldType.INITIALS: FieldSpec("Initials", "Initial here", InputMode.SIGNATURE),
    FieldType.NAME: FieldSpec("Full Name", "Enter your full name", InputMode.TEXT),
    FieldType.EMAIL: FieldSpec("Email", "Enter your email", InputMode.EMAIL),
    FieldType.DATE: FieldSpec("Date", "Select date", InputMode.DATE),
    FieldType.ADDRESS: FieldSpec("Address", "Enter your address", InputMode.TEXT),
    FieldType.TITLE: FieldSpec("Title", "Enter your title", InputMode.TEXT),
    FieldType.COMPANY: FieldSpec("Company", "Enter company name", InputMode.TEXT),
    FieldType.PHONE: FieldSpec("Phone", "Enter phone number", InputMode.TEXT),
}

_missing = set(FieldType) - set(FIELD_SPECS)
if _missing:
    raise RuntimeError(f"Field types without a spec: {sorted(m.value for m in _missing)}")

IMAGE_DATA_URI = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,[A-Za-z0-9+/=\s]+$")


def parse_field_type(value) -> FieldType:
    if isinstance(value, FieldType):
        return value
    try:
        return FieldType(str(value).lower())
    except ValueError:
        raise ValidationError(f"Unknown field type '{value}'")


def field_spec(field_type) -> FieldSpec:
    return FIELD_SPECS[parse_field_type(field_type)]


def default_value(field_type, today: Optional[date] = None) -> Optional[str]:
    """Pre-filled value offered when a field is activated."""
    if field_spec(field_type).input_mode is InputMode.DATE:
        return (today or date.today()).isoformat()
    return None


def normalize_email(value: str) -> str:
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email address '{value}': {e}")


def validate_field_value(field_type, value: Optional[str], today: Optional[date] = None) -> Optional[str]:
    """
    Checks a filled value against the input mode of its field type and
    returns the value to store.
    """
    field_type = parse_field_type(field_type)
    mode = FIELD_SPECS[field_type].input_mode
    if value is None or (isinstance(value, str) and not value.strip()):
        if mode is InputMode.DATE:
            return default_value(field_type, today)
        return None

    value = value.strip()
    if mode is InputMode.SIGNATURE:
        if not IMAGE_DATA_URI.match(value):
            raise ValidationError(f"A {field_type.value} field needs an image data URI")
        return value
    if mode is InputMode.DATE:
        try:
            return date.fromisoformat(value).isoformat()
        except ValueError:
            raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")
    if mode is InputMode.EMAIL:
        return normalize_email(value)
    return value
