import re
from typing import Any, Dict, List, Optional

PHONE_PATTERN = r'^[\+]?[0-9][\d\-\(\)\.]{6,19}$'
EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def validate_phone_number(phone: str) -> bool:
    """Validate phone number format (international or local)."""
    if not phone:
        return False

    return bool(re.match(PHONE_PATTERN, phone.replace(' ', '')))


def validate_email_format(email: str) -> bool:
    """Validate email format."""
    if not email:
        return True  # Allow empty/null

    return bool(re.match(EMAIL_PATTERN, email))


def validate_customer_info(customer: Dict[str, Any]) -> List[str]:
    """Validate the contact details a customer books with."""
    errors = []

    name: Optional[str] = customer.get('name')
    if not name or not name.strip():
        errors.append("Customer name is required")

    phone: Optional[str] = customer.get('phone')
    if not phone or not phone.strip():
        errors.append("Customer phone is required")
    elif not validate_phone_number(phone):
        errors.append("Invalid phone number format")

    if not validate_email_format(customer.get('email')):
        errors.append("Invalid email format")

    return errors
