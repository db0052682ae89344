"""
Staff attribution for destruction records.

Every destroyed letter must be traceable to a named member of staff (or to
the automated retention job). These helpers derive that identity from a user
record and refuse anything that would end up as "Unknown".
"""

from typing import Optional, Tuple

from backend.app.core.exceptions import InvalidAttributionError

SYSTEM_STAFF_NAME = "System (Automated)"
SYSTEM_STAFF_INITIALS = "SYS"
DEFAULT_DESTRUCTION_METHOD = "Cross-cut shredder"


def validate_staff_attribution(staff_name: Optional[str], staff_initials: Optional[str]) -> None:
    """
    Reject attributions that do not identify a real person.

    Raises:
        InvalidAttributionError: the name is blank or contains "unknown", or
            the initials are blank or equal "UN" (case-insensitive)
    """
    name = (staff_name or "").strip()
    initials = (staff_initials or "").strip()

    if not name:
        raise InvalidAttributionError("Staff name is required", {"field": "staff_name"})
    if "unknown" in name.lower():
        raise InvalidAttributionError(
            f"Staff name '{name}' does not identify a member of staff",
            {"field": "staff_name"}
        )
    if not initials:
        raise InvalidAttributionError("Staff initials are required", {"field": "staff_initials"})
    if initials.upper() == "UN":
        raise InvalidAttributionError(
            "Staff initials 'UN' do not identify a member of staff",
            {"field": "staff_initials"}
        )


def derive_staff_attribution(
    first_name: Optional[str],
    last_name: Optional[str],
    email: Optional[str]
) -> Tuple[str, str]:
    """
    Build (name, initials) for a staff member.

    Preference: "First Last" / first / last, falling back to the capitalised
    local part of the email address. The result is validated before return.
    """
    first = (first_name or "").strip()
    last = (last_name or "").strip()
    local_part = (email or "").split("@", 1)[0].strip()

    if first and last:
        name = f"{first} {last}"
        initials = f"{first[0]}{last[0]}"
    elif first:
        name = first
        initials = first[:2]
    elif last:
        name = last
        initials = last[:2]
    elif local_part:
        name = local_part[:1].upper() + local_part[1:]
        initials = local_part[:2]
    else:
        raise InvalidAttributionError("Staff member has no name or email to attribute")

    # A one-letter name repeats its letter: "A" -> "AA"
    initials = initials.upper().ljust(2, initials[0].upper())
    validate_staff_attribution(name, initials)
    return name, initials
