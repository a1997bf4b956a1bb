"""
RCM domain utilities.

Pure functions shared by the posting engine, the claim endpoints and the
remittance store:

- currency and date formatting with safe defaults
- days in AR, aging buckets and collectability scoring
- claim field validation (CPT / ICD-10 shapes, dates, amounts)
- claim number generation
- collection priority

None of these functions raise on bad input except `generate_claim_number`,
which rejects a missing or non-text provider code.
"""
import itertools
import math
import os
import re
import secrets
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Tuple, Union

from rcm.utils.clock import utcnow
from rcm.utils.decimal_utils import parse_decimal, quantize
from rcm.utils.errors import InvalidArgumentError

DateLike = Union[date, datetime, str, None]

AGING_BUCKETS = ("0-30", "31-60", "61-90", "90+")

# Upper bound (inclusive) of each bucket except the last
_BUCKET_LIMITS = ((30, "0-30"), (60, "31-60"), (90, "61-90"))

_COLLECTABILITY_BREAKPOINTS = ((30, 95), (60, 85), (90, 70), (120, 50))
_COLLECTABILITY_FLOOR = 25

CURRENCY_FORMATS = {
    "USD": ("$", 2),
    "EUR": ("€", 2),
    "GBP": ("£", 2),
    "JPY": ("¥", 0),
}

CPT_PATTERN = re.compile(r"^\d{5}$")
ICD10_PATTERN = re.compile(r"^[A-Z][0-9]{2}(\.[A-Z0-9]{1,4})?$")

_DATE_INPUT_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y%m%d")


def _to_number(value: Any) -> Optional[float]:
    """Best-effort numeric coercion; None for anything non-finite or non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_date(value: DateLike) -> Optional[date]:
    """
    Parse a date from a `date`, `datetime` or string.

    Accepted strings: ISO dates and datetimes (a trailing `Z` is allowed),
    `MM/DD/YYYY` and `YYYYMMDD`. Datetimes keep their own calendar date.
    Returns None when the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    for fmt in _DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def format_currency(amount: Any, currency: str = "USD") -> str:
    """
    Format an amount for display.

    Rounds half up to the currency's minor units. Negative amounts put the
    sign before the symbol. Anything that is not a finite number formats as
    zero.

    Example:
        >>> format_currency(1234.56)
        '$1,234.56'
        >>> format_currency(-100.5)
        '-$100.50'
        >>> format_currency("invalid")
        '$0.00'
        >>> format_currency(1234.56, "JPY")
        '¥1,235'
    """
    currency = (currency or "USD").upper()
    symbol, places = CURRENCY_FORMATS.get(currency, (f"{currency} ", 2))

    value = parse_decimal(amount) if not isinstance(amount, bool) else None
    if value is None:
        value = Decimal(0)

    quantum = Decimal(1).scaleb(-places)
    value = quantize(value, quantum)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{places}f}"


def format_date(value: DateLike, fmt: str = "MM/DD/YYYY") -> str:
    """
    Format a date for display.

    Supported patterns use the tokens YYYY, YY, MM and DD (e.g.
    "MM/DD/YYYY", "YYYY-MM-DD", "MM/DD/YY"). Missing input gives "N/A",
    unparseable input gives "Invalid Date".
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return "N/A"
    parsed = parse_date(value)
    if parsed is None:
        return "Invalid Date"

    pattern = fmt.replace("YYYY", "%Y").replace("YY", "%y").replace("MM", "%m").replace("DD", "%d")
    return parsed.strftime(pattern)


def calculate_days_in_ar(reference_date: DateLike, now: Optional[datetime] = None) -> int:
    """
    Whole days between `reference_date` and `now` (default: current UTC date).

    Future dates and invalid input give 0.
    """
    reference = parse_date(reference_date)
    if reference is None:
        return 0
    today = parse_date(now) if now is not None else utcnow().date()
    if today is None:
        return 0
    return max((today - reference).days, 0)


def get_aging_bucket(days: Any) -> str:
    """
    Classify a day count into an AR aging bucket.

    Buckets are 0-30, 31-60, 61-90 and 90+. Each boundary belongs to the lower
    bucket, so exactly 30 days is "0-30" and exactly 90 days is "61-90".
    Negative, missing and non-numeric input is treated as "0-30".
    """
    number = _to_number(days)
    if number is None or number < 0:
        return AGING_BUCKETS[0]
    for limit, bucket in _BUCKET_LIMITS:
        if number <= limit:
            return bucket
    return AGING_BUCKETS[-1]


calculate_ar_bucket = get_aging_bucket


def get_collectability_score(days: Any) -> int:
    """
    Likelihood (0-100) that a claim aged `days` is still collected.

    Breakpoints: <=30 -> 95, <=60 -> 85, <=90 -> 70, <=120 -> 50, else 25.
    """
    number = _to_number(days)
    if number is None or number < 0:
        number = 0
    for limit, score in _COLLECTABILITY_BREAKPOINTS:
        if number <= limit:
            return score
    return _COLLECTABILITY_FLOOR


def calculate_collection_priority(amount: Any, days: Any) -> float:
    """
    Rank an outstanding balance for collections work.

    Grows with the balance and with its age; a non-positive balance or a
    negative age has priority 0.
    """
    balance = _to_number(amount)
    age = _to_number(days)
    if balance is None or age is None or balance <= 0 or age < 0:
        return 0.0
    return round(balance * (1 + age / 30) / 100, 2)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"isValid": self.is_valid, "errors": list(self.errors)}


# Payload field name -> accepted alternate spelling
_CLAIM_FIELDS = {
    "patientId": "patient_id",
    "providerId": "provider_id",
    "serviceDate": "service_date",
    "diagnosis": "diagnosis_code",
    "procedure": "procedure_code",
    "amount": "total_charged",
}


def _claim_value(claim: Mapping, name: str) -> Any:
    value = claim.get(name)
    if value is None:
        value = claim.get(_CLAIM_FIELDS[name])
    return value


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_positive_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    if isinstance(value, str) and value.strip().isdigit():
        return int(value) > 0
    return False


def validate_claim_data(claim: Optional[Mapping], today: Optional[date] = None) -> ValidationResult:
    """
    Check a claim payload before it is billed.

    Fields (camelCase or snake_case): patientId, providerId, serviceDate,
    diagnosis (ICD-10 shape), procedure (5-digit CPT), amount (> 0).
    Returns every problem found rather than stopping at the first.
    """
    if not claim or not isinstance(claim, Mapping):
        return ValidationResult(is_valid=False, errors=["Claim data is required"])

    errors: List[str] = []
    values = {name: _claim_value(claim, name) for name in _CLAIM_FIELDS}

    for name, value in values.items():
        if _is_missing(value):
            errors.append(f"{name} is required")

    for name in ("patientId", "providerId"):
        value = values[name]
        if not _is_missing(value) and not _is_positive_integer(value):
            errors.append(f"{name} must be a positive integer")

    service_date_value = values["serviceDate"]
    if not _is_missing(service_date_value):
        service_date = parse_date(service_date_value)
        if service_date is None:
            errors.append("serviceDate must be a valid date")
        elif service_date > (today or utcnow().date()):
            errors.append("serviceDate cannot be in the future")

    diagnosis = values["diagnosis"]
    if not _is_missing(diagnosis) and not ICD10_PATTERN.match(str(diagnosis).strip()):
        errors.append("diagnosis must be valid ICD-10 format")

    procedure = values["procedure"]
    if not _is_missing(procedure) and not CPT_PATTERN.match(str(procedure).strip()):
        errors.append("procedure must be valid CPT format")

    amount_value = values["amount"]
    if not _is_missing(amount_value):
        amount = parse_decimal(amount_value) if not isinstance(amount_value, bool) else None
        if amount is None:
            errors.append("amount must be a number")
        elif amount <= 0:
            errors.append("amount must be positive")

    return ValidationResult(is_valid=not errors, errors=errors)


class _ClaimSequence:
    """
    Claim number sequence for this process.

    Each process draws a random node id, so workers started together never
    share numbers. The counter restarts after a fork along with a new node id.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pid: Optional[int] = None
        self._node = ""
        self._counter = itertools.count(1)

    def next(self) -> Tuple[str, int]:
        with self._lock:
            pid = os.getpid()
            if pid != self._pid:
                self._pid = pid
                self._node = secrets.token_hex(3).upper()
                self._counter = itertools.count(1)
            return self._node, next(self._counter)


_claim_sequence = _ClaimSequence()


def generate_claim_number(provider_code: Any) -> str:
    """
    Build a claim number of the form `{PROVIDER}-{YYYY}-{NODE}-{NNNNNN}`.

    NODE is a six-character per-process id and NNNNNN a counter that is
    zero-padded to six digits and keeps growing past them, so numbers never
    repeat within a process or collide across processes.

    Raises:
        InvalidArgumentError: If the provider code is missing or not a string
    """
    if provider_code is None or (isinstance(provider_code, str) and not provider_code.strip()):
        raise InvalidArgumentError("Provider code is required")
    if not isinstance(provider_code, str):
        raise InvalidArgumentError("Provider code must be a string")

    node, sequence = _claim_sequence.next()
    return f"{provider_code.strip()}-{utcnow().year}-{node}-{sequence:06d}"
