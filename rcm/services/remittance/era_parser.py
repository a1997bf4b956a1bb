"""
Remittance (ERA) content parsing.

Turns an uploaded or fetched remittance payload into structured claim lines.
Two layouts are understood:

- X12 835 (subset): segments separated by `~`, elements by `*`.
  BPR (payment amount, effective date), TRN (check/trace number),
  N1*PR (payer name), CLP (claim payment), NM1*QC (patient),
  DTM*232/472 (service date), CAS (adjustments) and SVC (service lines).
- CSV exports with a header row naming at least `claim_number`.

Parsing never raises. Structurally invalid content returns a `ParsedERA`
with `is_valid=False` and "Invalid ERA format" as its first error, so the
upload can still be stored for manual correction.
"""
import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from rcm.utils.decimal_utils import ZERO, parse_financial_amount
from rcm.utils.logger import get_logger
from rcm.utils.rcm_utils import parse_date

logger = get_logger(__name__)

INVALID_ERA_FORMAT = "Invalid ERA format"

FORMAT_X12_835 = "X12_835"
FORMAT_CSV = "CSV"

# CAS group code for patient responsibility; not a payer adjustment
PATIENT_RESPONSIBILITY_GROUP = "PR"

_CSV_ALIASES = {
    "claim_number": ("claim_number", "claimNumber", "claim_id"),
    "patient_name": ("patient_name", "patientName"),
    "service_date": ("service_date", "serviceDate"),
    "charged_amount": ("charged_amount", "total_charges", "totalCharges", "chargedAmount"),
    "paid_amount": ("payment_amount", "paid_amount", "paymentAmount", "paidAmount"),
    "adjustment_amount": ("adjustment_amount", "adjustmentAmount"),
    "adjustment_reason": ("adjustment_reason", "adjustmentReason", "reason_code"),
    "patient_responsibility": ("patient_responsibility", "patientResponsibility"),
    "check_number": ("check_number", "checkNumber"),
    "payment_date": ("payment_date", "paymentDate", "check_date"),
    "payer_name": ("payer_name", "payerName"),
}


@dataclass
class ClaimAdjustment:
    group_code: str
    reason_code: str
    amount: Decimal

    @property
    def code(self) -> str:
        return f"{self.group_code}-{self.reason_code}"


@dataclass
class ServiceLine:
    procedure_code: Optional[str]
    charged_amount: Decimal
    paid_amount: Decimal
    units: int = 1


@dataclass
class ParsedClaimLine:
    """One claim-level entry of a remittance."""

    claim_number: str
    charged_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    patient_responsibility: Decimal = ZERO
    claim_status: Optional[str] = None
    patient_name: Optional[str] = None
    service_date: Optional[date] = None
    adjustments: List[ClaimAdjustment] = field(default_factory=list)
    service_lines: List[ServiceLine] = field(default_factory=list)
    explicit_adjustment_amount: Optional[Decimal] = None
    explicit_adjustment_reason: Optional[str] = None

    @property
    def adjustment_amount(self) -> Decimal:
        """Payer adjustments; patient responsibility (CAS*PR) is excluded."""
        if self.explicit_adjustment_amount is not None:
            return self.explicit_adjustment_amount
        return sum(
            (a.amount for a in self.adjustments if a.group_code != PATIENT_RESPONSIBILITY_GROUP),
            ZERO,
        )

    @property
    def adjustment_reason(self) -> Optional[str]:
        if self.explicit_adjustment_reason:
            return self.explicit_adjustment_reason
        for adjustment in self.adjustments:
            if adjustment.group_code != PATIENT_RESPONSIBILITY_GROUP:
                return adjustment.code
        return None


@dataclass
class ParsedERA:
    is_valid: bool
    format: Optional[str] = None
    total_amount: Decimal = ZERO
    payer_name: Optional[str] = None
    check_number: Optional[str] = None
    check_date: Optional[date] = None
    claims: List[ParsedClaimLine] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def invalid(cls, *details: str) -> "ParsedERA":
        return cls(is_valid=False, errors=[INVALID_ERA_FORMAT, *details])


def _element(segment: List[str], index: int) -> Optional[str]:
    if len(segment) > index:
        value = segment[index].strip()
        return value or None
    return None


def _amount(segment: List[str], index: int) -> Optional[Decimal]:
    return parse_financial_amount(_element(segment, index))


def _edi_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y%m%d").date()
    except ValueError:
        return None


def split_segments(content: str) -> List[List[str]]:
    """Split X12 content into segments of elements, dropping blanks."""
    content = content.translate(str.maketrans("", "", "\r\n"))
    segments = []
    for raw in content.split("~"):
        raw = raw.strip()
        if raw:
            segments.append(raw.split("*"))
    return segments


def detect_format(content: str) -> Optional[str]:
    """Return FORMAT_X12_835, FORMAT_CSV or None if neither layout is recognizable."""
    stripped = content.lstrip()
    if not stripped:
        return None
    first_line = stripped.splitlines()[0]
    if "," in first_line and any(name in first_line for name in _CSV_ALIASES["claim_number"]):
        return FORMAT_CSV
    segment_ids = {segment[0].strip().upper() for segment in split_segments(content)}
    if "~" in content and ({"ST", "BPR", "CLP"} & segment_ids):
        return FORMAT_X12_835
    return None


def parse_era_data(raw_content) -> ParsedERA:
    """
    Parse a remittance payload.

    Args:
        raw_content: Text (or UTF-8 bytes) of an X12 835 or CSV remittance

    Returns:
        ParsedERA; `is_valid` is False with "Invalid ERA format" among the
        errors when the content cannot be interpreted.
    """
    if isinstance(raw_content, bytes):
        try:
            raw_content = raw_content.decode("utf-8-sig")
        except UnicodeDecodeError:
            return ParsedERA.invalid("Content is not UTF-8 text")
    if not isinstance(raw_content, str) or not raw_content.strip():
        return ParsedERA.invalid()

    era_format = detect_format(raw_content)
    if era_format == FORMAT_CSV:
        parsed = _parse_csv(raw_content)
    elif era_format == FORMAT_X12_835:
        parsed = _parse_x12_835(raw_content)
    else:
        return ParsedERA.invalid()

    logger.info(
        "ERA content parsed",
        format=parsed.format,
        is_valid=parsed.is_valid,
        claims=len(parsed.claims),
        errors=len(parsed.errors),
    )
    return parsed


def _parse_x12_835(content: str) -> ParsedERA:
    parsed = ParsedERA(is_valid=True, format=FORMAT_X12_835)
    current: Optional[ParsedClaimLine] = None
    saw_bpr = False

    for segment in split_segments(content):
        segment_id = segment[0].strip().upper()

        if segment_id == "BPR":
            saw_bpr = True
            total = _amount(segment, 2)
            if total is None:
                parsed.errors.append("BPR segment has no valid payment amount")
            else:
                parsed.total_amount = total
            parsed.check_date = _edi_date(_element(segment, 16))

        elif segment_id == "TRN":
            parsed.check_number = _element(segment, 2)

        elif segment_id == "N1" and _element(segment, 1) == "PR":
            parsed.payer_name = _element(segment, 2)

        elif segment_id == "CLP":
            current = _claim_from_clp(segment, parsed)
            if current is not None:
                parsed.claims.append(current)

        elif current is None:
            continue

        elif segment_id == "NM1" and _element(segment, 1) == "QC":
            last, first = _element(segment, 3), _element(segment, 4)
            current.patient_name = " ".join(part for part in (first, last) if part) or None

        elif segment_id == "DTM" and _element(segment, 1) in ("232", "472"):
            current.service_date = current.service_date or _edi_date(_element(segment, 2))

        elif segment_id == "CAS":
            current.adjustments.extend(_adjustments_from_cas(segment))

        elif segment_id == "SVC":
            procedure = _element(segment, 1)
            units = _element(segment, 5)
            current.service_lines.append(
                ServiceLine(
                    procedure_code=procedure.split(":")[-1] if procedure else None,
                    charged_amount=_amount(segment, 2) or ZERO,
                    paid_amount=_amount(segment, 3) or ZERO,
                    units=int(units) if units and units.isdigit() else 1,
                )
            )

    if not saw_bpr:
        parsed.errors.append("Missing BPR payment segment")
    if not parsed.claims:
        parsed.errors.append("No CLP claim segments found")

    if parsed.errors:
        parsed.is_valid = False
        parsed.errors.insert(0, INVALID_ERA_FORMAT)
    else:
        paid_total = sum((claim.paid_amount for claim in parsed.claims), ZERO)
        if paid_total != parsed.total_amount:
            parsed.warnings.append(
                f"Claim payments total {paid_total} does not match BPR amount {parsed.total_amount}"
            )
    return parsed


def _claim_from_clp(segment: List[str], parsed: ParsedERA) -> Optional[ParsedClaimLine]:
    claim_number = _element(segment, 1)
    position = len(parsed.claims) + 1
    if not claim_number:
        parsed.errors.append(f"CLP segment {position} has no claim number")
        return None

    charged = _amount(segment, 3)
    paid = _amount(segment, 4)
    if charged is None or paid is None:
        parsed.errors.append(f"CLP segment for claim {claim_number} has invalid amounts")
        return None

    return ParsedClaimLine(
        claim_number=claim_number,
        claim_status=_element(segment, 2),
        charged_amount=charged,
        paid_amount=paid,
        patient_responsibility=_amount(segment, 5) or ZERO,
    )


def _adjustments_from_cas(segment: List[str]) -> List[ClaimAdjustment]:
    """CAS*group*reason*amount[*qty*reason*amount*qty...] (up to six triplets)."""
    group_code = _element(segment, 1) or ""
    adjustments = []
    for index in range(2, len(segment), 3):
        reason = _element(segment, index)
        amount = _amount(segment, index + 1)
        if reason and amount is not None:
            adjustments.append(ClaimAdjustment(group_code, reason, amount))
    return adjustments


def _csv_value(row: Dict[str, str], name: str) -> Optional[str]:
    for alias in _CSV_ALIASES[name]:
        value = row.get(alias)
        if value is not None and value.strip():
            return value.strip()
    return None


def _parse_csv(content: str) -> ParsedERA:
    parsed = ParsedERA(is_valid=True, format=FORMAT_CSV)
    reader = csv.DictReader(io.StringIO(content.strip()))

    for row_number, row in enumerate(reader, start=2):
        claim_number = _csv_value(row, "claim_number")
        if not claim_number:
            parsed.errors.append(f"Row {row_number}: claim_number is required")
            continue

        paid = parse_financial_amount(_csv_value(row, "paid_amount"))
        charged = parse_financial_amount(_csv_value(row, "charged_amount"))
        if paid is None:
            parsed.errors.append(f"Row {row_number}: invalid payment amount")
            continue

        parsed.claims.append(
            ParsedClaimLine(
                claim_number=claim_number,
                charged_amount=charged if charged is not None else ZERO,
                paid_amount=paid,
                patient_responsibility=parse_financial_amount(
                    _csv_value(row, "patient_responsibility")
                ) or ZERO,
                patient_name=_csv_value(row, "patient_name"),
                service_date=parse_date(_csv_value(row, "service_date")),
                explicit_adjustment_amount=parse_financial_amount(
                    _csv_value(row, "adjustment_amount")
                ),
                explicit_adjustment_reason=_csv_value(row, "adjustment_reason"),
            )
        )
        parsed.check_number = parsed.check_number or _csv_value(row, "check_number")
        parsed.check_date = parsed.check_date or parse_date(_csv_value(row, "payment_date"))
        parsed.payer_name = parsed.payer_name or _csv_value(row, "payer_name")

    if not parsed.claims and not parsed.errors:
        parsed.errors.append("No remittance rows found")

    if parsed.errors:
        parsed.is_valid = False
        parsed.errors.insert(0, INVALID_ERA_FORMAT)

    parsed.total_amount = sum((claim.paid_amount for claim in parsed.claims), ZERO)
    return parsed
