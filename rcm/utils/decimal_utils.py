"""Decimal precision utilities for money amounts."""
import math
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, localcontext
from typing import Optional, Union

from rcm.utils.logger import get_logger

logger = get_logger(__name__)

# Standard precision for financial amounts (2 decimal places)
FINANCIAL_PRECISION = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest amount a Numeric(12, 2) money column holds
MAX_FINANCIAL_AMOUNT = Decimal("9999999999.99")

Number = Union[str, int, float, Decimal]


def parse_decimal(value: Optional[Number], precision: Optional[Decimal] = None) -> Optional[Decimal]:
    """
    Parse a value to Decimal with proper precision handling.

    Floats go through `str()` so `0.1` becomes `Decimal("0.1")`, not its
    binary expansion. NaN and infinities are rejected.

    Args:
        value: Value to parse (string, int, float, or Decimal)
        precision: Optional precision to round to (half up)

    Returns:
        Decimal value or None if parsing fails

    Example:
        >>> parse_decimal("123.456")
        Decimal('123.456')
        >>> parse_decimal("123.456", precision=Decimal("0.01"))
        Decimal('123.46')
        >>> parse_decimal("abc") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        result = Decimal(str(value))
    elif isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None
        try:
            result = Decimal(value)
        except (ValueError, InvalidOperation):
            logger.debug("Failed to parse decimal string", value=value)
            return None
    else:
        logger.debug("Unsupported type for decimal parsing", type=type(value).__name__)
        return None

    if not result.is_finite():
        return None

    if precision is not None:
        result = quantize(result, precision)

    return result


def quantize(value: Decimal, quantum: Decimal) -> Decimal:
    """
    Round `value` half up to the exponent of `quantum`.

    The context precision is widened to fit the result, so very large finite
    values (e.g. `Decimal("1e30")`) round instead of raising InvalidOperation.
    """
    digits = max(value.adjusted(), 0) - quantum.as_tuple().exponent + 1
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, digits)
        return value.quantize(quantum, rounding=ROUND_HALF_UP)


def parse_financial_amount(value: Optional[Number]) -> Optional[Decimal]:
    """
    Parse a money amount with 2 decimal place precision.

    Amounts beyond what a money column can store (`MAX_FINANCIAL_AMOUNT`)
    are treated as unparseable.

    Example:
        >>> parse_financial_amount("1,500.005")
        Decimal('1500.01')
        >>> parse_financial_amount("1e30") is None
        True
    """
    amount = parse_decimal(value, precision=FINANCIAL_PRECISION)
    if amount is not None and abs(amount) > MAX_FINANCIAL_AMOUNT:
        logger.debug("Financial amount out of range", value=str(amount))
        return None
    return amount


def to_money(value: Optional[Number]) -> Decimal:
    """Two-place amount for arithmetic and display; unparseable input becomes 0.00."""
    amount = parse_decimal(value, precision=FINANCIAL_PRECISION)
    return amount if amount is not None else ZERO


def money_to_str(value: Optional[Decimal]) -> str:
    """Render a Decimal amount as a plain two-place string for JSON payloads."""
    return str(to_money(value))


def round_to_precision(value: Decimal, decimal_places: int = 2) -> Decimal:
    """
    Round a Decimal value to a specific number of decimal places (half up).

    Example:
        >>> round_to_precision(Decimal("123.456"), decimal_places=2)
        Decimal('123.46')
    """
    if value is None:
        return value

    precision = Decimal(1).scaleb(-decimal_places)
    return quantize(value, precision)
