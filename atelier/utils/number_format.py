"""Number parsing and formatting utilities for JSON payloads."""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from atelier.exceptions import InvalidArgumentError

DECIMAL_PATTERN = re.compile(r"^-?\d+(?:\.\d+)?$")
TRUE_VALUES = {'true', '1', 'yes', 'on'}
FALSE_VALUES = {'false', '0', 'no', 'off', ''}


def parse_decimal(value: Union[str, int, float, Decimal, None], field: str,
                  required: bool = True, max_decimals: Optional[int] = None) -> Optional[Decimal]:
    """
    Parse a JSON/query value to Decimal.

    Floats are converted through str() so 0.1 stays 0.1.

    Raises:
        InvalidArgumentError: if the value is missing (when required) or not a number.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise InvalidArgumentError(f'{field} is required')
        return None

    if isinstance(value, bool):
        raise InvalidArgumentError(f'{field} must be a number')

    cleaned = str(value).strip()
    if not DECIMAL_PATTERN.match(cleaned):
        raise InvalidArgumentError(f'{field} must be a number')

    try:
        decimal_value = Decimal(cleaned)
    except (InvalidOperation, ValueError):
        raise InvalidArgumentError(f'{field} must be a number')

    if max_decimals is not None and -decimal_value.as_tuple().exponent > max_decimals:
        raise InvalidArgumentError(f'{field} can have at most {max_decimals} decimals')

    return decimal_value


def parse_int(value, field: str, required: bool = True) -> Optional[int]:
    """Parse a whole number (ids, stock quantities)."""
    decimal_value = parse_decimal(value, field, required=required)
    if decimal_value is None:
        return None
    if decimal_value != decimal_value.to_integral_value():
        raise InvalidArgumentError(f'{field} must be a whole number')
    return int(decimal_value)


def parse_bool(value, field: str, default: bool = False) -> bool:
    """Parse JSON booleans and query-string flags."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise InvalidArgumentError(f'{field} must be true or false')


def money_str(value: Union[int, float, Decimal, str, None]) -> Optional[str]:
    """
    Format a monetary amount for JSON output.

    Examples:
        money_str(Decimal('80')) -> "80.00"
        money_str(None) -> None
    """
    if value is None:
        return None
    return str(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def qty_str(value: Union[int, float, Decimal, str, None]) -> Optional[str]:
    """Format a quantity without trailing zeros (2.000 -> "2", 1.50 -> "1.5")."""
    if value is None:
        return None
    num = Decimal(str(value))
    if num == num.to_integral_value():
        return str(num.quantize(Decimal('1')))
    return format(num.normalize(), 'f')
