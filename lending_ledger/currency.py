"""
Amount Handling Module

ISO 4217 currency precision and Decimal conversion for every monetary
value in the ledger. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from enum import Enum
from typing import Union
import re

# Set global decimal context for financial precision
getcontext().prec = 28

ZERO = Decimal('0')


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    PHP = ("PHP", 2)  # Philippine Peso
    USD = ("USD", 2)  # US Dollar
    EUR = ("EUR", 2)  # Euro
    JPY = ("JPY", 0)  # Japanese Yen
    
    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision
    
    @property
    def quantum(self) -> Decimal:
        """Smallest representable unit, e.g. Decimal('0.01')"""
        return Decimal('0.1') ** self.precision


def round_amount(value: Decimal, currency: Currency = Currency.PHP) -> Decimal:
    """
    Round decimal to currency precision (half-up)
    
    Args:
        value: Decimal to round
        currency: Currency defining precision
        
    Returns:
        Properly rounded Decimal
    """
    return value.quantize(currency.quantum, rounding=ROUND_HALF_UP)


def to_amount(value: Union[Decimal, int, str, float], currency: Currency = Currency.PHP) -> Decimal:
    """
    Convert a stored or supplied value into a rounded Decimal amount.
    
    Floats go through ``str`` first so 0.1 stays 0.1.
    
    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, str):
        amount = decimal_from_string(value)
    else:
        amount = Decimal(str(value))
    
    if not amount.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    
    return round_amount(amount, currency)


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert string to Decimal, handling common formats
    
    Args:
        value: String representation of number, e.g. "1,250.50" or "PHP 300"
        
    Returns:
        Decimal value
        
    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")
    
    # Remove currency symbols and whitespace
    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())
    
    # Both comma and dot - assume comma is thousands separator
    if ',' in clean_value and '.' in clean_value:
        clean_value = clean_value.replace(',', '')
    elif ',' in clean_value and clean_value.count(',') == 1:
        parts = clean_value.split(',')
        if len(parts[1]) <= 2:  # Decimal separator
            clean_value = clean_value.replace(',', '.')
        else:  # Thousands separator
            clean_value = clean_value.replace(',', '')
    else:
        clean_value = clean_value.replace(',', '')
    
    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
