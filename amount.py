"""
Fixed-scale monetary amounts.

Every amount carries exactly four fractional digits. Inputs with a larger
scale are rounded half away from zero. Sums and differences are assumed to
stay inside the default decimal context precision; results that do not
raise AmountOverflow.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from errors import AmountOverflow, InvalidAmount

SCALE = 4
QUANTUM = Decimal(1).scaleb(-SCALE)


@dataclass(frozen=True, order=True)
class Amount:
    """Immutable decimal value rounded to four fractional digits."""

    value: Decimal

    def __post_init__(self):
        try:
            rounded = Decimal(self.value).quantize(QUANTUM, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise InvalidAmount(str(self.value)) from None
        if rounded.is_zero():
            rounded = abs(rounded)
        object.__setattr__(self, "value", rounded)

    @classmethod
    def parse(cls, text: str) -> "Amount":
        """Parse a decimal numeral such as ``"1.23456"`` into ``Amount("1.2346")``."""
        try:
            value = Decimal(text.strip())
        except (InvalidOperation, AttributeError):
            raise InvalidAmount(str(text)) from None
        if not value.is_finite():
            raise InvalidAmount(text)
        return cls(value)

    @classmethod
    def zero(cls) -> "Amount":
        return cls(Decimal(0))

    def is_negative(self) -> bool:
        return self.value < 0

    @staticmethod
    def _combine(value: Decimal) -> "Amount":
        try:
            return Amount(value)
        except InvalidAmount:
            raise AmountOverflow(f"{value} exceeds the supported amount precision") from None

    def __add__(self, other: "Amount") -> "Amount":
        if not isinstance(other, Amount):
            return NotImplemented
        return self._combine(self.value + other.value)

    def __sub__(self, other: "Amount") -> "Amount":
        if not isinstance(other, Amount):
            return NotImplemented
        return self._combine(self.value - other.value)

    def __str__(self) -> str:
        return f"{self.value:.{SCALE}f}"
