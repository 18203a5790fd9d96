#!/usr/bin/env python3
"""
Result formatting for the calculator display
Fixed-point rounding with optional thousands separators
"""

import math
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, localcontext

MIN_PRECISION = 0
MAX_PRECISION = 10
DEFAULT_PRECISION = 2

# Enough significant digits for the largest double plus the fraction
_CONTEXT_PRECISION = 400


def format_number(value: float, precision: int, use_separator: bool) -> str:
    """Round half away from zero to `precision` decimals and render as text"""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"

    with localcontext() as ctx:
        ctx.prec = _CONTEXT_PRECISION
        # repr gives the shortest decimal that round-trips, so 1.005 rounds up
        rounded = Decimal(repr(float(value))).quantize(Decimal(1).scaleb(-precision),
                                                       rounding=ROUND_HALF_UP)
        if rounded.is_zero():
            rounded = abs(rounded)

    return format(rounded, ',f' if use_separator else 'f')


@dataclass(frozen=True)
class FormatSettings:
    """Display preferences supplied by the UI layer"""
    precision: int = DEFAULT_PRECISION
    use_separator: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'precision', clamp_precision(self.precision))
        object.__setattr__(self, 'use_separator', bool(self.use_separator))

    def format(self, value: float) -> str:
        return format_number(value, self.precision, self.use_separator)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            precision=data.get('precision', DEFAULT_PRECISION),
            use_separator=data.get('use_separator', True),
        )


def clamp_precision(precision) -> int:
    """Clamp a precision setting into the supported range"""
    try:
        precision = int(precision)
    except (TypeError, ValueError):
        raise ValueError(f"Precision must be a whole number, got {precision!r}")
    return max(MIN_PRECISION, min(MAX_PRECISION, precision))
