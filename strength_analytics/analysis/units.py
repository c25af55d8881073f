"""Weight unit conversion.

All weights are stored in kg; conversion happens only for display.
"""

from typing import Optional

KG_TO_LBS = 2.20462
LBS_TO_KG = 1 / KG_TO_LBS

SUPPORTED_UNITS = ("kg", "lbs")


def to_kg(value: Optional[float], from_unit: str = "kg") -> Optional[float]:
    """Convert a value in ``from_unit`` to kg, rounded to 2 decimals."""
    if value is None:
        return None
    if str(from_unit).lower() == "lbs":
        return round(float(value) * LBS_TO_KG, 2)
    return round(float(value), 2)


def from_kg(kg_value: Optional[float], to_unit: str = "kg") -> Optional[float]:
    """Convert kg to ``to_unit``, rounded to 2 decimals."""
    if kg_value is None:
        return None
    if str(to_unit).lower() == "lbs":
        return round(float(kg_value) * KG_TO_LBS, 2)
    return round(float(kg_value), 2)


def display_weight(kg_value: Optional[float], unit: str = "kg") -> Optional[float]:
    return from_kg(kg_value, unit)


def format_number(value: Optional[float]) -> str:
    """Show decimals only when needed (100, 100.5, 100.25)."""
    if not value:
        return "0"

    rounded = round(value, 2)
    if rounded == int(rounded):
        return str(int(rounded))
    if rounded == round(rounded, 1):
        return f"{rounded:.1f}"
    return f"{rounded:.2f}"


def format_weight(kg_value: Optional[float], unit: str = "kg", include_unit: bool = False) -> str:
    """Format a kg value in the user's unit.

    Args:
        kg_value: Weight in kg
        unit: Display unit ("kg" or "lbs")
        include_unit: Append the unit suffix

    Returns:
        Formatted weight, or an em dash placeholder for missing values
    """
    if kg_value is None:
        return "—"
    formatted = format_number(display_weight(kg_value, unit))
    return f"{formatted}{unit}" if include_unit else formatted
