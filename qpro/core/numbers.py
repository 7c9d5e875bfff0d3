"""Coerción numérica compartida por el resolvedor, el agregador y la revisión."""
import math
from typing import Any, Iterable, Optional


def to_number_or_null(value: Any) -> Optional[float]:
    """Convierte un valor reportado a número.

    Quita separadores de miles y espacios. ``None`` o cadena vacía devuelven
    ``None`` (ausente), nunca ``0``. NaN e infinitos se rechazan.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    cleaned = str(value).replace(",", "").strip()
    if not cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def sum_numbers(values: Iterable[Optional[float]]) -> float:
    total = 0.0
    for value in values:
        if value is not None and math.isfinite(value):
            total += value
    return total


def average_numbers(values: Iterable[Optional[float]]) -> float:
    numbers = [v for v in values if v is not None and math.isfinite(v)]
    if not numbers:
        return 0.0
    return sum(numbers) / len(numbers)


def safe_ratio_percent(numerator: Optional[float], denominator: Optional[float]) -> float:
    """``numerator / denominator * 100`` con 0 cuando el denominador no es positivo."""
    if numerator is None or denominator is None or denominator <= 0:
        return 0.0
    return numerator / denominator * 100
