"""Overall confidence for an extraction."""

from collections.abc import Mapping
from typing import Any


def aggregate(fields: Mapping[str, Any]) -> float:
    """Mean confidence of the present fields, 0.0 when none are present.

    Values are anything with a ``confidence`` attribute, or a bare float.
    None entries count as absent.
    """
    confidences = []
    for value in fields.values():
        if value is None:
            continue
        confidences.append(float(getattr(value, "confidence", value)))

    if not confidences:
        return 0.0
    return sum(confidences) / len(confidences)
