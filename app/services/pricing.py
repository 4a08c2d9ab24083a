"""Single source of truth for request pricing."""

from collections.abc import Iterable, Mapping

from app.config import settings


def urgency_multiplier(urgency: str | None) -> float:
    return settings.urgent_multiplier if urgency == "urgent" else 1.0


def extras_total(extras: Iterable[Mapping] | None) -> float:
    return sum(float(extra.get("price") or 0) for extra in extras or [])


def compute_total(
    base_price: float,
    urgency: str | None,
    extras: Iterable[Mapping] | None = None,
    quote_amount: float | None = None,
) -> float:
    """Total = base x urgency multiplier + extras.

    An agreed quote replaces the base x multiplier part; extras added at
    completion are charged on top of it.
    """
    if quote_amount is not None:
        subtotal = float(quote_amount)
    else:
        subtotal = float(base_price) * urgency_multiplier(urgency)
    return round(subtotal + extras_total(extras), 2)
