"""Price quotes for a selection of services."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Tuple, Union

from .models import Service

Number = Union[int, float, Decimal]


def round_half_up(value: Number) -> int:
    """Round to the nearest whole sum, halves away from zero."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PriceQuote:
    services: Tuple[Service, ...]
    subtotal: int
    discount_percent: Number
    discount_amount: int
    total: int


def quote(
    selected_service_ids: Iterable[str],
    catalog: Union[Mapping[str, Service], Iterable[Service]],
    discount_percent: Number = 0,
) -> PriceQuote:
    """Price the selected services against the current catalog.

    Ids missing from the catalog are ignored. The discount is not clamped
    here; callers keep it within 0..100.
    """
    if not isinstance(catalog, Mapping):
        catalog = {service.id: service for service in catalog}
    resolved = tuple(catalog[sid] for sid in selected_service_ids if sid in catalog)
    subtotal = sum(service.price for service in resolved)
    percent = Decimal(str(discount_percent))
    discount_amount = round_half_up(Decimal(subtotal) * percent / Decimal(100))
    return PriceQuote(
        services=resolved,
        subtotal=subtotal,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
    )
