"""
Firm assignment -- split an order's line items across billing firms.

A category listed by a firm belongs to that firm; unmapped or missing
categories fall to the default firm.  Firms left with no lines are dropped.

Architecture: produce_batch/domain.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from produce_batch.config import FirmConfig
from produce_batch.domain.types import OrderLine


@dataclass(frozen=True)
class FirmPortion:
    firm: FirmConfig
    lines: tuple[OrderLine, ...]
    subtotal: Decimal


def firm_for_category(firms: Sequence[FirmConfig], category: str | None) -> FirmConfig:
    if category:
        for firm in firms:
            if category in firm.categories:
                return firm
    for firm in firms:
        if firm.is_default:
            return firm
    return firms[0]


def split_by_firm(
    firms: Sequence[FirmConfig],
    lines: Iterable[OrderLine],
) -> list[FirmPortion]:
    """Group ``lines`` by firm, in firm configuration order.

    Subtotals skip lines with no amount; invalid amounts are rejected later
    when the bill document is built.
    """
    grouped: dict[str, list[OrderLine]] = {firm.id: [] for firm in firms}
    for line in lines:
        grouped[firm_for_category(firms, line.category).id].append(line)

    portions = []
    for firm in firms:
        firm_lines = grouped[firm.id]
        if not firm_lines:
            continue
        subtotal = sum(
            (line.amount for line in firm_lines if line.amount is not None),
            Decimal("0"),
        )
        portions.append(FirmPortion(firm=firm, lines=tuple(firm_lines), subtotal=subtotal))
    return portions
