"""Installment generation for payable accounts.

A template account is split into ``count`` dated installments. In ``TOTAL``
mode the template amount is divided across the batch and the last
installment absorbs the rounding remainder, so the batch always sums to the
template amount in cents. In ``UNIT`` mode every installment carries the
template amount unchanged.

Nothing here touches the database: the caller validates the configuration
(``schemas.InstallmentConfig``) and commits the resulting records.
"""
from __future__ import annotations

import enum
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from schemas import AccountIn, InstallmentConfig

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
# largest value a Numeric(14, 2) column holds
MAX_AMOUNT = Decimal("999999999999.99")


class ValueMode(str, enum.Enum):
    TOTAL = "TOTAL"   # amount is the sum of the whole batch
    UNIT = "UNIT"     # amount is applied to every installment


class InstallmentPlanError(ValueError):
    pass


def round2(value) -> Decimal:
    """Round half-up to cents. Unparseable, non-finite or overflowing input is 0."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not amount.is_finite():
            return ZERO
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return ZERO


def split_amounts(amount, count: int, mode: ValueMode) -> List[Decimal]:
    total = round2(amount)
    if mode == ValueMode.UNIT:
        return [total] * count

    unit = round2(total / count)
    last = round2(unit + (total - unit * count))
    return [unit] * (count - 1) + [last]


def installment_title(title: str, index: int, count: int) -> str:
    label = f"{index + 1:02d}/{count:02d}"
    title = (title or "").strip()
    if title:
        return f"{title} parcela {label}"
    return f"Parcela {label}"


def installment_due_date(base: date, index: int, interval_days: int) -> date:
    return base + timedelta(days=index * interval_days)


def check_plan(amount, config: "InstallmentConfig") -> None:
    """Reject a plan whose split would give a negative installment.

    Only TOTAL plans with less than about one cent per installment hit this,
    e.g. 0.50 over 100 installments.
    """
    amounts = split_amounts(amount, config.count, config.value_mode)
    if amounts[-1] < ZERO:
        raise InstallmentPlanError(
            f"{round2(amount)} is too small to split into {config.count} installments; "
            f"use at most {int(round2(amount) / CENTS)} installments or enter the value of each one."
        )


def generate_installments(template: "AccountIn", config: "InstallmentConfig") -> List["AccountIn"]:
    """Expand ``template`` into ``config.count`` installments.

    Every field other than title, due date and amount is copied from the
    template as-is.
    """
    amounts = split_amounts(template.amount, config.count, config.value_mode)
    return [
        template.model_copy(
            update={
                "title": installment_title(template.title, index, config.count),
                "due_date": installment_due_date(template.due_date, index, config.interval_days),
                "amount": amount,
            }
        )
        for index, amount in enumerate(amounts)
    ]


class InstallmentPreview:
    """Editable batch of installments shown to the user before saving.

    Plans that would produce a negative installment are refused up front, so
    every generated amount survives being sent back through ``edit``. Manual
    edits replace one element at a time and never rebalance the others. ``regenerate`` starts over from the template and drops every edit.
    """

    def __init__(self, template: "AccountIn", config: "InstallmentConfig"):
        check_plan(template.amount, config)
        self.template = template
        self.config = config
        self.items: List["AccountIn"] = generate_installments(template, config)

    def __len__(self) -> int:
        return len(self.items)

    def regenerate(self, config: Optional["InstallmentConfig"] = None) -> None:
        if config is not None:
            check_plan(self.template.amount, config)
            self.config = config
        self.items = generate_installments(self.template, self.config)

    def edit(
        self,
        index: int,
        title: Optional[str] = None,
        due_date: Optional[date | str] = None,
        amount=None,
    ) -> "AccountIn":
        if not 0 <= index < len(self.items):
            raise IndexError(f"installment {index} out of range (batch of {len(self.items)})")

        updates = {}
        if title is not None:
            updates["title"] = title.strip()
        if due_date is not None:
            updates["due_date"] = date.fromisoformat(due_date) if isinstance(due_date, str) else due_date
        if amount is not None:
            amount = max(round2(amount), ZERO)
            if amount > MAX_AMOUNT:
                raise ValueError(f"amount must not exceed {MAX_AMOUNT}")
            updates["amount"] = amount

        self.items[index] = self.items[index].model_copy(update=updates)
        return self.items[index]

    def total(self) -> Decimal:
        return sum((item.amount for item in self.items), ZERO)

    def records(self) -> List["AccountIn"]:
        return list(self.items)
