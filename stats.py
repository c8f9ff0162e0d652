from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from config import get_settings
from ledger import LedgerStore
from models import TransactionType
from periods import DateRange, month_key, months_between, trailing_window


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Overview:
    total_income_cents: int
    total_expense_cents: int
    balance_cents: int
    transaction_count: int
    category_count: int


@dataclass(frozen=True)
class CategoryTotal:
    category_id: int
    category_name: str
    category_color: str
    total_cents: int


@dataclass
class MonthTotals:
    month: str
    income_cents: int = 0
    expense_cents: int = 0


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


class StatsService:
    """Derived views over one user's ledger, computed on every call."""

    def __init__(
        self,
        session: Session,
        user_id: int,
        *,
        ledger: Optional[LedgerStore] = None,
    ) -> None:
        self.user_id = user_id
        self.ledger = ledger or LedgerStore(session)

    def overview(self, date_range: DateRange = DateRange()) -> Overview:
        income = self.ledger.sum_amount(
            self.user_id, TransactionType.income, date_range
        )
        expense = self.ledger.sum_amount(
            self.user_id, TransactionType.expense, date_range
        )
        return Overview(
            total_income_cents=income,
            total_expense_cents=expense,
            balance_cents=income - expense,
            transaction_count=self.ledger.count_transactions(self.user_id, date_range),
            category_count=self.ledger.count_categories(self.user_id),
        )

    def expenses_by_category(
        self, date_range: DateRange = DateRange()
    ) -> list[CategoryTotal]:
        rows = self.ledger.group_expense_by_category(self.user_id, date_range)
        breakdown = [
            CategoryTotal(
                category_id=row.category_id,
                category_name=row.name,
                category_color=row.color,
                total_cents=int(row.total or 0),
            )
            for row in rows
        ]
        breakdown.sort(key=lambda item: (-item.total_cents, item.category_id))
        return breakdown

    def monthly_summary(
        self,
        months: Optional[int] = None,
        *,
        dense: bool = True,
        today: Optional[date] = None,
    ) -> list[MonthTotals]:
        """
        Income and expense per calendar month over the trailing ``months``.

        The window runs from the same day ``months`` months ago through today,
        so it touches ``months + 1`` calendar months. With ``dense`` every one
        of them is emitted (zero when empty); otherwise only months that have
        transactions are.
        """
        if months is None:
            months = get_settings().monthly_window
        window = trailing_window(today or local_today(), months)

        buckets: dict[tuple[int, int], MonthTotals] = {}
        if dense:
            for year, month in months_between(window.start, window.end):
                buckets[(year, month)] = MonthTotals(month=month_key(year, month))

        for row in self.ledger.group_by_year_month_type(self.user_id, window):
            key = (int(row.year), int(row.month))
            bucket = buckets.get(key)
            if bucket is None:
                bucket = MonthTotals(month=month_key(*key))
                buckets[key] = bucket
            if row.type == TransactionType.income:
                bucket.income_cents = int(row.total or 0)
            else:
                bucket.expense_cents = int(row.total or 0)

        logger.debug(
            f"monthly_summary: user_id={self.user_id} months={months} "
            f"dense={dense} buckets={len(buckets)}"
        )
        return [buckets[key] for key in sorted(buckets)]
