from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import ColumnElement, Row, extract, func, select
from sqlalchemy.orm import Session

from models import Category, Transaction, TransactionType
from periods import DateRange


def _date_conditions(date_range: DateRange) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if date_range.start is not None:
        conditions.append(Transaction.date >= date_range.start)
    if date_range.end is not None:
        conditions.append(Transaction.date <= date_range.end)
    return conditions


class LedgerStore:
    """Read-side queries over the transaction and category tables.

    Every method takes the owning user explicitly; none of them can be called
    without one.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def sum_amount(
        self,
        user_id: int,
        transaction_type: TransactionType,
        date_range: DateRange = DateRange(),
    ) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == user_id,
            Transaction.type == transaction_type,
            *_date_conditions(date_range),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def count_transactions(
        self, user_id: int, date_range: DateRange = DateRange()
    ) -> int:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.user_id == user_id,
            *_date_conditions(date_range),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def count_categories(self, user_id: int) -> int:
        stmt = select(func.count(Category.id)).where(Category.user_id == user_id)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def group_expense_by_category(
        self, user_id: int, date_range: DateRange = DateRange()
    ) -> Sequence[Row[Any]]:
        total = func.sum(Transaction.amount_cents).label("total")
        stmt = (
            select(
                Category.id.label("category_id"),
                Category.name.label("name"),
                Category.color.label("color"),
                total,
            )
            .join(
                Category,
                (Category.id == Transaction.category_id)
                & (Category.user_id == Transaction.user_id),
            )
            .where(
                Transaction.user_id == user_id,
                Transaction.type == TransactionType.expense,
                *_date_conditions(date_range),
            )
            .group_by(Category.id, Category.name, Category.color)
            .order_by(total.desc(), Category.id.asc())
        )
        return self.session.execute(stmt).all()

    def group_by_year_month_type(
        self, user_id: int, date_range: DateRange = DateRange()
    ) -> Sequence[Row[Any]]:
        year = extract("year", Transaction.date).label("year")
        month = extract("month", Transaction.date).label("month")
        stmt = (
            select(
                year,
                month,
                Transaction.type.label("type"),
                func.sum(Transaction.amount_cents).label("total"),
            )
            .where(
                Transaction.user_id == user_id,
                *_date_conditions(date_range),
            )
            .group_by(year, month, Transaction.type)
            .order_by(year.asc(), month.asc())
        )
        return self.session.execute(stmt).all()
