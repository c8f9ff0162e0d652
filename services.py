from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from auth import hash_password, verify_password
from models import Category, Transaction, TransactionType, User
from periods import DateRange
from schemas import CategoryIn, ProfileIn, TransactionIn, UserIn


logger = logging.getLogger(__name__)


TRANSACTION_SORTS = {
    "date": (Transaction.date.asc(), Transaction.id.asc()),
    "-date": (Transaction.date.desc(), Transaction.id.desc()),
    "amount": (Transaction.amount_cents.asc(), Transaction.id.asc()),
    "-amount": (Transaction.amount_cents.desc(), Transaction.id.desc()),
}


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    date_range: DateRange = field(default_factory=DateRange)
    query: Optional[str] = None
    sort: str = "-date"


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise ValueError("User not found")
        return user

    def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email.strip().lower())
        return self.session.scalar(stmt)

    def register(self, data: UserIn) -> User:
        email = data.email.strip().lower()
        if self.get_by_email(email):
            raise ValueError("Email already registered")
        user = User(
            name=data.name.strip(),
            email=email,
            password_hash=hash_password(data.password),
        )
        self.session.add(user)
        self._commit_unique_email()
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.get_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise ValueError("Invalid credentials")
        return user

    def update_profile(self, user_id: int, data: ProfileIn) -> User:
        user = self.get(user_id)
        if data.name is not None:
            user.name = data.name.strip()
        if data.email is not None:
            email = data.email.strip().lower()
            existing = self.get_by_email(email)
            if existing and existing.id != user.id:
                raise ValueError("Email already registered")
            user.email = email
        self._commit_unique_email()
        self.session.refresh(user)
        logger.info(f"user_profile_updated: user_id={user.id}")
        return user

    def change_password(
        self, user_id: int, current_password: str, new_password: str
    ) -> None:
        user = self.get(user_id)
        if not verify_password(current_password, user.password_hash):
            raise ValueError("Current password is incorrect")
        user.password_hash = hash_password(new_password)
        self.session.commit()
        logger.info(f"user_password_changed: user_id={user.id}")

    def _commit_unique_email(self) -> None:
        # a concurrent writer can claim the email between the lookup and the commit
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValueError("Email already registered") from exc


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(
        self,
        transaction_type: Optional[TransactionType] = None,
        search: Optional[str] = None,
    ) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.created_at.desc(), Category.id.desc())
        )
        if transaction_type:
            stmt = stmt.where(Category.type == transaction_type)
        if search and search.strip():
            stmt = stmt.where(Category.name.ilike(f"%{search.strip()}%"))
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def _ensure_unique_name(
        self, name: str, transaction_type: TransactionType, exclude_id: Optional[int]
    ) -> None:
        stmt = select(Category).where(
            Category.user_id == self.user_id,
            Category.type == transaction_type,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if not name:
            raise ValueError("Category name cannot be empty")
        self._ensure_unique_name(name, data.type, None)
        category = Category(
            user_id=self.user_id,
            name=name,
            type=data.type,
            color=data.color,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        name = data.name.strip()
        if not name:
            raise ValueError("Category name cannot be empty")
        if data.type != category.type and self._has_transactions(category.id):
            raise ValueError("Category type cannot change while it has transactions")
        self._ensure_unique_name(name, data.type, category.id)

        category.name = name
        category.type = data.type
        category.color = data.color
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if self._has_transactions(category.id):
            raise ValueError("Category has transactions")
        self.session.delete(category)
        self.session.commit()

    def _has_transactions(self, category_id: int) -> bool:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.user_id == self.user_id,
            Transaction.category_id == category_id,
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _resolve_category(self, data: TransactionIn) -> Category:
        category = self.session.get(Category, data.category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        if category.type != data.type:
            raise ValueError("Category type mismatch")
        return category

    def create(self, data: TransactionIn) -> Transaction:
        self._resolve_category(data)
        txn = Transaction(
            user_id=self.user_id,
            date=data.date,
            type=data.type,
            amount_cents=data.amount_cents,
            category_id=data.category_id,
            note=data.note.strip(),
        )
        self.session.add(txn)
        self.session.commit()
        return self.get(txn.id)

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._resolve_category(data)

        txn.date = data.date
        txn.type = data.type
        txn.amount_cents = data.amount_cents
        txn.category_id = data.category_id
        txn.note = data.note.strip()
        self.session.commit()
        self.session.expire(txn)
        return self.get(transaction_id)

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def _filtered(self, stmt: Select, filters: TransactionFilters) -> Select:
        stmt = stmt.where(Transaction.user_id == self.user_id)
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id is not None:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.date_range.start is not None:
            stmt = stmt.where(Transaction.date >= filters.date_range.start)
        if filters.date_range.end is not None:
            stmt = stmt.where(Transaction.date <= filters.date_range.end)
        if filters.query and filters.query.strip():
            stmt = stmt.where(Transaction.note.ilike(f"%{filters.query.strip()}%"))
        return stmt

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        *,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        order = TRANSACTION_SORTS.get(filters.sort)
        if order is None:
            raise ValueError(f"Unsupported sort: {filters.sort}")
        stmt = self._filtered(
            select(Transaction).options(joinedload(Transaction.category)), filters
        )
        stmt = stmt.order_by(*order).offset(offset).limit(limit)
        return list(self.session.scalars(stmt).all())

    def count(self, filters: Optional[TransactionFilters] = None) -> int:
        filters = filters or TransactionFilters()
        stmt = self._filtered(select(func.count(Transaction.id)), filters)
        return int(self.session.execute(stmt).scalar_one() or 0)
