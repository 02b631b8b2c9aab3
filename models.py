from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class AccountType(str, Enum):
    chequing = "CHEQUING"
    savings = "SAVINGS"
    credit_card = "CREDIT_CARD"
    cash = "CASH"
    loan = "LOAN"
    investment = "INVESTMENT"


class TransactionStatus(str, Enum):
    unreconciled = "UNRECONCILED"
    cleared = "CLEARED"
    reconciled = "RECONCILED"
    void = "VOID"


ACCOUNT_TYPE_ENUM = SAEnum(
    AccountType,
    name="accounttype",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)

TRANSACTION_STATUS_ENUM = SAEnum(
    TransactionStatus,
    name="transactionstatus",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class UserPreference(Base, TimestampMixin):
    __tablename__ = "user_preferences"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    default_currency: Mapped[Optional[str]] = mapped_column(String(3))


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        ACCOUNT_TYPE_ENUM, nullable=False, default=AccountType.chequing
    )
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(7))
    is_income: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    parent: Mapped[Optional["Category"]] = relationship(
        "Category", remote_side=[id], back_populates="children"
    )
    children: Mapped[list["Category"]] = relationship(
        "Category", back_populates="parent"
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "parent_id", "name", name="uq_category_user_parent_name"
        ),
    )


class Payee(Base, TimestampMixin):
    __tablename__ = "payees"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_payee_user_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Signed: negative is money out, positive is money in.
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    payee_id: Mapped[Optional[int]] = mapped_column(ForeignKey("payees.id"))
    payee_name: Mapped[Optional[str]] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_transfer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[Optional[TransactionStatus]] = mapped_column(
        TRANSACTION_STATUS_ENUM
    )
    parent_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transactions.id")
    )

    account: Mapped["Account"] = relationship("Account", back_populates="transactions")
    category: Mapped[Optional["Category"]] = relationship("Category")
    payee: Mapped[Optional["Payee"]] = relationship("Payee")
    splits: Mapped[list["TransactionSplit"]] = relationship(
        "TransactionSplit",
        back_populates="transaction",
        foreign_keys="TransactionSplit.transaction_id",
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
    )


class TransactionSplit(Base, TimestampMixin):
    __tablename__ = "transaction_splits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id"), nullable=False
    )
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    transfer_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id")
    )
    memo: Mapped[Optional[str]] = mapped_column(Text)

    transaction: Mapped["Transaction"] = relationship(
        "Transaction", back_populates="splits", foreign_keys=[transaction_id]
    )


class ScheduledTransaction(Base, TimestampMixin):
    __tablename__ = "scheduled_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    payee_id: Mapped[Optional[int]] = mapped_column(ForeignKey("payees.id"))
    payee_name: Mapped[Optional[str]] = mapped_column(String(200))
    is_transfer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    next_due_date: Mapped[Optional[date]] = mapped_column(Date)

    payee: Mapped[Optional["Payee"]] = relationship("Payee")


class ExchangeRate(Base, TimestampMixin):
    __tablename__ = "exchange_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    # quote units per 1 base unit, scaled by 1_000_000
    rate_micros: Mapped[int] = mapped_column(Integer, nullable=False)
    rate_date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(40))

    __table_args__ = (
        UniqueConstraint(
            "from_currency",
            "to_currency",
            "rate_date",
            name="uq_exchange_rate_pair_date",
        ),
    )
