"""
Journal service — double-entry lines for applied instruments.

Rules enforced here:
1. Every posting balances (debits = credits)
2. Lines are immutable (append-only)
3. Accounts must exist, be active and match the currency
4. A transaction_id is posted at most once

No other service writes journal lines directly.
"""

import logging
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from ledger_recon.exceptions import NotFoundError, ValidationError
from ledger_recon.models.ledger_account import LedgerAccount
from ledger_recon.models.ledger_entry import LedgerEntry
from ledger_recon.models.enums import AccountType, EntryType
from ledger_recon.schemas.ledger import (
    PostEntriesRequest,
    LedgerAccountCreate,
)

logger = logging.getLogger(__name__)


# Chart-of-accounts codes used by the point-of-sale postings
CASH_ACCOUNT = ("1100", "Cash/Bank", AccountType.ASSET)
RECEIVABLES_ACCOUNT = ("1200", "Accounts Receivable", AccountType.ASSET)
PAYABLES_ACCOUNT = ("2100", "Accounts Payable", AccountType.LIABILITY)
SALES_RETURNS_ACCOUNT = (
    "4100", "Sales Returns & Allowances", AccountType.REVENUE,
)
PURCHASE_RETURNS_ACCOUNT = (
    "5100", "Purchase Returns & Allowances", AccountType.EXPENSE,
)


class JournalService:
    """
    The service takes a session as a constructor argument, so
    the caller controls the transaction boundary.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_account(self, code: str, currency: str) -> LedgerAccount | None:
        return self.db.execute(
            select(LedgerAccount).where(
                LedgerAccount.code == code,
                LedgerAccount.currency == currency,
            )
        ).scalar_one_or_none()

    def create_account(self, request: LedgerAccountCreate) -> LedgerAccount:
        """
        Open an account in the chart.

        The same code may exist once per currency, so 1200 in USD
        and 1200 in EUR are separate accounts.
        """
        if self.find_account(request.code, request.currency):
            raise ValidationError(
                f"Account with code '{request.code}' already exists "
                f"in {request.currency}"
            )

        account = LedgerAccount(
            code=request.code,
            name=request.name,
            account_type=request.account_type,
            currency=request.currency,
        )
        self.db.add(account)
        self.db.flush()
        return account

    def get_or_create_account(
        self, code: str, name: str, account_type: AccountType, currency: str
    ) -> LedgerAccount:
        account = self.find_account(code, currency)
        if account:
            return account
        return self.create_account(LedgerAccountCreate(
            code=code, name=name, account_type=account_type, currency=currency,
        ))

    def post_entries(self, request: PostEntriesRequest) -> list[LedgerEntry]:
        """
        Post a balanced set of lines.

        If any check fails nothing is written. A repeated
        transaction_id returns the lines already posted.
        """
        existing = self.get_entries_by_transaction(request.transaction_id)
        if existing:
            return existing

        account_ids = {entry.account_id for entry in request.entries}
        accounts = self.db.execute(
            select(LedgerAccount).where(LedgerAccount.id.in_(account_ids))
        ).scalars().all()
        accounts_by_id = {a.id: a for a in accounts}

        missing = account_ids - set(accounts_by_id)
        if missing:
            raise ValidationError(f"Accounts not found: {sorted(missing)}")

        for account in accounts_by_id.values():
            if not account.is_active:
                raise ValidationError(f"Account {account.code} is not active")
            if account.currency != request.currency:
                raise ValidationError(
                    f"Account {account.code} currency is "
                    f"{account.currency}, posting currency "
                    f"is {request.currency}"
                )

        total_debits = sum(
            (e.amount for e in request.entries if e.entry_type == EntryType.DEBIT),
            Decimal("0"),
        )
        total_credits = sum(
            (e.amount for e in request.entries if e.entry_type == EntryType.CREDIT),
            Decimal("0"),
        )
        if total_debits != total_credits:
            raise ValidationError(
                f"Posting does not balance: "
                f"debits={total_debits}, credits={total_credits}"
            )

        lines = []
        for entry_data in request.entries:
            line = LedgerEntry(
                transaction_id=request.transaction_id,
                account_id=entry_data.account_id,
                entry_type=entry_data.entry_type,
                amount=entry_data.amount,
                currency=request.currency,
                description=entry_data.description,
                entry_date=request.entry_date,
                reference_type=request.reference_type,
                reference_id=request.reference_id,
            )
            self.db.add(line)
            lines.append(line)

        self.db.flush()
        logger.info(
            "Posted %d journal lines (%s %s) for %s %s",
            len(lines), total_debits, request.currency,
            request.reference_type, request.reference_id,
        )
        return lines

    def get_account_balance(self, account_id: int) -> Decimal:
        """
        Balance derived from the lines, never stored.

        ASSET and EXPENSE: debits - credits.
        LIABILITY, EQUITY and REVENUE: credits - debits.
        """
        account = self.db.get(LedgerAccount, account_id)
        if not account:
            raise NotFoundError("ledger_account", account_id)

        def total(entry_type: EntryType) -> Decimal:
            value = self.db.execute(
                select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                    LedgerEntry.account_id == account_id,
                    LedgerEntry.entry_type == entry_type,
                )
            ).scalar()
            return Decimal(str(value))

        debits = total(EntryType.DEBIT)
        credits = total(EntryType.CREDIT)
        if account.account_type in (AccountType.ASSET, AccountType.EXPENSE):
            return debits - credits
        return credits - debits

    def get_entries_by_transaction(self, transaction_id) -> list[LedgerEntry]:
        entries = self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.transaction_id == transaction_id)
            .order_by(LedgerEntry.id)
        ).scalars().all()
        return list(entries)

    def entries_for_reference(
        self, reference_type: str, reference_id: int
    ) -> list[LedgerEntry]:
        entries = self.db.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.reference_type == reference_type,
                LedgerEntry.reference_id == reference_id,
            )
            .order_by(LedgerEntry.id)
        ).scalars().all()
        return list(entries)

    def check_integrity(self) -> dict:
        """
        Trial balance over every journal line.

        Total debits must equal total credits. A difference means
        lines were written outside post_entries().
        """
        def total(entry_type: EntryType) -> Decimal:
            value = self.db.execute(
                select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                    LedgerEntry.entry_type == entry_type
                )
            ).scalar()
            return Decimal(str(value))

        total_debits = total(EntryType.DEBIT)
        total_credits = total(EntryType.CREDIT)
        difference = total_debits - total_credits
        if difference != 0:
            logger.error("Journal out of balance by %s", difference)

        return {
            "total_debits": total_debits,
            "total_credits": total_credits,
            "difference": difference,
            "is_balanced": difference == 0,
        }
