from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime
from typing import Callable, Optional

from flowi.domain.errors import InvalidAmountError, InvalidCurrencyError, NotFoundError, ValidationError
from flowi.domain.models import CURRENCIES, BankAccount, BankTransaction
from flowi.domain.money import round_currency

log = logging.getLogger("flowi.bank")

ACCOUNT_TYPES = ("pago_movil", "zelle", "transferencia")
TRANSACTION_TYPES = ("income", "expense")
TRANSACTION_METHODS = ("pago_movil", "zelle", "transferencia", "efectivo")


class BankService:
    def __init__(self, repo, clock: Callable[[], datetime] = datetime.now):
        self.repo = repo
        self.clock = clock

    def create_account(
        self,
        name: str,
        account_number: str,
        account_type: str,
        currency: str,
        opening_balance: float = 0.0,
    ) -> BankAccount:
        name = (name or "").strip()
        account_number = (account_number or "").strip()
        if not name or not account_number:
            raise ValidationError("Account name and number are required.")
        if account_type not in ACCOUNT_TYPES:
            raise ValidationError(f"Account type must be one of {', '.join(ACCOUNT_TYPES)}.")
        currency = (currency or "").upper()
        if currency not in CURRENCIES:
            raise InvalidCurrencyError(f"Currency must be one of {', '.join(CURRENCIES)}.")
        return self.repo.add_bank_account(
            BankAccount(
                id="",
                name=name,
                account_number=account_number,
                account_type=account_type,
                currency=currency,
                balance=round_currency(opening_balance),
            )
        )

    def get_account(self, account_id: str) -> BankAccount:
        account = self.repo.get_bank_account(account_id)
        if not account:
            raise NotFoundError("Bank account not found.")
        return account

    def list_accounts(self, include_inactive: bool = False) -> list[BankAccount]:
        return self.repo.list_bank_accounts(include_inactive=include_inactive)

    def deactivate_account(self, account_id: str) -> None:
        if not self.repo.deactivate_bank_account(account_id):
            raise NotFoundError("Bank account not found.")

    def record_transaction(
        self,
        account_id: str,
        type: str,
        amount: float,
        payment_method: str,
        reference: str = "",
        description: str = "",
        currency: Optional[str] = None,
        sale_id: Optional[str] = None,
    ) -> BankTransaction:
        """Record a movement; the currency must be the account's own."""
        account = self.get_account(account_id)
        if not account.is_active:
            raise ValidationError("Bank account is inactive.")
        if type not in TRANSACTION_TYPES:
            raise ValidationError(f"Transaction type must be one of {', '.join(TRANSACTION_TYPES)}.")
        if payment_method not in TRANSACTION_METHODS:
            raise ValidationError(f"Payment method must be one of {', '.join(TRANSACTION_METHODS)}.")
        code = (currency or account.currency).upper()
        if code != account.currency:
            raise InvalidCurrencyError(f"Account {account.name} holds {account.currency}, not {code}.")
        try:
            value = float(amount)
        except (TypeError, ValueError) as e:
            raise InvalidAmountError(f"Amount must be a number. Received: {amount!r}") from e
        if not math.isfinite(value) or value <= 0:
            raise InvalidAmountError("Amount must be > 0.")

        tx = self.repo.add_bank_transaction(
            BankTransaction(
                id=str(uuid.uuid4()),
                account_id=account.id,
                type=type,
                amount=round_currency(value),
                currency=code,
                reference=reference,
                description=description,
                payment_method=payment_method,
                created_at=self.clock().replace(microsecond=0).isoformat(sep=" "),
                sale_id=sale_id,
            )
        )
        log.info("bank_tx_recorded account=%s type=%s amount=%.2f currency=%s", account.id, type, tx.amount, code)
        return tx

    def list_transactions(self, account_id: Optional[str] = None) -> list[BankTransaction]:
        return self.repo.list_bank_transactions(account_id=account_id)

    def banking_stats(self, today: Optional[date] = None) -> dict:
        today = today or self.clock().date()
        accounts = self.repo.list_bank_accounts(include_inactive=True)
        todays = self.repo.list_bank_transactions(since_iso=today.isoformat())
        todays = [t for t in todays if t.created_at[:10] == today.isoformat()]

        income: dict[str, float] = {c: 0.0 for c in CURRENCIES}
        for t in todays:
            if t.type == "income":
                income[t.currency] += t.amount

        return {
            "total_accounts": len(accounts),
            "active_accounts": sum(1 for a in accounts if a.is_active),
            "total_usd": round_currency(sum(a.balance for a in accounts if a.is_active and a.currency == "USD")),
            "total_ves": round_currency(sum(a.balance for a in accounts if a.is_active and a.currency == "VES")),
            "today_transactions": len(todays),
            "today_income": {c: round_currency(v) for c, v in income.items()},
        }
