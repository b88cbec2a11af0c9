from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from flowi.domain.errors import NotFoundError, ValidationError
from flowi.domain.loyalty import points_for_amount
from flowi.domain.models import Customer
from flowi.services.validators import is_valid_email, is_valid_phone

log = logging.getLogger("flowi.customers")


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


class CustomerService:
    def __init__(self, repo, default_payment_terms: int = 30):
        self.repo = repo
        self.default_payment_terms = default_payment_terms

    def _validate(self, c: Customer) -> None:
        if not c.name:
            raise ValidationError("Name is required.")
        if not c.phone:
            raise ValidationError("Phone is required.")
        if not is_valid_phone(c.phone):
            raise ValidationError("Phone number is not valid.")
        if c.email and not is_valid_email(c.email):
            raise ValidationError("Email is not valid.")
        if c.credit_limit < 0:
            raise ValidationError("Credit limit must be >= 0.")
        if c.payment_terms < 0:
            raise ValidationError("Payment terms must be >= 0 days.")

    def add_customer(
        self,
        name: str,
        phone: str,
        sector: str = "",
        email: Optional[str] = None,
        credit_limit: float = 0.0,
        payment_terms: Optional[int] = None,
        marketing_source: Optional[str] = None,
        referral_code: Optional[str] = None,
    ) -> Customer:
        c = Customer(
            id="",
            name=(name or "").strip(),
            phone=(phone or "").strip(),
            sector=(sector or "").strip(),
            email=_clean(email),
            credit_limit=float(credit_limit),
            payment_terms=int(self.default_payment_terms if payment_terms is None else payment_terms),
            marketing_source=_clean(marketing_source),
            referral_code=_clean(referral_code),
        )
        self._validate(c)
        created = self.repo.add_customer(c)
        log.info("customer_created customer_id=%s", created.id)
        return created

    def get_customer(self, customer_id: str) -> Customer:
        c = self.repo.get_customer(customer_id)
        if not c:
            raise NotFoundError("Customer not found.")
        return c

    def list_customers(self, include_inactive: bool = False) -> list[Customer]:
        return self.repo.list_customers(include_inactive=include_inactive)

    def update_customer(self, customer_id: str, **changes) -> Customer:
        """Apply field changes. Points and level are only changed through sales or ``award_points``."""
        current = self.get_customer(customer_id)
        forbidden = {"id", "total_points", "customer_level", "created_at", "updated_at"} & set(changes)
        if forbidden:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(forbidden))}")
        for key in ("email", "marketing_source", "referral_code"):
            if key in changes:
                changes[key] = _clean(changes[key])
        updated = replace(current, **changes)
        self._validate(updated)
        self.repo.update_customer(updated)
        return self.get_customer(customer_id)

    def deactivate_customer(self, customer_id: str) -> None:
        current = self.get_customer(customer_id)
        self.repo.update_customer(replace(current, is_active=False))

    def award_points(self, customer_id: str, sale_amount_usd: float) -> Customer:
        current = self.get_customer(customer_id)
        saved = self.repo.add_customer_points(customer_id, points_for_amount(sale_amount_usd))
        if saved is None:
            raise NotFoundError("Customer not found.")
        if saved[1] != current.customer_level:
            log.info("customer_level_up customer_id=%s level=%s", customer_id, saved[1])
        return self.get_customer(customer_id)
