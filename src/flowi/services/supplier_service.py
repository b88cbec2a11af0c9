from __future__ import annotations

from dataclasses import replace
from typing import Optional

from flowi.domain.errors import NotFoundError, ValidationError
from flowi.domain.models import Supplier
from flowi.services.validators import is_valid_email, is_valid_phone


class SupplierService:
    def __init__(self, repo, default_payment_terms: int = 30):
        self.repo = repo
        self.default_payment_terms = default_payment_terms

    def _validate(self, s: Supplier) -> None:
        if not s.name:
            raise ValidationError("Name is required.")
        if s.email and not is_valid_email(s.email):
            raise ValidationError("Email is not valid.")
        if s.phone and not is_valid_phone(s.phone):
            raise ValidationError("Phone number is not valid.")
        if s.payment_terms < 0:
            raise ValidationError("Payment terms must be >= 0 days.")

    def add_supplier(self, name: str, payment_terms: Optional[int] = None, **details: Optional[str]) -> Supplier:
        s = Supplier(
            id="",
            name=(name or "").strip(),
            payment_terms=int(self.default_payment_terms if payment_terms is None else payment_terms),
            **{k: ((v or "").strip() or None) for k, v in details.items()},
        )
        self._validate(s)
        return self.repo.add_supplier(s)

    def get_supplier(self, supplier_id: str) -> Supplier:
        s = self.repo.get_supplier(supplier_id)
        if not s:
            raise NotFoundError("Supplier not found.")
        return s

    def list_suppliers(self, include_inactive: bool = False) -> list[Supplier]:
        return self.repo.list_suppliers(include_inactive=include_inactive)

    def update_supplier(self, supplier_id: str, **changes) -> Supplier:
        updated = replace(self.get_supplier(supplier_id), **changes)
        self._validate(updated)
        self.repo.update_supplier(updated)
        return self.get_supplier(supplier_id)

    def deactivate_supplier(self, supplier_id: str) -> None:
        self.repo.update_supplier(replace(self.get_supplier(supplier_id), is_active=False))
