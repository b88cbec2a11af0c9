from __future__ import annotations

from flowi.domain.errors import ValidationError, NotFoundError
from flowi.domain.models import Product


class InventoryService:
    def __init__(self, repo):
        self.repo = repo

    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def low_stock(self) -> list[Product]:
        return [p for p in self.repo.list_products() if p.stock <= p.min_stock]

    def get_product(self, product_id: str) -> Product:
        p = self.repo.get_product_by_id(product_id)
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def get_product_by_sku(self, sku: str) -> Product:
        p = self.repo.get_product_by_sku(sku)
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def add_product(self, sku: str, name: str, price: float, cost: float = 0.0, stock: int = 0, min_stock: int = 0) -> str:
        sku = (sku or "").strip()
        name = (name or "").strip()
        if not sku or not name:
            raise ValidationError("SKU and Name are required.")
        if stock < 0 or min_stock < 0:
            raise ValidationError("Stock values must be >= 0.")
        if cost < 0:
            raise ValidationError("Cost must be >= 0.")
        if price < 0:
            raise ValidationError("Price must be >= 0.")
        return self.repo.add_product(sku, name, float(price), float(cost), int(stock), int(min_stock))

    def update_product(self, product_id: str, price: float, min_stock: int) -> None:
        if price < 0:
            raise ValidationError("Price must be >= 0.")
        if min_stock < 0:
            raise ValidationError("Min stock must be >= 0.")

        updated = self.repo.update_product_price(product_id, float(price), int(min_stock))
        if not updated:
            raise NotFoundError("Product not found.")

    def restock(self, product_id: str, qty: int) -> None:
        if qty <= 0:
            raise ValidationError("Quantity to add must be > 0.")
        if not self.repo.adjust_product_stock(product_id, int(qty)):
            raise NotFoundError("Product not found.")

    def delete_product(self, product_id: str) -> None:
        if not self.repo.deactivate_product(product_id):
            raise NotFoundError("Product not found.")
