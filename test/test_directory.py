from pathlib import Path

import pytest

from conftest import make_repo
from flowi.domain.errors import NotFoundError, ValidationError
from flowi.services.customer_service import CustomerService
from flowi.services.inventory_service import InventoryService
from flowi.services.supplier_service import SupplierService
from flowi.services.validators import is_valid_email, is_valid_phone


def test_validators():
    assert is_valid_email("ventas@flowi.com")
    assert not is_valid_email("ventas@flowi")
    assert is_valid_phone("+58 (414) 123-4567")
    assert not is_valid_phone("12345")
    assert not is_valid_phone("0414-ABC-1234")


def test_customer_crud(tmp_path: Path):
    svc = CustomerService(make_repo(tmp_path), default_payment_terms=15)
    c = svc.add_customer("  Bodega Luz ", "0414-1234567", sector="retail", email=" luz@bodega.com ")

    assert c.name == "Bodega Luz"
    assert c.email == "luz@bodega.com"
    assert c.payment_terms == 15
    assert (c.total_points, c.customer_level) == (0, "bronze")

    updated = svc.update_customer(c.id, credit_limit=250.0, email="")
    assert updated.credit_limit == 250.0
    assert updated.email is None

    svc.deactivate_customer(c.id)
    assert svc.list_customers() == []
    assert len(svc.list_customers(include_inactive=True)) == 1


def test_customer_validation(tmp_path: Path):
    svc = CustomerService(make_repo(tmp_path))
    with pytest.raises(ValidationError, match="Phone is required"):
        svc.add_customer("Bodega Luz", "")
    with pytest.raises(ValidationError, match="Email"):
        svc.add_customer("Bodega Luz", "0414-1234567", email="nope")
    with pytest.raises(ValidationError):
        svc.add_customer("Bodega Luz", "0414-1234567", credit_limit=-1)
    with pytest.raises(NotFoundError):
        svc.get_customer("missing")


def test_points_cannot_be_edited_directly(tmp_path: Path):
    svc = CustomerService(make_repo(tmp_path))
    c = svc.add_customer("Bodega Luz", "0414-1234567")
    with pytest.raises(ValidationError, match="total_points"):
        svc.update_customer(c.id, total_points=5000)


def test_award_points_levels_up(tmp_path: Path):
    svc = CustomerService(make_repo(tmp_path))
    c = svc.add_customer("Bodega Luz", "0414-1234567")

    svc.award_points(c.id, 999.99)
    assert svc.get_customer(c.id).customer_level == "bronze"
    c = svc.award_points(c.id, 1.0)
    assert (c.total_points, c.customer_level) == (1000, "silver")


def test_supplier_crud(tmp_path: Path):
    svc = SupplierService(make_repo(tmp_path))
    s = svc.add_supplier("Polar", tax_id="J-00006372-9", email="compras@polar.com")
    assert s.payment_terms == 30
    assert s.tax_id == "J-00006372-9"

    s = svc.update_supplier(s.id, payment_terms=45)
    assert s.payment_terms == 45
    with pytest.raises(ValidationError):
        svc.update_supplier(s.id, email="broken")

    svc.deactivate_supplier(s.id)
    assert svc.list_suppliers() == []


def test_inventory(tmp_path: Path):
    svc = InventoryService(make_repo(tmp_path))
    pid = svc.add_product("SKU-1", "Harina PAN", 1.5, 1.0, 3, 5)

    assert [p.id for p in svc.low_stock()] == [pid]
    svc.restock(pid, 10)
    assert svc.get_product(pid).stock == 13
    assert svc.low_stock() == []

    svc.update_product(pid, 1.75, 2)
    assert svc.get_product_by_sku("SKU-1").price_usd == 1.75

    with pytest.raises(ValidationError):
        svc.add_product("SKU-2", "X", -1.0)
    with pytest.raises(ValidationError):
        svc.restock(pid, 0)

    svc.delete_product(pid)
    assert svc.list_products() == []
