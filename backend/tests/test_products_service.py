# Overview: Pytest coverage for the product catalog.

import re

import pytest

from cafestock.models import Product
from cafestock.services import products_service, stock_service
from cafestock.validation import (
    ConflictError,
    DuplicateKeyError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)


POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "unit", "min_qty"},
    required_on_create={"name", "unit"},
)


class TestCreate:
    def test_generated_sku(self, db_session, owner_a):
        product = products_service.create_product(
            tenant_id=owner_a.id, patch={"name": "Syrup", "unit": "bottle"}
        )
        assert re.fullmatch(r"PRD-\d+-\d{1,3}", product.sku)
        assert product.min_qty == 0

    def test_duplicate_sku_in_same_tenant(self, db_session, owner_a, milk):
        with pytest.raises(DuplicateKeyError):
            products_service.create_product(
                tenant_id=owner_a.id, patch={"sku": "MILK-1L", "name": "Other", "unit": "L"}
            )

    def test_same_sku_in_other_tenant(self, db_session, owner_a, owner_b, milk):
        other = products_service.create_product(
            tenant_id=owner_b.id, patch={"sku": "MILK-1L", "name": "Milk", "unit": "L"}
        )
        assert other.id != milk.id


class TestUpdateDelete:
    def test_update_fields(self, db_session, owner_a, milk):
        updated = products_service.update_product(
            tenant_id=owner_a.id, product_id=milk.id, patch={"name": "Fresh Milk", "min_qty": 8.0}
        )
        assert updated.name == "Fresh Milk"
        assert updated.min_qty == 8.0

    def test_update_to_taken_sku(self, db_session, owner_a, milk):
        products_service.create_product(tenant_id=owner_a.id, patch={"sku": "CREAM", "name": "Cream", "unit": "L"})
        with pytest.raises(DuplicateKeyError):
            products_service.update_product(tenant_id=owner_a.id, product_id=milk.id, patch={"sku": "CREAM"})

    def test_update_foreign_product(self, db_session, owner_a, beans_b):
        with pytest.raises(NotFoundError):
            products_service.update_product(tenant_id=owner_a.id, product_id=beans_b.id, patch={"name": "x"})

    def test_delete_without_history(self, db_session, owner_a, milk):
        product_id = milk.id
        products_service.delete_product(tenant_id=owner_a.id, product_id=product_id)
        assert db_session.get(Product, product_id) is None

    def test_delete_with_history_is_refused(self, db_session, owner_a, milk):
        stock_service.record_movement(
            tenant_id=owner_a.id, product_id=milk.id, kind="in", quantity=1, author_id=owner_a.id
        )
        with pytest.raises(ConflictError):
            products_service.delete_product(tenant_id=owner_a.id, product_id=milk.id)
        assert db_session.get(Product, milk.id) is not None


class TestPayloadValidation:
    def test_create_requires_name_and_unit(self):
        with pytest.raises(ValidationError, match="name, unit"):
            validate_payload(model=Product, payload={"sku": "X"}, policy=POLICY, partial=False)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError, match="Field not allowed"):
            validate_payload(model=Product, payload={"tenant_id": 9}, policy=POLICY, partial=True)

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError, match="name cannot be blank"):
            validate_payload(model=Product, payload={"name": "  "}, policy=POLICY, partial=True)

    def test_min_qty_is_parsed_and_rounded(self):
        patch = validate_payload(model=Product, payload={"min_qty": "2.34567"}, policy=POLICY, partial=True)
        assert patch["min_qty"] == 2.346

    def test_negative_min_qty(self):
        patch = validate_payload(model=Product, payload={"min_qty": -1}, policy=POLICY, partial=True)
        with pytest.raises(ValidationError):
            enforce_rules_product(patch)
