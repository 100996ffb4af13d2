"""
Catalog master data: categories, brands, products and suppliers.
"""

import pytest

from rexpos.extensions import db
from rexpos.models import Category, Product
from rexpos.services import catalog_service, purchase_order_service, supplier_service
from rexpos.services.catalog_service import slugify
from rexpos.services.stock_service import get_stock_level
from rexpos.validation import ConflictError, GuardError, NotFoundError, ValidationError


class TestSlugs:

    @pytest.mark.parametrize("name, expected", [
        ("Mobile Phones", "mobile-phones"),
        ("  Laptops & Tablets!! ", "laptops-tablets"),
        ("USB-C / Thunderbolt", "usb-c-thunderbolt"),
        ("O'Reilly & Sons!!", "o-reilly-sons"),
    ])
    def test_slugify(self, name, expected):
        assert slugify(name) == expected

    def test_category_slug_derived_from_name(self, category):
        assert category.slug == "mobile-phones"

    def test_brand_slug_derived_without_explicit_slug(self, store):
        brand = catalog_service.create_brand(store.id, {"name": "O'Reilly & Sons!!"})
        assert brand.slug == "o-reilly-sons"

    def test_explicit_slug_is_normalized(self, store):
        brand = catalog_service.create_brand(store.id, {"name": "Samsung", "slug": "Samsung Electronics"})
        assert brand.slug == "samsung-electronics"


class TestCategories:

    def test_parent_must_belong_to_store(self, store, other_store):
        foreign = catalog_service.create_category(other_store.id, {"name": "Foreign"})
        with pytest.raises(NotFoundError):
            catalog_service.create_category(store.id, {"name": "Child", "parent_id": foreign.id})

    def test_cycles_are_rejected(self, store, category):
        child = catalog_service.create_category(store.id, {"name": "Android", "parent_id": category.id})
        grandchild = catalog_service.create_category(store.id, {"name": "Budget", "parent_id": child.id})

        with pytest.raises(ValidationError, match="own descendant"):
            catalog_service.update_category(category.id, {"parent_id": grandchild.id})
        with pytest.raises(ValidationError, match="own parent"):
            catalog_service.update_category(category.id, {"parent_id": category.id})

    def test_moving_to_root_is_allowed(self, store, category):
        child = catalog_service.create_category(store.id, {"name": "Android", "parent_id": category.id})
        moved = catalog_service.update_category(child.id, {"parent_id": None})
        assert moved.parent_id is None

    def test_delete_guards(self, store, category, product):
        catalog_service.create_category(store.id, {"name": "Android", "parent_id": category.id})
        with pytest.raises(GuardError, match="Cannot delete category with subcategories"):
            catalog_service.delete_category(category.id)

        lonely = catalog_service.create_category(store.id, {"name": "Accessories"})
        catalog_service.update_product(product.id, {"category_id": lonely.id})
        before = db.session.query(Category).filter_by(store_id=store.id).count()
        with pytest.raises(GuardError, match="Cannot delete category assigned to products"):
            catalog_service.delete_category(lonely.id)
        assert db.session.query(Category).filter_by(store_id=store.id).count() == before
        assert db.session.get(Category, lonely.id) is not None

    def test_list_hides_inactive_by_default(self, store, category):
        catalog_service.create_category(store.id, {"name": "Retired", "is_active": False})
        names = [c.name for c in catalog_service.list_categories(store.id)]
        assert names == ["Mobile Phones"]
        assert len(catalog_service.list_categories(store.id, include_inactive=True)) == 2


class TestBrands:

    def test_brand_in_use_cannot_be_deleted(self, store, make_product):
        brand = catalog_service.create_brand(store.id, {"name": "Nokia"})
        make_product(brand_id=brand.id)
        with pytest.raises(GuardError, match="Cannot delete brand assigned to products"):
            catalog_service.delete_brand(brand.id, store_id=store.id)

    def test_unused_brand_is_deleted(self, store):
        brand = catalog_service.create_brand(store.id, {"name": "Nokia"})
        brand_id = brand.id
        catalog_service.delete_brand(brand_id)
        assert catalog_service.list_brands(store.id) == []


class TestProducts:

    def test_sku_is_uppercased_and_unique_per_store(self, store, other_store, make_product):
        product = make_product(sku="ab-1")
        assert product.sku == "AB-1"
        with pytest.raises(ConflictError, match="SKU AB-1"):
            make_product(sku="AB-1")

        other_category = catalog_service.create_category(other_store.id, {"name": "Phones"})
        same_sku = catalog_service.create_product(other_store.id, {
            "sku": "ab-1", "name": "Elsewhere", "category_id": other_category.id,
        })
        assert same_sku.store_id == other_store.id

    def test_barcode_unique_per_store(self, make_product):
        make_product(barcode="8964000000001")
        with pytest.raises(ConflictError, match="Barcode"):
            make_product(barcode="8964000000001")

    def test_lookup_by_sku_and_barcode(self, store, make_product):
        product = make_product(sku="tel-9", barcode="123456")
        assert catalog_service.get_product_by_sku(store.id, "tel-9").id == product.id
        assert catalog_service.get_product_by_barcode(store.id, "123456").id == product.id
        assert catalog_service.get_product_by_sku(store.id, "missing") is None

    def test_category_from_other_store_rejected(self, store, other_store):
        foreign = catalog_service.create_category(other_store.id, {"name": "Foreign"})
        with pytest.raises(NotFoundError):
            catalog_service.create_product(store.id, {"sku": "A", "name": "A", "category_id": foreign.id})

    def test_required_fields(self, store):
        with pytest.raises(ValidationError, match="Missing required fields: category_id, name"):
            catalog_service.create_product(store.id, {"sku": "A"})

    def test_update_ignores_stock_level(self, store, make_product):
        product = make_product(stock_level=4)
        updated = catalog_service.update_product(product.id, {"stock_level": 99, "name": "Renamed"})
        assert updated.name == "Renamed"
        assert get_stock_level(store.id, product.id) == 4

    def test_negative_price_rejected(self, make_product):
        with pytest.raises(ValidationError):
            make_product(selling_price_cents=-1)

    def test_list_search_and_low_stock(self, store, make_product):
        make_product(name="Galaxy S24", stock_level=50)
        make_product(name="Galaxy A15", stock_level=2)
        make_product(name="iPhone 15", stock_level=1)

        result = catalog_service.list_products(store.id, search="galaxy")
        assert result["total"] == 2

        low = catalog_service.list_products(store.id, low_stock=True)
        assert sorted(p["name"] for p in low["data"]) == ["Galaxy A15", "iPhone 15"]
        assert all(p["is_low_stock"] for p in low["data"])

    def test_search_treats_wildcards_literally(self, store, make_product):
        make_product(name="Charger 50% off")
        make_product(name="USB_C cable")
        make_product(name="Plain case")

        assert catalog_service.list_products(store.id, search="%")["total"] == 1
        assert catalog_service.list_products(store.id, search="_")["total"] == 1
        assert [p["name"] for p in catalog_service.list_products(store.id, search="50%")["data"]] == [
            "Charger 50% off"
        ]

    def test_pagination_envelope(self, store, make_product):
        for _ in range(5):
            make_product()
        page = catalog_service.list_products(store.id, page=2, page_size=2)
        assert page["total"] == 5
        assert page["page"] == 2
        assert page["pageSize"] == 2
        assert page["totalPages"] == 3
        assert len(page["data"]) == 2

    def test_unreferenced_product_is_hard_deleted(self, store, product):
        product_id = product.id
        result = catalog_service.delete_product(product_id, store_id=store.id)
        assert result == {"id": product_id, "soft_deleted": False}
        assert db.session.get(Product, product_id) is None

    def test_referenced_product_is_soft_deleted(self, store, supplier, product):
        purchase_order_service.create_purchase_order(store.id, {
            "supplier_id": supplier.id,
            "items": [{"product_id": product.id, "quantity": 1, "unit_cost_cents": 500}],
        })
        result = catalog_service.delete_product(product.id)
        assert result["soft_deleted"] is True
        assert catalog_service.get_product(product.id).is_active is False


class TestSuppliers:

    def test_opening_balance_seeds_current_balance(self, store):
        supplier = supplier_service.create_supplier(store.id, {"name": "Gadget Hub", "opening_balance_cents": 25000})
        assert supplier.current_balance_cents == 25000

    def test_update_and_delete(self, store, supplier):
        updated = supplier_service.update_supplier(supplier.id, {"city": "Lahore"}, store_id=store.id)
        assert updated.city == "Lahore"

        supplier_id = supplier.id
        supplier_service.delete_supplier(supplier_id)
        with pytest.raises(NotFoundError):
            supplier_service.get_supplier(supplier_id)

    def test_list_search(self, store, supplier):
        supplier_service.create_supplier(store.id, {"name": "Mega Distributors"})
        result = supplier_service.list_suppliers(store.id, search="acme")
        assert [s["name"] for s in result["data"]] == ["Acme Traders"]
