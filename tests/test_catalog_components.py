"""
Component tests for the product catalog

Filtering, paging and sorting over active products, soft delete and the
admin-only write endpoints.
"""
import pytest

import catalog
from errors import BadRequestError


@pytest.fixture
def stocked_catalog(make_product):
    return {
        "hammer": make_product(name="Claw Hammer", price=15.0, stock_quantity=20, category="tools"),
        "wrench": make_product(name="Wrench", price=25.0, stock_quantity=3, category="tools"),
        "lamp": make_product(name="Desk Lamp", price=40.0, stock_quantity=8, category="lighting"),
        "bulb": make_product(name="LED bulb", price=5.0, stock_quantity=100, category="lighting"),
        "retired": make_product(name="Old Hammer", price=12.0, stock_quantity=1, category="legacy", active=False),
    }


def _names(response):
    return sorted(p["name"] for p in response.json()["products"])


class TestCatalogFiltering:

    def test_no_filters_returns_all_active(self, test_client, stocked_catalog):
        response = test_client.get("/api/products")

        assert response.status_code == 200
        data = response.json()
        assert data["totalItems"] == 4
        assert data["currentPage"] == 0
        assert data["totalPages"] == 1
        assert "Old Hammer" not in _names(response)

    def test_name_filter_is_case_insensitive_substring(self, test_client, stocked_catalog):
        response = test_client.get("/api/products", params={"name": "HAMM"})

        assert _names(response) == ["Claw Hammer"]

    def test_name_filter_treats_regex_characters_literally(self, test_client, stocked_catalog):
        response = test_client.get("/api/products", params={"name": ".*"})

        assert response.json()["totalItems"] == 0

    def test_category_filter_is_exact(self, test_client, stocked_catalog):
        response = test_client.get("/api/products", params={"category": "lighting"})

        assert _names(response) == ["Desk Lamp", "LED bulb"]
        assert test_client.get("/api/products", params={"category": "light"}).json()["totalItems"] == 0

    def test_price_bounds_are_inclusive(self, test_client, stocked_catalog):
        response = test_client.get("/api/products", params={"minPrice": "15", "maxPrice": "40"})

        assert _names(response) == ["Claw Hammer", "Desk Lamp", "Wrench"]

    def test_only_min_price(self, test_client, stocked_catalog):
        response = test_client.get("/api/products", params={"minPrice": "25"})

        assert _names(response) == ["Desk Lamp", "Wrench"]


class TestCatalogPaging:

    def test_sort_by_price_descending(self, test_client, stocked_catalog):
        response = test_client.get("/api/products", params={"sortBy": "price", "sortDir": "DESC"})

        prices = [p["price"] for p in response.json()["products"]]
        assert prices == [40.0, 25.0, 15.0, 5.0]

    def test_unknown_sort_direction_is_ascending(self, test_client, stocked_catalog):
        response = test_client.get("/api/products", params={"sortBy": "stockQuantity", "sortDir": "sideways"})

        stock = [p["stockQuantity"] for p in response.json()["products"]]
        assert stock == [3, 8, 20, 100]

    def test_pages_split_results(self, test_client, stocked_catalog):
        first = test_client.get("/api/products", params={"size": 3, "sortBy": "name"}).json()
        second = test_client.get("/api/products", params={"size": 3, "page": 1, "sortBy": "name"}).json()

        assert first["totalPages"] == 2
        assert [p["name"] for p in first["products"]] == ["Claw Hammer", "Desk Lamp", "LED bulb"]
        assert [p["name"] for p in second["products"]] == ["Wrench"]
        assert second["currentPage"] == 1

    def test_invalid_sort_field_is_bad_request(self, test_client, stocked_catalog):
        response = test_client.get("/api/products", params={"sortBy": "password_hash"})

        assert response.status_code == 400
        assert "sort" in response.json()["message"].lower()

    def test_invalid_page_size_is_bad_request(self, db):
        with pytest.raises(BadRequestError):
            catalog.list_products(db, size=0)
        with pytest.raises(BadRequestError):
            catalog.list_products(db, page=-1)


class TestCatalogReads:

    def test_get_active_product(self, test_client, stocked_catalog):
        response = test_client.get(f"/api/products/{stocked_catalog['lamp']}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == stocked_catalog["lamp"]
        assert data["name"] == "Desk Lamp"
        assert data["stockQuantity"] == 8
        assert data["active"] is True

    def test_get_inactive_product_is_not_found(self, test_client, stocked_catalog):
        response = test_client.get(f"/api/products/{stocked_catalog['retired']}")

        assert response.status_code == 404
        assert response.json()["message"] == "Product not found"

    def test_get_malformed_id_is_not_found(self, test_client):
        assert test_client.get("/api/products/xyz").status_code == 404

    def test_row_without_active_flag_is_hidden_everywhere(self, test_client, db):
        product_id = str(db["product"].insert_one(
            {"name": "Unflagged", "price": 1.0, "stock_quantity": 1, "category": "misc"}
        ).inserted_id)

        assert test_client.get(f"/api/products/{product_id}").status_code == 404
        assert "Unflagged" not in _names(test_client.get("/api/products"))
        assert catalog.find_active_product(db, product_id) is None

    def test_categories_only_from_active_products(self, test_client, stocked_catalog):
        response = test_client.get("/api/products/categories")

        assert response.json() == ["lighting", "tools"]


class TestCatalogAdmin:

    payload = {
        "name": "Screwdriver",
        "description": "Flat head",
        "price": 7.25,
        "stockQuantity": 12,
        "category": "tools",
        "imageUrl": "https://example.com/s.png",
    }

    def test_user_cannot_create_product(self, test_client, user_headers):
        response = test_client.post("/api/products", json=self.payload, headers=user_headers)

        assert response.status_code == 403
        assert response.json()["message"] == "Admins only"

    def test_admin_creates_product(self, test_client, admin_headers):
        response = test_client.post("/api/products", json=self.payload, headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["stockQuantity"] == 12
        assert data["imageUrl"] == "https://example.com/s.png"
        assert data["active"] is True
        assert test_client.get(f"/api/products/{data['id']}").status_code == 200

    def test_negative_stock_is_rejected(self, test_client, admin_headers):
        response = test_client.post(
            "/api/products", json=dict(self.payload, stockQuantity=-1), headers=admin_headers
        )

        assert response.status_code == 400

    def test_admin_updates_product(self, test_client, admin_headers, stocked_catalog):
        response = test_client.put(
            f"/api/products/{stocked_catalog['wrench']}",
            json=dict(self.payload, name="Torque Wrench", price=30.0),
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Torque Wrench"
        assert test_client.get(f"/api/products/{stocked_catalog['wrench']}").json()["price"] == 30.0

    def test_update_missing_product_is_not_found(self, test_client, admin_headers):
        response = test_client.put(
            "/api/products/64b7f0000000000000000000", json=self.payload, headers=admin_headers
        )

        assert response.status_code == 404

    def test_delete_is_soft(self, test_client, db, admin_headers, stocked_catalog):
        product_id = stocked_catalog["hammer"]

        response = test_client.delete(f"/api/products/{product_id}", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"message": "Product deleted successfully"}
        assert test_client.get(f"/api/products/{product_id}").status_code == 404
        assert "Claw Hammer" not in _names(test_client.get("/api/products"))
        row = db["product"].find_one({"name": "Claw Hammer"})
        assert row is not None
        assert row["active"] is False

    def test_delete_missing_product_is_not_found(self, test_client, admin_headers):
        response = test_client.delete("/api/products/64b7f0000000000000000000", headers=admin_headers)

        assert response.status_code == 404

    def test_low_stock_uses_strict_threshold(self, test_client, admin_headers, stocked_catalog):
        response = test_client.get("/api/products/low-stock", params={"threshold": 8}, headers=admin_headers)

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["Old Hammer", "Wrench"]

    def test_low_stock_requires_admin(self, test_client, user_headers):
        response = test_client.get("/api/products/low-stock", headers=user_headers)

        assert response.status_code == 403
