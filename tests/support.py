"""Test support: an in-memory WooCommerce-style store.

FakeWooStore is an ``httpx.MockTransport`` handler that keeps attributes,
terms, categories, products and variations in dictionaries and answers
the subset of the ``wc/v3`` API the store client uses, including batch
endpoints, paging and the duplicate-resource error bodies.

Every create and delete is appended to ``log`` as ``(op, kind, key)``
so tests can assert on ordering.
"""

import itertools
import json
import re
from typing import Any

import httpx

from storeseed.application.progress import Producer, stream_events
from storeseed.catalog import (
    AttributeAxis,
    BrandStorage,
    CatalogDefinition,
    CategoryDefinition,
    Dimensions,
    ItemDefinition,
    VariantDefinition,
)
from storeseed.domain.events import PipelineEvent

STORE_URL = "http://store.test"
API_PREFIX = "/wp-json/wc/v3"
BASE_URL = f"{STORE_URL}{API_PREFIX}"
TAG_META = {"key": "_generated_by", "value": "storeseed"}
TEE_IMAGE = "https://placehold.co/800x800/E8E8E8/333333.png"


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def error_body(status: int, code: str, message: str, **data: Any) -> dict[str, Any]:
    return {"code": code, "message": message, "data": {"status": status, **data}}


def _respond(status: int, body: Any) -> httpx.Response:
    return httpx.Response(status, json=body)


class FakeWooStore:
    """In-memory store answering ``wc/v3`` requests.

    Knobs:
        reject_skus: Product and variation SKUs the store refuses.
        reject_delete_ids: Ids whose delete fails with a server error.
        fail_batches: Every batch endpoint answers 500.
        fail_lists: Resource kinds ("categories", "products", "variations",
            "terms") whose listing answers 500.
        auth_fail: Every request answers 401.
        unreachable: Every request raises a connection error.
        category_meta_in_list: Include ``meta_data`` in category listings.
        strict_category_delete: Refuse to delete a category with children.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.attributes: dict[int, dict[str, Any]] = {}
        self.terms: dict[int, dict[int, dict[str, Any]]] = {}
        self.categories: dict[int, dict[str, Any]] = {}
        self.products: dict[int, dict[str, Any]] = {}
        self.variations: dict[int, dict[int, dict[str, Any]]] = {}

        self.log: list[tuple[str, str, Any]] = []
        self.requests: list[tuple[str, str]] = []

        self.reject_skus: set[str] = set()
        self.reject_delete_ids: set[int] = set()
        self.fail_batches = False
        self.fail_lists: set[str] = set()
        self.auth_fail = False
        self.unreachable = False
        self.category_meta_in_list = False
        self.strict_category_delete = True

        self.default_category_id = self.add_category("Uncategorized", "uncategorized")

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    def add_category(
        self, name: str, slug: str, parent: int = 0, tagged: bool = False
    ) -> int:
        category_id = next(self._ids)
        self.categories[category_id] = {
            "id": category_id,
            "name": name,
            "slug": slug,
            "parent": parent,
            "meta_data": [dict(TAG_META)] if tagged else [],
        }
        return category_id

    def add_product(
        self,
        sku: str,
        name: str = "Foreign product",
        product_type: str = "simple",
        tagged: bool = False,
    ) -> int:
        product_id = next(self._ids)
        self.products[product_id] = {
            "id": product_id,
            "name": name,
            "type": product_type,
            "sku": sku,
            "status": "publish",
            "categories": [],
            "attributes": [],
            "meta_data": [dict(TAG_META)] if tagged else [],
            "grouped_products": [],
            "variations": [],
            "images": [],
            "tags": [],
            "weight": "",
            "dimensions": {"length": "", "width": "", "height": ""},
        }
        self.variations[product_id] = {}
        return product_id

    def remove_variation(self, product_id: int, variation_id: int) -> None:
        """Drop a variation without logging, as if deleted by someone else."""
        del self.variations[product_id][variation_id]
        self.products[product_id]["variations"].remove(variation_id)

    # ------------------------------------------------------------------
    # Inspection helpers
    # ------------------------------------------------------------------

    def product_by_sku(self, sku: str) -> dict[str, Any] | None:
        for product in self.products.values():
            if product["sku"] == sku:
                return product
        return None

    def logged(self, op: str, kind: str) -> list[Any]:
        return [key for logged_op, logged_kind, key in self.log if (logged_op, logged_kind) == (op, kind)]

    def positions(self, op: str, kind: str) -> list[int]:
        return [
            index
            for index, (logged_op, logged_kind, _) in enumerate(self.log)
            if (logged_op, logged_kind) == (op, kind)
        ]

    def counts(self) -> dict[str, int]:
        return {
            "attributes": len(self.attributes),
            "terms": sum(len(terms) for terms in self.terms.values()),
            "categories": len(self.categories),
            "products": len(self.products),
            "variations": sum(len(v) for v in self.variations.values()),
        }

    def requests_to(self, method: str, path: str) -> int:
        return sum(1 for entry in self.requests if entry == (method, path))

    # ------------------------------------------------------------------
    # Transport entry point
    # ------------------------------------------------------------------

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix(API_PREFIX).strip("/")
        self.requests.append((request.method, path))
        if self.unreachable:
            raise httpx.ConnectError("Connection refused", request=request)
        if self.auth_fail:
            return _respond(
                401,
                error_body(401, "woocommerce_rest_cannot_view", "Sorry, you cannot list resources."),
            )

        body = json.loads(request.content) if request.content else None
        params = dict(request.url.params)
        segments = path.split("/") if path else []

        if not segments:
            return _respond(200, {"namespace": "wc/v3", "routes": {}})
        if segments[0] != "products":
            return _respond(404, error_body(404, "rest_no_route", "No route was found."))

        rest = segments[1:]
        if rest[:1] == ["attributes"]:
            return self._attributes(request.method, rest[1:], body, params)
        if rest[:1] == ["categories"]:
            return self._categories(request.method, rest[1:], body, params)
        return self._products(request.method, rest, body, params)

    def _page(self, kind: str, resources: list[dict[str, Any]], params: dict[str, str]) -> httpx.Response:
        if kind in self.fail_lists:
            return _respond(500, error_body(500, "internal_server_error", f"Listing {kind} failed"))
        if "per_page" not in params:
            return _respond(200, resources)
        page = int(params.get("page", 1))
        per_page = int(params["per_page"])
        start = (page - 1) * per_page
        return _respond(200, resources[start:start + per_page])

    def _batch(self, body: dict[str, Any], create, delete) -> httpx.Response:
        if self.fail_batches:
            return _respond(500, error_body(500, "internal_server_error", "Batch request failed"))
        creates = body.get("create") or []
        deletes = body.get("delete") or []
        if len(creates) + len(deletes) > 100:
            return _respond(
                413, error_body(413, "rest_request_entity_too_large", "Too many operations")
            )
        result: dict[str, list[dict[str, Any]]] = {}
        if creates:
            result["create"] = [self._batch_entry(*create(payload)) for payload in creates]
        if deletes:
            result["delete"] = [
                self._batch_entry(*delete(int(resource_id)), resource_id=int(resource_id))
                for resource_id in deletes
            ]
        return _respond(200, result)

    @staticmethod
    def _batch_entry(status: int, payload: dict[str, Any], resource_id: int = 0) -> dict[str, Any]:
        if status >= 400:
            return {"id": resource_id, "error": payload}
        return payload

    def _delete_refused(self, resource_id: int) -> tuple[int, dict[str, Any]] | None:
        if resource_id in self.reject_delete_ids:
            return 500, error_body(500, "woocommerce_rest_cannot_delete", "The resource cannot be deleted.")
        return None

    # ------------------------------------------------------------------
    # Attributes and terms
    # ------------------------------------------------------------------

    def _attributes(self, method: str, rest: list[str], body: Any, params: dict[str, str]) -> httpx.Response:
        if not rest:
            if method == "GET":
                return self._page("attributes", list(self.attributes.values()), {})
            raw = (body.get("slug") or slugify(body["name"])).lower().removeprefix("pa_")
            slug = f"pa_{raw}"
            if any(a["slug"] == slug for a in self.attributes.values()):
                return _respond(
                    400,
                    error_body(400, "woocommerce_rest_cannot_create", f'Slug "{slug}" is already in use.'),
                )
            attribute_id = next(self._ids)
            attribute = {"id": attribute_id, "name": body["name"], "slug": slug, "type": "select"}
            self.attributes[attribute_id] = attribute
            self.terms[attribute_id] = {}
            self.log.append(("create", "attribute", slug))
            return _respond(201, attribute)

        attribute_id = int(rest[0])
        if attribute_id not in self.attributes:
            return _respond(404, error_body(404, "woocommerce_rest_invalid_id", "Invalid ID."))
        if len(rest) == 1 and method == "DELETE":
            refused = self._delete_refused(attribute_id)
            if refused:
                return _respond(*refused)
            attribute = self.attributes.pop(attribute_id)
            self.terms.pop(attribute_id, None)
            self.log.append(("delete", "attribute", attribute["slug"]))
            return _respond(200, attribute)
        return self._terms(method, attribute_id, rest[2:], body, params)

    def _terms(
        self, method: str, attribute_id: int, rest: list[str], body: Any, params: dict[str, str]
    ) -> httpx.Response:
        terms = self.terms[attribute_id]
        if not rest:
            if method == "GET":
                return self._page("terms", list(terms.values()), params)
            slug = slugify(body.get("slug") or body["name"])
            for term in terms.values():
                if term["slug"] == slug:
                    return _respond(
                        400,
                        error_body(
                            400,
                            "term_exists",
                            "A term with the name provided already exists with this parent.",
                            resource_id=term["id"],
                        ),
                    )
            term_id = next(self._ids)
            term = {"id": term_id, "name": body["name"], "slug": slug, "count": 0}
            terms[term_id] = term
            self.log.append(("create", "brand_term", body["name"]))
            return _respond(201, term)

        term_id = int(rest[0])
        if term_id not in terms:
            return _respond(404, error_body(404, "woocommerce_rest_term_invalid", "Resource does not exist."))
        refused = self._delete_refused(term_id)
        if refused:
            return _respond(*refused)
        term = terms.pop(term_id)
        self.log.append(("delete", "brand_term", term["name"]))
        return _respond(200, term)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def _categories(self, method: str, rest: list[str], body: Any, params: dict[str, str]) -> httpx.Response:
        if not rest:
            if method == "GET":
                listed = []
                for category in self.categories.values():
                    view = dict(category)
                    if not self.category_meta_in_list:
                        view.pop("meta_data")
                    listed.append(view)
                return self._page("categories", listed, params)

            slug = body.get("slug") or slugify(body["name"])
            for category in self.categories.values():
                if category["slug"] == slug:
                    return _respond(
                        400,
                        error_body(
                            400,
                            "term_exists",
                            "A term with the name provided already exists with this parent.",
                            resource_id=category["id"],
                        ),
                    )
            parent = int(body.get("parent") or 0)
            if parent and parent not in self.categories:
                return _respond(
                    400, error_body(400, "woocommerce_rest_term_invalid", "Parent category does not exist.")
                )
            category_id = self.add_category(body["name"], slug, parent)
            self.categories[category_id]["meta_data"] = list(body.get("meta_data") or [])
            self.log.append(("create", "category", slug))
            return _respond(201, self.categories[category_id])

        category_id = int(rest[0])
        if category_id not in self.categories:
            return _respond(404, error_body(404, "woocommerce_rest_term_invalid", "Resource does not exist."))
        if category_id == self.default_category_id:
            return _respond(
                500, error_body(500, "woocommerce_rest_cannot_delete", "The default category cannot be deleted.")
            )
        if self.strict_category_delete and any(
            c["parent"] == category_id for c in self.categories.values()
        ):
            return _respond(
                400, error_body(400, "woocommerce_rest_cannot_delete", "Category still has children.")
            )
        refused = self._delete_refused(category_id)
        if refused:
            return _respond(*refused)
        category = self.categories.pop(category_id)
        self.log.append(("delete", "category", category["slug"]))
        return _respond(200, category)

    # ------------------------------------------------------------------
    # Products and variations
    # ------------------------------------------------------------------

    def _find_sku(self, sku: str) -> int | None:
        if not sku:
            return None
        for product in self.products.values():
            if product["sku"] == sku:
                return product["id"]
        for variations in self.variations.values():
            for variation in variations.values():
                if variation["sku"] == sku:
                    return variation["id"]
        return None

    def _sku_checks(self, sku: str) -> tuple[int, dict[str, Any]] | None:
        if sku in self.reject_skus:
            return 400, error_body(400, "woocommerce_rest_invalid_product", f"Product {sku} is invalid.")
        existing = self._find_sku(sku)
        if existing is not None:
            return 400, error_body(
                400, "product_invalid_sku", "Invalid or duplicated SKU.", resource_id=existing
            )
        return None

    def _create_product(self, body: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        sku = body.get("sku") or ""
        failed = self._sku_checks(sku)
        if failed:
            return failed
        for ref in body.get("categories") or []:
            if ref["id"] not in self.categories:
                return 400, error_body(400, "woocommerce_rest_invalid_term", "Invalid category.")
        for member in body.get("grouped_products") or []:
            if member not in self.products:
                return 400, error_body(400, "woocommerce_rest_invalid_product_id", "Invalid grouped product.")

        product_id = self.add_product(sku, body.get("name", ""), body.get("type", "simple"))
        product = self.products[product_id]
        product.update(
            {
                "categories": list(body.get("categories") or []),
                "attributes": list(body.get("attributes") or []),
                "meta_data": list(body.get("meta_data") or []),
                "grouped_products": list(body.get("grouped_products") or []),
                "regular_price": body.get("regular_price", ""),
                "images": [
                    {"id": next(self._ids), "src": image["src"], "alt": image.get("alt", "")}
                    for image in body.get("images") or []
                ],
                "tags": [
                    {"id": next(self._ids), "name": tag["name"], "slug": slugify(tag["name"])}
                    for tag in body.get("tags") or []
                ],
                "weight": body.get("weight", ""),
                "dimensions": body.get("dimensions", product["dimensions"]),
            }
        )
        self.log.append(("create", "product", sku))
        return 201, dict(product)

    def _delete_product(self, product_id: int) -> tuple[int, dict[str, Any]]:
        if product_id not in self.products:
            return 404, error_body(404, "woocommerce_rest_product_invalid_id", "Invalid ID.")
        refused = self._delete_refused(product_id)
        if refused:
            return refused
        product = self.products.pop(product_id)
        self.variations.pop(product_id, None)
        self.log.append(("delete", "product", product["sku"]))
        return 200, product

    def _products(self, method: str, rest: list[str], body: Any, params: dict[str, str]) -> httpx.Response:
        if not rest:
            if method == "GET":
                listed = [
                    {**product, "variations": list(product["variations"])}
                    for product in self.products.values()
                ]
                return self._page("products", listed, params)
            return _respond(*self._create_product(body))
        if rest == ["batch"]:
            return self._batch(body, self._create_product, self._delete_product)

        product_id = int(rest[0])
        if len(rest) == 1 and method == "DELETE":
            return _respond(*self._delete_product(product_id))
        if product_id not in self.products:
            return _respond(404, error_body(404, "woocommerce_rest_product_invalid_id", "Invalid ID."))
        return self._variations(method, product_id, rest[2:], body, params)

    def _create_variation(self, product_id: int, body: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        sku = body.get("sku") or ""
        failed = self._sku_checks(sku)
        if failed:
            return failed
        variation_id = next(self._ids)
        variation = {
            "id": variation_id,
            "sku": sku,
            "attributes": list(body.get("attributes") or []),
            "meta_data": list(body.get("meta_data") or []),
            "regular_price": body.get("regular_price", ""),
            "weight": body.get("weight", ""),
            "dimensions": body.get("dimensions", {"length": "", "width": "", "height": ""}),
        }
        self.variations[product_id][variation_id] = variation
        self.products[product_id]["variations"].append(variation_id)
        self.log.append(("create", "variation", sku))
        return 201, variation

    def _delete_variation(self, product_id: int, variation_id: int) -> tuple[int, dict[str, Any]]:
        variations = self.variations[product_id]
        if variation_id not in variations:
            return 404, error_body(404, "woocommerce_rest_product_variation_invalid_id", "Invalid ID.")
        refused = self._delete_refused(variation_id)
        if refused:
            return refused
        variation = variations.pop(variation_id)
        self.products[product_id]["variations"].remove(variation_id)
        self.log.append(("delete", "variation", variation["sku"]))
        return 200, variation

    def _variations(
        self, method: str, product_id: int, rest: list[str], body: Any, params: dict[str, str]
    ) -> httpx.Response:
        if not rest:
            if method == "GET":
                return self._page("variations", list(self.variations[product_id].values()), params)
            return _respond(*self._create_variation(product_id, body))
        if rest == ["batch"]:
            return self._batch(
                body,
                lambda payload: self._create_variation(product_id, payload),
                lambda variation_id: self._delete_variation(product_id, variation_id),
            )
        return _respond(*self._delete_variation(product_id, int(rest[0])))


# ============================================================================
# Catalog
# ============================================================================


def build_catalog() -> CatalogDefinition:
    """Small catalog covering every item kind and brand storage strategy.

    Categories: clothing > mens > shirts, plus a root ``accessories``.
    """
    shirt_axes = (
        AttributeAxis("Size", ("S", "M")),
        AttributeAxis("Color", ("Red", "Blue")),
    )
    shirt_variants = tuple(
        VariantDefinition(
            sku=f"C-001-{size}-{color.upper()}",
            regular_price="29.99",
            attributes=(("Size", size), ("Color", color)),
            weight="0.25",
            dimensions=Dimensions("30", "25", "3"),
        )
        for size in ("S", "M")
        for color in ("Red", "Blue")
    )
    bag_variants = tuple(
        VariantDefinition(
            sku=f"C-002-{color.upper()}",
            regular_price="49.99",
            attributes=(("Color", color),),
        )
        for color in ("Black", "White")
    )
    return CatalogDefinition(
        brands=("Acme", "Globex"),
        categories=(
            CategoryDefinition("clothing", "Clothing"),
            CategoryDefinition("mens", "Men", "clothing"),
            CategoryDefinition("shirts", "Shirts", "mens"),
            CategoryDefinition("accessories", "Accessories"),
        ),
        items=(
            ItemDefinition.simple(
                key="S-001",
                name="Acme Tee",
                categories=("shirts",),
                regular_price="19.99",
                brand="Acme",
                brand_storage=BrandStorage.TAXONOMY,
                images=(TEE_IMAGE, f"{TEE_IMAGE}?view=back"),
                weight="0.2",
                dimensions=Dimensions("30", "25", "2"),
                tags=("summer", "cotton"),
            ),
            ItemDefinition.simple(
                key="S-002",
                name="Globex Belt",
                categories=("accessories",),
                regular_price="24.99",
                brand="Globex",
                brand_storage=BrandStorage.ATTRIBUTE,
            ),
            ItemDefinition.simple(
                key="S-003",
                name="Globex Cap",
                categories=("accessories",),
                regular_price="14.99",
                brand="Globex",
                brand_storage=BrandStorage.META,
            ),
            ItemDefinition.composite(
                key="C-001",
                name="Acme Shirt",
                categories=("shirts",),
                axes=shirt_axes,
                variants=shirt_variants,
                brand="Acme",
                brand_storage=BrandStorage.TAXONOMY,
            ),
            ItemDefinition.composite(
                key="C-002",
                name="Plain Bag",
                categories=("accessories",),
                axes=(AttributeAxis("Color", ("Black", "White")),),
                variants=bag_variants,
                brand_storage=BrandStorage.NONE,
            ),
            ItemDefinition.bundle(
                key="B-001-GRP",
                name="Starter Bundle",
                categories=("accessories",),
                members=("S-001", "S-002", "S-003"),
                brand="Acme",
                brand_storage=BrandStorage.META,
            ),
        ),
    )


async def collect_events(producer: Producer) -> list[PipelineEvent]:
    """Run a producer through ``stream_events`` and gather every event."""
    return [event async for event in stream_events(producer)]
