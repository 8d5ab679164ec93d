"""
Product Repository - read-only menu, price and availability lookups.
"""

from typing import Sequence

from tabledesk.models import Product

from .base import TenantRepository


class ProductRepository(TenantRepository[Product]):
    model = Product
    entity_name = "Product"

    def find_by_ids(self, product_ids: list[int], restaurant_id: int) -> dict[int, Product]:
        """Batch lookup keyed by id; products of other restaurants are simply absent."""
        if not product_ids:
            return {}
        query = self._base_query(restaurant_id).where(Product.id.in_(set(product_ids)))
        products: Sequence[Product] = self._db.scalars(query).all()
        return {p.id: p for p in products}

    def find_available(self, restaurant_id: int) -> Sequence[Product]:
        """The menu a guest can order from, by name."""
        query = self._base_query(restaurant_id).where(
            Product.is_available.is_(True)
        ).order_by(Product.name, Product.id)
        return self._db.scalars(query).all()
