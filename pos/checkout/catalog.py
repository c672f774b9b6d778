"""
Catalog snapshot.

The snapshot is the product set the cart checks stock against. It is
reloaded explicitly (after every commit and on demand); between reloads
it may be stale, which the atomic commit tolerates by re-checking live
stock.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from pos.checkout.backends import Backend, BackendError
from pos.checkout.records import ProductRecord
from pos.checkout.result import Result, ErrorKind
from pos.exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSnapshot:
    """Read-only set of sellable products as of one catalog read."""
    products: Mapping[str, ProductRecord]
    loaded_at: datetime

    @classmethod
    def from_products(cls, products: Iterable[ProductRecord], loaded_at: Optional[datetime] = None) -> 'CatalogSnapshot':
        by_id = {product.id: product for product in products}
        return cls(
            products=MappingProxyType(by_id),
            loaded_at=loaded_at or datetime.now(timezone.utc)
        )

    def get(self, product_id: str) -> Optional[ProductRecord]:
        return self.products.get(str(product_id))

    def stock_of(self, product_id: str) -> int:
        """Stock known for the product; a product missing from the snapshot has none."""
        product = self.get(product_id)
        return product.stock if product else 0

    def __len__(self) -> int:
        return len(self.products)

    def __iter__(self) -> Iterator[ProductRecord]:
        return iter(sorted(self.products.values(), key=lambda p: p.name.lower()))

    def search(self, query: str = '', category: str = 'all') -> List[ProductRecord]:
        """Filter by category, then by a case-insensitive match on name, category or brand."""
        products = list(self)
        if category and category != 'all':
            products = [p for p in products if p.category == category]
        needle = (query or '').strip().lower()
        if needle:
            products = [
                p for p in products
                if needle in p.name.lower()
                or needle in p.category.lower()
                or needle in p.brand.lower()
            ]
        return products

    def category_counts(self) -> List[Tuple[str, int]]:
        """('all', n) followed by each category in alphabetical order with its product count."""
        counts: Dict[str, int] = {}
        for product in self.products.values():
            if product.category:
                counts[product.category] = counts.get(product.category, 0) + 1
        return [('all', len(self.products))] + sorted(counts.items())


def load_catalog(backend: Backend, active_only: bool = True) -> Result:
    """
    Read the product catalog into a fresh snapshot.

    Returns:
        Result with a CatalogSnapshot, or CATALOG_UNAVAILABLE when the
        backend cannot be read or answers with malformed products.
    """
    try:
        raw_products = backend.list_products(active_only=active_only)
        products = [ProductRecord.from_dict(raw) for raw in raw_products]
    except BackendError as e:
        logger.error(f"[CATALOG] Catalog read failed: {e}")
        return Result.failure(ErrorKind.CATALOG_UNAVAILABLE, 'Product catalog is unavailable, try again')
    except ValidationError as e:
        logger.error(f"[CATALOG] Malformed product in catalog: {e.message}")
        return Result.failure(ErrorKind.CATALOG_UNAVAILABLE, f'Product catalog is malformed: {e.message}')

    snapshot = CatalogSnapshot.from_products(products)
    logger.info(f"[CATALOG] Loaded {len(snapshot)} products")
    return Result.success(snapshot)


def lookup_product(snapshot: Optional[CatalogSnapshot], product_id) -> Result:
    """Find a product in the snapshot (NOT_FOUND when missing)."""
    if snapshot is None:
        return Result.failure(ErrorKind.CATALOG_UNAVAILABLE, 'Product catalog has not been loaded')
    product = snapshot.get(product_id)
    if product is None:
        return Result.failure(ErrorKind.NOT_FOUND, f'Product {product_id} not found')
    return Result.success(product)
