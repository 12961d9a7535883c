"""Restaurant menu lookups used to price order items.

The menu file groups products into categories. A product has an ``id``,
an optional ``sku``, and either a base price or a set of variant prices
(for example ``mediana`` and ``familiar``). Both the Spanish keys used by
the order store (``categorias``, ``productos``, ``precio``,
``variantes``) and their English equivalents are accepted.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

from receipt_recon.utils.errors import ValidationError
from receipt_recon.utils.logger import get_logger

from .money import to_decimal

logger = get_logger(__name__)

DEFAULT_VARIANT = "mediana"


@dataclass(frozen=True)
class MenuProduct:
    """A product that order items can reference by id or SKU."""

    id: str
    sku: str | None = None
    price: Decimal | None = None
    variants: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.price is not None:
            object.__setattr__(self, "price", to_decimal(self.price, f"price of {self.id}"))
        object.__setattr__(
            self,
            "variants",
            {
                str(name).lower(): to_decimal(price, f"price of {self.id} ({name})")
                for name, price in self.variants.items()
            },
        )

    def price_for(self, variant: str | None = None) -> Decimal | None:
        """Resolve the unit price of this product for a variant.

        Without a variant the base price is used, then the default
        variant, then the first listed variant. A named variant matches
        exactly, then by containment in either direction (``"grande"``
        matches ``"pizza grande"``).

        Returns:
            Unit price, or ``None`` when nothing matches.
        """
        if not variant:
            if self.price is not None:
                return self.price
            if DEFAULT_VARIANT in self.variants:
                return self.variants[DEFAULT_VARIANT]
            return next(iter(self.variants.values()), None)

        wanted = variant.strip().lower()
        if wanted in self.variants:
            return self.variants[wanted]
        for name, price in self.variants.items():
            if name in wanted or wanted in name:
                return price
        return None


class Menu:
    """Products indexed by id and SKU."""

    def __init__(self, products: Iterable[MenuProduct]) -> None:
        self._products: dict[str, MenuProduct] = {}
        for product in products:
            self._products.setdefault(product.id, product)
            if product.sku:
                self._products.setdefault(product.sku, product)

    def __len__(self) -> int:
        return len({id(p) for p in self._products.values()})

    def find(self, item_id: str) -> MenuProduct | None:
        """Return the product whose id or SKU equals ``item_id``."""
        return self._products.get(str(item_id))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Menu":
        """Build a menu from its JSON representation.

        Raises:
            ValidationError: If the structure or a price is malformed.
        """
        try:
            categories = data.get("categorias", data.get("categories", []))
            products = []
            for category in categories:
                for raw in category.get("productos", category.get("products", [])):
                    sku = raw.get("sku")
                    products.append(
                        MenuProduct(
                            id=str(raw["id"]),
                            sku=str(sku) if sku not in (None, "") else None,
                            price=raw.get("precio", raw.get("price")),
                            variants=raw.get("variantes", raw.get("variants")) or {},
                        )
                    )
        except (AttributeError, KeyError, TypeError) as exc:
            raise ValidationError(f"Invalid menu: {exc}") from exc
        return cls(products)


def load_menu(path: Path) -> Menu:
    """Read a menu JSON file.

    Raises:
        ValidationError: If the file cannot be read or parsed.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"), parse_float=Decimal)
    except (OSError, ValueError) as exc:
        raise ValidationError(f"Invalid menu file {path}: {exc}") from exc
    menu = Menu.from_dict(data)
    logger.info("Loaded menu with %d products from %s", len(menu), path)
    return menu
