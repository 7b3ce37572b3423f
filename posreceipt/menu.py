"""Static menu used by the operator console."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class MenuItem:
    """A searchable menu entry for one product portion."""

    product_id: str
    name: str
    code: str
    category: str
    price: Decimal
    tax_rate: Decimal = Decimal("5")
    portion: str = "single"

    @property
    def label(self) -> str:
        if self.portion != "single":
            return f"{self.name} ({self.portion})"
        return self.name


CATEGORY_NAMES: dict[str, str] = {
    "S": "Starters",
    "M": "Mains",
    "B": "Beverages",
}

# product id -> (code, name, category, tax rate, {portion: price})
_PRODUCTS: dict[str, tuple[str, str, str, str, dict[str, str]]] = {
    "paneer_tikka": ("ST01", "Paneer Tikka", "S", "5", {"half": "140", "full": "260"}),
    "veg_manchurian": ("ST02", "Veg Manchurian", "S", "5", {"half": "110", "full": "200"}),
    "hara_bhara_kabab": ("ST03", "Hara Bhara Kabab", "S", "5", {"single": "180"}),
    "crispy_corn": ("ST04", "Crispy Corn", "S", "5", {"single": "170"}),
    "dal_makhani": ("MN01", "Dal Makhani", "M", "5", {"half": "150", "full": "280"}),
    "paneer_butter_masala": ("MN02", "Paneer Butter Masala", "M", "5", {"half": "170", "full": "310"}),
    "veg_biryani": ("MN03", "Veg Biryani", "M", "5", {"single": "220"}),
    "jeera_rice": ("MN04", "Jeera Rice", "M", "5", {"single": "140"}),
    "butter_naan": ("MN05", "Butter Naan", "M", "5", {"single": "45"}),
    "tandoori_roti": ("MN06", "Tandoori Roti", "M", "5", {"single": "25"}),
    "masala_chaas": ("BV01", "Masala Chaas", "B", "5", {"single": "60"}),
    "sweet_lassi": ("BV02", "Sweet Lassi", "B", "5", {"single": "80"}),
    "fresh_lime_soda": ("BV03", "Fresh Lime Soda", "B", "12", {"single": "90"}),
    "mineral_water": ("BV04", "Mineral Water", "B", "18", {"single": "20"}),
}


def _build_menu() -> dict[str, list[MenuItem]]:
    menu: dict[str, list[MenuItem]] = {category: [] for category in CATEGORY_NAMES}
    for product_id, (code, name, category, tax_rate, portions) in _PRODUCTS.items():
        for portion, price in portions.items():
            menu[category].append(
                MenuItem(
                    product_id=product_id,
                    name=name,
                    code=code,
                    category=category,
                    price=Decimal(price),
                    tax_rate=Decimal(tax_rate),
                    portion=portion,
                )
            )
    return menu


MENU_BY_CATEGORY: dict[str, list[MenuItem]] = _build_menu()


def search_menu(category: str, query: str) -> list[MenuItem]:
    """Items of ``category`` whose name or code contains ``query``."""
    source = MENU_BY_CATEGORY.get(category, [])
    if not query:
        return source
    q = query.lower()
    return [item for item in source if q in item.name.lower() or q in item.code.lower()]
