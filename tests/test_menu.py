from decimal import Decimal

from posreceipt.menu import MENU_BY_CATEGORY, search_menu


def test_portions_become_separate_entries():
    dal = [item for item in MENU_BY_CATEGORY["M"] if item.product_id == "dal_makhani"]

    assert {item.label: item.price for item in dal} == {
        "Dal Makhani (half)": Decimal("150"),
        "Dal Makhani (full)": Decimal("280"),
    }


def test_search_matches_name_or_code():
    assert [item.name for item in search_menu("B", "lassi")] == ["Sweet Lassi"]
    assert [item.code for item in search_menu("S", "st03")] == ["ST03"]
    assert search_menu("B", "") == MENU_BY_CATEGORY["B"]
    assert search_menu("X", "tea") == []
