import pytest
from pydantic import ValidationError

from cartledger.adapters.session_store import MemorySessionStore
from cartledger.services.cart_ledger import (
    SESSION_KEY,
    CartConfig,
    CartErrorCode,
    CartLedger,
    make_rowid,
)

WIDGET = {"id": "sku1", "qty": 2, "price": 10.0, "name": "Widget"}


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def cart(store):
    return CartLedger(store, CartConfig())


def _codes(cart):
    return [code for code, _ in cart.errors]


def _assert_totals(cart):
    items = cart.contents()
    assert cart.total() == pytest.approx(sum(it.price * it.qty for it in items))
    assert cart.total_items() == int(sum(it.qty for it in items))


def test_new_cart_is_empty(cart):
    assert cart.contents() == []
    assert cart.total() == 0
    assert cart.total_items() == 0


def test_insert_merge_and_delete_scenario(cart, store):
    rowid = cart.insert(dict(WIDGET))
    assert rowid == make_rowid("sku1")
    assert cart.total() == 20
    assert cart.total_items() == 2

    again = cart.insert({"id": "sku1", "qty": 3, "price": 10.0, "name": "Widget"})
    assert again == rowid
    assert len(cart.contents()) == 1
    assert cart.get_item(rowid).qty == 5
    assert cart.total() == 50
    assert SESSION_KEY in store.data

    assert cart.update({"rowid": rowid, "qty": 0}) is True
    assert cart.contents() == []
    assert SESSION_KEY not in store.data


def test_options_differentiate_rows(cart):
    red = cart.insert({**WIDGET, "options": {"color": "red"}})
    blue = cart.insert({**WIDGET, "options": {"color": "blue"}})
    plain = cart.insert(dict(WIDGET))
    assert len({red, blue, plain}) == 3
    assert len(cart.contents()) == 3
    assert cart.has_options(red)
    assert not cart.has_options(plain)
    assert cart.product_options(blue) == {"color": "blue"}
    assert cart.product_options("missing") == {}


def test_options_key_order_does_not_change_identity(cart):
    a = cart.insert({**WIDGET, "options": {"size": "L", "color": "red"}})
    b = cart.insert({**WIDGET, "qty": 1, "options": {"color": "red", "size": "L"}})
    assert a == b
    assert cart.get_item(a).qty == 3


def test_empty_options_share_plain_row(cart):
    a = cart.insert(dict(WIDGET))
    b = cart.insert({**WIDGET, "options": {}})
    assert a == b


@pytest.mark.parametrize(
    "item, code",
    [
        ({"id": "sku1", "qty": 1, "price": 1.0}, CartErrorCode.MISSING_REQUIRED_FIELD),
        ({"id": "sku1", "qty": 0, "price": 1.0, "name": "W"}, CartErrorCode.ZERO_QUANTITY),
        ({"id": "sku1", "qty": -4, "price": 1.0, "name": "W"}, CartErrorCode.ZERO_QUANTITY),
        ({"id": "sku1", "qty": "lots", "price": 1.0, "name": "W"}, CartErrorCode.INVALID_QUANTITY),
        ({"id": "sku 1!", "qty": 1, "price": 1.0, "name": "W"}, CartErrorCode.INVALID_PRODUCT_ID),
        ({"id": "sku1", "qty": 1, "price": 1.0, "name": "<script>"}, CartErrorCode.INVALID_PRODUCT_NAME),
        ({"id": "sku1", "qty": 1, "price": "free", "name": "W"}, CartErrorCode.INVALID_PRICE),
        ({"id": "sku1", "qty": 1, "price": 1.0, "name": "W", "options": ["red"]}, CartErrorCode.INVALID_OPTIONS),
    ],
)
def test_insert_rejections(cart, store, item, code):
    assert cart.insert(item) is False
    assert _codes(cart) == [code]
    assert cart.contents() == []
    assert SESSION_KEY not in store.data


def test_insert_empty_input(cart):
    assert cart.insert([]) is False
    assert _codes(cart) == [CartErrorCode.EMPTY_INPUT]
    assert cart.insert({}) is False


def test_product_id_match_is_case_insensitive(cart):
    assert cart.insert({**WIDGET, "id": "SKU-1.a_b"})


def test_unicode_product_names_allowed(cart):
    assert cart.insert({**WIDGET, "name": "Café crème 50%, 2:1 & more"})


def test_name_safety_can_be_disabled(store):
    cart = CartLedger(store, CartConfig(product_name_safe=False))
    assert cart.insert({**WIDGET, "name": "<b>anything goes</b>"})


def test_custom_id_rules(store):
    cart = CartLedger(store, CartConfig(product_id_rules="0-9"))
    assert cart.insert({**WIDGET, "id": "12345"})
    assert cart.insert(dict(WIDGET)) is False
    assert _codes(cart) == [CartErrorCode.INVALID_PRODUCT_ID]


def test_invalid_rules_rejected_at_construction():
    with pytest.raises(ValidationError):
        CartConfig(product_id_rules="z-a")
    with pytest.raises(ValidationError):
        CartConfig(product_name_rules="")


def test_config_is_immutable():
    config = CartConfig()
    with pytest.raises(ValidationError):
        config.product_name_safe = False


def test_max_order_cap_keeps_prior_quantity(cart):
    rowid = cart.insert({**WIDGET, "qty": 3, "max_ord": 5})
    assert cart.insert({**WIDGET, "qty": 3, "max_ord": 5}) is False
    assert _codes(cart) == [CartErrorCode.MAX_ORDER_EXCEEDED]
    assert cart.get_item(rowid).qty == 3
    assert cart.insert({**WIDGET, "qty": 2, "max_ord": 5}) == rowid
    assert cart.get_item(rowid).qty == 5


def test_non_positive_max_order_is_no_cap(cart):
    rowid = cart.insert({**WIDGET, "qty": 50, "max_ord": 0})
    assert cart.get_item(rowid).qty == 50


def test_batch_insert_tolerates_partial_failure(cart):
    rowid = cart.insert(
        [
            {"id": "a1", "qty": 1, "price": 2.5, "name": "A"},
            {"id": "bad id", "qty": 1, "price": 1.0, "name": "B"},
            {"id": "c1", "qty": 2, "price": 1.0, "name": "C"},
            {"id": "d1", "qty": 0, "price": 1.0, "name": "D"},
            "not an item",
        ]
    )
    assert rowid == make_rowid("c1")
    assert [it.id for it in cart.contents()] == ["a1", "c1"]
    assert _codes(cart) == [CartErrorCode.INVALID_PRODUCT_ID, CartErrorCode.ZERO_QUANTITY]
    assert cart.total() == 4.5
    assert cart.total_items() == 3


def test_batch_insert_all_failing(cart, store):
    assert cart.insert([{"id": "bad id", "qty": 1, "price": 1.0, "name": "B"}]) is False
    assert SESSION_KEY not in store.data


def test_batch_insert_from_mapping_of_items(cart):
    rowid = cart.insert({"first": {"id": "a1", "qty": 1, "price": 1.0, "name": "A"}})
    assert rowid == make_rowid("a1")


def test_reinsert_overwrites_fields_and_keeps_position(cart):
    first = cart.insert({**WIDGET, "note": "old"})
    cart.insert({"id": "b2", "qty": 1, "price": 1.0, "name": "B"})
    cart.insert({**WIDGET, "qty": 1, "price": 12.0, "note": "new"})
    items = cart.contents()
    assert items[0].rowid == first
    assert items[0].qty == 3
    assert items[0].price == 12.0
    assert items[0].extra == {"note": "new"}


def test_price_is_coerced_to_float(cart):
    rowid = cart.insert({**WIDGET, "price": "9.5"})
    assert cart.get_item(rowid).price == 9.5
    assert cart.total() == 19.0


def test_passthrough_fields_preserved(cart):
    rowid = cart.insert({**WIDGET, "image": "w.png", "subtotal": 999, "rowid": "forged"})
    item = cart.get_item(rowid)
    assert item.rowid == rowid
    assert item.extra == {"image": "w.png"}
    assert item.subtotal == 20
    record = item.to_record()
    assert record["image"] == "w.png"
    assert "max_ord" not in record
    assert "options" not in record


def test_update_cannot_change_id_or_name(cart):
    rowid = cart.insert(dict(WIDGET))
    assert cart.update({"rowid": rowid, "id": "other", "name": "Gadget", "qty": 4})
    item = cart.get_item(rowid)
    assert item.id == "sku1"
    assert item.name == "Widget"
    assert item.qty == 4
    assert cart.total() == 40


def test_update_only_touches_existing_fields(cart):
    rowid = cart.insert({**WIDGET, "color": "red", "options": {"size": "M"}})
    assert cart.update({"rowid": rowid, "color": "blue", "unknown": 1, "options": {"size": "XL"}})
    item = cart.get_item(rowid)
    assert item.extra == {"color": "blue"}
    assert item.options == {"size": "M"}
    assert item.max_ord is None
    assert cart.update({"rowid": rowid, "max_ord": 3})
    assert cart.get_item(rowid).max_ord is None


def test_update_price(cart):
    rowid = cart.insert(dict(WIDGET))
    assert cart.update({"rowid": rowid, "price": "7"})
    assert cart.total() == 14.0


def test_update_unknown_row(cart):
    cart.insert(dict(WIDGET))
    assert cart.update({"rowid": "nope", "qty": 3}) is False
    assert _codes(cart) == [CartErrorCode.ROW_NOT_FOUND]
    assert cart.update([]) is False
    assert _codes(cart) == [CartErrorCode.EMPTY_INPUT]


def test_update_invalid_values_leave_row_untouched(cart):
    rowid = cart.insert(dict(WIDGET))
    assert cart.update({"rowid": rowid, "qty": 6, "price": "n/a"}) is False
    assert _codes(cart) == [CartErrorCode.INVALID_PRICE]
    assert cart.get_item(rowid).qty == 2


def test_batch_update_reports_any_success(cart):
    a = cart.insert({"id": "a1", "qty": 1, "price": 1.0, "name": "A"})
    b = cart.insert({"id": "b1", "qty": 1, "price": 1.0, "name": "B"})
    assert cart.update([{"rowid": a, "qty": 5}, {"rowid": "missing", "qty": 1}]) is True
    assert cart.update([{"rowid": "missing", "qty": 1}, {"rowid": b, "qty": 0}]) is True
    assert [it.rowid for it in cart.contents()] == [a]
    _assert_totals(cart)


def test_remove(cart, store):
    a = cart.insert({"id": "a1", "qty": 1, "price": 3.0, "name": "A"})
    b = cart.insert({"id": "b1", "qty": 2, "price": 1.0, "name": "B"})
    assert cart.remove(a) is True
    assert [it.rowid for it in cart.contents()] == [b]
    assert cart.total() == 2.0
    assert cart.remove("missing") is True
    assert cart.remove(b) is True
    assert SESSION_KEY not in store.data


def test_contents_order(cart):
    rowids = [cart.insert({"id": f"p{i}", "qty": 1, "price": 1.0, "name": f"P{i}"}) for i in range(3)]
    assert [it.rowid for it in cart.contents()] == rowids
    assert [it.rowid for it in cart.contents(newest_first=True)] == rowids[::-1]


def test_total_items_is_int(cart):
    cart.insert({**WIDGET, "qty": 1.5})
    assert cart.total_items() == 1
    assert cart.total() == 15.0


def test_state_survives_reload(cart, store):
    rowid = cart.insert({**WIDGET, "options": {"color": "red"}, "image": "w.png"})
    cart.insert({"id": "b1", "qty": 1, "price": 1.0, "name": "B"})

    reloaded = CartLedger(store, CartConfig())
    assert [it.rowid for it in reloaded.contents()] == [it.rowid for it in cart.contents()]
    assert reloaded.total() == cart.total()
    assert reloaded.get_item(rowid).extra == {"image": "w.png"}

    assert reloaded.insert({**WIDGET, "qty": 1, "options": {"color": "red"}}) == rowid
    assert reloaded.get_item(rowid).qty == 3
    _assert_totals(reloaded)


def test_destroy(cart, store):
    cart.insert(dict(WIDGET))
    cart.destroy()
    assert cart.contents() == []
    assert cart.total() == 0
    assert cart.total_items() == 0
    assert SESSION_KEY not in store.data
    # destroying an already empty cart is fine
    cart.destroy()


def test_totals_hold_across_mixed_operations(cart):
    a = cart.insert({"id": "a1", "qty": 2, "price": 1.25, "name": "A"})
    _assert_totals(cart)
    b = cart.insert([{"id": "b1", "qty": 1, "price": 4.0, "name": "B"}, {"id": "a1", "qty": 1, "price": 1.25, "name": "A"}])
    _assert_totals(cart)
    cart.update({"rowid": a, "price": 2.0})
    _assert_totals(cart)
    cart.remove(b)
    _assert_totals(cart)
    assert cart.total() == 6.0
    assert cart.total_items() == 3
