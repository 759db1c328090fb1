import enum
import hashlib
import json
import math
import re
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cartledger.adapters.session_store import SessionStore
from cartledger.config import settings
from cartledger.utils.log import get_logger

log = get_logger("cart")

SESSION_KEY = "cart_contents"

# fields with a dedicated slot on LineItem; anything else goes to `extra`
KNOWN_FIELDS = {"rowid", "id", "name", "qty", "price", "subtotal", "max_ord", "options"}
# never overwritten by update()
IMMUTABLE_FIELDS = {"rowid", "id", "name", "options"}


class CartErrorCode(str, enum.Enum):
    EMPTY_INPUT = "EMPTY_INPUT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    ZERO_QUANTITY = "ZERO_QUANTITY"
    INVALID_PRODUCT_ID = "INVALID_PRODUCT_ID"
    INVALID_PRODUCT_NAME = "INVALID_PRODUCT_NAME"
    INVALID_PRICE = "INVALID_PRICE"
    INVALID_OPTIONS = "INVALID_OPTIONS"
    MAX_ORDER_EXCEEDED = "MAX_ORDER_EXCEEDED"
    ROW_NOT_FOUND = "ROW_NOT_FOUND"


class CartItemRejected(Exception):
    """Raised for a single item that fails validation. Never leaves the ledger."""

    def __init__(self, code: CartErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@lru_cache(maxsize=32)
def _compile_class(rules: str, flags: int = 0) -> "re.Pattern":
    return re.compile(f"[{rules}]+", flags)


class CartConfig(BaseModel):
    """
    Validation rules for a ledger. Rules are regex character classes without
    the surrounding brackets, e.g. r"\\.a-z0-9_-".
    """

    model_config = ConfigDict(frozen=True)

    product_id_rules: str = r"\.a-z0-9_-"
    product_name_rules: str = r"\w \-\.\:\%\,\&"
    product_name_safe: bool = True

    @field_validator("product_id_rules", "product_name_rules")
    @classmethod
    def _check_rules(cls, v: str) -> str:
        if not v:
            raise ValueError("character class must not be empty")
        try:
            _compile_class(v)
        except re.error as e:
            raise ValueError(f"invalid character class {v!r}: {e}")
        return v

    def product_id_ok(self, product_id: str) -> bool:
        return _compile_class(self.product_id_rules, re.IGNORECASE).fullmatch(product_id) is not None

    def product_name_ok(self, name: str) -> bool:
        if not self.product_name_safe:
            return True
        return (
            _compile_class(self.product_name_rules, re.IGNORECASE | re.UNICODE).fullmatch(name)
            is not None
        )


def cart_config_from_settings() -> CartConfig:
    return CartConfig(
        product_id_rules=settings.CART_PRODUCT_ID_RULES,
        product_name_rules=settings.CART_PRODUCT_NAME_RULES,
        product_name_safe=settings.CART_PRODUCT_NAME_SAFE,
    )


class LineItem(BaseModel):
    rowid: str
    id: str
    name: str
    qty: float
    price: float
    subtotal: float = 0.0
    max_ord: Optional[float] = None
    options: Dict[str, Any] = Field(default_factory=dict)
    extra: Dict[str, Any] = Field(default_factory=dict)

    def to_record(self) -> Dict[str, Any]:
        """Flat view of the item, passthrough fields at the top level."""
        rec = dict(self.extra)
        rec.update(self.model_dump(exclude={"extra"}))
        if self.max_ord is None:
            rec.pop("max_ord")
        if not self.options:
            rec.pop("options")
        return rec


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n):
        return None
    return n


def canonical_options(options: Mapping[str, Any]) -> str:
    return json.dumps(options, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def make_rowid(product_id: str, options: Optional[Mapping[str, Any]] = None) -> str:
    """
    Content hash identifying a product + options combination. Options are
    serialized with sorted keys, so key order never changes the row id.
    """
    raw = product_id + canonical_options(options) if options else product_id
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def _iter_batch(items: Any, marker: str) -> Iterable[Mapping[str, Any]]:
    if isinstance(items, Mapping):
        if marker in items:
            yield items
            return
        items = list(items.values())
    if not isinstance(items, (list, tuple)):
        return
    for item in items:
        if isinstance(item, Mapping) and marker in item:
            yield item


class CartLedger:
    """
    Session-bound cart. State is loaded from the session store once at
    construction; each mutation recomputes totals and writes the whole cart
    back (or deletes the session key when the cart becomes empty).
    """

    def __init__(self, session: SessionStore, config: Optional[CartConfig] = None):
        self.session = session
        self.config = config or cart_config_from_settings()
        self.items: Dict[str, LineItem] = {}
        self._cart_total: float = 0.0
        self._total_items: float = 0
        # rejections from the most recent insert/update call
        self.errors: List[Tuple[CartErrorCode, str]] = []

        state = session.get(SESSION_KEY)
        if state:
            self._load(state)
        log.info("Cart ledger initialized with %d item(s)", len(self.items))

    def _load(self, state: Mapping[str, Any]):
        # persisted by save_cart(), so no validation here
        for data in state.get("items", []):
            item = LineItem.model_construct(**data)
            self.items[item.rowid] = item
        self._cart_total = state.get("cart_total", 0.0)
        self._total_items = state.get("total_items", 0)

    def _reject(self, code: CartErrorCode, message: str):
        raise CartItemRejected(code, message)

    def _record(self, exc: CartItemRejected):
        self.errors.append((exc.code, exc.message))
        if exc.code == CartErrorCode.ZERO_QUANTITY:
            log.debug("Skipped item: %s", exc.message)
        else:
            log.error("%s: %s", exc.code.value, exc.message)

    # --- insert ---

    def insert(self, items: Union[Mapping[str, Any], List[Mapping[str, Any]]]) -> Union[str, bool]:
        """
        Add one item (a mapping with an "id" key) or a batch of items.

        Returns the rowid of the last item that was inserted, or False when
        nothing was inserted. Items failing validation are skipped and
        reported in self.errors.
        """
        self.errors = []
        if not items:
            self._record(CartItemRejected(CartErrorCode.EMPTY_INPUT, "insert() requires at least one item"))
            return False

        rowid = None
        for item in _iter_batch(items, "id"):
            try:
                rowid = self._insert(item)
            except CartItemRejected as e:
                self._record(e)

        if rowid is None:
            return False
        self.save_cart()
        return rowid

    def _insert(self, item: Mapping[str, Any]) -> str:
        missing = [f for f in ("id", "qty", "price", "name") if item.get(f) is None]
        if missing:
            self._reject(
                CartErrorCode.MISSING_REQUIRED_FIELD,
                f"Product must include id, qty, price and name (missing: {', '.join(missing)})",
            )

        qty = _to_number(item["qty"])
        if qty is None:
            self._reject(CartErrorCode.INVALID_QUANTITY, f"Invalid quantity {item['qty']!r}")
        qty = max(qty, 0.0)
        if qty == 0:
            self._reject(CartErrorCode.ZERO_QUANTITY, f"Zero quantity for product {item['id']!r}")

        product_id = str(item["id"])
        if not self.config.product_id_ok(product_id):
            self._reject(CartErrorCode.INVALID_PRODUCT_ID, f"Invalid product id {product_id!r}")

        name = str(item["name"])
        if not self.config.product_name_ok(name):
            self._reject(CartErrorCode.INVALID_PRODUCT_NAME, f"Invalid product name {name!r}")

        price = _to_number(item["price"])
        if price is None:
            self._reject(CartErrorCode.INVALID_PRICE, f"Invalid price {item['price']!r}")

        options = item.get("options") or {}
        if not isinstance(options, Mapping):
            self._reject(CartErrorCode.INVALID_OPTIONS, "Options must be a mapping")

        rowid = make_rowid(product_id, options)

        existing = self.items.get(rowid)
        qty += existing.qty if existing else 0

        max_ord = _to_number(item.get("max_ord"))
        if max_ord is not None and max_ord > 0 and qty > max_ord:
            self._reject(
                CartErrorCode.MAX_ORDER_EXCEEDED,
                f"Maximum order limit exceeded for {product_id!r}: {qty:g} > {max_ord:g}",
            )

        self.items[rowid] = LineItem(
            rowid=rowid,
            id=product_id,
            name=name,
            qty=qty,
            price=price,
            max_ord=max_ord,
            options=dict(options),
            extra={k: v for k, v in item.items() if k not in KNOWN_FIELDS},
        )
        return rowid

    # --- update ---

    def update(self, items: Union[Mapping[str, Any], List[Mapping[str, Any]]]) -> bool:
        """
        Apply partial changes to existing rows, keyed by "rowid".
        A qty of 0 removes the row. id and name are never changed.
        Returns True if at least one row was updated.
        """
        self.errors = []
        if not items:
            self._record(CartItemRejected(CartErrorCode.EMPTY_INPUT, "update() requires at least one item"))
            return False

        updated = False
        for item in _iter_batch(items, "rowid"):
            try:
                self._update(item)
                updated = True
            except CartItemRejected as e:
                self._record(e)

        if updated:
            self.save_cart()
        return updated

    def _update(self, changes: Mapping[str, Any]):
        rowid = changes.get("rowid")
        item = self.items.get(rowid) if isinstance(rowid, str) else None
        if item is None:
            self._reject(CartErrorCode.ROW_NOT_FOUND, f"No cart row {rowid!r}")

        values = {}
        if "qty" in changes:
            qty = _to_number(changes["qty"])
            if qty is None:
                self._reject(CartErrorCode.INVALID_QUANTITY, f"Invalid quantity {changes['qty']!r}")
            if qty <= 0:
                del self.items[rowid]
                return
            values["qty"] = qty
        if "price" in changes:
            price = _to_number(changes["price"])
            if price is None:
                self._reject(CartErrorCode.INVALID_PRICE, f"Invalid price {changes['price']!r}")
            values["price"] = price
        if "max_ord" in changes and item.max_ord is not None:
            max_ord = _to_number(changes["max_ord"])
            if max_ord is not None:
                values["max_ord"] = max_ord

        for key, value in values.items():
            setattr(item, key, value)
        for key, value in changes.items():
            if key in item.extra and key not in IMMUTABLE_FIELDS:
                item.extra[key] = value

    # --- remove / destroy ---

    def remove(self, rowid: str) -> bool:
        self.items.pop(rowid, None)
        self.save_cart()
        return True

    def destroy(self):
        self.items = {}
        self._cart_total = 0.0
        self._total_items = 0
        self.session.remove(SESSION_KEY)

    # --- persistence ---

    def to_state(self) -> Dict[str, Any]:
        return {
            "items": [item.model_dump() for item in self.items.values()],
            "cart_total": self._cart_total,
            "total_items": self._total_items,
        }

    def save_cart(self) -> bool:
        """
        Recompute subtotals and totals from scratch, then persist.
        Returns False (and deletes the session key) when the cart is empty.
        """
        self._cart_total = 0.0
        self._total_items = 0
        for item in self.items.values():
            item.subtotal = item.price * item.qty
            self._cart_total += item.subtotal
            self._total_items += item.qty

        if not self.items:
            self.session.remove(SESSION_KEY)
            return False

        self.session.set(SESSION_KEY, self.to_state())
        return True

    # --- queries ---

    def total(self) -> float:
        return float(self._cart_total)

    def total_items(self) -> int:
        return int(self._total_items)

    def contents(self, newest_first: bool = False) -> List[LineItem]:
        items = list(self.items.values())
        if newest_first:
            items.reverse()
        return items

    def get_item(self, rowid: str) -> Optional[LineItem]:
        return self.items.get(rowid)

    def has_options(self, rowid: str) -> bool:
        item = self.items.get(rowid)
        return bool(item and item.options)

    def product_options(self, rowid: str) -> Dict[str, Any]:
        item = self.items.get(rowid)
        return dict(item.options) if item else {}
