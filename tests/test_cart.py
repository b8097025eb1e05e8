import pytest

from cart import CartManager, can_increment, get_total
from errors import AuthenticationRequired, OutOfStockError, RemoteCallError, ValidationError
from schemas import CartLine, Product


def test_adding_same_product_twice_overwrites_quantity(gateway, make_product):
    product = make_product()
    manager = CartManager(gateway)

    manager.add_to_cart("user-1", product, 2)
    manager.add_to_cart("user-1", product, 3)

    lines = manager.get_cart_lines("user-1")
    assert len(lines) == 1
    assert lines[0].quantity == 3
    assert lines[0].product.id == product.id


def test_carts_are_per_user(gateway, make_product):
    product = make_product()
    manager = CartManager(gateway)
    manager.add_to_cart("user-1", product, 1)
    manager.add_to_cart("user-2", product, 4)

    assert manager.get_cart_lines("user-1")[0].quantity == 1
    assert manager.get_cart_lines("user-2")[0].quantity == 4


def test_add_requires_login(gateway, make_product):
    with pytest.raises(AuthenticationRequired):
        CartManager(gateway).add_to_cart(None, make_product(), 1)


def test_add_rejects_out_of_stock(gateway, make_product):
    manager = CartManager(gateway)
    with pytest.raises(OutOfStockError):
        manager.add_to_cart("user-1", make_product(stock_quantity=0), 1)
    with pytest.raises(OutOfStockError):
        manager.add_to_cart("user-1", make_product(is_available=False), 1)
    assert manager.count("user-1") == 0


def test_add_refreshes_cart_count(gateway, make_product):
    seen = []
    manager = CartManager(gateway, on_count_change=lambda user, n: seen.append((user, n)))
    manager.add_to_cart("user-1", make_product(), 1)
    manager.add_to_cart("user-1", make_product(title="Geometry Box", category="stationary"), 1)
    assert seen == [("user-1", 1), ("user-1", 2)]


def test_update_quantity_never_goes_below_one(gateway, make_product, monkeypatch):
    manager = CartManager(gateway)
    line = manager.add_to_cart("user-1", make_product(), 2)

    def no_remote_call(*args, **kwargs):
        raise AssertionError("gateway.update must not be called")

    monkeypatch.setattr(gateway, "update", no_remote_call)
    for bad in (0, -1):
        with pytest.raises(ValidationError):
            manager.update_quantity(line.id, bad)
    monkeypatch.undo()

    assert manager.get_cart_lines("user-1")[0].quantity == 2


def test_update_quantity_overwrites(gateway, make_product):
    manager = CartManager(gateway)
    line = manager.add_to_cart("user-1", make_product(), 2)
    updated = manager.update_quantity(line.id, 5)
    assert updated.quantity == 5


def test_remove_needs_confirmation(gateway, make_product):
    manager = CartManager(gateway)
    line = manager.add_to_cart("user-1", make_product(), 1)

    with pytest.raises(ValidationError):
        manager.remove_from_cart(line.id)
    assert manager.count("user-1") == 1

    manager.remove_from_cart(line.id, confirmed=True)
    assert manager.count("user-1") == 0


def test_loading_flag_resets_after_failure(gateway, make_product, monkeypatch):
    manager = CartManager(gateway)

    def broken(*args, **kwargs):
        raise RemoteCallError("network down")

    monkeypatch.setattr(gateway, "upsert", broken)
    with pytest.raises(RemoteCallError):
        manager.add_to_cart("user-1", make_product(), 1)
    assert manager.loading is False


def _line(price, quantity, stock=10):
    product = Product(title="x", category="book", price=price, stock_quantity=stock)
    return CartLine(user_id="u", product_id="p", quantity=quantity, product=product)


def test_get_total_truncates_to_two_places():
    assert get_total([_line(150, 2), _line(300, 1)]) == 600
    assert get_total([_line(0.1, 3)]) == 0.3
    assert get_total([_line(10.005, 1)]) == 10.0
    assert get_total([]) == 0


def test_can_increment_uses_cached_stock():
    assert can_increment(_line(100, 2, stock=3)) is True
    assert can_increment(_line(100, 3, stock=3)) is False
