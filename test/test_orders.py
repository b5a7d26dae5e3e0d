from datetime import timedelta
from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

from chalicelib.constants import keys_structure
from chalicelib.constants.constants import MISSING_ADDRESS_MESSAGE
from chalicelib.constants.status_codes import http200, http400, http404, http409, http502
from chalicelib.menu_items import MenuItem
from chalicelib.order_status import OrderStatus
from chalicelib.orders import Order, OrderSubmission, OrderTracker
from chalicelib.restaurants import Restaurant
from chalicelib.sessions import SessionRegistry
from chalicelib.utils import exceptions
from chalicelib.utils.cache import MemoryCache
from chalicelib.utils.data import parse_timestamp
from conftest import CUSTOMER_ID, OTHER_CUSTOMER_ID


def fill_cart(session, restaurant, *menu_items):
    with session.lock:
        for menu_item in menu_items:
            session.cart.add_item(menu_item, restaurant)
    return session.cart


def submit(session, order_store, home_address, platform_fee=Decimal('0')):
    cart = session.cart
    return OrderSubmission(session, order_store, platform_fee).place_order(
        list(cart.lines), cart.restaurant, home_address, cart.subtotal, cart.delivery_fee)


@pytest.fixture
def saved_address(address_store, home_address):
    return address_store.create(CUSTOMER_ID, home_address)


def test_place_order_success(session, order_store, spice_garden, paneer_tikka, dal_makhani, saved_address):
    fill_cart(session, spice_garden, paneer_tikka, paneer_tikka, dal_makhani)

    order = submit(session, order_store, saved_address, platform_fee=Decimal('5'))

    assert order.id_ == 'ORD0001'
    assert order.status is OrderStatus.PLACED
    assert order.food_total == Decimal('680.00')
    assert order.delivery_fee == Decimal('30.00')
    assert order.platform_fee == Decimal('5.00')
    assert order.total_amount == Decimal('715.00')
    assert order.restaurant_name == 'Spice Garden'
    assert [(line.menu_item.id_, line.quantity) for line in order.lines] == [('m1', 2), ('m2', 1)]
    assert order.delivery_address.address == '221B Baker Street'
    assert order.estimated_delivery_time - order.order_date == timedelta(minutes=40)

    sent = order_store.create_calls[0]
    assert sent['customer_id'] == CUSTOMER_ID
    assert sent['items'][0] == {'itemId': 'm1', 'name': 'Paneer Tikka', 'quantity': 2, 'price': Decimal('250.00')}
    assert sent['idempotency_key']

    assert session.cart.is_empty()
    assert [cached['id_'] for cached in session.cached_orders()] == ['ORD0001']
    assert session.pending_submission() == {}


def test_order_snapshot_is_isolated_from_catalog_changes(session, order_store, spice_garden, paneer_tikka,
                                                         saved_address):
    fill_cart(session, spice_garden, paneer_tikka)
    order = submit(session, order_store, saved_address)

    paneer_tikka.price = Decimal('999.00')
    paneer_tikka.name = 'Renamed'
    saved_address.address = 'Elsewhere'

    assert order.lines[0].menu_item.price == Decimal('250.00')
    assert order.lines[0].menu_item.name == 'Paneer Tikka'
    assert order.delivery_address.address == '221B Baker Street'


def test_failed_submission_keeps_cart(session, order_store, spice_garden, paneer_tikka, saved_address,
                                      remote_error):
    fill_cart(session, spice_garden, paneer_tikka)
    order_store.error = remote_error

    with pytest.raises(exceptions.OrderSubmissionFailed) as error:
        submit(session, order_store, saved_address)

    assert error.value.__cause__ is remote_error
    assert session.cart.get_item_quantity('m1') == 1
    assert session.cached_orders() == []


def test_retry_after_failure_reuses_idempotency_key(session, order_store, spice_garden, paneer_tikka,
                                                    saved_address, remote_error):
    fill_cart(session, spice_garden, paneer_tikka)
    order_store.error = remote_error
    with pytest.raises(exceptions.OrderSubmissionFailed):
        submit(session, order_store, saved_address)

    order_store.error = None
    order = submit(session, order_store, saved_address)

    first_key, second_key = [call['idempotency_key'] for call in order_store.create_calls]
    assert first_key == second_key
    assert order.id_ == 'ORD0001'


def test_new_submission_after_success_gets_new_key(session, registry, order_store, spice_garden, paneer_tikka,
                                                   saved_address):
    fill_cart(session, spice_garden, paneer_tikka)
    cart = session.cart
    lines, restaurant = list(cart.lines), cart.restaurant

    first = OrderSubmission(session, order_store).place_order(lines, restaurant, saved_address,
                                                              cart.subtotal, cart.delivery_fee)
    other_session = registry.session(CUSTOMER_ID)
    other_session.set_pending_submission({'fingerprint': 'stale', 'key': 'stale-key'})
    second = OrderSubmission(other_session, order_store).place_order(lines, restaurant, saved_address,
                                                                     Decimal('250'), Decimal('30'))
    assert first.id_ != second.id_
    assert order_store.create_calls[1]['idempotency_key'] != 'stale-key'


def test_submission_without_order_id_fails(session, order_store, spice_garden, paneer_tikka, saved_address,
                                           monkeypatch):
    fill_cart(session, spice_garden, paneer_tikka)
    monkeypatch.setattr(order_store, 'create_order', lambda **kwargs: {'status': 'PENDING'})

    with pytest.raises(exceptions.OrderSubmissionFailed):
        submit(session, order_store, saved_address)
    assert not session.cart.is_empty()


@pytest.mark.parametrize('payment_method', ['bitcoin', ''])
def test_unknown_payment_method_is_rejected(session, order_store, spice_garden, paneer_tikka, saved_address,
                                            payment_method):
    fill_cart(session, spice_garden, paneer_tikka)
    cart = session.cart
    with pytest.raises(exceptions.InvalidRequest):
        OrderSubmission(session, order_store).place_order(
            list(cart.lines), cart.restaurant, saved_address, cart.subtotal, cart.delivery_fee,
            payment_method=payment_method)
    assert order_store.create_calls == []


def test_empty_cart_or_missing_address_is_rejected(session, order_store, spice_garden, paneer_tikka,
                                                   saved_address):
    with pytest.raises(exceptions.InvalidRequest):
        OrderSubmission(session, order_store).place_order([], spice_garden, saved_address, 0, 0)

    fill_cart(session, spice_garden, paneer_tikka)
    with pytest.raises(exceptions.InvalidRequest, match=MISSING_ADDRESS_MESSAGE):
        submit(session, order_store, None)
    assert order_store.create_calls == []


def test_lines_from_other_restaurant_are_rejected(session, order_store, spice_garden, pizza_corner, paneer_tikka,
                                                  saved_address):
    fill_cart(session, spice_garden, paneer_tikka)
    with pytest.raises(exceptions.InvalidRequest):
        OrderSubmission(session, order_store).place_order(
            list(session.cart.lines), pizza_corner, saved_address, Decimal('250'), Decimal('40'))


def test_list_orders_newest_first_and_cached(session, order_store, spice_garden, paneer_tikka, dal_makhani,
                                             saved_address):
    fill_cart(session, spice_garden, paneer_tikka)
    submit(session, order_store, saved_address)
    fill_cart(session, spice_garden, dal_makhani)
    submit(session, order_store, saved_address)

    order_store.update_order_status('ORD0001', OrderStatus.DELIVERED)
    orders = OrderTracker(session, order_store).list_orders()

    assert [order.id_ for order in orders] == ['ORD0002', 'ORD0001']
    assert orders[1].status is OrderStatus.DELIVERED
    assert orders[1].restaurant_name == 'Spice Garden'
    assert orders[1].delivery_address.address == '221B Baker Street'


def test_list_orders_falls_back_to_cache(session, order_store, spice_garden, paneer_tikka, saved_address,
                                         remote_error):
    fill_cart(session, spice_garden, paneer_tikka)
    placed = submit(session, order_store, saved_address)
    order_store.read_error = remote_error

    orders = OrderTracker(session, order_store).list_orders()
    assert orders == [placed]


def test_list_orders_only_for_customer(registry, order_store, spice_garden, paneer_tikka, saved_address):
    session = registry.session(OTHER_CUSTOMER_ID)
    fill_cart(session, spice_garden, paneer_tikka)
    submit(session, order_store, saved_address)

    assert OrderTracker(registry.session(CUSTOMER_ID), order_store).list_orders() == []


def test_get_order_refreshes_status(session, order_store, spice_garden, paneer_tikka, saved_address):
    fill_cart(session, spice_garden, paneer_tikka)
    submit(session, order_store, saved_address)
    order_store.orders['ORD0001']['status'] = 'PICKED_UP'

    order = OrderTracker(session, order_store).get_order('ORD0001')

    assert order.status is OrderStatus.OUT_FOR_DELIVERY
    assert order.remote_status == 'PICKED_UP'
    assert order.restaurant_name == 'Spice Garden'
    assert session.cached_orders()[0]['status'] == 'out_for_delivery'


def test_get_order_uses_cache_when_store_unavailable(session, order_store, spice_garden, paneer_tikka,
                                                     saved_address, remote_error):
    fill_cart(session, spice_garden, paneer_tikka)
    placed = submit(session, order_store, saved_address)
    order_store.read_error = remote_error

    tracker = OrderTracker(session, order_store)
    assert tracker.get_order('ORD0001') == placed
    with pytest.raises(exceptions.RemoteAPIError):
        tracker.get_order('ORD9999')


def test_get_unknown_order(session, order_store):
    with pytest.raises(exceptions.NotFound):
        OrderTracker(session, order_store).get_order('ORD9999')


def test_order_from_record_without_snapshot():
    order = Order.from_record({
        'orderId': 42,
        'restaurantId': 'r1',
        'items': [{'itemId': 'm1', 'name': 'Paneer Tikka', 'quantity': 2, 'price': 250}],
        'foodTotal': 500,
        'deliveryFee': 30,
        'platformFee': 5,
        'status': 'something-new',
        'createdAt': 1700000000
    })

    assert order.id_ == '42'
    assert order.status is OrderStatus.PLACED
    assert order.total_amount == Decimal('535.00')
    assert order.lines[0].menu_item.restaurant_id == 'r1'
    assert order.order_date.year == 2023
    assert order.delivery_address is None


def test_order_round_trips_through_cache_dict(session, order_store, spice_garden, paneer_tikka, saved_address):
    fill_cart(session, spice_garden, paneer_tikka)
    order = submit(session, order_store, saved_address)
    assert Order.from_dict(order.to_dict()) == order


def test_reorder_skips_unavailable_items(session, order_store, catalog, spice_garden, paneer_tikka, dal_makhani,
                                         saved_address):
    naan = MenuItem(id_='m4', restaurant_id='r1', name='Butter Naan', price=Decimal('40'))
    fill_cart(session, spice_garden, paneer_tikka, paneer_tikka, dal_makhani, naan, naan, naan)
    submit(session, order_store, saved_address)

    catalog.menus['r1'] = [
        MenuItem(id_='m1', restaurant_id='r1', name='Paneer Tikka', price=Decimal('275')),
        MenuItem(id_='m2', restaurant_id='r1', name='Dal Makhani', price=Decimal('180'), is_available=False),
        naan
    ]
    cart, skipped = OrderTracker(session, order_store, catalog).reorder('ORD0001')

    assert skipped == ['m2']
    assert [(line.menu_item.id_, line.quantity) for line in cart.lines] == [('m1', 2), ('m4', 3)]
    assert cart.subtotal == Decimal('670.00')
    assert session.cart.get_item_quantity('m1') == 2


def test_reorder_replaces_existing_cart(session, order_store, catalog, spice_garden, pizza_corner, paneer_tikka,
                                        margherita, saved_address):
    fill_cart(session, spice_garden, paneer_tikka)
    submit(session, order_store, saved_address)
    fill_cart(session, pizza_corner, margherita)

    OrderTracker(session, order_store, catalog).reorder('ORD0001')

    assert session.cart.restaurant.id_ == 'r1'
    assert session.cart.get_item_quantity('p1') == 0


def test_reorder_unavailable_restaurant_keeps_cart(session, order_store, catalog, spice_garden, pizza_corner,
                                                   paneer_tikka, margherita, saved_address):
    fill_cart(session, spice_garden, paneer_tikka)
    submit(session, order_store, saved_address)
    fill_cart(session, pizza_corner, margherita)
    del catalog.restaurants['r1']

    with pytest.raises(exceptions.ReorderUnavailable):
        OrderTracker(session, order_store, catalog).reorder('ORD0001')
    assert session.cart.get_item_quantity('p1') == 1


def test_place_order_endpoint(make_request, address_store, home_address):
    address_store.create(CUSTOMER_ID, home_address)
    make_request('/carts', method='POST', json_body={'restaurant_id': 'r1', 'menu_item_id': 'm1'})

    response = make_request('/orders', method='POST', json_body={'payment_method': 'cod'})

    assert response.status_code == http200, 'status code not as expected'
    order = response.json_body['order']
    assert order['id'] == 'ORD0001'
    assert order['status'] == 'placed'
    assert order['status_label'] == 'Order Placed'
    assert order['progress'] == 0
    assert order['total_amount'] == 280
    assert order['delivery_address']['coordinates']['lat'] == 51.5237
    assert response.json_body['message'] == 'Your order #ORD0001 has been placed successfully'
    assert make_request('/carts').json_body['cart']['items'] == []


def test_place_order_without_address(make_request):
    make_request('/carts', method='POST', json_body={'restaurant_id': 'r1', 'menu_item_id': 'm1'})
    response = make_request('/orders', method='POST', json_body={})
    assert response.status_code == http400
    assert response.json_body['message'] == MISSING_ADDRESS_MESSAGE


def test_place_order_with_unknown_address(make_request, address_store, home_address):
    address_store.create(CUSTOMER_ID, home_address)
    make_request('/carts', method='POST', json_body={'restaurant_id': 'r1', 'menu_item_id': 'm1'})
    response = make_request('/orders', method='POST', json_body={'address_id': 'nope'})
    assert response.status_code == http404


def test_place_order_endpoint_failure(make_request, order_store, address_store, home_address, remote_error):
    address_store.create(CUSTOMER_ID, home_address)
    make_request('/carts', method='POST', json_body={'restaurant_id': 'r1', 'menu_item_id': 'm1'})
    order_store.error = remote_error

    response = make_request('/orders', method='POST', json_body={})

    assert response.status_code == http502
    assert response.json_body['exception'] == 'OrderSubmissionFailed'
    assert response.json_body['message'] == 'Failed to place order. Please try again.'
    assert make_request('/carts').json_body['cart']['item_count'] == 1


def test_orders_endpoints(make_request, address_store, home_address):
    address_store.create(CUSTOMER_ID, home_address)
    make_request('/carts', method='POST', json_body={'restaurant_id': 'r1', 'menu_item_id': 'm1'})
    make_request('/orders', method='POST', json_body={})

    response = make_request('/orders?limit=10')
    assert response.status_code == http200
    assert [order['id'] for order in response.json_body['orders']] == ['ORD0001']

    assert make_request('/orders/ORD0001').json_body['restaurant_name'] == 'Spice Garden'
    assert make_request('/orders/ORD0404').status_code == http404
    assert make_request('/orders?limit=ten').status_code == http400


def test_reorder_endpoint(make_request, catalog, address_store, home_address):
    address_store.create(CUSTOMER_ID, home_address)
    make_request('/carts', method='POST', json_body={'restaurant_id': 'r1', 'menu_item_id': 'm1'})
    make_request('/orders', method='POST', json_body={})

    response = make_request('/orders/ORD0001/reorder', method='POST')
    assert response.status_code == http200
    assert response.json_body['skipped_item_ids'] == []
    assert response.json_body['cart']['items'][0]['menu_item']['id'] == 'm1'

    del catalog.restaurants['r1']
    assert make_request('/orders/ORD0001/reorder', method='POST').status_code == http409


def test_place_order_scenario(registry, order_store, home_address):
    restaurant_x = Restaurant(id_='x', name='Restaurant X', delivery_fee=30)
    item_a = MenuItem(id_='a', restaurant_id='x', name='Item A', price=100)
    session = registry.session(CUSTOMER_ID)
    fill_cart(session, restaurant_x, item_a, item_a)

    order = submit(session, order_store, home_address.snapshot())

    assert order.total_amount == Decimal('230.00')
    assert order.status is OrderStatus.PLACED
    assert session.cart.is_empty()
    assert registry.session(CUSTOMER_ID).cart.is_empty()


def test_cart_change_drops_pending_idempotency_key(session, order_store, spice_garden, paneer_tikka, dal_makhani,
                                                   saved_address, remote_error):
    fill_cart(session, spice_garden, paneer_tikka)
    order_store.error = remote_error
    with pytest.raises(exceptions.OrderSubmissionFailed):
        submit(session, order_store, saved_address)
    assert session.pending_submission()

    fill_cart(session, spice_garden, dal_makhani)
    assert session.pending_submission() == {}


def test_list_orders_rejects_non_positive_limit(session, order_store):
    tracker = OrderTracker(session, order_store)
    for limit in (0, -1):
        with pytest.raises(exceptions.InvalidRequest):
            tracker.list_orders(limit)


def test_orders_endpoint_rejects_non_positive_limit(make_request, address_store, home_address):
    address_store.create(CUSTOMER_ID, home_address)
    for menu_item_id in ('m1', 'm2', 'm1'):
        make_request('/carts', method='POST', json_body={'restaurant_id': 'r1', 'menu_item_id': menu_item_id})
        make_request('/orders', method='POST', json_body={})

    assert make_request('/orders?limit=0').status_code == http400
    assert make_request('/orders?limit=-1').status_code == http400
    assert len(make_request('/orders?limit=2').json_body['orders']) == 2


def test_cached_orders_are_trimmed_to_list_limit(session, order_store, spice_garden, paneer_tikka, saved_address,
                                                 monkeypatch):
    monkeypatch.setenv('ORDERS_LIST_LIMIT', '2')
    for _ in range(3):
        fill_cart(session, spice_garden, paneer_tikka)
        submit(session, order_store, saved_address)
    assert [order['id_'] for order in session.cached_orders()] == ['ORD0003', 'ORD0002']

    OrderTracker(session, order_store).list_orders(limit=1)
    assert [order['id_'] for order in session.cached_orders()] == ['ORD0003', 'ORD0002']

    OrderTracker(session, order_store).get_order('ORD0001')
    assert len(session.cached_orders()) == 2


class OversizedOrdersCache(MemoryCache):
    def put(self, customer_id, key, value):
        if key == keys_structure.orders_key:
            raise ClientError({'Error': {'Code': 'ValidationException',
                                         'Message': 'Item size has exceeded the maximum allowed size'}}, 'PutItem')
        super().put(customer_id, key, value)


def test_order_cache_write_failure_keeps_placed_order(catalog, order_store, address_store, spice_garden,
                                                      paneer_tikka, home_address):
    registry = SessionRegistry(OversizedOrdersCache(), catalog, order_store, address_store)
    session = registry.session(CUSTOMER_ID)
    fill_cart(session, spice_garden, paneer_tikka)

    order = submit(session, order_store, home_address.snapshot())

    assert order.id_ == 'ORD0001'
    assert session.cart.is_empty()
    assert session.pending_submission() == {}
    assert [order.id_ for order in OrderTracker(session, order_store).list_orders()] == ['ORD0001']
    assert OrderTracker(session, order_store).get_order('ORD0001').restaurant_id == 'r1'


@pytest.mark.parametrize('value', [10 ** 20, -10 ** 15, Decimal('1e400'), float('nan')])
def test_out_of_range_epoch_is_ignored(value):
    assert parse_timestamp(value) is None


def test_order_with_unreadable_created_at_gets_current_date():
    order = Order.from_record({'orderId': 'o9', 'restaurantId': 'r1', 'createdAt': 10 ** 20, 'items': []})
    assert order.order_date is not None
    assert order.estimated_delivery_time == order.order_date + timedelta(minutes=40)
