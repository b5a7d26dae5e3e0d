import json
from decimal import Decimal
from pathlib import Path
from typing import Dict, List

import pytest
from chalice.test import Client

import app as app_module
from chalicelib.addresses import Address
from chalicelib.menu_items import MenuItem
from chalicelib.order_status import to_remote_code
from chalicelib.restaurants import Restaurant, filter_restaurants
from chalicelib.sessions import SessionRegistry
from chalicelib.utils.cache import MemoryCache
from chalicelib.utils.exceptions import NotFound, RemoteAPIError

PROJECT_DIR = str(Path(__file__).resolve().parent.parent)

CUSTOMER_ID = '+15550001111'
OTHER_CUSTOMER_ID = '+15550002222'


class FakeCatalog:
    def __init__(self, restaurants: List[Restaurant], menus: Dict[str, List[MenuItem]]):
        self.restaurants = {restaurant.id_: restaurant for restaurant in restaurants}
        self.menus = menus
        self.error = None

    def _check(self):
        if self.error is not None:
            raise self.error

    def list_restaurants(self, search=None):
        self._check()
        return filter_restaurants(list(self.restaurants.values()), search)

    def get_restaurant(self, restaurant_id):
        self._check()
        if restaurant_id not in self.restaurants:
            raise NotFound(f'Restaurant {restaurant_id} not found')
        return self.restaurants[restaurant_id]

    def get_menu_items(self, restaurant_id):
        self._check()
        if restaurant_id not in self.menus:
            raise NotFound(f'Restaurant {restaurant_id} not found')
        return self.menus[restaurant_id]


class FakeOrderStore:
    """
    In-memory order store, deduplicates creations by idempotency key
    """

    def __init__(self):
        self.orders: Dict[str, Dict] = {}
        self.create_calls: List[Dict] = []
        self.by_idempotency_key: Dict[str, str] = {}
        self.error = None
        self.read_error = None

    def create_order(self, customer_id, restaurant_id, items, food_total, delivery_fee, platform_fee,
                     idempotency_key=None):
        self.create_calls.append({
            'customer_id': customer_id,
            'restaurant_id': restaurant_id,
            'items': items,
            'food_total': food_total,
            'delivery_fee': delivery_fee,
            'platform_fee': platform_fee,
            'idempotency_key': idempotency_key
        })
        if self.error is not None:
            raise self.error
        if idempotency_key in self.by_idempotency_key:
            return dict(self.orders[self.by_idempotency_key[idempotency_key]])

        order_id = f'ORD{len(self.orders) + 1:04d}'
        self.orders[order_id] = {
            'orderId': order_id,
            'customerPhone': customer_id,
            'restaurantId': restaurant_id,
            'items': [dict(item) for item in items],
            'foodTotal': food_total,
            'deliveryFee': delivery_fee,
            'platformFee': platform_fee,
            'grandTotal': food_total + delivery_fee + platform_fee,
            'status': 'PENDING',
            'createdAt': 1700000000000 + len(self.orders) * 60000
        }
        if idempotency_key:
            self.by_idempotency_key[idempotency_key] = order_id
        return dict(self.orders[order_id])

    def get_order(self, order_id):
        if self.read_error is not None:
            raise self.read_error
        if order_id not in self.orders:
            raise NotFound(f'Order {order_id} not found')
        return dict(self.orders[order_id])

    def list_orders(self, customer_id, limit=None):
        if self.read_error is not None:
            raise self.read_error
        orders = [dict(order) for order in self.orders.values() if order['customerPhone'] == customer_id]
        return orders[:limit] if limit else orders

    def update_order_status(self, order_id, status, rider_id=None):
        self.orders[order_id]['status'] = to_remote_code(status)
        return dict(self.orders[order_id])


class FakeAddressStore:
    def __init__(self):
        self.records: Dict[str, List[Dict]] = {}
        self.error = None
        self._counter = 0

    def list(self, user_id):
        if self.error is not None:
            raise self.error
        return [Address.from_api(record) for record in self.records.get(user_id, [])]

    def create(self, user_id, address: Address):
        self._counter += 1
        record = {**address.to_api(), 'addressId': f'addr{self._counter}'}
        self.records.setdefault(user_id, []).append(record)
        return Address.from_api(record)

    def _find(self, user_id, address_id):
        record = next((record for record in self.records.get(user_id, []) if record['addressId'] == address_id), None)
        if record is None:
            raise NotFound(f'Address {address_id} not found')
        return record

    def update(self, user_id, address_id, fields):
        record = self._find(user_id, address_id)
        record.update(fields)
        return Address.from_api(record)

    def delete(self, user_id, address_id):
        record = self._find(user_id, address_id)
        self.records[user_id].remove(record)


@pytest.fixture
def spice_garden() -> Restaurant:
    return Restaurant(id_='r1', name='Spice Garden', cuisine=['North Indian', 'Mughlai'], rating=Decimal('4.5'),
                      delivery_fee=Decimal('30'), min_order=Decimal('150'), delivery_time='25-35 mins')


@pytest.fixture
def pizza_corner() -> Restaurant:
    return Restaurant(id_='r2', name='Pizza Corner', cuisine=['Italian'], rating=Decimal('4.1'),
                      delivery_fee=Decimal('40'), min_order=Decimal('200'))


@pytest.fixture
def paneer_tikka() -> MenuItem:
    return MenuItem(id_='m1', restaurant_id='r1', name='Paneer Tikka', price=Decimal('250'), category='Starters',
                    is_veg=True)


@pytest.fixture
def dal_makhani() -> MenuItem:
    return MenuItem(id_='m2', restaurant_id='r1', name='Dal Makhani', price=Decimal('180'), category='Mains',
                    is_veg=True)


@pytest.fixture
def gulab_jamun() -> MenuItem:
    return MenuItem(id_='m3', restaurant_id='r1', name='Gulab Jamun', price=Decimal('60'), category='Desserts',
                    is_veg=True, is_available=False)


@pytest.fixture
def margherita() -> MenuItem:
    return MenuItem(id_='p1', restaurant_id='r2', name='Margherita', price=Decimal('299'), category='Pizza',
                    is_veg=True)


@pytest.fixture
def catalog(spice_garden, pizza_corner, paneer_tikka, dal_makhani, gulab_jamun, margherita) -> FakeCatalog:
    return FakeCatalog(
        restaurants=[spice_garden, pizza_corner],
        menus={'r1': [paneer_tikka, dal_makhani, gulab_jamun], 'r2': [margherita]}
    )


@pytest.fixture
def order_store() -> FakeOrderStore:
    return FakeOrderStore()


@pytest.fixture
def address_store() -> FakeAddressStore:
    return FakeAddressStore()


@pytest.fixture
def home_address() -> Address:
    return Address(type='Home', address='221B Baker Street', landmark='Near the park', lat=Decimal('51.5237'),
                   lng=Decimal('-0.1585'))


@pytest.fixture
def registry(catalog, order_store, address_store) -> SessionRegistry:
    return SessionRegistry(MemoryCache(), catalog, order_store, address_store)


@pytest.fixture
def session(registry):
    return registry.session(CUSTOMER_ID)


@pytest.fixture
def client(registry, monkeypatch):
    monkeypatch.setattr(app_module, 'services', registry)
    with Client(app_module.app, stage_name='test', project_dir=PROJECT_DIR) as chalice_client:
        yield chalice_client


@pytest.fixture
def make_request(client):
    def _make_request(endpoint: str = '/', method: str = 'GET', json_body=None, token=CUSTOMER_ID):
        headers = {'Content-Type': 'application/json'}
        if token:
            headers['Authorization'] = token
        return client.http.request(
            method=method,
            path=endpoint,
            headers=headers,
            body=json.dumps(json_body) if json_body is not None else b''
        )

    return _make_request


@pytest.fixture
def remote_error() -> RemoteAPIError:
    return RemoteAPIError('Service Unavailable', status_code=503)
