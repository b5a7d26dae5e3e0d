"""
Adapters for the external REST API: catalog, order store and address store.

Every call goes through ApiClient, which turns transport failures and non-2xx
responses into NotFound / RemoteAPIError.
"""
import json
import os
from decimal import Decimal
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx

from chalicelib.addresses import Address
from chalicelib.constants.constants import DEFAULT_API_BASE_URL, DEFAULT_API_TIMEOUT_SECONDS
from chalicelib.menu_items import MenuItem
from chalicelib.order_status import to_remote_code
from chalicelib.restaurants import Restaurant, filter_restaurants
from chalicelib.utils.exceptions import NotFound, RemoteAPIError
from chalicelib.utils.logger import CustomJSONEncoder, logger


def _path(value) -> str:
    return quote(str(value), safe='')


class ApiClient:
    def __init__(self, base_url=None, timeout=None, transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or os.environ.get('API_BASE_URL') or DEFAULT_API_BASE_URL).rstrip('/')
        self.timeout = float(timeout or os.environ.get('API_TIMEOUT_SECONDS') or DEFAULT_API_TIMEOUT_SECONDS)
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            headers={'Content-Type': 'application/json'}
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        if not isinstance(error_data, dict):
            error_data = {}
        return error_data.get('error') or error_data.get('message') or f'HTTP {response.status_code}'

    def request(self, method: str, endpoint: str, body=None, params: Optional[Dict] = None,
                headers: Optional[Dict] = None):
        logger.info(f'[API] {method} {self.base_url}{endpoint}')
        content = None
        if body is not None:
            content = json.dumps(body, cls=CustomJSONEncoder)
            logger.debug(f'[API] Request body: {content}')
        if params:
            params = {key: value for key, value in params.items() if value is not None}

        try:
            response = self._client.request(method, endpoint, content=content, params=params, headers=headers)
        except httpx.TimeoutException as error:
            raise RemoteAPIError(f'{method} {endpoint} timed out after {self.timeout}s') from error
        except httpx.HTTPError as error:
            raise RemoteAPIError(f'{method} {endpoint} failed: {error}') from error

        logger.info(f'[API] Response status: {response.status_code}')
        if response.status_code == 404:
            raise NotFound(self._error_message(response))
        if response.is_error:
            message = self._error_message(response)
            logger.error(f'[API] Error response: {message}')
            raise RemoteAPIError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return json.loads(response.text, parse_float=Decimal)
        except ValueError as error:
            raise RemoteAPIError(f'{method} {endpoint} returned invalid JSON') from error

    def get(self, endpoint, params=None):
        return self.request('GET', endpoint, params=params)

    def post(self, endpoint, body, headers=None):
        return self.request('POST', endpoint, body=body, headers=headers)

    def put(self, endpoint, body):
        return self.request('PUT', endpoint, body=body)

    def delete(self, endpoint):
        return self.request('DELETE', endpoint)

    def close(self):
        self._client.close()


class CatalogAPI:
    def __init__(self, api_client: ApiClient):
        self.api = api_client

    def list_restaurants(self, search: Optional[str] = None) -> List[Restaurant]:
        records = self.api.get('/api/v1/restaurants').get('restaurants', [])
        return filter_restaurants([Restaurant.from_api(record) for record in records], search)

    def get_restaurant(self, restaurant_id) -> Restaurant:
        return Restaurant.from_api(self.api.get(f'/api/v1/restaurants/{_path(restaurant_id)}'))

    def get_menu_items(self, restaurant_id) -> List[MenuItem]:
        records = self.api.get(f'/api/v1/restaurants/{_path(restaurant_id)}/menu').get('items', [])
        return [MenuItem.from_api(record, restaurant_id=restaurant_id) for record in records]


class OrderStoreAPI:
    def __init__(self, api_client: ApiClient):
        self.api = api_client

    def create_order(self, customer_id, restaurant_id, items: List[Dict], food_total, delivery_fee, platform_fee,
                     idempotency_key=None) -> Dict:
        headers = {'Idempotency-Key': idempotency_key} if idempotency_key else None
        return self.api.post('/api/v1/orders', {
            'customerPhone': customer_id,
            'restaurantId': restaurant_id,
            'items': items,
            'foodTotal': food_total,
            'deliveryFee': delivery_fee,
            'platformFee': platform_fee,
            'riderId': None
        }, headers=headers)

    def get_order(self, order_id) -> Dict:
        return self.api.get(f'/api/v1/orders/{_path(order_id)}')

    def list_orders(self, customer_id, limit=None) -> List[Dict]:
        return self.api.get('/api/v1/orders', params={'customerPhone': customer_id, 'limit': limit}).get('orders', [])

    def update_order_status(self, order_id, status, rider_id=None) -> Dict:
        """
        Used by restaurant and rider side actors, the customer routes never call it
        """
        body = {'status': to_remote_code(status)}
        if rider_id:
            body['riderId'] = rider_id
        return self.api.put(f'/api/v1/orders/{_path(order_id)}/status', body)


class AddressStoreAPI:
    def __init__(self, api_client: ApiClient):
        self.api = api_client

    def _addresses_path(self, user_id) -> str:
        return f'/api/v1/users/{_path(user_id)}/addresses'

    def list(self, user_id) -> List[Address]:
        records = self.api.get(self._addresses_path(user_id)).get('addresses', [])
        return [Address.from_api(record) for record in records]

    def create(self, user_id, address: Address) -> Address:
        record = self.api.post(self._addresses_path(user_id), address.to_api())
        return Address.from_api(record, type_hint=address.type)

    def update(self, user_id, address_id, fields: Dict) -> Address:
        record = self.api.put(f'{self._addresses_path(user_id)}/{_path(address_id)}', fields)
        return Address.from_api(record, type_hint=fields.get('type'))

    def delete(self, user_id, address_id) -> None:
        self.api.delete(f'{self._addresses_path(user_id)}/{_path(address_id)}')
