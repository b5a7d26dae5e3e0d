from decimal import Decimal
from typing import Dict, List, Optional

from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants.constants import ADDRESS_TYPES
from chalicelib.constants.status_codes import http200
from chalicelib.utils import app as utils_app, auth as utils_auth, data as utils_data, exceptions
from chalicelib.utils.logger import logger


def _is_number(x):
    return isinstance(x, (int, float, Decimal)) and not isinstance(x, bool)


class Address(EntityBase):
    required_fields_validation = {
        'type': lambda x: x in ADDRESS_TYPES,
        'address': lambda x: isinstance(x, str) and bool(x.strip()),
        'lat': lambda x: _is_number(x) and -90 <= x <= 90,
        'lng': lambda x: _is_number(x) and -180 <= x <= 180
    }

    optional_fields_validation = {
        'nickname': lambda x: isinstance(x, str),
        'landmark': lambda x: isinstance(x, str)
    }

    def __init__(self, id_=None, **kwargs):
        EntityBase.__init__(self, id_)

        coordinates = kwargs.get('coordinates') or {}
        if not isinstance(coordinates, dict):
            self.raise_validation_error('coordinates')
        self.type: str = kwargs.get('type') or 'Home'
        self.nickname: Optional[str] = kwargs.get('nickname') or None
        self.address: str = kwargs.get('address')
        self.landmark: Optional[str] = kwargs.get('landmark') or None
        self.lat = kwargs.get('lat', coordinates.get('lat'))
        self.lng = kwargs.get('lng', coordinates.get('lng'))
        self.record_type = 'address'

    @classmethod
    def from_api(cls, record: Dict, type_hint=None):
        label = record.get('label')
        address_type = record.get('type') or type_hint
        if address_type not in ADDRESS_TYPES:
            address_type = label if label in ADDRESS_TYPES else 'Other'
        return cls(
            id_=str(record.get('addressId') or record.get('id')),
            type=address_type,
            nickname=label if label and label != address_type else None,
            address=record.get('address'),
            landmark=record.get('landmark'),
            lat=record.get('lat'),
            lng=record.get('lng')
        )

    def to_api(self) -> Dict:
        return utils_data.cleanup_dict({
            'label': self.nickname or self.type,
            'type': self.type,
            'address': self.address,
            'landmark': self.landmark,
            'lat': self.lat,
            'lng': self.lng
        }, [None])

    def label(self) -> str:
        return self.nickname or self.type

    def _to_dict(self):
        return {
            'id_': self.id_,
            'type': self.type,
            'nickname': self.nickname,
            'address': self.address,
            'landmark': self.landmark,
            'lat': self.lat,
            'lng': self.lng
        }

    def _to_ui(self):
        item = super()._to_ui()
        item['coordinates'] = {'lat': item.pop('lat'), 'lng': item.pop('lng')}
        return item


def update_fields_to_api(fields: Dict) -> Dict:
    """
    Partial update: validates only provided fields and maps them to the remote names
    """
    coordinates = fields.get('coordinates') or {}
    if not isinstance(coordinates, dict):
        Address.raise_validation_error('coordinates')
    update = {
        'type': fields.get('type'),
        'nickname': fields.get('nickname'),
        'address': fields.get('address'),
        'landmark': fields.get('landmark'),
        'lat': fields.get('lat', coordinates.get('lat')),
        'lng': fields.get('lng', coordinates.get('lng'))
    }
    update = utils_data.cleanup_dict(update, [None])
    validators = {**Address.required_fields_validation, **Address.optional_fields_validation}
    for key, value in update.items():
        if validators[key](value) is False:
            Address.raise_validation_error(key)
    if 'nickname' in update:
        update['label'] = update.pop('nickname')
    elif 'type' in update:
        update['label'] = update['type']
    return update


class AddressBook:
    """
    Saved delivery addresses of the session's customer and the selected-address pointer
    """

    def __init__(self, session, address_store):
        self.session = session
        self.address_store = address_store

    def list_addresses(self) -> List[Address]:
        try:
            return self.address_store.list(self.session.customer_id)
        except exceptions.RemoteAPIError as error:
            logger.warning(f'AddressBook.list_addresses ::: address store unavailable, {error=}')
            return []

    def selected_address(self, addresses: Optional[List[Address]] = None) -> Optional[Address]:
        if addresses is None:
            addresses = self.list_addresses()
        selected_id = self.session.selected_address_id
        selected = next((address for address in addresses if address.id_ == selected_id), None)
        if selected is None and addresses:
            selected = addresses[0]
        return selected

    def get_address(self, address_id) -> Address:
        address = next((address for address in self.list_addresses() if address.id_ == address_id), None)
        if address is None:
            raise exceptions.NotFound(f'Address {address_id} not found')
        return address

    def create_address(self, fields: Dict) -> Address:
        address = Address(**{key: value for key, value in fields.items() if key not in ('id', 'id_')}).validate()
        existing = self.list_addresses()
        with self.session.lock:
            created: Address = self.address_store.create(self.session.customer_id, address)
            if not existing:
                self.select_address(created.id_)
        logger.info(f'AddressBook.create_address ::: address {created.id_} created')
        return created

    def update_address(self, address_id, fields: Dict) -> Address:
        update = update_fields_to_api(fields)
        if not update:
            raise exceptions.InvalidRequest('Nothing to update')
        updated: Address = self.address_store.update(self.session.customer_id, address_id, update)
        logger.info(f'AddressBook.update_address ::: address {address_id} updated')
        return updated

    def delete_address(self, address_id) -> Optional[str]:
        with self.session.lock:
            self.address_store.delete(self.session.customer_id, address_id)
            if self.session.selected_address_id == address_id:
                remaining = [address for address in self.list_addresses() if address.id_ != address_id]
                self.select_address(remaining[0].id_ if remaining else None)
        logger.info(f'AddressBook.delete_address ::: address {address_id} deleted')
        return self.session.selected_address_id

    def select_address(self, address_id: Optional[str]) -> Optional[str]:
        if address_id is not None:
            try:
                known_ids = [address.id_ for address in self.address_store.list(self.session.customer_id)]
            except exceptions.RemoteAPIError:
                known_ids = None
            if known_ids is not None and address_id not in known_ids:
                raise exceptions.NotFound(f'Address {address_id} not found')
        with self.session.lock:
            self.session.selected_address_id = address_id
        return address_id


def _address_book(request, registry) -> AddressBook:
    return AddressBook(registry.session(request.auth_result['customer_id']), registry.address_store)


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_get_addresses(request, registry) -> Response:
    address_book = _address_book(request, registry)
    addresses = address_book.list_addresses()
    selected = address_book.selected_address(addresses)
    return Response(status_code=http200, body={
        'addresses': [address.to_ui() for address in addresses],
        'selected_address_id': selected.id_ if selected else None
    })


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_create_address(request, registry) -> Response:
    address = _address_book(request, registry).create_address(utils_data.parse_raw_body(request))
    return Response(status_code=http200, body=address.to_ui())


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_update_address(request, registry, address_id) -> Response:
    address = _address_book(request, registry).update_address(address_id, utils_data.parse_raw_body(request))
    return Response(status_code=http200, body=address.to_ui())


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_delete_address(request, registry, address_id) -> Response:
    selected_id = _address_book(request, registry).delete_address(address_id)
    return Response(status_code=http200, body={'message': 'Address was successfully deleted',
                                               'selected_address_id': selected_id})


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_get_selected_address(request, registry) -> Response:
    selected = _address_book(request, registry).selected_address()
    return Response(status_code=http200, body={'address': selected.to_ui() if selected else None})


@utils_app.request_exception_handler
@utils_app.log_start_finish
@utils_auth.authenticate
def endpoint_select_address(request, registry) -> Response:
    address_id = utils_data.parse_raw_body(request).get('address_id')
    selected_id = _address_book(request, registry).select_address(address_id)
    return Response(status_code=http200, body={'selected_address_id': selected_id})
