"""
Session-scoped key/value cache.

Values are stored as JSON documents so every read returns a fresh copy:
callers never share mutable state with the cache.
"""
import json
import os
import threading
from datetime import timedelta
from decimal import Decimal

from botocore.exceptions import ClientError

from chalicelib.constants import keys_structure
from chalicelib.constants.constants import DEFAULT_SESSION_TTL_HOURS
from chalicelib.utils import db as utils_db, exceptions
from chalicelib.utils.data import utc_now
from chalicelib.utils.logger import CustomJSONEncoder, logger


def dump_value(value) -> str:
    return json.dumps(value, cls=CustomJSONEncoder)


def load_value(raw):
    return json.loads(raw, parse_float=Decimal)


# a DynamoCache write can still fail after the retries, e.g. an item over the 400KB limit
CACHE_WRITE_ERRORS = (ClientError, exceptions.NumberOfRetriesExceeded)


def session_ttl_hours() -> int:
    return int(os.environ.get('SESSION_TTL_HOURS', DEFAULT_SESSION_TTL_HOURS))


class SessionCache:
    def get(self, customer_id: str, key: str, default=None):
        raise NotImplementedError

    def put(self, customer_id: str, key: str, value) -> None:
        raise NotImplementedError

    def delete(self, customer_id: str, key: str) -> None:
        raise NotImplementedError


class MemoryCache(SessionCache):
    def __init__(self):
        self._lock = threading.Lock()
        self._items = {}

    def get(self, customer_id, key, default=None):
        with self._lock:
            raw = self._items.get((customer_id, key))
        return default if raw is None else load_value(raw)

    def put(self, customer_id, key, value):
        raw = dump_value(value)
        with self._lock:
            self._items[(customer_id, key)] = raw

    def delete(self, customer_id, key):
        with self._lock:
            self._items.pop((customer_id, key), None)


class DynamoCache(SessionCache):
    """
    Keeps session values in the general DynamoDB table, items expire through the ttl_ attribute
    """

    def __init__(self, table=utils_db.get_gen_table, ttl_hours=None):
        self.table = table
        self.ttl_hours = ttl_hours if ttl_hours is not None else session_ttl_hours()

    @staticmethod
    def _get_pk_sk(customer_id, key):
        return keys_structure.session_cache_pk.format(customer_id=customer_id), \
            keys_structure.session_cache_sk.format(key=key)

    def get(self, customer_id, key, default=None):
        pk, sk = self._get_pk_sk(customer_id, key)
        try:
            item = utils_db.get_db_item(pk, sk, table=self.table)
        except exceptions.RecordNotFound:
            return default
        # DynamoDB removes expired items lazily
        if int(item.get('ttl_', 0)) < int(utc_now().timestamp()):
            logger.debug(f'DynamoCache.get ::: {pk=} {sk=} expired')
            return default
        return load_value(item['value'])

    def put(self, customer_id, key, value):
        pk, sk = self._get_pk_sk(customer_id, key)
        utils_db.put_db_record({
            'partkey': pk,
            'sortkey': sk,
            'record_type': 'session_cache',
            'value': dump_value(value),
            'ttl_': int((utc_now() + timedelta(hours=self.ttl_hours)).timestamp())
        }, table=self.table)

    def delete(self, customer_id, key):
        utils_db.delete_db_record(*self._get_pk_sk(customer_id, key), table=self.table)


def get_session_cache() -> SessionCache:
    backend = os.environ.get('SESSION_CACHE_BACKEND', 'memory').lower()
    logger.info(f'get_session_cache ::: {backend=}')
    if backend == 'dynamodb':
        return DynamoCache()
    if backend == 'memory':
        return MemoryCache()
    raise ValueError(f'Unknown SESSION_CACHE_BACKEND={backend}')
