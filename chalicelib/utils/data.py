import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from chalicelib.constants.constants import MONEY_PLACES
from chalicelib.utils import exceptions


def replace_dict_key(item, orig_key, new_key):
    if orig_key in item:
        if new_key not in item:
            item[new_key] = item[orig_key]
        del item[orig_key]


def substitute_keys(dict_to_process: dict, base_keys: dict, opt_dict=None):
    if opt_dict is None:
        opt_dict = {}
    all_keys = {**base_keys, **opt_dict}
    for key, val in all_keys.items():
        if val:
            replace_dict_key(dict_to_process, key, val)
        elif key in dict_to_process.keys():
            dict_to_process.pop(key, None)


def parse_raw_body(chalice_request):
    request_raw_body = chalice_request.raw_body
    if request_raw_body:
        try:
            body = json.loads(request_raw_body, parse_float=Decimal)
        except ValueError:
            raise exceptions.InvalidRequest('Request body is not valid JSON')
        if not isinstance(body, dict):
            raise exceptions.InvalidRequest('Request body must be a JSON object')
        return cleanup_dict(body, [None])
    else:
        return {}


def cleanup_dict(item: dict, list_of_values: list):
    """ Remove None fields in dict with. Supports one nesting.  """

    def sub_clean(sub_item):
        return {
            key: value
            for key, value in sub_item.items()
            if value not in list_of_values
        }

    clean = {}
    for k, v in item.items():
        if isinstance(v, dict):
            nested = sub_clean(v)
            if len(nested.keys()) > 0:
                clean[k] = nested
        elif v not in list_of_values:
            clean[k] = v
    return clean


def to_money(value, default=None):
    """
    Converts int/float/str/Decimal to a Decimal with two decimal places
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        return Decimal(str(value)).quantize(MONEY_PLACES)
    except (InvalidOperation, ValueError):
        return default


def parse_timestamp(value):
    """
    Remote timestamps come as epoch seconds, epoch milliseconds or ISO-8601 strings
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float, Decimal)):
        seconds = float(value)
        if seconds > 10 ** 11:
            seconds = seconds / 1000
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def to_iso(value: datetime):
    return value.isoformat(timespec='seconds') if value else None


def utc_now():
    return datetime.now(timezone.utc)
