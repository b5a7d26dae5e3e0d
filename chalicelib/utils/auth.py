import functools

from chalice.app import Request

from chalicelib.utils import exceptions as utils_exceptions
from chalicelib.utils.logger import log_request, logger, set_request_id


def get_customer_id(request: Request) -> str:
    """
    The identity provider puts the customer key (phone number or user id) into the Authorization header.
    The key is opaque here: nothing depends on how it was issued.
    """
    customer_id = (request.headers.get('authorization') or '').strip()
    if customer_id.lower().startswith('bearer '):
        customer_id = customer_id[len('bearer '):].strip()
    if not customer_id:
        raise utils_exceptions.NotAuthorizedException('Error occurred in authorization process')
    return customer_id


def authenticate(func):
    """
    Wrapper for endpoint functions which require customer's identity,
    the request is expected to be the first argument
    """

    @functools.wraps(func)
    def result_auth(request, *args, **kwargs):
        set_request_id(request)
        log_request(request)
        customer_id = get_customer_id(request)
        setattr(request, 'auth_result', {'customer_id': customer_id})
        result = func(request, *args, **kwargs)
        logger.info(f'authenticate ::: SUCCESS, func.__name__ {func.__name__}')
        return result

    return result_auth
