import functools
from typing import Callable

from chalice import Response

from chalicelib.constants import status_codes
from chalicelib.utils.exceptions import InvalidRequest, NotAuthorizedException, NotFound, OrderSubmissionFailed, \
    ReorderUnavailable, RemoteAPIError
from chalicelib.utils.logger import logger, log_exception


def error_response(error: Exception, msg: str = "", status_code: int = 400, *args, **kwargs):
    log_exception(error, status_code, msg, *args, **kwargs)
    return Response(
        body={
            'error': str(error),
            'exception': error.__class__.__name__,
            "message": str(msg),
            'error_id': getattr(logger, 'current_request_id'),
            'level': getattr(error, 'LEVEL', 'exception')
        },
        status_code=status_code,
        headers={'Content-Type': 'application/json'}
    )


def request_exception_handler(func: Callable):
    @functools.wraps(func)
    def result(*args, **kwargs):
        try:
            logger.info(f'Calling function {func.__name__}')
            return func(*args, **kwargs)
        except NotAuthorizedException as not_authorized:
            return error_response(
                error=not_authorized,
                msg='Customer identity is required to access this resource',
                status_code=status_codes.http401)
        except InvalidRequest as invalid_request:
            return error_response(
                error=invalid_request,
                msg=str(invalid_request),
                status_code=status_codes.http400)
        except NotFound as not_found:
            return error_response(
                error=not_found,
                msg=f'function = {func.__name__} , error = {not_found}',
                status_code=status_codes.http404)
        except ReorderUnavailable as reorder_unavailable:
            return error_response(
                error=reorder_unavailable,
                msg='This order can no longer be placed again',
                status_code=status_codes.http409)
        except OrderSubmissionFailed as submission_failed:
            return error_response(
                error=submission_failed,
                msg='Failed to place order. Please try again.',
                status_code=status_codes.http502)
        except RemoteAPIError as remote_error:
            return error_response(
                error=remote_error,
                msg=f'function = {func.__name__} , error = {remote_error}',
                status_code=status_codes.http502)
        except Exception as exception:
            return error_response(
                error=exception,
                msg=f'function = {func.__name__}, error = {exception}',
                status_code=status_codes.http500)
    return result


def log_start_finish(func: Callable):
    @functools.wraps(func)
    def result(*args, **kwargs):
        logger.info(f'{func.__name__} ::: started')
        response = func(*args, **kwargs)
        logger.info(f'{func.__name__} ::: finished')
        return response
    return result
