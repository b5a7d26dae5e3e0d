import functools
import os
import time
from random import uniform

import boto3 as boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from chalicelib.utils import exceptions
from chalicelib.utils.logger import logger, log_exception

# For safe db operations
RETRY_EXCEPTIONS = ('ProvisionedThroughputExceededException', 'ThrottlingException')
need_return_capacity = ('put_item', 'get_item', 'delete_item')

aws_config_ddb = Config(retries={'max_attempts': 30}, region_name=os.environ.get('AWS_REGION', 'eu-central-1'))

_TABLES = {}


def exp_db_backoff(func, max_retries=15):
    """
        should be used for any atomic
        get/put/delete item in the code
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger.debug(f'{func.__name__}:: args={args}, kwargs={kwargs}')
        if func.__name__ not in need_return_capacity:
            raise RuntimeError("This decorator only for DynamoDB methods")
        kwargs.update({'ReturnConsumedCapacity': 'TOTAL'})

        for retries in range(max_retries):
            try:
                result = func(*args, **kwargs)
                logger.info(f'{func.__name__}:: SUCCESS')
                return result
            except ClientError as e:
                if e.response.get('Error', {}).get('Code') not in RETRY_EXCEPTIONS:
                    log_exception(e, msg=f'Got exception while trying to {func.__name__}: ')
                    raise
                logger.warning(f'{func.__name__}:: throttled, retry {retries + 1} of {max_retries}')
                time.sleep(min(2 ** retries * uniform(0.1, 0.99) / 10, 5))

        raise exceptions.NumberOfRetriesExceeded(
            f"MaxNumber={max_retries} of DB retries has exceeded"
        )

    return wrapper


def get_table(table_name: str):
    gl_table = _TABLES.get(table_name)
    if gl_table is None:
        if os.environ.get('ENDPOINT_URL'):
            gl_table = boto3.resource('dynamodb', endpoint_url=os.environ.get('ENDPOINT_URL')).Table(table_name)
        else:
            gl_table = boto3.resource('dynamodb', config=aws_config_ddb).Table(table_name)

        gl_table.put_item = exp_db_backoff(gl_table.put_item)
        gl_table.get_item = exp_db_backoff(gl_table.get_item)
        gl_table.delete_item = exp_db_backoff(gl_table.delete_item)
        _TABLES[table_name] = gl_table

    return gl_table


def get_gen_table():
    return get_table(os.environ['GEN_TABLE_NAME'])


def put_db_record(item: dict, table=get_gen_table):
    table().put_item(Item=item)


def get_db_item(partkey, sortkey, table=get_gen_table):
    result = table().get_item(
        Key={
            'partkey': partkey,
            'sortkey': sortkey
        }
    )

    if 'Item' in result:
        return result['Item']
    else:
        logger.info(f"get_db_item ::: record partkey={partkey} sortkey={sortkey} not found")
        raise exceptions.RecordNotFound(f'record partkey={partkey} sortkey={sortkey} not found')


def delete_db_record(partkey, sortkey, table=get_gen_table):
    table().delete_item(Key={'partkey': partkey, 'sortkey': sortkey})
    logger.info(f"delete_db_record ::: record partkey={partkey} sortkey={sortkey} deleted")
