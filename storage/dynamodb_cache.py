"""Remote cache backend stored in a DynamoDB table."""
import logging
import time
from datetime import timedelta
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import CacheError
from processor.models import SkipLocation
from storage.cache import Cache, deserialize_locations, serialize_locations

logger = logging.getLogger(__name__)


class DynamoDBCache(Cache):
    """
    Cache entries kept as DynamoDB items.

    Items have the shape {cache_key, value, expires_at}. expires_at is an
    epoch timestamp suitable for the table's TTL attribute; DynamoDB deletes
    expired items lazily, so reads also compare it against the clock.
    """

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBCache for table: {table_name}")

    def get(self, key: str) -> Optional[List[SkipLocation]]:
        try:
            response = self.table.get_item(Key={'cache_key': key})
        except (BotoCoreError, ClientError) as e:
            raise CacheError(f"Error reading cache item {key}: {e}") from e

        item = response.get('Item')
        if not item:
            return None

        if int(item.get('expires_at', 0)) <= int(time.time()):
            return None

        return deserialize_locations(item.get('value', ''))

    def set(self, key: str, locations: List[SkipLocation], ttl: timedelta) -> None:
        item = {
            'cache_key': key,
            'value': serialize_locations(locations),
            'expires_at': int(time.time() + ttl.total_seconds())
        }

        try:
            self.table.put_item(Item=item)
        except (BotoCoreError, ClientError) as e:
            raise CacheError(f"Error writing cache item {key}: {e}") from e
