"""DynamoDB persistence for meeting result caches."""
import json
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from processor.models import ResultCache

logger = logging.getLogger(__name__)


class DynamoDBCacheStore:
    """Keeps one serialized ResultCache per cache owner."""

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table (hash key: cache_id)
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBCacheStore for table: {table_name}")

    def load(self, cache_id: str) -> Optional[ResultCache]:
        """
        Load the cache stored for an owner.

        Expired entries are returned as-is; validity is decided when the
        cache is read by a search.

        Args:
            cache_id: Cache owner identifier

        Returns:
            ResultCache, or None if missing or unreadable
        """
        try:
            response = self.table.get_item(Key={'cache_id': cache_id})
        except ClientError as e:
            logger.error(f"Error reading cache {cache_id}: {e}")
            raise

        item = response.get('Item')
        if not item:
            logger.info(f"No cached meetings stored for {cache_id}")
            return None

        return self._item_to_cache(item)

    def save(self, cache_id: str, cache: ResultCache) -> None:
        """
        Replace the stored cache for an owner.

        Args:
            cache_id: Cache owner identifier
            cache: Cache entry to persist
        """
        item = self._cache_to_item(cache_id, cache)
        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            logger.error(f"Error writing cache {cache_id}: {e}")
            raise

        logger.info(
            f"Stored {len(cache.meetings)} cached meetings for {cache_id}"
        )

    def delete(self, cache_id: str) -> None:
        try:
            self.table.delete_item(Key={'cache_id': cache_id})
        except ClientError as e:
            logger.error(f"Error deleting cache {cache_id}: {e}")
            raise

    def _item_to_cache(self, item: dict) -> Optional[ResultCache]:
        """
        Convert DynamoDB item to ResultCache.

        Args:
            item: DynamoDB item dictionary

        Returns:
            ResultCache or None if conversion fails
        """
        try:
            return ResultCache.from_dict(json.loads(item['payload']))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Failed to convert item {item.get('cache_id')} to ResultCache: {e}"
            )
            return None

    def _cache_to_item(self, cache_id: str, cache: ResultCache) -> dict:
        """
        Convert ResultCache to DynamoDB item.

        Meetings are stored as a JSON string since DynamoDB rejects floats.
        """
        return {
            'cache_id': cache_id,
            'payload': json.dumps(cache.to_dict()),
            'meeting_count': len(cache.meetings),
            'cached_at': cache.cached_at.isoformat(),
            'ttl': int(cache.expires_at.timestamp())
        }
