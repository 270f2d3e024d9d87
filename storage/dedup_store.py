"""Fingerprint stores backing the deduplication cache.

Every store keeps `fingerprint -> expires_at` entries. An entry is live while
`now <= expires_at`; expired entries count as absent whether or not they have
been physically removed yet.
"""
import logging
import threading
from datetime import datetime
from typing import Dict, Protocol

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class DedupStore(Protocol):
    """Interface every fingerprint store implements."""

    def has(self, key: str, now: datetime) -> bool: ...

    def upsert_with_expiry(self, key: str, expires_at: datetime) -> None: ...

    def put_if_absent(self, key: str, expires_at: datetime, now: datetime) -> bool: ...

    def count(self, now: datetime) -> int: ...

    def purge_expired(self, now: datetime) -> int: ...

    def clear(self) -> None: ...


class InMemoryDedupStore:
    """Process-local store; expired entries are purged lazily on access."""

    def __init__(self):
        self._entries: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def has(self, key: str, now: datetime) -> bool:
        with self._lock:
            return self._live(key, now)

    def upsert_with_expiry(self, key: str, expires_at: datetime) -> None:
        with self._lock:
            self._entries[key] = expires_at

    def put_if_absent(self, key: str, expires_at: datetime, now: datetime) -> bool:
        with self._lock:
            if self._live(key, now):
                return False
            self._entries[key] = expires_at
            return True

    def count(self, now: datetime) -> int:
        with self._lock:
            return sum(1 for expires_at in self._entries.values() if now <= expires_at)

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [key for key, expires_at in self._entries.items() if now > expires_at]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        """Physically stored entries, live or not."""
        return len(self._entries)

    def _live(self, key: str, now: datetime) -> bool:
        expires_at = self._entries.get(key)
        if expires_at is None:
            return False
        if now > expires_at:
            del self._entries[key]
            return False
        return True


class DynamoDBDedupStore:
    """Fingerprint store on a DynamoDB table keyed by `fingerprint`.

    Items carry `expires_at` (epoch seconds) for logical expiry and a `ttl`
    attribute with the same value so DynamoDB's TTL sweeper removes them.
    """

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBDedupStore for table: {table_name}")

    def has(self, key: str, now: datetime) -> bool:
        try:
            response = self.table.get_item(
                Key={'fingerprint': key},
                ConsistentRead=True
            )
        except ClientError as e:
            logger.error(f"Error reading fingerprint {key}: {e}")
            raise

        item = response.get('Item')
        return item is not None and self._epoch(now) <= int(item['expires_at'])

    def upsert_with_expiry(self, key: str, expires_at: datetime) -> None:
        try:
            self.table.put_item(Item=self._to_item(key, expires_at))
        except ClientError as e:
            logger.error(f"Error writing fingerprint {key}: {e}")
            raise

    def put_if_absent(self, key: str, expires_at: datetime, now: datetime) -> bool:
        """
        Insert the fingerprint unless a live entry already exists.

        The conditional put is atomic across every writer of the table.

        Returns:
            True if the entry was written, False if a live entry exists
        """
        try:
            self.table.put_item(
                Item=self._to_item(key, expires_at),
                ConditionExpression=(
                    Attr('fingerprint').not_exists() |
                    Attr('expires_at').lt(self._epoch(now))
                )
            )
            return True
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                return False
            logger.error(f"Error writing fingerprint {key}: {e}")
            raise

    def count(self, now: datetime) -> int:
        items = self._scan(Attr('expires_at').gte(self._epoch(now)))
        return len(items)

    def purge_expired(self, now: datetime) -> int:
        expired = self._scan(Attr('expires_at').lt(self._epoch(now)))
        return self._batch_delete([item['fingerprint'] for item in expired])

    def clear(self) -> None:
        self._batch_delete([item['fingerprint'] for item in self._scan()])

    def _scan(self, filter_expression=None) -> list:
        """Scan the table, following pagination."""
        kwargs = {}
        if filter_expression is not None:
            kwargs['FilterExpression'] = filter_expression

        try:
            response = self.table.scan(**kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **kwargs
                )
                items.extend(response.get('Items', []))

            return items

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

    def _batch_delete(self, keys: list) -> int:
        """
        Delete fingerprints in batches of 25 items.

        Returns:
            Count of successfully deleted fingerprints
        """
        if not keys:
            return 0

        logger.info(f"Deleting {len(keys)} fingerprints from DynamoDB")
        success_count = 0

        for i in range(0, len(keys), self.BATCH_SIZE):
            batch = keys[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for key in batch:
                        writer.delete_item(Key={'fingerprint': key})
                        success_count += 1

            except ClientError as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                continue

        return success_count

    def _to_item(self, key: str, expires_at: datetime) -> dict:
        epoch = self._epoch(expires_at)
        return {'fingerprint': key, 'expires_at': epoch, 'ttl': epoch}

    @staticmethod
    def _epoch(value: datetime) -> int:
        return int(value.timestamp())
