"""AWS Lambda handler for chat message event announcements."""
import json
import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from extractor.message_analyzer import MessageAnalyzer
from processor.event_processor import EventProcessor
from processor.fingerprint import generate_fingerprint
from processor.models import ProcessedEvent
from storage.dedup_store import DynamoDBDedupStore
from storage.event_cache import EventDeduplicationCache

# Messages containing these markers are our own announcements.
ANNOUNCEMENT_MARKERS = ('**Event Summary**', 'Event Summary:', 'Event details')


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    RESERVED = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including fields passed via extra."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in self.RESERVED:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _parse_payload(event: Dict[str, Any]) -> Dict[str, Any]:
    """Accept either a direct invocation payload or an API Gateway body."""
    body = event.get('body')
    if isinstance(body, str):
        return json.loads(body)
    if isinstance(body, dict):
        return body
    return event


def _reference_time(payload: Dict[str, Any]) -> datetime:
    value: Optional[str] = payload.get('reference_time')
    if not value:
        return datetime.now(timezone.utc)
    reference = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    return reference


def _event_to_dict(processed: ProcessedEvent) -> Dict[str, Any]:
    return {
        'event_id': processed.event_id,
        'title': processed.title,
        'summary': processed.summary,
        'description': processed.description,
        'location': processed.location,
        'start': processed.start.isoformat(),
        'end': processed.end.isoformat(),
        'calendar': processed.calendar,
        'filename': processed.filename
    }


def _response(status_code: int, body: Dict[str, Any], start_time: float) -> Dict[str, Any]:
    body['duration_seconds'] = round(time.time() - start_time, 2)
    return {
        'statusCode': status_code,
        'body': json.dumps(body, ensure_ascii=False)
    }


def _error_response(message: str, error: Exception, start_time: float) -> Dict[str, Any]:
    return _response(500, {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__
    }, start_time)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler: analyze one chat message and announce new events.

    Args:
        event: Message payload (message, chat_id, chat_name, sender,
            optional history and reference_time), directly or as an
            API Gateway body
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'chat-event-fingerprints')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    ttl_hours = float(os.environ.get('EVENT_DEDUPLICATION_TTL_HOURS', '24'))
    offset_hours = float(os.environ.get('CIVIL_UTC_OFFSET_HOURS', '2'))
    api_key = os.environ.get('OPENAI_API_KEY', '')
    model = os.environ.get('OPENAI_MODEL', 'gpt-4o')
    allowed_chat_names = os.environ.get('ALLOWED_CHAT_NAMES', '')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={
            'table_name': table_name,
            'ttl_hours': ttl_hours,
            'civil_offset_hours': offset_hours
        }
    )

    try:
        payload = _parse_payload(event)
        message = (payload.get('message') or '').strip()
        chat_id = payload.get('chat_id') or ''
        chat_name = payload.get('chat_name') or ''
        sender = payload.get('sender')
        reference = _reference_time(payload)

        if not message:
            return _response(200, {'message': 'Empty message ignored'}, start_time)

        if payload.get('from_me') is True:
            logger.info("Skipping message sent by this account")
            return _response(200, {'message': 'Own message ignored'}, start_time)

        if any(marker in message for marker in ANNOUNCEMENT_MARKERS):
            logger.info("Skipping message that is itself an event announcement")
            return _response(200, {'message': 'Announcement message ignored'}, start_time)

        # Instantiate components
        analyzer = MessageAnalyzer(
            api_key=api_key,
            model=model,
            allowed_chat_names=allowed_chat_names.split(','),
            timeout=timeout_seconds
        )
        cache = EventDeduplicationCache(
            store=DynamoDBDedupStore(table_name=table_name),
            retention=timedelta(hours=ttl_hours)
        )
        processor = EventProcessor(
            cache=cache,
            civil_offset=timezone(timedelta(hours=offset_hours))
        )

        for earlier in payload.get('history') or []:
            analyzer.add_message_to_history(chat_id, earlier)
        analyzer.add_message_to_history(chat_id, message)

        # Analyze the message with error handling
        try:
            logger.info("Analyzing message for events")
            extraction = analyzer.analyze_message(
                chat_id=chat_id,
                message=message,
                chat_name=chat_name,
                sender=sender,
                today=reference.astimezone(processor.civil_offset).date()
            )
        except Exception as e:
            logger.error(
                f"Failed to analyze message after retries: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response('Failed to analyze message', e, start_time)

        if not extraction.is_event or not extraction.summary:
            logger.info("No event detected")
            return _response(200, {'message': 'No event detected'}, start_time)

        # Gate, resolve and encode with error handling
        try:
            logger.info("Processing detected event")
            processed = processor.process_event(extraction, reference)
        except Exception as e:
            logger.error(
                f"Error during event processing: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response('Failed to process event', e, start_time)

        cache_decision = {
            'fingerprint': generate_fingerprint(extraction.candidate),
            'duplicate': processed is None,
            'ttl_hours': cache.retention_hours
        }

        if processed is None:
            return _response(200, {
                'message': 'Duplicate event skipped',
                'cache': cache_decision
            }, start_time)

        source_info = f"Group: {chat_name}" if chat_name else f"Contact: {sender or chat_id}"
        announcement = processor.format_announcement(processed, source_info)

        logger.info(
            "Lambda execution completed successfully",
            extra={
                'event_id': processed.event_id,
                'duration_seconds': round(time.time() - start_time, 2)
            }
        )

        return _response(200, {
            'message': 'Event processed',
            'event': _event_to_dict(processed),
            'announcement': announcement,
            'cache': cache_decision
        }, start_time)

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(time.time() - start_time, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _error_response('Event processing failed', e, start_time)
