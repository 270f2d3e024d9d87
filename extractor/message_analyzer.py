"""Language-model analyzer that flags event-like chat messages."""
import json
import logging
import re
import time
from datetime import date
from typing import Dict, List, Optional

import requests

from processor.models import EventCandidate, ExtractionResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant that analyzes WhatsApp messages to detect "
    "events and extract structured details. For Hebrew content, provide Hebrew "
    "output for summary, title, and location."
)

PROMPT_TEMPLATE = """
Analyze this WhatsApp message for event information. Look for actual events (meetings, parties, gatherings) with date references like day names (יום ראשון, Monday, etc.) or specific dates.

EVENT CRITERIA:
- Must be an actual planned event, not just time-finding discussions
- Must have some date reference (day name, date, "tomorrow", etc.)
- Include location if mentioned

REQUIRED OUTPUT:
Extract concise event details in JSON format. Keep summaries brief and actionable.

Previous context:
{history}

Current message: {message}
Sender: {sender}

JSON Response Format:
{{
  "isEvent": true/false,
  "summary": "Brief 1-2 sentence summary in Hebrew if content is Hebrew-related",
  "title": "Short event title (Hebrew preferred for Hebrew content)",
  "date": "Date as written (e.g., 'יום שני', 'Monday', 'Tomorrow', '25/12/2024')",
  "time": "Time as written (e.g., '15:00', '3 PM', 'בשעה 18:00')",
  "location": "Location (Hebrew preferred if applicable)",
  "description": "Brief description without original message repetition"
}}

Current date context: {today}
"""


def _text(value) -> Optional[str]:
    """Model field as text; numbers are stringified, other non-strings dropped."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return None


class MessageAnalyzer:
    """Client for the chat-completions API that extracts event fields."""

    API_URL = "https://api.openai.com/v1/chat/completions"
    MAX_HISTORY_LENGTH = 5

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        allowed_chat_names: Optional[List[str]] = None,
        timeout: int = 30
    ):
        """
        Initialize the analyzer.

        Args:
            api_key: API key for the chat-completions endpoint
            model: Model name (default: gpt-4o)
            allowed_chat_names: Chats to analyze; empty or None allows all
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.api_key = api_key
        self.model = model
        self.allowed_chat_names = [
            name.strip() for name in (allowed_chat_names or []) if name.strip()
        ]
        self.timeout = timeout
        self._history: Dict[str, List[str]] = {}

    def is_chat_allowed(self, chat_name: str) -> bool:
        if not self.allowed_chat_names:
            return True
        return any(name in chat_name for name in self.allowed_chat_names)

    def add_message_to_history(self, chat_id: str, message: str) -> None:
        history = self._history.setdefault(chat_id, [])
        history.append(message)
        if len(history) > self.MAX_HISTORY_LENGTH:
            self._history[chat_id] = history[-self.MAX_HISTORY_LENGTH:]

    def get_message_history(self, chat_id: str) -> List[str]:
        return list(self._history.get(chat_id, []))

    def analyze_message(
        self,
        chat_id: str,
        message: str,
        chat_name: str,
        sender: Optional[str] = None,
        today: Optional[date] = None
    ) -> ExtractionResult:
        """
        Analyze a message to detect if it describes an event.

        Args:
            chat_id: Chat identifier, keys the message history
            message: Message text
            chat_name: Display name of the chat, checked against the allow-list
            sender: Display name of the sender
            today: Date given to the model as context (default: today)

        Returns:
            ExtractionResult; not an event for disallowed chats

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        if not self.is_chat_allowed(chat_name or chat_id):
            logger.info(
                f"Skipping analysis for chat '{chat_name or chat_id}': "
                f"not in allowed list {self.allowed_chat_names}"
            )
            return ExtractionResult(is_event=False)

        prompt = self._build_prompt(
            self.get_message_history(chat_id), message, sender, today or date.today()
        )
        content = self._request_completion(prompt)
        return self._parse_response(content, message, sender)

    def _build_prompt(self, history: List[str], message: str,
                      sender: Optional[str], today: date) -> str:
        return PROMPT_TEMPLATE.format(
            history="\n".join(f"[{i + 1}] {msg}" for i, msg in enumerate(history)),
            message=message,
            sender=sender or "Unknown",
            today=today.strftime('%B %d, %Y'),
        )

    def _request_completion(self, prompt: str) -> str:
        """
        Call the chat-completions endpoint with retry logic.

        Returns:
            Content of the first choice, empty string if missing

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.2,
            "max_tokens": 300,
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        max_retries = 3
        base_delay = 1  # seconds

        for attempt in range(max_retries):
            try:
                logger.info(f"Requesting message analysis (attempt {attempt + 1}/{max_retries})")
                response = requests.post(
                    self.API_URL,
                    json=payload,
                    headers=headers,
                    timeout=self.timeout
                )
                response.raise_for_status()
                choices = response.json().get("choices") or [{}]
                return (choices[0].get("message") or {}).get("content") or ""

            except requests.RequestException as e:
                if attempt < max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _parse_response(self, content: str, message: str,
                        sender: Optional[str]) -> ExtractionResult:
        """
        Convert model output to an ExtractionResult.

        Falls back to a pattern scan when the output is not valid JSON.
        """
        try:
            parsed = json.loads(content)
            if not isinstance(parsed, dict):
                raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
        except ValueError as e:
            logger.warning(f"Error parsing model response: {e}. Raw response: {content}")
            is_event = re.search(r'"isEvent"\s*:\s*true', content) is not None
            summary_match = re.search(r'"summary"\s*:\s*"([^"]*)"', content)
            return ExtractionResult(
                is_event=is_event,
                summary=summary_match.group(1) if summary_match else None
            )

        is_event = parsed.get("isEvent") is True
        description = _text(parsed.get("description"))
        if is_event and description and message not in description:
            description = f"{description}\n\nOriginal message: {message}"
            if sender:
                description += f"\nSender: {sender}"

        return ExtractionResult(
            is_event=is_event,
            summary=_text(parsed.get("summary")),
            candidate=EventCandidate(
                title=_text(parsed.get("title")),
                date_phrase=_text(parsed.get("date")),
                time_phrase=_text(parsed.get("time")),
                location=_text(parsed.get("location")),
                description=description
            )
        )
