# recall/services/intent_service.py
"""
Intent extraction: free text -> SearchIntent.
The language backend does the interpretation; this module owns the prompt and
a parser that tolerates prose around the JSON and never raises.
"""

import json
from typing import Any

from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.search_domain import SearchIntent
from recall.services.openai_service import OpenAIService

logger = get_logger(__name__)

INTENT_SYSTEM_PROMPT = """You are a query parser for searching a user's email, Discord and Slack messages. Extract ALL possible search terms from user queries.
Be generous - if something could be a name or keyword, include it.

Return a JSON object with these fields:
- names: array of full person names mentioned (e.g., "John Smith", "Shyam")
- emails: array of email addresses mentioned (e.g., "john@example.com")
- topics: array of topics/subjects being searched for (e.g., "budget", "meeting", "project")
- dateHints: array of date references (e.g., "last week", "2023", "yesterday", "2 years ago")
- keywords: array of other important search words from the query
- partialNames: array of partial name hints (e.g., if user says "starts with shy" or "name like john", extract "shy", "john")

IMPORTANT:
- Even if user just says a single name like "Shyam", extract it as a name
- If user says "shy" or mentions partial names, add to partialNames
- Conversational phrasing still names a person: "chat with Alyssa", "emails from Raj" -> names
- Extract ANY word that could help find the message

Example 1: "Shyam"
Output: {"names":["Shyam"],"emails":[],"topics":[],"dateHints":[],"keywords":[],"partialNames":[]}

Example 2: "Find emails from someone named shy or shyam"
Output: {"names":["shyam"],"emails":[],"topics":[],"dateHints":[],"keywords":["emails"],"partialNames":["shy"]}

Example 3: "conversation about budget"
Output: {"names":[],"emails":[],"topics":["budget"],"dateHints":[],"keywords":["conversation"],"partialNames":[]}

Example 4: "my chat with Alyssa last week"
Output: {"names":["Alyssa"],"emails":[],"topics":[],"dateHints":["last week"],"keywords":["chat"],"partialNames":[]}

Example 5: "what did bob@acme.io say about the launch in 2023"
Output: {"names":[],"emails":["bob@acme.io"],"topics":["launch"],"dateHints":["2023"],"keywords":[],"partialNames":[]}

Only return valid JSON, no other text."""

# SearchIntent field -> keys the model may answer with
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "names": ("names",),
    "email_addresses": ("emails", "emailAddresses", "email_addresses"),
    "topics": ("topics",),
    "date_hints": ("dateHints", "date_hints"),
    "keywords": ("keywords",),
    "partial_names": ("partialNames", "partial_names"),
}


def extract_json_object(text: str) -> str | None:
    """
    Return the first balanced ``{...}`` substring of ``text``.

    Braces inside JSON string literals are ignored.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def parse_intent(raw: str) -> SearchIntent:
    """Parse model output into a SearchIntent. Missing or malformed fields become []."""
    candidate = extract_json_object(raw)
    if candidate is None:
        logger.warning("No JSON object in intent response", response_preview=(raw or "")[:200])
        return SearchIntent()

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("Intent response is not valid JSON", error=str(e))
        return SearchIntent()

    if not isinstance(parsed, dict):
        return SearchIntent()

    fields: dict[str, list[str]] = {}
    for field, aliases in _FIELD_ALIASES.items():
        for alias in aliases:
            if alias in parsed:
                fields[field] = _string_list(parsed[alias])
                break
    return SearchIntent(**fields)


class IntentService:
    """Turns raw user text into a SearchIntent via the language backend."""

    def __init__(self, backend: OpenAIService):
        self.backend = backend

    async def extract_intent(self, user_text: str) -> SearchIntent:
        """
        Extract structured search intent.

        Never raises: any failure (backend error, malformed output) yields an
        all-empty intent, which downstream means "most recent, unfiltered".
        """
        if not user_text or not user_text.strip():
            return SearchIntent()

        try:
            raw = await self.backend.complete(
                INTENT_SYSTEM_PROMPT,
                user_text,
                temperature=0,
                max_tokens=500,
            )
        except Exception as e:
            logger.warning(
                "Intent extraction failed, continuing without filters",
                error=str(e),
                error_type=type(e).__name__,
            )
            return SearchIntent()

        intent = parse_intent(raw)
        logger.info(
            "Intent extracted",
            names=len(intent.names),
            email_addresses=len(intent.email_addresses),
            topics=len(intent.topics),
            date_hints=len(intent.date_hints),
            keywords=len(intent.keywords),
            partial_names=len(intent.partial_names),
        )
        return intent
