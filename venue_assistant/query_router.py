"""
Query Router Module
Answer free-text questions from the calendar, the technical bible and the
specification catalog.
"""

import re
from typing import Dict, List, Optional, Sequence

from loguru import logger

from venue_assistant.calendar_store import CalendarStore
from venue_assistant.document_indexer import DocumentIndexer, KnowledgeIndex, search
from venue_assistant.specification_registry import SpecificationRegistry


NOT_READY_MESSAGE = "I'm still getting set up. Please try again in a moment."
NOTHING_FOUND_MESSAGE = (
    "I couldn't find specific information for your query in my current knowledge. "
    "Please try rephrasing or ask about {venue} events, technical specifications, or equipment."
)
SEPARATOR = "\n\n---\n\n"

_MONTH = (
    r"(?:january|february|march|april|may|june|july|august|september|october|november|december"
    r"|jan|feb|mar|apr|jun|jul|aug|sept|sep|oct|nov|dec)"
)
DATE_PATTERNS = [
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-](?:\d{4}|\d{2})\b"),
    re.compile(rf"\b{_MONTH}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?\b(?:,?\s+\d{{4}}\b)?", re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTH}\b(?:,?\s+\d{{4}}\b)?", re.IGNORECASE),
]

# Question framings whose subject is worth a second document search
SUBJECT_PATTERNS = [
    re.compile(r"how many (.+?) (?:does|do|has|have|is|are)\b", re.IGNORECASE),
    re.compile(r"how much (?:does|do|is|are|for) (?:the |a |an )?(.+?)(?: cost| to hire|$)", re.IGNORECASE),
    re.compile(r"restrictions? (?:regarding|on|for|about) (?:the )?(.+)", re.IGNORECASE),
    re.compile(r"(?:tell me about|what is|what are|details (?:of|on|for)) (?:the |a |an )?(.+)", re.IGNORECASE),
]


def extract_date(question: str) -> Optional[str]:
    """First date-looking fragment of a question."""
    for pattern in DATE_PATTERNS:
        match = pattern.search(question)
        if match:
            return re.sub(r"\s+of\s+", " ", match.group(0))
    return None


def extract_subject(question: str) -> Optional[str]:
    for pattern in SUBJECT_PATTERNS:
        match = pattern.search(question)
        if match:
            subject = match.group(1).strip(" ?.!")
            if subject:
                return subject
    return None


def _format_event(event: Dict) -> str:
    tickets = "Available" if event.get("tickets_available") else "Check with the box office"
    line = f"{event['title']}."
    if event.get("description"):
        line += f" {event['description']}"
    return f"{line} (Time: {event.get('time') or 'TBA'}, Tickets: {tickets})"


def _format_hit(hit: Dict) -> Optional[str]:
    kind = hit["type"]
    if kind == "faq":
        return f"From the technical docs (FAQ): Q: {hit['question']} A: {hit['answer']}"
    if kind == "equipment":
        pages = ", ".join(str(p) for p in hit["pages"])
        return (
            f"Regarding {hit['name']} (equipment): Quantity: {hit['quantity']}, "
            f"Specs: {hit['specifications'] or 'N/A'}. (Source: technical bible page {pages})"
        )
    if kind == "pricing":
        return f"Regarding {hit['item']} (pricing): £{hit['price']:.2f}. (Source: technical bible page {hit['page']})"
    if kind == "restriction":
        return f"Restriction ({hit['keyword']}): {hit['description']} (Page {hit['page']})"
    if kind in ("specification", "raw_text"):
        content = hit["content"]
        if len(content) > 200:
            content = content[:200] + "..."
        return f"From the technical docs (Page {hit.get('page') or 'N/A'}): {content}"
    return None


def _format_item(item: Dict) -> str:
    details = ", ".join(
        f"{key}: {value}"
        for key, value in item.items()
        if key not in ("id", "name", "previousVersions")
    )
    return f"From current specs for {item.get('name', item.get('id'))}: {details}"


class KnowledgeRouter:
    """Routes one question to every knowledge source and merges the answers."""

    def __init__(
        self,
        indexer: DocumentIndexer,
        calendar: CalendarStore,
        registry: SpecificationRegistry,
        venue_name: str = "Studio 338",
        max_document_hits: int = 2,
    ):
        """
        Initialize router.

        Args:
            indexer: Indexer for the technical bible
            calendar: Events calendar store
            registry: Specification catalog
            venue_name: Venue named in fallback replies
            max_document_hits: Document search results included per answer
        """
        self.indexer = indexer
        self.calendar = calendar
        self.registry = registry
        self.venue_name = venue_name
        self.max_document_hits = max_document_hits
        self.index: Optional[KnowledgeIndex] = None
        self.initialized = False

    def initialize(
        self,
        document_pages: Optional[Sequence[str]] = None,
        document_path: Optional[str] = None,
    ) -> bool:
        """
        Build every knowledge source.

        Args:
            document_pages: Technical bible page texts
            document_path: Where to load the pages from, if not given directly

        Returns:
            True once all sources have been built
        """
        logger.info("Initializing knowledge base...")
        try:
            self.registry.initialize()
            logger.info(f"Specification registry initialized (version {self.registry.version})")

            self.calendar.fetch_all_events()
            logger.info("Calendar store initialized")

            if document_pages is not None:
                self.index = self.indexer.extract_document(document_pages)
            elif document_path:
                self.index = self.indexer.load_document(document_path)
            if self.index is None:
                logger.warning("Technical bible not loaded, document search disabled")

            self.initialized = True
            logger.info("All knowledge sources initialized")

        except Exception as e:
            logger.error(f"Failed to initialize knowledge base: {e}")
            self.initialized = False

        return self.initialized

    def answer(self, question: str) -> str:
        """
        Answer a question from every source that has something to say.

        Returns:
            Non-empty source blocks joined by a separator, or a fixed
            "nothing found" reply
        """
        if not self.initialized:
            return NOT_READY_MESSAGE

        responses = []
        for name, source in (
            ("calendar", self._answer_calendar),
            ("document", self._answer_document),
            ("specifications", self._answer_specifications),
        ):
            try:
                block = source(question)
            except Exception as e:
                logger.warning(f"Skipping {name} answer: {e}")
                continue
            if block:
                responses.append(block)

        if responses:
            return SEPARATOR.join(responses)
        return NOTHING_FOUND_MESSAGE.format(venue=self.venue_name)

    def _answer_calendar(self, question: str) -> Optional[str]:
        date_text = extract_date(question)
        if date_text is None:
            return None

        result = self.calendar.get_event_for_date(date_text)
        if result.get("error") == "invalid_format":
            logger.warning(f"Could not parse date from question: {question}")
            return None

        if not result["found"]:
            return result["message"]

        if result["exact"]:
            return "\n".join(f"On {result['date']}: {_format_event(e)}" for e in result["events"])

        nearby = "\n".join(f"On {e['date']}: {_format_event(e)}" for e in result["events"])
        return f"No event exactly on {result['date']}, but nearby:\n{nearby}"

    def _answer_document(self, question: str) -> Optional[str]:
        hits = self._document_hits(question)
        if not hits:
            subject = extract_subject(question)
            if subject and subject.lower() != question.lower():
                hits = self._document_hits(subject)

        blocks = [b for b in (_format_hit(h) for h in hits[: self.max_document_hits]) if b]
        return "\n\n".join(blocks) if blocks else None

    def _document_hits(self, query: str) -> List[Dict]:
        return [h for h in search(self.index, query) if h["type"] != "error"]

    def _answer_specifications(self, question: str) -> Optional[str]:
        item = self.registry.get_item_by_id(question.strip().lower())
        items = [item] if item is not None else self.registry.find_items(question)
        if not items:
            return None
        return "\n\n".join(_format_item(i) for i in items)
