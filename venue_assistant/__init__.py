"""
Venue Assistant - Knowledge Engine
Answers questions about a venue from its events calendar, technical bible
and specification catalog.
"""

__version__ = "1.0.0"
__author__ = "Data Engineering Team"

from venue_assistant.calendar_store import CalendarStore
from venue_assistant.document_indexer import DocumentIndexer, KnowledgeIndex
from venue_assistant.query_router import KnowledgeRouter
from venue_assistant.specification_registry import (
    LocalSpecificationSource,
    RemoteSpecificationSource,
    SpecificationRegistry,
)
from venue_assistant.storage import JsonFileStore, MemoryStore

__all__ = [
    "CalendarStore",
    "DocumentIndexer",
    "KnowledgeIndex",
    "KnowledgeRouter",
    "LocalSpecificationSource",
    "RemoteSpecificationSource",
    "SpecificationRegistry",
    "JsonFileStore",
    "MemoryStore",
]
