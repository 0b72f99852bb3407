"""
Document Indexer Module
Extract equipment, pricing, restrictions and categorized passages from the
technical bible and serve keyword search over the result.
"""

import re
from typing import Dict, List, Optional, Sequence

from loguru import logger
from tqdm import tqdm

from venue_assistant.page_loader import load_pages


# Keywords that route a page's paragraphs into a technical category
CATEGORIES = {
    "SOUND": ["sound", "audio", "speaker", "pa", "microphone", "mixer", "cdj", "technics"],
    "LIGHTING": ["lighting", "light", "strobe", "beam", "led", "rgb"],
    "VIDEO": ["video", "screen", "projection", "projector", "led screen"],
    "STAGE": ["stage", "dimensions", "truss", "podium"],
    "POWER": ["power", "electricity", "amp", "volt"],
    "SPECIAL_FX": ["fx", "effect", "smoke", "pyro", "confetti", "co2"],
    "RESTRICTIONS": ["restriction", "limit", "maximum", "minimum", "db", "decibel"],
}

RESTRICTION_KEYWORDS = [
    "maximum", "minimum", "limit", "restriction", "not allowed",
    "prohibited", "must", "cannot", "db limit", "decibel",
]

UNKNOWN_ITEM = "Unknown item"
NOT_LOADED_MESSAGE = "Knowledge base not loaded. Please load the technical bible first."

# "4 x Pioneer CDJ 3000 (Rekordbox ready)"
EQUIPMENT_PATTERN = re.compile(
    r"(\d+)\s+x\s+([A-Za-z0-9&\-]+(?:[ \t]+[A-Za-z0-9&\-]+)*)(?:\s*\(([^)]+)\))?"
)
# "£250 + VAT"
PRICE_PATTERN = re.compile(r"£(\d+(?:\.\d+)?)\s*(?:\+\s*VAT)?")
# "Haze machine - £75", "Full day stage hire £1500"
PRICE_CONTEXT_PATTERN = re.compile(r"([A-Za-z0-9][A-Za-z0-9 \t&\-]*?)\s*(?:-\s+)?£(\d+(?:\.\d+)?)")
SENTENCE_SPLIT = re.compile(r"[.!?]+")
PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
PRICE_CONTEXT_CHARS = 50


class KnowledgeIndex:
    """Structured facts extracted from one document."""

    def __init__(self):
        self.equipment: Dict[str, Dict] = {}
        self.pricing: Dict[str, Dict] = {}
        self.restrictions: Dict[str, List[Dict]] = {}
        self.specifications: Dict[str, List[Dict]] = {}
        self.faqs: List[Dict] = []
        self.raw: Dict[int, str] = {}
        self.generation = 0

    @property
    def built(self) -> bool:
        return self.generation > 0

    def find_equipment(self, name: str) -> Optional[str]:
        """Return the stored key for an equipment name, ignoring case."""
        name_lower = name.lower()
        for key in self.equipment:
            if key.lower() == name_lower:
                return key
        return None


def extract_equipment(text: str, page_num: int) -> Dict[str, Dict]:
    """Find "<n> x <name> [(<spec>)]" listings on a page."""
    equipment = {}
    seen = set()
    for match in EQUIPMENT_PATTERN.finditer(text):
        name = match.group(2).strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        equipment[name] = {
            "quantity": int(match.group(1)),
            "specifications": match.group(3).strip() if match.group(3) else "",
            "page_references": [page_num],
        }
    return equipment


def extract_pricing(text: str, page_num: int) -> Dict[str, Dict]:
    """
    Find prices on a page.

    Bare "£<n>" prices are labelled with the trailing clause before them.
    Labelled "<label> [- ]£<n>" matches run second and overwrite on the same label.
    """
    pricing = {}

    for match in PRICE_PATTERN.finditer(text):
        context = text[max(0, match.start() - PRICE_CONTEXT_CHARS):match.start()]
        item = UNKNOWN_ITEM
        last_clause = context.split(".")[-1].strip()
        if 0 < len(last_clause) < PRICE_CONTEXT_CHARS:
            item = last_clause

        pricing[item] = {
            "price": float(match.group(1)),
            "page_reference": page_num,
            "context": context,
        }

    for match in PRICE_CONTEXT_PATTERN.finditer(text):
        pricing[match.group(1).strip()] = {
            "price": float(match.group(2)),
            "page_reference": page_num,
            "context": None,
        }

    return pricing


def extract_restrictions(text: str, page_num: int) -> Dict[str, List[Dict]]:
    """Collect every sentence mentioning a restriction keyword."""
    restrictions: Dict[str, List[Dict]] = {}
    text_lower = text.lower()

    for keyword in RESTRICTION_KEYWORDS:
        if keyword not in text_lower:
            continue
        for sentence in SENTENCE_SPLIT.split(text):
            if keyword in sentence.lower():
                restrictions.setdefault(keyword, []).append({
                    "description": sentence.strip(),
                    "page_reference": page_num,
                })

    return restrictions


def categorize_passages(text: str, page_num: int) -> Dict[str, List[Dict]]:
    """
    Sort a page's paragraphs into technical categories.

    Only the first keyword of a category found on the page is used to pick
    paragraphs for that category.
    """
    passages: Dict[str, List[Dict]] = {}
    text_lower = text.lower()

    for category, keywords in CATEGORIES.items():
        for keyword in keywords:
            if keyword not in text_lower:
                continue
            entries = passages.setdefault(category, [])
            for paragraph in PARAGRAPH_SPLIT.split(text):
                if keyword in paragraph.lower():
                    entries.append({
                        "content": paragraph.strip(),
                        "page_reference": page_num,
                        "keyword": keyword,
                    })
            break

    return passages


def deduplicate_passages(specifications: Dict[str, List[Dict]]) -> Dict[str, List[Dict]]:
    """Drop passages whose exact content already appeared in the same category."""
    deduplicated = {}
    for category, entries in specifications.items():
        seen = set()
        unique = []
        for entry in entries:
            if entry["content"] not in seen:
                unique.append(entry)
                seen.add(entry["content"])
        deduplicated[category] = unique
    return deduplicated


def generate_faqs(index: KnowledgeIndex, venue_name: str = "Studio 338") -> List[Dict]:
    """Build question/answer records from the extracted facts."""
    faqs = []

    for name, details in index.equipment.items():
        spec = f" ({details['specifications']})" if details["specifications"] else ""
        faqs.append({
            "question": f"How many {name} does {venue_name} have?",
            "answer": f"{venue_name} has {details['quantity']} {name}{spec}.",
            "category": "EQUIPMENT",
        })

    for item, details in index.pricing.items():
        if item == UNKNOWN_ITEM:
            continue
        context = ""
        if details.get("context"):
            context = f" based on the following information: {details['context']}"
        faqs.append({
            "question": f"How much does {item} cost to hire?",
            "answer": f"The cost for {item} is £{details['price']:.2f}{context}.",
            "category": "PRICING",
        })

    for keyword, entries in index.restrictions.items():
        for entry in entries:
            faqs.append({
                "question": f"What are the restrictions regarding {keyword}?",
                "answer": entry["description"],
                "category": "RESTRICTIONS",
            })

    return faqs


def search(index: Optional[KnowledgeIndex], query: str) -> List[Dict]:
    """
    Search an index for a free-text query.

    Args:
        index: Index built by DocumentIndexer.extract_document
        query: Text matched case-insensitively as a substring

    Returns:
        Hits in source order (equipment, pricing, specification, restriction,
        faq), or raw page paragraphs when nothing structured matched
    """
    if index is None or not index.built:
        return [{"type": "error", "message": NOT_LOADED_MESSAGE}]

    results = []
    query_lower = query.lower()

    for name, details in index.equipment.items():
        if query_lower in name.lower():
            results.append({
                "type": "equipment",
                "name": name,
                "quantity": details["quantity"],
                "specifications": details["specifications"],
                "pages": list(details["page_references"]),
            })

    for item, details in index.pricing.items():
        if query_lower in item.lower():
            results.append({
                "type": "pricing",
                "item": item,
                "price": details["price"],
                "page": details["page_reference"],
            })

    for category, entries in index.specifications.items():
        for entry in entries:
            if query_lower in entry["content"].lower():
                results.append({
                    "type": "specification",
                    "category": category,
                    "content": entry["content"],
                    "page": entry["page_reference"],
                })

    for keyword, entries in index.restrictions.items():
        if query_lower in keyword:
            for entry in entries:
                results.append({
                    "type": "restriction",
                    "keyword": keyword,
                    "description": entry["description"],
                    "page": entry["page_reference"],
                })

    for faq in index.faqs:
        if query_lower in faq["question"].lower() or query_lower in faq["answer"].lower():
            results.append({
                "type": "faq",
                "question": faq["question"],
                "answer": faq["answer"],
                "category": faq["category"],
            })

    if results:
        return results

    for page_num, content in index.raw.items():
        if query_lower not in content.lower():
            continue
        for paragraph in PARAGRAPH_SPLIT.split(content):
            if query_lower in paragraph.lower():
                results.append({
                    "type": "raw_text",
                    "page": page_num,
                    "content": paragraph.strip(),
                })

    return results


class DocumentIndexer:
    """Build and query the knowledge index for the venue's technical bible."""

    def __init__(self, venue_name: str = "Studio 338", show_progress: bool = True):
        """
        Initialize indexer.

        Args:
            venue_name: Venue named in generated FAQ entries
            show_progress: Display a progress bar while extracting pages
        """
        self.venue_name = venue_name
        self.show_progress = show_progress
        self.index = KnowledgeIndex()

    def reset(self):
        """Discard everything extracted so far."""
        self.index = KnowledgeIndex()

    def extract_document(self, pages: Sequence[str]) -> KnowledgeIndex:
        """
        Run every extractor over the document, page by page.

        Pages are processed in order because later pages extend the page
        references of equipment first seen on earlier ones.

        Args:
            pages: Page texts, first page first

        Returns:
            The indexer's knowledge index
        """
        logger.info(f"Extracting knowledge from {len(pages)} pages")

        for page_num, page_text in enumerate(
            tqdm(pages, desc="Indexing pages", disable=not self.show_progress), start=1
        ):
            self.index.raw[page_num] = page_text
            self._merge_equipment(extract_equipment(page_text, page_num), page_num)
            self.index.pricing.update(extract_pricing(page_text, page_num))
            for keyword, entries in extract_restrictions(page_text, page_num).items():
                self.index.restrictions.setdefault(keyword, []).extend(entries)
            for category, entries in categorize_passages(page_text, page_num).items():
                self.index.specifications.setdefault(category, []).extend(entries)

        self._finalize()

        logger.info(
            f"Index generation {self.index.generation}: "
            f"{len(self.index.equipment)} equipment, "
            f"{len(self.index.pricing)} prices, "
            f"{sum(len(v) for v in self.index.restrictions.values())} restrictions, "
            f"{len(self.index.faqs)} FAQs"
        )
        return self.index

    def load_document(self, path: str) -> Optional[KnowledgeIndex]:
        """Load pages from disk and extract them; None if the pages can't be read."""
        try:
            pages = load_pages(path)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load technical bible from {path}: {e}")
            return None
        return self.extract_document(pages)

    def search(self, query: str, index: Optional[KnowledgeIndex] = None) -> List[Dict]:
        """Search the given index, or the indexer's own."""
        return search(index if index is not None else self.index, query)

    def _merge_equipment(self, found: Dict[str, Dict], page_num: int):
        for name, details in found.items():
            key = self.index.find_equipment(name)
            if key is None:
                self.index.equipment[name] = details
            elif page_num not in self.index.equipment[key]["page_references"]:
                self.index.equipment[key]["page_references"].append(page_num)

    def _finalize(self):
        self.index.specifications = deduplicate_passages(self.index.specifications)
        self.index.faqs = generate_faqs(self.index, self.venue_name)
        self.index.generation += 1
