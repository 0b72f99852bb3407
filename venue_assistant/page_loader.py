"""
Page Loader Module
Read the technical bible's page texts from disk.
"""

import json
import os
from typing import List

from loguru import logger


PAGE_BREAK = "\f"


def load_pages(path: str) -> List[str]:
    """
    Load page texts.

    Accepts a JSON file holding a list of strings, a directory of ``*.txt``
    files (one page each, in name order), or a plain text file whose pages
    are separated by form feeds.

    Args:
        path: File or directory to read

    Returns:
        Page texts, first page first
    """
    if os.path.isdir(path):
        names = sorted(n for n in os.listdir(path) if n.endswith(".txt"))
        pages = []
        for name in names:
            with open(os.path.join(path, name), "r", encoding="utf-8") as f:
                pages.append(f.read())
        logger.info(f"Loaded {len(pages)} pages from directory {path}")
        return pages

    with open(path, "r", encoding="utf-8") as f:
        content = f.read()

    if path.endswith(".json"):
        # JSONDecodeError is a ValueError
        pages = json.loads(content)
        if not isinstance(pages, list) or not all(isinstance(p, str) for p in pages):
            raise ValueError(f"{path} must contain a JSON list of page strings")
    else:
        pages = content.split(PAGE_BREAK)

    logger.info(f"Loaded {len(pages)} pages from {path}")
    return pages
