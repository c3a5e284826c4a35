# pseudonymization/engine/reconstruction.py

"""Pseudonymized running text rebuilt from an annotated HOCR document."""

import logging
from typing import List

from bs4 import BeautifulSoup

from pseudonymization.core.definitions import HocrClass
from pseudonymization.engine.annotations import HocrInput, extract_entity_id, markup_of

logger = logging.getLogger(__name__)


def _line_text(line) -> str:
    words = []
    for word in line.find_all(class_=HocrClass.WORD):
        token = extract_entity_id(word.get("title")) or word.get_text().strip()
        if token:
            words.append(token)
    return " ".join(words)


def _block_text(block) -> str:
    lines = [_line_text(line) for line in block.find_all(class_=HocrClass.LINE)]
    return "\n".join(line for line in lines if line)


def reconstruct_pseudonymized_text(annotated_doc: HocrInput) -> str:
    """Rebuilds text with every annotated word replaced by its full entity id.

    Words within a line are joined by spaces, lines by newlines, and
    paragraphs by a blank line. Documents without ``ocr_par`` wrappers are
    treated as one paragraph per page.
    """
    soup = BeautifulSoup(markup_of(annotated_doc), "html.parser")

    blocks = []
    for page in soup.find_all(class_=HocrClass.PAGE) or [soup]:
        paragraphs = page.find_all(class_=HocrClass.PARAGRAPH) or [page]
        blocks.extend(paragraphs)

    texts: List[str] = [t for t in (_block_text(b) for b in blocks) if t]

    logger.debug(
        "Reconstructed pseudonymized text",
        extra={"paragraph_count": len(texts)},
    )
    return "\n\n".join(texts)
