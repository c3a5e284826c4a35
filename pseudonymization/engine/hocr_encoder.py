# pseudonymization/engine/hocr_encoder.py

"""Plain text to synthetic HOCR encoder.

The extraction service expects an HOCR page as produced by an OCR engine.
There is no image here, so geometry is synthesized: each word box is as wide
as its character count without punctuation, and words, lines, and paragraphs
are laid out left-to-right, top-to-bottom. Only the ordering is meaningful
downstream. Word text is emitted as written so that annotated spans match
the source text.
"""

import re
import logging
import unicodedata
from html import escape
from typing import List, Tuple

from pseudonymization.core.definitions import HocrClass
from pseudonymization.core.domain import HocrDocument

logger = logging.getLogger(__name__)

CHAR_WIDTH = 12
WORD_HEIGHT = 24
WORD_GUTTER = 10
LINE_HEIGHT = 30
PARAGRAPH_GAP = 20
PAGE_MARGIN = 50
MIN_PAGE_WIDTH = 800
MIN_PAGE_HEIGHT = 600

_PARAGRAPH_BREAK = re.compile(r"\n[ \t\r\f\v]*\n")

_HEADER = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN"
    "http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">
<html xmlns="http://www.w3.org/1999/xhtml" xml:lang="en" lang="en">
 <head>
  <title></title>
  <meta http-equiv="Content-Type" content="text/html;charset=utf-8"/>
  <meta name="ocr-system" content="hocr-pseudonymization"/>
  <meta name="ocr-capabilities" content="{capabilities}"/>
 </head>
 <body>
"""

_FOOTER = """ </body>
</html>
"""

Box = Tuple[int, int, int, int]


def strip_punctuation(token: str) -> str:
    """Removes every Unicode punctuation character from a token."""
    return "".join(ch for ch in token if not unicodedata.category(ch).startswith("P"))


def trim_punctuation(text: str) -> str:
    """Removes Unicode punctuation from both ends of a span, keeping inner marks."""
    start, end = 0, len(text)
    while start < end and unicodedata.category(text[start]).startswith("P"):
        start += 1
    while end > start and unicodedata.category(text[end - 1]).startswith("P"):
        end -= 1
    return text[start:end]


def _bbox(box: Box) -> str:
    return "bbox {} {} {} {}".format(*box)


def _split_paragraphs(text: str) -> List[List[List[str]]]:
    """Splits text into paragraphs -> lines -> words.

    Words are kept as written; words made only of punctuation are dropped,
    and so are lines and paragraphs left empty.
    """
    paragraphs = []
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")

    for block in _PARAGRAPH_BREAK.split(normalized):
        lines = []
        for raw_line in block.split("\n"):
            words = [t for t in raw_line.split() if strip_punctuation(t)]
            if words:
                lines.append(words)
        if lines:
            paragraphs.append(lines)

    return paragraphs


def encode(text: str, with_paragraphs: bool = True) -> HocrDocument:
    """Converts plain text into a single-page HOCR document.

    Args:
        text: Source text; blank lines separate paragraphs
        with_paragraphs: Emit ``ocr_par`` wrappers (False nests lines
            directly under the page)

    Returns:
        HocrDocument whose word ids run from 1 across the whole page
    """
    paragraphs = _split_paragraphs(text or "")

    body: List[str] = []
    word_id = 0
    line_id = 0
    page_right = MIN_PAGE_WIDTH
    y = PAGE_MARGIN

    for par_index, lines in enumerate(paragraphs, start=1):
        par_top = y
        par_right = PAGE_MARGIN
        line_parts: List[str] = []

        for words in lines:
            line_id += 1
            x = PAGE_MARGIN
            word_parts = []

            for word in words:
                word_id += 1
                width = CHAR_WIDTH * len(strip_punctuation(word))
                box = (x, y, x + width, y + WORD_HEIGHT)
                word_parts.append(
                    f"     <span class='{HocrClass.WORD}' id='word_1_{word_id}' "
                    f"title='{_bbox(box)}; x_wconf 95'>{escape(word, quote=False)}</span>"
                )
                x += width + WORD_GUTTER

            line_right = x - WORD_GUTTER
            line_box = (PAGE_MARGIN, y, line_right, y + WORD_HEIGHT)
            line_parts.append(
                f"    <span class='{HocrClass.LINE}' id='line_1_{line_id}' "
                f"title='{_bbox(line_box)}; baseline 0 0; x_size {WORD_HEIGHT}; "
                f"x_descenders 5; x_ascenders 5'>\n"
                + "\n".join(word_parts)
                + "\n    </span>"
            )
            par_right = max(par_right, line_right)
            y += LINE_HEIGHT

        page_right = max(page_right, par_right + PAGE_MARGIN)

        if with_paragraphs:
            par_box = (PAGE_MARGIN, par_top, par_right, y - LINE_HEIGHT + WORD_HEIGHT)
            body.append(
                f"   <p class='{HocrClass.PARAGRAPH}' id='par_1_{par_index}' "
                f"lang='deu' title='{_bbox(par_box)}'>\n"
                + "\n".join(line_parts)
                + "\n   </p>"
            )
        else:
            body.extend(line_parts)

        y += PARAGRAPH_GAP

    page_box = (0, 0, page_right, max(MIN_PAGE_HEIGHT, y + PAGE_MARGIN))
    capabilities = [HocrClass.PAGE, HocrClass.LINE, HocrClass.WORD]
    if with_paragraphs:
        capabilities.insert(1, HocrClass.PARAGRAPH)

    markup = (
        _HEADER.format(capabilities=" ".join(capabilities))
        + f"  <div class='{HocrClass.PAGE}' id='page_1' "
        f"title='image \"synthetic\"; {_bbox(page_box)}; ppageno 0'>\n"
        + ("\n".join(body) + "\n" if body else "")
        + "  </div>\n"
        + _FOOTER
    )

    logger.debug(
        "Encoded text as HOCR",
        extra={
            "word_count": word_id,
            "line_count": line_id,
            "paragraph_count": len(paragraphs),
        },
    )

    return HocrDocument(
        markup=markup,
        word_count=word_id,
        line_count=line_id,
        paragraph_count=len(paragraphs),
        with_paragraphs=with_paragraphs,
    )
