"""
Page Extraction and Workspace Discovery

The preprocessing run treats page extraction as a collaborator behind the
``PageExtractor`` protocol. ``DefaultPageExtractor`` handles the formats the
desktop client offers: PDF (one string per page, via PyMuPDF) and plain text
or Markdown (whole file as a single page).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import pymupdf

from ..core.errors import UnexpectedIO, WorkspaceNotConfigured

logger = logging.getLogger("litnav.extractor")

PDF_EXTENSIONS = (".pdf",)
TEXT_EXTENSIONS = (".txt", ".md")


class PageExtractor(Protocol):
    def extract(self, path: str) -> Optional[List[str]]:
        """
        Return page texts in order, or None when the format is unsupported.
        """
        ...


class DefaultPageExtractor:
    """Extracts PDF pages with PyMuPDF and reads text formats directly."""

    def extract(self, path: str) -> Optional[List[str]]:
        ext = Path(path).suffix.lower()

        if ext in PDF_EXTENSIONS:
            return self._extract_pdf(path)
        if ext in TEXT_EXTENSIONS:
            return [self._read_text(path)]

        logger.info("Skipping unsupported file: %s", path)
        return None

    @staticmethod
    def _read_text(path: str) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise UnexpectedIO(f"Failed to read {path}: {exc}") from exc

    @staticmethod
    def _extract_pdf(path: str) -> List[str]:
        try:
            pdf_document = pymupdf.open(path)
        except Exception as exc:
            raise UnexpectedIO(f"Failed to open PDF {path}: {exc}") from exc

        try:
            pages = []
            for page in pdf_document:
                # Collapse line breaks the same way the viewer joins text items
                pages.append(" ".join(page.get_text("text").split("\n")))
            return pages
        except Exception as exc:
            raise UnexpectedIO(f"Failed to extract text from {path}: {exc}") from exc
        finally:
            pdf_document.close()


def discover_documents(
    root: str,
    extensions: Sequence[str] = PDF_EXTENSIONS,
) -> List[str]:
    """
    Walk ``root`` recursively and return every file with a matching extension,
    sorted by path.
    """
    if not root or not os.path.isdir(root):
        raise WorkspaceNotConfigured(f"Workspace root is not a directory: {root!r}")

    wanted = {ext.lower() for ext in extensions}
    found: List[str] = []

    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            if os.path.splitext(name)[1].lower() in wanted:
                found.append(os.path.join(dirpath, name))

    found.sort()
    logger.info("Discovered %d documents under %s", len(found), root)
    return found
