"""
Document parsing boundary.

The production parser (OCR/layout service) lives outside this package;
PlainTextDocumentParser handles text and markdown uploads directly.
"""
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Dict, Optional

from src.config import settings
from src.exceptions import DocumentParseError, DocumentTooLargeError

# Form feeds mark page breaks in text exports
PAGE_BREAK = "\f"


@dataclass
class ParsedDocument:
    """Text content of an uploaded note plus parse metadata."""
    content: str
    markdown_content: str
    sections: Dict[str, str] = field(default_factory=dict)
    page_count: int = 1
    confidence: float = 1.0
    file_format: str = "txt"
    filename: Optional[str] = None


class DocumentParser(ABC):
    """Converts uploaded bytes into text."""

    @abstractmethod
    async def parse(self, data: bytes, filename: str) -> ParsedDocument:
        """
        Parse a document.

        Raises:
            DocumentTooLargeError: If the file exceeds size or page limits
            DocumentParseError: If the file cannot be read
        """
        pass


class PlainTextDocumentParser(DocumentParser):
    """Parses UTF-8 .txt / .md notes; '#' headings become sections."""

    SUPPORTED_FORMATS = ("txt", "md", "markdown")

    def __init__(self, max_bytes: int = None, max_pages: int = None):
        self.max_bytes = max_bytes or settings.max_document_bytes
        self.max_pages = max_pages or settings.max_document_pages

    async def parse(self, data: bytes, filename: str) -> ParsedDocument:
        if len(data) > self.max_bytes:
            raise DocumentTooLargeError(
                f"Document is {len(data)} bytes; limit is {self.max_bytes}"
            )

        file_format = PurePath(filename).suffix.lower().lstrip(".") or "txt"
        if file_format not in self.SUPPORTED_FORMATS:
            raise DocumentParseError(f"Unsupported file format: {file_format}")

        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise DocumentParseError(f"Document is not valid UTF-8: {e}") from e

        page_count = text.count(PAGE_BREAK) + 1
        if page_count > self.max_pages:
            raise DocumentTooLargeError(
                f"Document has {page_count} pages; limit is {self.max_pages}"
            )

        content = text.replace(PAGE_BREAK, "\n").strip()
        if not content:
            raise DocumentParseError("Document contains no text")

        return ParsedDocument(
            content=content,
            markdown_content=content,
            sections=self._split_sections(content),
            page_count=page_count,
            confidence=1.0,
            file_format=file_format,
            filename=filename,
        )

    @staticmethod
    def _split_sections(content: str) -> Dict[str, str]:
        sections: Dict[str, str] = {}
        current = None
        lines = []
        for line in content.splitlines():
            heading = re.match(r"^#{1,6}\s+(.+?)\s*$", line)
            if heading:
                if current is not None:
                    sections[current] = "\n".join(lines).strip()
                current = heading.group(1)
                lines = []
            else:
                lines.append(line)
        if current is not None:
            sections[current] = "\n".join(lines).strip()
        return sections
