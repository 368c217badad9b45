from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import PurePath
from typing import Any, Iterable

import pdfplumber
from docx import Document
from docx.opc.constants import RELATIONSHIP_TYPE

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"https?://[^\s)<>\"']+", re.IGNORECASE)
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_MAILTO_PATTERN = re.compile(r"mailto:([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?"

_PDF_TYPES = {"application/pdf", "application/x-pdf"}
_DOCX_TYPES = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
}
_UNDECODABLE_RATIO = 0.3


class ResumeExtractionError(ValueError):
    pass


@dataclass(slots=True)
class ExtractedResume:
    text: str
    linkedin_url: str | None = None
    github_url: str | None = None
    embedded_emails: list[str] = field(default_factory=list)
    other_links: list[str] = field(default_factory=list)

    @property
    def links(self) -> list[str]:
        values = [self.linkedin_url, self.github_url, *self.other_links]
        return [value for value in values if value]

    def to_resume_json(self, skills: list[str] | None = None) -> dict[str, Any]:
        return {
            "text": self.text,
            "linkedin": self.linkedin_url,
            "github": self.github_url,
            "emails": list(self.embedded_emails),
            "other_links": list(self.other_links),
            "skills": list(skills or []),
        }


def detect_document_kind(content_type: str | None = None, filename: str | None = None, data: bytes = b"") -> str:
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime in _PDF_TYPES:
        return "pdf"
    if mime in _DOCX_TYPES:
        return "docx"
    if mime.startswith("text/"):
        return "text"

    suffix = PurePath(filename or "").suffix.lower()
    if suffix == ".pdf":
        return "pdf"
    if suffix in {".docx", ".doc"}:
        return "docx"
    if suffix in {".txt", ".md", ".text"}:
        return "text"

    if data.startswith(b"%PDF"):
        return "pdf"
    if data.startswith(b"PK\x03\x04"):
        return "docx"
    return "text"


def extract_resume(
    data: bytes,
    *,
    content_type: str | None = None,
    filename: str | None = None,
) -> ExtractedResume:
    kind = detect_document_kind(content_type, filename, data)
    text = ""
    if kind == "pdf":
        try:
            text = _extract_pdf_text(data)
        except Exception as exc:
            logger.warning("PDF parsing failed for %s, reading as text: %s", filename or "attachment", exc)
            text = decode_text(data)
    elif kind == "docx":
        try:
            text = _extract_docx_text(data)
        except Exception as exc:
            logger.warning("DOCX parsing failed for %s, reading as text: %s", filename or "attachment", exc)
            text = decode_text(data)
    else:
        text = decode_text(data)

    return extract_links(text)


def decode_text(data: bytes) -> str:
    if not data:
        return ""
    text = data.decode("utf-8", errors="replace")
    unreadable = sum(1 for char in text if char == "�" or _is_control(char))
    if unreadable / len(text) > _UNDECODABLE_RATIO:
        raise ResumeExtractionError("document bytes could not be decoded as text")
    return text


def _is_control(char: str) -> bool:
    return ord(char) < 32 and char not in "\n\r\t\f"


def _extract_pdf_text(data: bytes) -> str:
    chunks: list[str] = []
    with pdfplumber.open(BytesIO(data)) as pdf:
        for index, page in enumerate(pdf.pages, start=1):
            try:
                page_text = page.extract_text() or ""
            except Exception as exc:
                logger.warning("Skipping unreadable PDF page %s: %s", index, exc)
                continue
            if page_text:
                chunks.append(page_text)
            for link in page.hyperlinks or []:
                uri = link.get("uri")
                if uri:
                    chunks.append(uri)
    return _normalize_text(chunks)


def _extract_docx_text(data: bytes) -> str:
    document = Document(BytesIO(data))
    return _normalize_text(_iter_docx_text(document))


def _iter_docx_text(document) -> Iterable[str]:
    for paragraph in document.paragraphs:
        if paragraph.text:
            yield paragraph.text

    for table in document.tables:
        for row in table.rows:
            for cell in row.cells:
                if cell.text:
                    yield cell.text

    # Hyperlink targets are not part of the visible text.
    for relation in document.part.rels.values():
        if relation.reltype == RELATIONSHIP_TYPE.HYPERLINK and relation.is_external:
            yield relation.target_ref


def _normalize_text(chunks: Iterable[str]) -> str:
    cleaned = [chunk.strip() for chunk in chunks if chunk and chunk.strip()]
    if not cleaned:
        return ""
    text = "\n".join(cleaned)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _dedupe(values: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def extract_links(text: str) -> ExtractedResume:
    cleaned = re.sub(r"\s+", " ", text).strip()

    urls = _dedupe(url.rstrip(_TRAILING_PUNCTUATION) for url in _URL_PATTERN.findall(cleaned))
    mailto = [match.group(1) for match in _MAILTO_PATTERN.finditer(cleaned)]
    emails = _dedupe(email.lower() for email in [*mailto, *_EMAIL_PATTERN.findall(cleaned)])

    linkedin: str | None = None
    github: str | None = None
    others: list[str] = []
    for url in urls:
        lowered = url.lower()
        if "linkedin.com" in lowered:
            if linkedin is None:
                linkedin = url.rstrip("/")
        elif "github.com" in lowered:
            if github is None:
                github = url.rstrip("/")
        else:
            others.append(url)

    return ExtractedResume(
        text=cleaned,
        linkedin_url=linkedin,
        github_url=github,
        embedded_emails=emails,
        other_links=others,
    )


def skills_found(text: str, skills: list[str]) -> list[str]:
    found: list[str] = []
    for skill in skills:
        needle = skill.strip()
        if not needle:
            continue
        # \b fails next to symbols such as "c++" or ".net", so anchor on non-word neighbours.
        pattern = re.compile(rf"(?<!\w){re.escape(needle)}(?!\w)", re.IGNORECASE)
        if pattern.search(text) and skill not in found:
            found.append(skill)
    return found
