from io import BytesIO

import pytest
from docx import Document

from hirebit.core.cv_parser import (
    ResumeExtractionError,
    decode_text,
    detect_document_kind,
    extract_links,
    extract_resume,
    skills_found,
)
from hirebit.core.pdf import html_to_pdf


def test_extract_links_classifies_profiles_and_emails() -> None:
    text = (
        "Jane Doe\nContact: Jane.Doe@Example.com or mailto:jane.doe@example.com\n"
        "Profiles: https://www.linkedin.com/in/janedoe/ and https://github.com/janedoe.\n"
        "Portfolio https://janedoe.dev, again https://www.linkedin.com/in/other"
    )
    resume = extract_links(text)

    assert resume.linkedin_url == "https://www.linkedin.com/in/janedoe"
    assert resume.github_url == "https://github.com/janedoe"
    assert resume.embedded_emails == ["jane.doe@example.com"]
    assert resume.other_links == ["https://janedoe.dev"]
    assert "\n" not in resume.text


def test_to_resume_json_shape() -> None:
    resume = extract_links("Python developer https://github.com/dev")
    payload = resume.to_resume_json(["python"])

    assert set(payload) == {"text", "linkedin", "github", "emails", "other_links", "skills"}
    assert payload["github"] == "https://github.com/dev"
    assert payload["linkedin"] is None
    assert payload["skills"] == ["python"]


def test_skills_found_matches_whole_tokens_and_symbols() -> None:
    text = "Worked with C++, .NET and PostgreSQL; scripting in Python3 is not python-only."
    found = skills_found(text, ["c++", ".net", "sql", "postgresql", "python", "java"])

    assert found == ["c++", ".net", "postgresql", "python"]


def test_detect_document_kind_prefers_mime_then_suffix_then_magic() -> None:
    assert detect_document_kind("application/pdf; name=cv", "cv.txt") == "pdf"
    assert detect_document_kind("application/octet-stream", "cv.DOCX") == "docx"
    assert detect_document_kind(None, None, b"%PDF-1.7 ...") == "pdf"
    assert detect_document_kind(None, "notes", b"plain words") == "text"


def test_decode_text_rejects_binary_noise() -> None:
    assert decode_text(b"") == ""
    assert decode_text("Résumé text".encode("utf-8")) == "Résumé text"
    with pytest.raises(ResumeExtractionError):
        decode_text(bytes(range(0, 32)) * 4)


def test_extract_resume_reads_docx_paragraphs_tables_and_links() -> None:
    document = Document()
    document.add_paragraph("Senior Python engineer with 6 years of experience")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Docker"
    table.rows[0].cells[1].text = "https://github.com/octo"
    buffer = BytesIO()
    document.save(buffer)

    resume = extract_resume(buffer.getvalue(), filename="cv.docx")

    assert "Senior Python engineer" in resume.text
    assert "Docker" in resume.text
    assert resume.github_url == "https://github.com/octo"


def test_extract_resume_reads_pdf_text() -> None:
    pdf = html_to_pdf("<html><body><p>Data engineer skilled in SQL and Airflow</p></body></html>")

    resume = extract_resume(pdf, content_type="application/pdf", filename="cv.pdf")

    assert "SQL" in resume.text
    assert "Airflow" in resume.text


def test_extract_resume_falls_back_to_text_for_plain_attachments() -> None:
    resume = extract_resume(b"Plain resume, see https://linkedin.com/in/plain", filename="cv.txt")

    assert resume.linkedin_url == "https://linkedin.com/in/plain"


def test_extract_resume_raises_for_undecodable_bytes() -> None:
    with pytest.raises(ResumeExtractionError):
        extract_resume(b"\x00\x01\x02\x03\x04\x05\x06\x07" * 20, filename="cv.bin")
