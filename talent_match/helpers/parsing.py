import io
import os
import re
from typing import Any, Dict, Optional, Tuple
from pdfminer.high_level import extract_text as pdf_extract
from docx import Document
from unstructured.partition.auto import partition

from talent_match.utils.exceptions import ValidationError

# extension -> MIME type sent to the AI service
SUPPORTED_DOCUMENT_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".doc": "application/msword",
    ".txt": "text/plain",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_PATTERN = re.compile(
    r"(\+?\d{1,3}[\s.-]?)?"   # country code
    r"(\(?\d{3}\)?[\s.-]?)"   # area code
    r"\d{3}[\s.-]?\d{4}"
)
YEARS_PATTERN = re.compile(r"(\d{1,2})\+?\s*(?:years?|yrs?)\b", re.IGNORECASE)
NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z'.-]*(?:\s+[A-Za-z][A-Za-z'.-]*){1,3}$")


def detect_document_type(filename: str, content_type: Optional[str] = None) -> Tuple[str, str]:
    """Return (extension, mime type) for an allowed document, else raise ValidationError."""
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in SUPPORTED_DOCUMENT_TYPES:
        raise ValidationError(
            f"Unsupported file type '{ext or 'unknown'}'. Supported: {sorted(SUPPORTED_DOCUMENT_TYPES)}",
            field="file", value=filename
        )
    mime = SUPPORTED_DOCUMENT_TYPES[ext]
    if content_type and content_type.split(";")[0].strip() == mime:
        mime = content_type.split(";")[0].strip()
    return ext, mime


def read_txt(data: bytes) -> str:
    return data.decode("utf-8", errors="ignore")


def read_docx(data: bytes) -> str:
    doc = Document(io.BytesIO(data))
    return "\n".join([p.text for p in doc.paragraphs])


def read_pdf(data: bytes) -> str:
    try:
        return pdf_extract(io.BytesIO(data))
    except Exception:
        # fallback to unstructured
        elems = partition(file=io.BytesIO(data))
        return "\n".join([e.text for e in elems if hasattr(e, "text") and e.text])


def clean_text(x: str) -> str:
    x = re.sub(r'[ \t]+', ' ', x)
    x = re.sub(r'\n{3,}', '\n\n', x)
    return x.strip()


def extract_local_text(data: bytes, extension: str) -> Optional[str]:
    """Best-effort local text for documents we can read without the AI service."""
    readers = {".txt": read_txt, ".pdf": read_pdf, ".docx": read_docx}
    reader = readers.get(extension)
    if reader is None:
        return None
    text = clean_text(reader(data) or "")
    return text or None


def local_field_pass(text: Optional[str]) -> Dict[str, Any]:
    """Regex pass over plain text for the fields that have a recognizable shape."""
    fields: Dict[str, Any] = {"resume_text": text}
    if not text:
        return fields

    email = EMAIL_PATTERN.search(text)
    if email:
        fields["email"] = email.group(0)

    phone = PHONE_PATTERN.search(text)
    if phone:
        fields["phone_number"] = phone.group(0).strip()

    years = YEARS_PATTERN.search(text)
    if years:
        fields["years_of_experience"] = years.group(1)

    for line in text.splitlines()[:5]:
        line = line.strip()
        if line and NAME_PATTERN.match(line):
            fields["full_name"] = line
            break
    return fields
