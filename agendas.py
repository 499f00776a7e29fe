from pathlib import Path
from typing import Any, Dict, Optional

import pdfplumber
import pytesseract
import requests
from pdf2image import convert_from_path

from console import Console
from meetings import MeetingRecord


def ocr_pdf(pdf_path: Path, console: Console, max_pages: int = 5) -> Optional[str]:
    """Extract text from scanned PDF using OCR. Only processes first max_pages to save time."""
    try:
        images = convert_from_path(pdf_path, first_page=1, last_page=max_pages)
    except Exception as e:
        console.log(f"OCR error: {e}", "WARNING")
        return None

    text_parts = []
    for i, image in enumerate(images):
        console.progress(f"OCR processing page {i + 1}/{len(images)}...")
        page_text = pytesseract.image_to_string(image)
        if page_text and page_text.strip():
            text_parts.append(page_text.strip())

    return "\n\n".join(text_parts) if text_parts else None


def extract_pdf_text(pdf_path: Path, console: Console) -> Optional[str]:
    text_parts = []
    with pdfplumber.open(pdf_path) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)

    if text_parts:
        return "\n\n".join(text_parts)

    console.progress("PDF appears to be scanned, attempting OCR...")
    return ocr_pdf(pdf_path, console)


def download_agenda(
        record: MeetingRecord,
        meeting_dir: Path,
        session: requests.Session,
        console: Console,
        force: bool = False,
        timeout: int = 30
) -> Dict[str, Any]:
    """Download the agenda PDF and extract its text. Returns pdf_file, txt_file and text."""
    result = {"pdf_file": None, "txt_file": None, "text": None}
    if not record.agenda_url:
        return result

    pdf_path = meeting_dir / "agenda.pdf"
    txt_path = meeting_dir / "agenda.txt"

    if pdf_path.exists() and not force:
        console.progress("Agenda already downloaded")
        result["pdf_file"] = pdf_path.name
        if txt_path.exists():
            result["txt_file"] = txt_path.name
            result["text"] = txt_path.read_text(encoding='utf-8')
        return result

    console.progress(f"Downloading agenda from {record.agenda_url}")
    try:
        response = session.get(record.agenda_url, timeout=timeout, allow_redirects=True)
        response.raise_for_status()
    except requests.RequestException as e:
        console.log(f"Agenda download error: {e}", "WARNING")
        return result

    # Check if we got a PDF (content-type or magic bytes)
    content_type = response.headers.get('content-type', '')
    if 'pdf' not in content_type.lower() and response.content[:4] != b'%PDF':
        console.progress("No PDF agenda available for this meeting")
        return result

    meeting_dir.mkdir(parents=True, exist_ok=True)
    pdf_path.write_bytes(response.content)
    result["pdf_file"] = pdf_path.name
    console.progress(f"Downloaded agenda PDF ({len(response.content) / 1024:.1f} KB)")

    try:
        agenda_text = extract_pdf_text(pdf_path, console)
    except Exception as e:
        # pdfplumber raises its own parser errors on damaged files
        console.log(f"PDF text extraction error: {e}", "WARNING")
        return result

    if agenda_text:
        txt_path.write_text(agenda_text, encoding='utf-8')
        result["txt_file"] = txt_path.name
        result["text"] = agenda_text
        console.progress(f"Extracted {len(agenda_text)} chars from agenda PDF")
    else:
        console.progress("Could not extract text from agenda PDF")

    return result
