"""File upload utilities for customer documents (ID cards, contracts, ...)"""
import logging
import re
import secrets
import time
from datetime import datetime
from pathlib import Path

from fastapi import UploadFile

from config import settings
from errors import BadRequestError
from schemas import CustomerDocument

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".pdf", ".png", ".jpg", ".jpeg", ".webp"}
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MAX_FILES_PER_UPLOAD = 5


def documents_dir() -> Path:
    """Create the documents directory if it doesn't exist"""
    directory = Path(settings.UPLOAD_DIR) / "documents"
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def safe_filename(filename: str) -> str:
    name = Path(filename or "document").name
    return re.sub(r"[^A-Za-z0-9._-]", "_", name)


def validate_document_file(file: UploadFile) -> None:
    file_ext = Path(file.filename or "").suffix.lower()
    if file_ext not in ALLOWED_EXTENSIONS:
        raise BadRequestError(f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")


async def save_customer_document(file: UploadFile, customer_id: int) -> CustomerDocument:
    """
    Save an uploaded document and describe it for Customer.documents

    Returns:
        CustomerDocument with the path relative to UPLOAD_DIR
        (e.g. "documents/12-1706745600000-a1b2c3-id-card.pdf")
    """
    validate_document_file(file)

    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise BadRequestError(f"File too large. Maximum size: {MAX_FILE_SIZE / (1024*1024):.1f}MB")

    filename = f"{customer_id}-{int(time.time() * 1000)}-{secrets.token_hex(3)}-{safe_filename(file.filename)}"
    (documents_dir() / filename).write_bytes(content)
    logger.info(f"Stored document {filename} ({len(content)} bytes) for customer {customer_id}")

    return CustomerDocument(
        name=file.filename,
        path=f"documents/{filename}",
        type=file.content_type,
        size=len(content),
        uploaded_at=datetime.utcnow()
    )
