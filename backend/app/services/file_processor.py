"""File ingestion: fetch an uploaded file and extract what the chat can use from it"""

import asyncio
import csv
import io
import re
import warnings
from typing import List, Optional

import httpx
from docx import Document as DocxDocument
from openpyxl import load_workbook
from PIL import UnidentifiedImageError
from PyPDF2 import PdfReader

from app.models.config import FilesConfig
from app.models.file import (
    DocxMetadata,
    ExtractionResult,
    FileProcessRequest,
    FileProcessResponse,
    FileRecord,
    ImageMetadata,
    OtherMetadata,
    PdfMetadata,
    ProcessingStatus,
    SpreadsheetMetadata,
    TextMetadata,
)
from app.services.database import StoreUnavailable
from app.services.file_store import FileRepo
from app.services.image_service import ImageService, get_image_service, inspect_image
from app.utils.config_loader import get_config
from app.utils.logger import get_logger

logger = get_logger()

SPREADSHEET_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class FileTooLarge(ValueError):
    """Declared or fetched size is over the configured limit"""


def categorize(file_type: str) -> str:
    """Map a declared MIME type to the category that decides how it is processed"""
    file_type = (file_type or "").lower()
    if file_type == "application/pdf":
        return "pdf"
    if "wordprocessingml" in file_type:
        return "docx"
    if file_type == "text/plain":
        return "text"
    if file_type.startswith("image/"):
        return "image"
    if file_type in SPREADSHEET_TYPES:
        return "spreadsheet"
    return "other"


def _row_text(row) -> str:
    return " | ".join("" if cell is None else str(cell) for cell in row)


class FileProcessor:
    """Runs one uploaded file through fetch, extraction and its processing-status transitions"""

    def __init__(
        self,
        config: FilesConfig,
        image_service: ImageService,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config
        self.image_service = image_service
        self.transport = transport

    def check_size(self, size: int) -> None:
        if size > self.config.max_file_size_bytes:
            raise FileTooLarge(
                f"File exceeds the {self.config.max_file_size_mb} MB limit ({size} bytes)"
            )

    async def fetch(self, url: str) -> bytes:
        async with httpx.AsyncClient(
            timeout=self.config.fetch_timeout,
            transport=self.transport,
            follow_redirects=True
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content

    def needs_bytes(self, category: str) -> bool:
        if category == "other":
            return False
        if category == "image":
            return self.image_service.configured
        return True

    async def process(self, user_id: str, request: FileProcessRequest, repo: FileRepo) -> FileProcessResponse:
        """
        Create the File record in `processing`, extract, then move it to
        `completed` or `failed`.

        Extraction errors never propagate: they are recorded on the record and
        reported with success=False.

        Raises:
            FileTooLarge: before anything is fetched or stored
        """
        self.check_size(request.file_size)

        record = FileRecord(
            user_id=user_id,
            file_name=request.file_name,
            original_name=request.file_name,
            file_type=request.file_type,
            file_size=request.file_size,
            source_url=request.file_url,
        )
        persisted = await self._store(repo.create, record)
        if persisted is not None:
            record = persisted

        category = categorize(request.file_type)
        logger.info(f"Processing file {record.id} ({request.file_name}, {category})")

        try:
            data = await self.fetch(request.file_url) if self.needs_bytes(category) else b""
            self.check_size(len(data))
            result = await self.extract(category, data, request)
        except Exception as e:
            logger.error(f"File processing failed for {record.id}: {e}")
            record.processing_status = ProcessingStatus.FAILED
            record.error_message = str(e) or e.__class__.__name__
            if persisted is not None:
                await self._store(repo.mark_failed, record)
            return FileProcessResponse(
                success=False,
                file_id=record.id,
                processing_status=record.processing_status,
                error=record.error_message,
                offline=persisted is None,
            )

        record.extracted_text = result.extracted_text
        record.cdn_url = result.cdn_url
        record.metadata = result.metadata
        record.summary = self.summarize(result.extracted_text)
        record.processing_status = ProcessingStatus.COMPLETED
        if persisted is not None:
            await self._store(repo.mark_completed, record)

        logger.info(f"Processed file {record.id}: {len(record.extracted_text)} characters extracted")
        return FileProcessResponse(
            success=True,
            file_id=record.id,
            extracted_text=record.extracted_text,
            cdn_url=record.cdn_url,
            metadata=record.metadata,
            summary=record.summary,
            processing_status=record.processing_status,
            offline=persisted is None,
        )

    async def _store(self, operation, record: FileRecord) -> Optional[FileRecord]:
        try:
            return await operation(record)
        except StoreUnavailable as e:
            logger.warning(f"File record {record.id} not persisted, store offline: {e}")
            return None

    async def extract(self, category: str, data: bytes, request: FileProcessRequest) -> ExtractionResult:
        if category == "pdf":
            return await asyncio.to_thread(self.extract_pdf, data)
        if category == "docx":
            return await asyncio.to_thread(self.extract_docx, data)
        if category == "text":
            return self.extract_text(data)
        if category == "spreadsheet":
            return await asyncio.to_thread(self.extract_spreadsheet, data, request.file_type)
        if category == "image":
            return await self.extract_image(data, request)
        return ExtractionResult(metadata=OtherMetadata())

    def extract_pdf(self, data: bytes) -> ExtractionResult:
        reader = PdfReader(io.BytesIO(data))
        page_texts = [page.extract_text() or "" for page in reader.pages]
        return ExtractionResult(
            extracted_text="\n\n".join(t for t in page_texts if t.strip()),
            metadata=PdfMetadata(page_count=len(reader.pages)),
        )

    def extract_docx(self, data: bytes) -> ExtractionResult:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            document = DocxDocument(io.BytesIO(data))
            paragraphs = [p.text for p in document.paragraphs if p.text.strip()]
        return ExtractionResult(
            extracted_text="\n\n".join(paragraphs),
            metadata=DocxMetadata(
                paragraph_count=len(paragraphs),
                warnings=[str(w.message) for w in caught],
            ),
        )

    def extract_text(self, data: bytes) -> ExtractionResult:
        text = data.decode("utf-8", errors="replace")
        return ExtractionResult(
            extracted_text=text,
            metadata=TextMetadata(line_count=len(text.splitlines())),
        )

    def extract_spreadsheet(self, data: bytes, file_type: str) -> ExtractionResult:
        if "spreadsheetml" in file_type:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
            sheets = [
                (name, [row for row in workbook[name].iter_rows(values_only=True)])
                for name in workbook.sheetnames
            ]
            workbook.close()
        else:
            text = data.decode("utf-8", errors="replace")
            sheets = [("", [row for row in csv.reader(io.StringIO(text))])]

        sheets = [(name, [row for row in rows if _row_text(row).strip(" |")]) for name, rows in sheets]

        parts: List[str] = []
        for name, rows in sheets:
            lines = [f"Sheet: {name}"] if name else []
            lines.extend(_row_text(row) for row in rows)
            if rows:
                parts.append("\n".join(lines))

        first_rows = sheets[0][1] if sheets else []
        return ExtractionResult(
            extracted_text="\n\n".join(parts),
            metadata=SpreadsheetMetadata(
                sheet_names=[name for name, _ in sheets if name],
                row_count=sum(len(rows) for _, rows in sheets),
                column_count=max((len(row) for _, rows in sheets for row in rows), default=0),
                preview="\n".join(_row_text(row) for row in first_rows[:self.config.preview_rows + 1]),
            ),
        )

    async def extract_image(self, data: bytes, request: FileProcessRequest) -> ExtractionResult:
        if not self.image_service.configured:
            logger.debug("Image CDN not configured, skipping upload")
            return ExtractionResult(metadata=ImageMetadata())

        try:
            metadata = inspect_image(data)
        except UnidentifiedImageError:
            logger.warning(f"Could not read image dimensions for {request.file_name}")
            metadata = ImageMetadata()

        cdn_url = await self.image_service.upload(data, request.file_name, request.file_type)
        metadata.uploaded = True
        return ExtractionResult(cdn_url=cdn_url, metadata=metadata)

    def summarize(self, text: str) -> Optional[str]:
        """Whitespace-collapsed preview of the extracted text"""
        collapsed = re.sub(r"\s+", " ", text or "").strip()
        if not collapsed:
            return None
        if len(collapsed) > self.config.summary_chars:
            return collapsed[:self.config.summary_chars].rstrip() + "..."
        return collapsed


# Global instance
_file_processor = None


def get_file_processor() -> FileProcessor:
    """Get the global file processor instance"""
    global _file_processor
    if _file_processor is None:
        _file_processor = FileProcessor(
            FilesConfig(**get_config().get_section('files')),
            get_image_service()
        )
    return _file_processor
