"""Uploaded file models"""

from enum import Enum
from pydantic import Field
from typing import Optional, List, Union, Literal, Annotated
from datetime import datetime

from app.models.chat import ApiModel, new_id, utcnow


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PdfMetadata(ApiModel):
    category: Literal["pdf"] = "pdf"
    page_count: int = 0


class DocxMetadata(ApiModel):
    category: Literal["docx"] = "docx"
    paragraph_count: int = 0
    warnings: List[str] = Field(default_factory=list)


class TextMetadata(ApiModel):
    category: Literal["text"] = "text"
    line_count: int = 0


class ImageMetadata(ApiModel):
    category: Literal["image"] = "image"
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    uploaded: bool = False


class SpreadsheetMetadata(ApiModel):
    category: Literal["spreadsheet"] = "spreadsheet"
    sheet_names: List[str] = Field(default_factory=list)
    row_count: int = 0
    column_count: int = 0
    preview: str = ""


class OtherMetadata(ApiModel):
    category: Literal["other"] = "other"


FileMetadata = Annotated[
    Union[PdfMetadata, DocxMetadata, TextMetadata, ImageMetadata, SpreadsheetMetadata, OtherMetadata],
    Field(discriminator="category"),
]


class FileRecord(ApiModel):
    """An uploaded file and the outcome of its content extraction"""
    id: str = Field(default_factory=new_id)
    user_id: str
    file_name: str
    original_name: str
    file_type: str
    file_size: int
    source_url: str
    cdn_url: Optional[str] = None
    extracted_text: Optional[str] = None
    summary: Optional[str] = None
    processing_status: ProcessingStatus = ProcessingStatus.PROCESSING
    error_message: Optional[str] = None
    metadata: FileMetadata = Field(default_factory=OtherMetadata)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_api(self, **kwargs) -> dict:
        return super().to_api(exclude={"user_id"}, **kwargs)


class ExtractionResult(ApiModel):
    """What an extractor produced for one file"""
    extracted_text: str = ""
    cdn_url: Optional[str] = None
    metadata: FileMetadata = Field(default_factory=OtherMetadata)


class FileProcessRequest(ApiModel):
    """Upload notification: where the file lives and what it claims to be"""
    file_url: str
    file_name: str
    file_type: str = "application/octet-stream"
    file_size: int = 0


class FileProcessResponse(ApiModel):
    """Response for file processing"""
    success: bool
    file_id: str
    extracted_text: str = ""
    cdn_url: Optional[str] = Field(default=None, alias="cloudinaryUrl")
    metadata: Optional[FileMetadata] = None
    summary: Optional[str] = None
    processing_status: ProcessingStatus
    error: Optional[str] = None
    offline: bool = False
