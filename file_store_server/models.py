from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FileDetails(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    filename: str
    size: int
    created_at: datetime
    modified_at: datetime


class UploadedFile(BaseModel):
    fieldname: str
    originalname: Optional[str] = None
    mimetype: Optional[str] = None
    filename: str
    size: int


class UploadResponse(BaseModel):
    message: str
    file: UploadedFile


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    storage_dir: str
    sweep: Dict[str, int]
