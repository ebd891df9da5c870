"""
파일 업로드 잡 payload / 결과 모델
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from integration.metadata import EntityType


class TempFile(BaseModel):
    """enqueue 시점에 저장된 임시 파일"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    original_name: str
    temp_path: str
    size: int = Field(ge=0)
    mime_type: str


class FileUploadPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    temp_files: list[TempFile] = Field(min_length=1)
    entity_type: EntityType
    entity_id: int | str
    folder: str = Field(min_length=1)
    merge_with_existing: bool = False
    correlation_id: str | None = None


class UploadFailure(BaseModel):
    filename: str
    error: str


class FileUploadResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    urls: list[str] = Field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    failures: list[UploadFailure] = Field(default_factory=list)
