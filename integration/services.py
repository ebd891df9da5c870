"""
핸들러가 사용하는 외부 연동 묶음

프로세스 시작 시 한 번 만들어 WorkerPool에 전달하며,
각 핸들러는 생성자로 받은 Services 인스턴스만 사용합니다.
"""

from dataclasses import dataclass, field
from pathlib import Path

from integration.mail import MailTransport
from integration.metadata import FileMetadataRepository
from integration.search import SearchStore
from integration.storage import BlobStorage

DEFAULT_ALLOWED_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


@dataclass
class UploadSettings:
    """임시 업로드 디렉토리 및 파일 검증 설정"""
    upload_dir: Path = Path("uploads")
    temp_file_ttl_seconds: int = 3600
    max_file_size_mb: int = 10
    allowed_mime_types: tuple[str, ...] = DEFAULT_ALLOWED_MIME_TYPES

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@dataclass
class Services:
    search: SearchStore
    mail: MailTransport
    storage: BlobStorage
    metadata: FileMetadataRepository
    uploads: UploadSettings = field(default_factory=UploadSettings)

    async def close(self) -> None:
        await self.search.close()
