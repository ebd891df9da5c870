"""
파일 저장소 (blob storage)

transfer() 는 로컬 임시 파일을 영구 저장소로 옮기고 공개 URL을 반환합니다.
임시 파일 삭제는 업로드 잡이 담당하므로 여기서는 원본을 지우지 않습니다.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Awaitable, Callable, Protocol

from integration.exception import StorageTransferError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


class BlobStorage(Protocol):
    async def transfer(
        self,
        source: Path,
        folder: str,
        filename: str,
        on_progress: ProgressCallback | None = None,
    ) -> str: ...


class LocalBlobStorage:
    """
    로컬 디렉토리 저장소

    root/<folder>/<filename> 에 복사하고 base_url/<folder>/<filename> 을 반환합니다.
    base_url을 지정하지 않으면 root의 file:// URI를 사용합니다.
    """

    def __init__(self, root: str | Path, base_url: str | None = None):
        self._root = Path(root)
        self._base_url = (base_url or self._root.resolve().as_uri()).rstrip("/")

    async def transfer(
        self,
        source: Path,
        folder: str,
        filename: str,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        target_dir = self._root / folder
        target = target_dir / filename
        try:
            await asyncio.to_thread(target_dir.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, source, target)
        except OSError as e:
            raise StorageTransferError(source.name, str(e))

        if on_progress:
            await on_progress(100)

        logger.debug(f"File stored: {source} -> {target}")
        return f"{self._base_url}/{folder}/{filename}"
