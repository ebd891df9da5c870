"""
공통 fixture

- 테스트마다 tmp_path 아래 별도 SQLite 파일 사용
- 원장 시간은 FakeClock으로 제어
"""

import logging
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db
from database.registry import DatabaseRegistry
from integration.mail import InMemoryMailTransport
from integration.metadata import SQLiteFileMetadataRepository
from integration.search import InMemorySearchStore
from integration.services import Services, UploadSettings
from integration.storage import LocalBlobStorage
from ledger.main import Ledger
from ledger.model.queue import DEFAULT_QUEUE_CONFIGS

logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# 2023-11-14 22:13:20 UTC
START_MS = 1_700_000_000_000


class FakeClock:
    """원장 시간 (epoch ms)"""

    def __init__(self, now_ms: int = START_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


def sqlite_config(path: Path, pool_size: int = 3) -> dict:
    return {
        "databases": {
            "default": {
                "type": "sqlite",
                "path": str(path),
                "pool": {"pool_size": pool_size, "pool_timeout": 5.0},
            }
        }
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def database(tmp_path):
    """테스트용 SQLiteDatabase (DatabaseRegistry 사용)"""
    DatabaseRegistry.clear()
    await DatabaseRegistry.init_from_config(sqlite_config(tmp_path / "offload.db"))
    yield get_db('default')
    await DatabaseRegistry.close_all()


@pytest_asyncio.fixture
async def ledger(database, clock):
    ledger = Ledger(database, DEFAULT_QUEUE_CONFIGS, clock=clock)
    await ledger.initialize()
    return ledger


@pytest_asyncio.fixture
async def services(database, tmp_path):
    """메모리 검색/메일, 로컬 저장소, SQLite 메타데이터"""
    metadata = SQLiteFileMetadataRepository(database)
    await metadata.initialize()
    return Services(
        search=InMemorySearchStore(),
        mail=InMemoryMailTransport(),
        storage=LocalBlobStorage(tmp_path / "storage", base_url="https://files.test"),
        metadata=metadata,
        uploads=UploadSettings(upload_dir=tmp_path / "uploads"),
    )
