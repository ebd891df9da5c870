"""
임시 업로드 파일 이름 규칙

임시 파일 이름은 "<epoch-ms>-<random hex>-<정리된 원본 이름>" 형식입니다.
정리 잡은 이름 앞의 타임스탬프로 나이를 계산하고, 없으면 mtime을 사용합니다.
"""

import os
import re
import secrets
import time
from pathlib import Path

TEMP_FILE_MAX_AGE_SECONDS = 60 * 60

MAX_FILENAME_LENGTH = 100

_UNSAFE_CHARS = re.compile(r'[^a-zA-Z0-9_-]')
_REPEATED_UNDERSCORES = re.compile(r'_+')
_TIMESTAMP_PREFIX = re.compile(r'^(\d+)-')


def sanitize_filename(filename: str) -> str:
    """
    저장용 파일 이름 정리

    영문/숫자/_/- 이외 문자는 '_'로 바꾸고, 확장자는 소문자로 유지합니다.
    """
    base, ext = os.path.splitext(os.path.basename(filename))
    ext = ext.lower()

    safe = _UNSAFE_CHARS.sub('_', base)
    safe = _REPEATED_UNDERSCORES.sub('_', safe).strip('_') or 'file'

    max_base = MAX_FILENAME_LENGTH - len(ext)
    return f"{safe[:max_base]}{ext}"


def generate_unique_filename(original_name: str, now_ms: int | None = None) -> str:
    """<epoch-ms>-<16 hex>-<정리된 이름>"""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{timestamp}-{secrets.token_hex(8)}-{sanitize_filename(original_name)}"


def generate_correlation_id(prefix: str = "upload") -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def extract_timestamp_from_filename(filename: str) -> int | None:
    """파일 이름 앞의 epoch ms 추출 (없으면 None)"""
    match = _TIMESTAMP_PREFIX.match(filename)
    return int(match.group(1)) if match else None


def file_age_seconds(path: Path, now: float | None = None) -> float:
    """이름의 타임스탬프 기준 나이, 없으면 mtime 기준"""
    now = now if now is not None else time.time()
    timestamp_ms = extract_timestamp_from_filename(path.name)
    if timestamp_ms is not None:
        return now - timestamp_ms / 1000
    return now - path.stat().st_mtime


def is_expired_temp_file(path: Path, ttl_seconds: float = TEMP_FILE_MAX_AGE_SECONDS, now: float | None = None) -> bool:
    return file_age_seconds(path, now) > ttl_seconds
