"""
YAML 설정 로드

config/ 디렉토리의 파일들을 하나의 dict로 병합합니다.
없는 파일은 건너뜁니다.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).parent.parent / "config"

CONFIG_FILES = (
    "database.yaml",
    "queues.yaml",
    "worker.yaml",
    "scheduler.yaml",
    "integration.yaml",
    "ingress.yaml",
    "logging.yaml",
)


def load_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(config_dir: str | Path | None = None) -> dict[str, Any]:
    """config 디렉토리의 YAML 파일 병합 (최상위 키 단위)"""
    config_path = Path(config_dir) if config_dir else CONFIG_DIR
    config: dict[str, Any] = {}

    for filename in CONFIG_FILES:
        path = config_path / filename
        if not path.exists():
            logger.debug(f"Config file not found, skipped: {path}")
            continue
        config.update(load_yaml(path))

    return config
