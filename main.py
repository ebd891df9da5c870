"""
offload 통합 진입점

Worker, Scheduler, Ingress를 한 번에 실행합니다.

사용법:
    python main.py                     # worker + scheduler
    python main.py worker              # Worker만
    python main.py scheduler           # Scheduler만
    python main.py ingress             # Kafka 이벤트 수신만
    python main.py worker scheduler    # 복수 선택
"""

import sys
import os

# Windows 인코딩 설정 (cp949 -> UTF-8)
if sys.platform == "win32":
    os.environ["PYTHONUTF8"] = "1"

import asyncio

from common.config import load_config
from common.logging import setup_logging
from offload.runner import VALID_MODULES, run


if __name__ == "__main__":
    args = sys.argv[1:]

    if args:
        modules = [m for m in args if m in VALID_MODULES]
        if not modules:
            print(f"Usage: python main.py [{'] ['.join(VALID_MODULES)}]")
            sys.exit(1)
    else:
        modules = ["worker", "scheduler"]

    config = load_config()
    setup_logging(**config.get("logging", {}))

    print(f"Starting offload: {', '.join(modules)}")
    try:
        asyncio.run(run(modules, config))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
