"""외부 연동 (검색, 메일, 파일 저장소, 파일 메타데이터)"""
from integration.services import Services, UploadSettings
from integration.factory import build_services

__all__ = ["Services", "UploadSettings", "build_services"]
