"""
외부 연동 관련 예외 클래스 정의

모두 일시적 오류로 간주되어 워커가 백오프 후 재시도합니다.
"""


class IntegrationError(Exception):
    """외부 연동 기본 예외"""
    def __init__(self, message: str = None):
        self.message = message or "Integration error"
        super().__init__(self.message)


class SearchStoreError(IntegrationError):
    """검색 문서 저장소 호출 실패"""
    def __init__(self, operation: str, document_id: str, reason: str):
        self.operation = operation
        self.document_id = document_id
        super().__init__(f"Search store {operation} failed for '{document_id}': {reason}")


class StorageTransferError(IntegrationError):
    """파일 저장소 전송 실패"""
    def __init__(self, filename: str, reason: str):
        self.filename = filename
        super().__init__(f"Transfer failed for '{filename}': {reason}")
