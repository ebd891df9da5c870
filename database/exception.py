"""
Database 관련 예외 클래스 정의
"""


class DatabaseError(Exception):
    """Database 기본 예외"""
    def __init__(self, message: str = None):
        self.message = message or "Database error"
        super().__init__(self.message)


class DatabaseNotFoundError(DatabaseError):
    """등록되지 않은 데이터베이스"""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Database not registered: {name}")


class ConnectionPoolExhaustedError(DatabaseError):
    """커넥션풀 소진 (타임아웃)"""
    pass


class ReadOnlyTransactionError(DatabaseError):
    """readonly 트랜잭션에서 쓰기 시도"""
    pass


class TransactionError(DatabaseError):
    """트랜잭션 컨텍스트 오류"""
    pass

