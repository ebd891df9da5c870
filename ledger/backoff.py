"""
재시도 대기 시간 계산

attempt k 실패 후 k+1 시도까지의 대기 시간:
    exponential: base * 2^(k-1)
    fixed:       base
"""

EXPONENTIAL = 'exponential'
FIXED = 'fixed'


def compute_backoff_ms(attempt: int, base_ms: int, strategy: str = EXPONENTIAL) -> int:
    """
    Args:
        attempt: 방금 실패한 시도 번호 (1부터 시작)
        base_ms: 기본 대기 시간 (ms)
        strategy: 'exponential' 또는 'fixed'

    Returns:
        다음 시도까지 대기할 ms
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    if base_ms < 0:
        raise ValueError(f"base_ms must be >= 0, got {base_ms}")

    if strategy == EXPONENTIAL:
        return base_ms * (2 ** (attempt - 1))
    if strategy == FIXED:
        return base_ms
    raise ValueError(f"Unknown backoff strategy: {strategy}")
