"""adcycle 예외 계층.

호출자 오용(설정 누락, 초기화 전 호출)은 즉시 동기적으로 raise 하고,
광고 API 준비 실패류는 재시도 루프 내부에서만 사용되어 로그로 소멸한다.
"""


class AdCycleError(Exception):
    """adcycle 기본 예외."""


class ConfigurationError(AdCycleError):
    """필수 식별자 누락, 지원하지 않는 플랫폼, 잘못된 임계값."""


class NotInitializedError(AdCycleError):
    """start() 이전에 공개 연산을 호출한 경우."""


class InterstitialUnavailableError(AdCycleError):
    """push 시 'interstitial API 없음' 류 오류 -- 더 긴 백오프로 재시도 대상."""


INTERSTITIAL_ERROR_MARKER = "interstitial"


def is_interstitial_unavailable(exc: BaseException) -> bool:
    """push 오류 메시지가 interstitial API 미가용 패턴인지 판별 (대소문자 구분)."""
    if isinstance(exc, InterstitialUnavailableError):
        return True
    return INTERSTITIAL_ERROR_MARKER in str(exc)
