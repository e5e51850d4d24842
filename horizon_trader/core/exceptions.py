"""
예외 클래스 정의.

[ 역할 ]
    지표 계산 / 원장(지갑, 포지션) 처리 중 발생하는 오류를 종류별로 구분.
    호출자가 거절 사유를 재시도 없이 설명할 수 있도록 문맥 정보를 속성으로 담는다.

[ 오류 종류 ]
    InsufficientDataError   - 지표 기간보다 가격 데이터가 짧음 (더 짧은 기간 선택 or 데이터 누적 대기)
    InvalidParamsError      - 지표/전략 설정 오류 (호출자 버그, 재시도 불가)
    InsufficientFundsError  - 매수 금액이 잔고 초과 (사용자에게 그대로 노출)
    InsufficientSharesError - 매도 수량이 보유 수량 초과 (사용자에게 그대로 노출)
    InvalidOrderError       - 0 이하 수량/금액, 음수 가격 등 잘못된 주문

[ 처리 위치 ]
    - indicators/technical.py: 지표 단위 오류는 IndicatorResult.error로 격리
    - data/wallet.py: 원장 오류는 거래 전체를 중단 (부분 반영 없음)
"""


class TradingError(Exception):
    """horizon_trader 최상위 예외."""


class InsufficientDataError(TradingError):
    """요청한 지표 기간에 비해 가격 봉 수가 부족."""

    def __init__(self, indicator: str, required: int, available: int):
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient data for {indicator}: need at least {required} bars, have {available}"
        )


class InvalidParamsError(TradingError, ValueError):
    """지표 파라미터 / 전략 설정이 잘못됨."""


class InvalidOrderError(TradingError, ValueError):
    """수량, 가격, 금액이 허용 범위를 벗어난 주문."""


class InsufficientFundsError(TradingError):
    """매수 총액(수수료/슬리피지 포함)이 잔고보다 큼."""

    def __init__(self, ticker: str | None, quantity: float, required: float, available: float):
        self.ticker = ticker
        self.quantity = quantity
        self.required = required
        self.available = available
        target = f" for {quantity} shares of {ticker}" if ticker else ""
        super().__init__(
            f"Insufficient funds{target}. Required: ${required:,.2f}, Available: ${available:,.2f}"
        )


class InsufficientSharesError(TradingError):
    """매도 수량이 보유 수량보다 큼."""

    def __init__(self, ticker: str, requested: float, available: float):
        self.ticker = ticker
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient shares of {ticker}: requested {requested}, have {available}"
        )
