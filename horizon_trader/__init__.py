"""
=============================================================================
투자 기간 기반 매매 시그널 / 지갑 시스템 (Horizon Trader)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py        ← config.yaml 설정 로드
         ├── utils/logger.py        ← 로깅
         │
         ├── indicators/technical.py ← SMA / EMA / RSI / MACD / 볼린저 + 지표별 시그널
         │
         ├── strategies/            ← 매매 전략 (지표 다수결 → 시그널)
         │     ├── engine.py            (다수결, 신뢰도, 사유, 리밸런싱 주기)
         │     ├── advisor.py           (전략 추천 / 비교)
         │     └── trend_following.py, mean_reversion.py, momentum.py,
         │         conservative.py, indicator_strategy.py (custom)
         │
         ├── data/                  ← 지갑 / 포지션 원장
         │     ├── portfolio.py         (가중평균 매입가, 실현/평가 손익)
         │     └── wallet.py            (원자적 매수/매도/입출금, 사용자별 잠금)
         │
         └── backtest/engine.py     ← 백테스트 실행 엔진
               └── backtest/metrics.py  ← 성과 지표 계산


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/data_provider.py    → brokers/mock_broker.py::MockDataProvider (테스트용)
    core/ledger_store.py     → brokers/mock_broker.py::InMemoryLedgerStore (테스트용)
    core/trading_strategy.py → strategies/*.py (프리셋 4종 + custom)


[ 데이터 흐름 ]

    1. config.yaml에서 전략 / 거래 비용 / 시그널 상수 로드
    2. MarketDataProvider가 PriceSeries 제공
    3. 지표 엔진이 지표별 IndicatorResult(값, 시그널, 강도) 계산
    4. 전략 엔진이 다수결로 종목별 Signal(buy/sell/hold, 신뢰도, 사유) 생성
    5. WalletService가 매수/매도를 지갑 + 원장에 한 번에 반영하고 Transaction 기록
    6. BacktestEngine은 4~5를 날짜별로 반복, metrics.py가 성과 계산
"""

__version__ = "0.1.0"
