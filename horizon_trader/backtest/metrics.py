"""
백테스트 성과 지표 계산 모듈.

[ 역할 ]
    백테스트 결과(거래 기록 + 일별 자산가치)를 받아 성과 지표를 계산.
    calculate_metrics() 함수가 핵심.

[ 계산하는 지표 ]
    - 총 수익률 / 연환산 수익률
    - 샤프 비율 (위험 대비 수익)
    - MDD (최대 낙폭)
    - 승률, 평균 수익/손실, 수익 팩터
    - 연속 승/패, 총 거래 비용

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest() 완료 시 호출

[ 입력 데이터 ]
    - transactions: WalletService가 만든 Transaction 목록 (매도 거래의 realized_pnl만 분석)
    - daily_values: engine.py에서 매일 기록한 총 자산 리스트
"""

from dataclasses import asdict, dataclass
from typing import Any, Sequence

import numpy as np
import pandas as pd

from horizon_trader.core.ledger_store import Transaction, TransactionType

TRADING_DAYS_PER_YEAR = 252


@dataclass
class BacktestMetrics:
    """백테스트 성과 지표. summary()로 포맷된 리포트 출력 가능."""
    total_return: float = 0.0         # 총 수익률 (%)
    annual_return: float = 0.0        # 연환산 수익률 (%)
    sharpe_ratio: float = 0.0         # 샤프 비율 (높을수록 좋음, 1 이상 양호)
    max_drawdown: float = 0.0         # 최대 낙폭 MDD (%)
    win_rate: float = 0.0             # 승률 (%)
    avg_profit: float = 0.0           # 수익 거래 평균 이익 ($)
    avg_loss: float = 0.0             # 손실 거래 평균 손실 ($)
    profit_factor: float = 0.0        # 총이익 / 총손실 (1 이상이면 수익)
    total_trades: int = 0             # 매도 거래 횟수
    winning_trades: int = 0           # 수익 거래 수
    losing_trades: int = 0            # 손실 거래 수
    max_consecutive_wins: int = 0     # 최대 연속 수익
    max_consecutive_losses: int = 0   # 최대 연속 손실
    total_costs: float = 0.0          # 수수료 + 슬리피지 합계 ($)
    final_value: float = 0.0          # 최종 총 자산 ($)

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리 변환."""
        return asdict(self)

    def summary(self) -> str:
        """성과 요약 문자열."""
        lines = [
            "=" * 50,
            "백테스트 성과 리포트",
            "=" * 50,
            f"최종 자산:       {self.final_value:>10,.2f}$",
            f"총 수익률:       {self.total_return:>10.2f}%",
            f"연환산 수익률:    {self.annual_return:>10.2f}%",
            f"샤프 비율:       {self.sharpe_ratio:>10.2f}",
            f"최대 낙폭(MDD):  {self.max_drawdown:>10.2f}%",
            "-" * 50,
            f"총 거래 횟수:    {self.total_trades:>10d}",
            f"승률:            {self.win_rate:>10.2f}%",
            f"수익 거래:       {self.winning_trades:>10d}",
            f"손실 거래:       {self.losing_trades:>10d}",
            f"평균 수익:       {self.avg_profit:>10,.2f}$",
            f"평균 손실:       {self.avg_loss:>10,.2f}$",
            f"수익 팩터:       {self.profit_factor:>10.2f}",
            f"거래 비용:       {self.total_costs:>10,.2f}$",
            "-" * 50,
            f"최대 연속 수익:  {self.max_consecutive_wins:>10d}",
            f"최대 연속 손실:  {self.max_consecutive_losses:>10d}",
            "=" * 50,
        ]
        return "\n".join(lines)


def max_drawdown(daily_values: Sequence[float]) -> float:
    """고점 대비 최대 하락폭 (%). 낮을수록 좋음."""
    values = pd.Series(daily_values, dtype=float)
    if values.empty:
        return 0.0
    peaks = values.cummax()
    drawdowns = (peaks - values) / peaks.where(peaks > 0)
    return float(drawdowns.max(skipna=True) * 100) if drawdowns.notna().any() else 0.0


def sharpe_ratio(daily_values: Sequence[float], risk_free_rate: float = 0.0) -> float:
    """일별 수익률 기반 연환산 샤프 비율. 변동이 없으면 0."""
    returns = pd.Series(daily_values, dtype=float).pct_change().dropna()
    returns = returns.replace([np.inf, -np.inf], np.nan).dropna()
    if returns.empty:
        return 0.0
    excess = returns - risk_free_rate / TRADING_DAYS_PER_YEAR
    std = excess.std(ddof=0)
    if std == 0 or np.isnan(std):
        return 0.0
    return float(excess.mean() / std * np.sqrt(TRADING_DAYS_PER_YEAR))


def _max_streaks(profits: Sequence[float]) -> tuple[int, int]:
    """(최대 연속 수익, 최대 연속 손실)."""
    max_wins = max_losses = wins = losses = 0
    for p in profits:
        if p > 0:
            wins += 1
            losses = 0
            max_wins = max(max_wins, wins)
        else:
            losses += 1
            wins = 0
            max_losses = max(max_losses, losses)
    return max_wins, max_losses


def calculate_metrics(
    transactions: Sequence[Transaction],
    daily_values: Sequence[float],
    initial_cash: float,
    trading_days: int,
    risk_free_rate: float = 0.0,
) -> BacktestMetrics:
    """성과 지표 계산. engine.py에서 백테스트 완료 후 호출됨.

    Args:
        transactions: WalletService 거래 기록 (입금/매수/매도 전체)
        daily_values: 일별 총 자산 리스트 (현금 + 보유종목 평가)
        initial_cash: 초기 자금
        trading_days: 백테스트 기간 중 총 거래일 수
        risk_free_rate: 연 무위험 수익률 (샤프 계산용)
    """
    metrics = BacktestMetrics()

    if not daily_values or initial_cash <= 0:
        return metrics

    # ─── 수익률 계산 ─────────────────────────────────────────────────────
    final_value = float(daily_values[-1])
    metrics.final_value = final_value
    metrics.total_return = (final_value - initial_cash) / initial_cash * 100

    # 연환산: (최종/초기)^(1/년수) - 1
    if trading_days > 0 and final_value > 0:
        years = trading_days / TRADING_DAYS_PER_YEAR
        metrics.annual_return = ((final_value / initial_cash) ** (1 / years) - 1) * 100

    metrics.sharpe_ratio = sharpe_ratio(daily_values, risk_free_rate)
    metrics.max_drawdown = max_drawdown(daily_values)

    trades = [t for t in transactions if t.transaction_type in (TransactionType.BUY, TransactionType.SELL)]
    metrics.total_costs = sum(t.commission + t.slippage for t in trades)

    # ─── 거래 기반 지표 (매도 거래만 분석) ─────────────────────────────────
    # 매수는 비용 발생일 뿐, 수익 실현은 매도 시에만 발생
    profits = [t.realized_pnl or 0.0 for t in trades if t.transaction_type is TransactionType.SELL]
    metrics.total_trades = len(profits)

    if profits:
        pnl = np.array(profits, dtype=float)
        winners = pnl[pnl > 0]
        losers = pnl[pnl <= 0]

        metrics.winning_trades = int(winners.size)
        metrics.losing_trades = int(losers.size)
        metrics.win_rate = winners.size / pnl.size * 100

        if winners.size:
            metrics.avg_profit = float(winners.mean())
        if losers.size:
            metrics.avg_loss = float(losers.mean())

        total_profit = float(winners.sum())
        total_loss = float(abs(losers.sum()))
        metrics.profit_factor = total_profit / total_loss if total_loss > 0 else float("inf")

        metrics.max_consecutive_wins, metrics.max_consecutive_losses = _max_streaks(profits)

    return metrics
