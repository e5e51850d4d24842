"""
백테스트 / 시그널 조회 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml의 전략으로 백테스트, 샘플 데이터)
    python run_backtest.py

    # 전략 지정
    python run_backtest.py --strategy trend_following
    python run_backtest.py --strategy momentum

    # 파라미터 오버라이드
    python run_backtest.py --strategy trend_following -p short_window=20 -p long_window=100

    # CSV 데이터 사용 ({csv_dir}/{ticker}.csv, columns: date, open, high, low, close, volume)
    python run_backtest.py --source csv --csv-dir data/

    # 종료일 기준 최신 시그널
    python run_backtest.py --signals
    python run_backtest.py --signals --strategy conservative

    # 투자 기간/위험 성향으로 전략 추천
    python run_backtest.py --recommend --horizon 5 --risk low

    # 여러 전략 비교 (백테스트 성과 + 시그널 분포)
    python run_backtest.py --compare trend_following mean_reversion momentum conservative

    # 전략 설명 / 등록된 전략 목록 확인
    python run_backtest.py --explain --strategy mean_reversion
    python run_backtest.py --list
"""

import argparse
import zlib
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import pandas as pd

from horizon_trader.backtest.engine import BacktestEngine
from horizon_trader.backtest.metrics import BacktestMetrics
from horizon_trader.brokers.mock_broker import MockDataProvider
from horizon_trader.core.data_provider import PriceSeries
from horizon_trader.strategies import create_strategy, list_strategies
from horizon_trader.strategies.advisor import compare_strategies, recommend_strategy
from horizon_trader.strategies.engine import estimate_volatility
from horizon_trader.utils.config import Config
from horizon_trader.utils.logger import setup_logger

DEFAULT_TICKERS = ["AAPL", "MSFT"]

# 지표 워밍업용으로 시작일 이전에 더 불러오는 기간 (SMA200 기준)
WARMUP_DAYS = 400


def generate_sample_data(
    ticker: str,
    start_date: date,
    end_date: date,
    initial_price: float = 100.0,
    volatility: float = 0.02,
) -> pd.DataFrame:
    """백테스트용 샘플 주가 데이터 생성. 같은 ticker면 항상 같은 데이터."""
    np.random.seed(zlib.crc32(ticker.encode("utf-8")))

    dates = pd.bdate_range(start=start_date, end=end_date)
    n = len(dates)

    returns = np.random.normal(0.0004, volatility, n)
    prices = initial_price * np.cumprod(1 + returns)

    data = []
    for i, d in enumerate(dates):
        close = prices[i]
        high = close * (1 + abs(np.random.normal(0, 0.01)))
        low = close * (1 - abs(np.random.normal(0, 0.01)))
        open_price = close * (1 + np.random.normal(0, 0.005))
        volume = int(np.random.lognormal(12, 1))

        data.append({
            "date": d.date(),
            "open": round(open_price, 2),
            "high": round(high, 2),
            "low": round(low, 2),
            "close": round(close, 2),
            "volume": volume,
        })

    return pd.DataFrame(data)


def parse_param(param_str: str) -> tuple[str, object]:
    """'key=value' 문자열을 파싱하여 (key, value) 반환. 숫자면 자동 변환."""
    key, _, value = param_str.partition("=")
    key = key.strip()
    value = value.strip()

    # 숫자 자동 변환
    try:
        if "." in value:
            return key, float(value)
        return key, int(value)
    except ValueError:
        # bool 변환
        if value.lower() in ("true", "yes"):
            return key, True
        if value.lower() in ("false", "no"):
            return key, False
        return key, value


def load_data(config: Config, source: str, csv_dir: str | None = None) -> dict[str, PriceSeries]:
    """데이터 소스에서 종목별 PriceSeries 로드 (워밍업 구간 포함).

    sample / csv 모두 MockDataProvider에 DataFrame을 올린 뒤 기간 조회한다.
    """
    start = config.backtest.start - timedelta(days=WARMUP_DAYS)
    end = config.backtest.end
    tickers = config.strategy.tickers or DEFAULT_TICKERS
    provider = MockDataProvider()

    if source == "sample":
        print("샘플 데이터 생성 중...")
        for ticker in tickers:
            provider.load_data(ticker, generate_sample_data(ticker=ticker, start_date=start, end_date=end))

    elif source == "csv":
        base = Path(csv_dir or ".")
        print(f"CSV 데이터 로드 중... ({base})")
        for ticker in tickers:
            path = base / f"{ticker}.csv"
            if not path.exists():
                print(f"  [SKIP] {ticker}: {path} 없음")
                continue
            provider.load_data(ticker, pd.read_csv(path, parse_dates=["date"]))

    else:
        print(f"오류: 알 수 없는 데이터 소스: {source}")
        return {}

    data = {}
    for ticker in provider.get_tickers():
        series = provider.get_price_series(ticker, start, end)
        if series.empty:
            print(f"  [SKIP] {ticker}: 기간 내 데이터 없음")
            continue
        data[ticker] = series
        print(f"  {ticker}: {len(series)}일 데이터")

    if not data:
        print("\n오류: 백테스트할 데이터가 없습니다.")
        print("  --source sample 옵션으로 샘플 데이터 사용")
    return data


def run_single(
    config: Config,
    strategy_name: str,
    strategy_params: dict,
    data: dict[str, PriceSeries],
) -> tuple[BacktestMetrics, int, int, list]:
    """단일 전략 백테스트 실행."""
    strategy = create_strategy(strategy_name, params=strategy_params, thresholds=config.signals)

    engine = BacktestEngine(
        initial_cash=config.trading.initial_cash,
        commission_rate=config.trading.commission_rate,
        slippage_rate=config.trading.slippage_rate,
        position_size_pct=config.trading.position_size_pct,
    )

    metrics = engine.run_backtest(strategy, data, config.backtest.start, config.backtest.end)

    # 거래 내역 요약
    report = engine.generate_report()
    trades = report.get("trades", [])
    buy_trades = [t for t in trades if t["side"] == "buy"]
    sell_trades = [t for t in trades if t["side"] == "sell"]

    return metrics, len(buy_trades), len(sell_trades), sell_trades


def print_single_result(strategy_name: str, metrics: BacktestMetrics, buy_count: int, sell_count: int, sell_trades: list):
    """단일 전략 결과 출력."""
    print(f"\n[전략: {strategy_name}]")
    print(metrics.summary())
    print(f"\n총 거래 횟수: {buy_count + sell_count}")
    print(f"  매수: {buy_count}회")
    print(f"  매도: {sell_count}회")

    if sell_trades:
        print("\n최근 매도 거래 (최대 5건):")
        for t in sell_trades[-5:]:
            profit = t["profit"] or 0.0
            print(
                f"  [{t['date']}] {t['ticker']} {t['quantity']:g}주 @ {t['price']:,.2f}$ "
                f"-> {profit:+,.2f}$ ({t['reason']})"
            )


def print_comparison(results: dict[str, BacktestMetrics], config: Config):
    """여러 전략 비교 결과 출력."""
    tickers = config.strategy.tickers or DEFAULT_TICKERS
    period = f"{config.backtest.start_date} ~ {config.backtest.end_date}"

    names = list(results.keys())
    col_width = max(16, max(len(n) for n in names) + 2)

    print(f"\n{'=' * (20 + col_width * len(names))}")
    print(f"전략 비교 결과 ({', '.join(tickers)}, {period})")
    print(f"{'=' * (20 + col_width * len(names))}")

    # 헤더
    header = f"{'':>20}" + "".join(f"{n:>{col_width}}" for n in names)
    print(header)
    print("-" * len(header))

    # 지표 행
    rows = [
        ("총 수익률", lambda m: f"{m.total_return:.2f}%"),
        ("연환산 수익률", lambda m: f"{m.annual_return:.2f}%"),
        ("샤프 비율", lambda m: f"{m.sharpe_ratio:.2f}"),
        ("최대 낙폭(MDD)", lambda m: f"{m.max_drawdown:.2f}%"),
        ("총 거래 횟수", lambda m: f"{m.total_trades}"),
        ("승률", lambda m: f"{m.win_rate:.1f}%"),
        ("수익 팩터", lambda m: f"{m.profit_factor:.2f}"),
        ("평균 수익", lambda m: f"{m.avg_profit:,.2f}$"),
        ("평균 손실", lambda m: f"{m.avg_loss:,.2f}$"),
        ("거래 비용", lambda m: f"{m.total_costs:,.2f}$"),
        ("최대 연속 수익", lambda m: f"{m.max_consecutive_wins}"),
        ("최대 연속 손실", lambda m: f"{m.max_consecutive_losses}"),
    ]

    for label, fmt in rows:
        row = f"{label:>20}" + "".join(f"{fmt(results[n]):>{col_width}}" for n in names)
        print(row)

    print(f"{'=' * (20 + col_width * len(names))}")


def print_signals(config: Config, strategy_name: str, strategy_params: dict, data: dict[str, PriceSeries]):
    """종료일 기준 종목별 최신 시그널 출력."""
    strategy = create_strategy(strategy_name, params=strategy_params, thresholds=config.signals)
    history = {ticker: series.until(config.backtest.end) for ticker, series in data.items()}
    signals = strategy.generate_signals(history)

    print(f"\n[{strategy}] {config.backtest.end} 기준 시그널")
    print("-" * 60)
    for ticker, signal in signals.items():
        print(f"{ticker:>8}  {signal.signal_type.value.upper():<5} 신뢰도 {signal.confidence:.2f}")
        print(f"          {signal.reason}")
        for r in signal.indicator_results:
            detail = r.error or f"{r.signal_type.value} (강도 {r.strength:.2f})"
            print(f"            - {r.name}: {detail}")


def print_recommendation(horizon: float, risk: str, data: dict[str, PriceSeries]):
    """전략 추천 결과 출력. 데이터가 있으면 평균 변동성도 반영."""
    vols = [v for v in (estimate_volatility(s) for s in data.values()) if v is not None]
    volatility = float(np.mean(vols)) if vols else None

    rec = recommend_strategy(horizon, risk, volatility=volatility)
    print(f"\n투자 기간 {horizon:g}년 / 위험 성향 {risk}")
    if volatility is not None:
        print(f"연환산 변동성 (평균): {volatility:.1%}")
    print(f"  추천 전략:   {rec.strategy}")
    print(f"  리밸런싱:    {rec.frequency.value}")
    print(f"  신뢰도:      {rec.confidence:.0%}")
    print(f"  사유:        {rec.reasoning}")


def print_signal_distribution(names: list[str], data: dict[str, PriceSeries], end: date):
    """전략별 최신 시그널 분포 출력."""
    history = {ticker: series.until(end) for ticker, series in data.items()}
    comparison = compare_strategies(history, names)

    print(f"\n{end} 기준 시그널 분포")
    print(f"{'':>20}{'buy':>6}{'hold':>6}{'sell':>6}{'평균 신뢰도':>12}")
    for name, c in comparison.items():
        dist = c.signal_distribution
        print(f"{name:>20}{dist['buy']:>6}{dist['hold']:>6}{dist['sell']:>6}{c.average_confidence:>12.2f}")


def main():
    parser = argparse.ArgumentParser(description="투자 기간 기반 전략 백테스트 / 시그널 조회")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--strategy", type=str, default=None, help="전략 이름 (config.yaml 대신 지정)")
    parser.add_argument("-p", "--param", action="append", default=[], help="파라미터 오버라이드 (예: -p short_window=20)")
    parser.add_argument("--sample", action="store_true", help="샘플 데이터로 테스트")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "csv"], help="데이터 소스")
    parser.add_argument("--csv-dir", type=str, default=None, help="CSV 디렉토리 ({ticker}.csv)")
    parser.add_argument("--signals", action="store_true", help="종료일 기준 최신 시그널 출력")
    parser.add_argument("--recommend", action="store_true", help="투자 기간/위험 성향으로 전략 추천")
    parser.add_argument("--horizon", type=float, default=None, help="투자 기간 (년, --recommend용)")
    parser.add_argument("--risk", type=str, default=None, choices=["low", "medium", "high"], help="위험 성향")
    parser.add_argument("--compare", nargs="+", metavar="STRATEGY", help="여러 전략 비교 (예: --compare trend_following momentum)")
    parser.add_argument("--explain", action="store_true", help="전략 설명 출력")
    parser.add_argument("--list", action="store_true", help="등록된 전략 목록 출력")
    args = parser.parse_args()

    # 전략 목록 출력
    if args.list:
        print("등록된 전략:")
        for name in list_strategies():
            print(f"  - {name}")
        return

    # 설정 로드
    config_path = Path(args.config)
    if config_path.exists():
        config = Config.from_yaml(config_path)
    else:
        print(f"설정 파일 없음: {config_path}, 기본값 사용")
        config = Config()

    # 로거
    setup_logger(level=config.log_level, log_dir=config.log_dir)

    strategy_name = args.strategy or config.strategy.name
    strategy_params = config.strategy.params_for(strategy_name)

    # CLI 파라미터 오버라이드
    for p in args.param:
        key, value = parse_param(p)
        strategy_params[key] = value

    if args.explain:
        info = create_strategy(strategy_name, params=strategy_params).explain()
        print(f"\n{info['name']}: {info['description']}")
        print(f"  리밸런싱: {info['frequency']}")
        print(f"  진입: {info['rules']['entry']}")
        print(f"  청산: {info['rules']['exit']}")
        for spec in info["indicators"]:
            print(f"  - {spec['type']} {spec['params']}")
        return

    # --sample 호환
    if args.sample:
        args.source = "sample"

    # 데이터 로드 (한 번만)
    data = load_data(config, args.source, args.csv_dir)

    # ─── 추천 모드 ───────────────────────────────────────────────────────
    if args.recommend:
        horizon = args.horizon if args.horizon is not None else config.strategy.horizon
        risk = args.risk or config.strategy.risk_tolerance
        print_recommendation(horizon, risk, data)
        return

    if not data:
        return

    # ─── 시그널 모드 ─────────────────────────────────────────────────────
    if args.signals:
        print_signals(config, strategy_name, strategy_params, data)
        return

    # ─── 비교 모드 ───────────────────────────────────────────────────────
    if args.compare:
        print(f"\n{len(args.compare)}개 전략 비교 실행...")
        results = {}
        for name in args.compare:
            print(f"\n--- {name} 실행 중 ---")
            # 비교 모드에서는 각 전략의 기본 파라미터 사용
            metrics, _, _, _ = run_single(config, name, {}, data)
            results[name] = metrics
        print_comparison(results, config)
        print_signal_distribution(args.compare, data, config.backtest.end)
        return

    # ─── 단일 실행 모드 ─────────────────────────────────────────────────
    print(f"\n전략: {strategy_name}")
    if args.param:
        print(f"파라미터 오버라이드: {dict(parse_param(p) for p in args.param)}")

    metrics, buy_count, sell_count, sell_trades = run_single(config, strategy_name, strategy_params, data)
    print_single_result(strategy_name, metrics, buy_count, sell_count, sell_trades)


if __name__ == "__main__":
    main()
