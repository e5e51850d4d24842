"""
가격 데이터 컨테이너 및 시장 데이터 제공 추상 클래스 정의.

[ 역할 ]
    PriceBar(시가/고가/저가/종가/거래량) 단일 봉과, 한 종목의 봉을 날짜 오름차순으로
    담는 PriceSeries를 정의. 지표/전략 엔진은 이 컨테이너만 입력으로 받는다.
    MarketDataProvider는 외부 시세 수집기(API/캐시)를 추상화한 인터페이스.

[ 불변 조건 ]
    - PriceSeries의 날짜는 엄격하게 증가 (중복 날짜 불가)
    - 생성 후 변경 불가. frame / closes는 복사본을 반환
    - 최소 길이는 소비자(지표)가 계산 전에 확인

[ 구현체 ]
    - brokers/mock_broker.py::MockDataProvider  (DataFrame 기반, 테스트/백테스트용)
    - 실제 시세 API 연동은 외부 협력자 책임 (코어는 직접 조회/캐싱하지 않음)

[ 호출하는 곳 ]
    - indicators/technical.py::compute()에서 종가 시계열 사용
    - strategies/engine.py::generate_signals()에 ticker → PriceSeries 매핑으로 전달
    - backtest/engine.py에서 날짜별 until()로 과거 구간 잘라서 사용
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Iterator, Sequence

import pandas as pd

from horizon_trader.core.exceptions import InvalidParamsError

PRICE_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


@dataclass(frozen=True)
class PriceBar:
    """단일 봉(캔들) 데이터."""
    date: date
    open: float      # 시가
    high: float      # 고가
    low: float       # 저가
    close: float     # 종가
    volume: int = 0  # 거래량


@dataclass(frozen=True)
class Quote:
    """현재가 조회 결과. get_quote()의 반환값."""
    price: float
    timestamp: datetime


class PriceSeries:
    """한 종목의 OHLCV 봉 시퀀스 (날짜 오름차순).

    사용 예:
        series = PriceSeries.from_closes("AAPL", [100, 102, 101, 105, 107])
        series.closes.tail(3).mean()
    """

    def __init__(self, ticker: str, frame: pd.DataFrame):
        missing = [c for c in ("date", "close") if c not in frame.columns]
        if missing:
            raise InvalidParamsError(f"{ticker}: price frame is missing columns {missing}")

        df = frame.copy()
        df["date"] = pd.to_datetime(df["date"]).dt.date
        for column in PRICE_COLUMNS:
            if column not in df.columns:
                # 종가만 있는 데이터는 나머지 가격을 종가로 채움
                df[column] = 0 if column == "volume" else df["close"]
        df = df[PRICE_COLUMNS].reset_index(drop=True)

        dates = pd.Series(df["date"])
        if not dates.is_monotonic_increasing or not dates.is_unique:
            raise InvalidParamsError(f"{ticker}: bar dates must be strictly increasing")

        self._ticker = ticker
        self._frame = df

    @classmethod
    def _from_validated(cls, ticker: str, df: pd.DataFrame) -> "PriceSeries":
        series = cls.__new__(cls)
        series._ticker = ticker
        series._frame = df.reset_index(drop=True)
        return series

    @classmethod
    def from_bars(cls, ticker: str, bars: Iterable[PriceBar]) -> "PriceSeries":
        """PriceBar 목록에서 생성."""
        rows = [
            {
                "date": b.date,
                "open": b.open,
                "high": b.high,
                "low": b.low,
                "close": b.close,
                "volume": b.volume,
            }
            for b in bars
        ]
        return cls(ticker, pd.DataFrame(rows, columns=PRICE_COLUMNS))

    @classmethod
    def from_closes(
        cls,
        ticker: str,
        closes: Sequence[float],
        start_date: date = date(2024, 1, 1),
    ) -> "PriceSeries":
        """종가 목록에서 생성. 날짜는 start_date부터 영업일로 채운다."""
        dates = pd.bdate_range(start=start_date, periods=len(closes))
        frame = pd.DataFrame({"date": dates, "close": [float(c) for c in closes]})
        return cls(ticker, frame)

    @property
    def ticker(self) -> str:
        return self._ticker

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    @property
    def closes(self) -> pd.Series:
        """종가 시계열 (float, 0부터 시작하는 정수 인덱스)."""
        return self._frame["close"].astype(float).copy()

    @property
    def dates(self) -> list[date]:
        return list(self._frame["date"])

    @property
    def empty(self) -> bool:
        return self._frame.empty

    @property
    def last_close(self) -> float | None:
        if self._frame.empty:
            return None
        return float(self._frame.iloc[-1]["close"])

    def __len__(self) -> int:
        return len(self._frame)

    def __iter__(self) -> Iterator[PriceBar]:
        for r in self._frame.itertuples(index=False):
            yield PriceBar(
                date=r.date,
                open=float(r.open),
                high=float(r.high),
                low=float(r.low),
                close=float(r.close),
                volume=int(r.volume),
            )

    def until(self, as_of: date) -> "PriceSeries":
        """as_of 이하 날짜의 봉만 남긴 시리즈 (미래 데이터 누출 방지)."""
        mask = self._frame["date"] <= as_of
        return PriceSeries._from_validated(self._ticker, self._frame[mask])

    def between(self, start_date: date, end_date: date) -> "PriceSeries":
        mask = (self._frame["date"] >= start_date) & (self._frame["date"] <= end_date)
        return PriceSeries._from_validated(self._ticker, self._frame[mask])

    def tail(self, n: int) -> "PriceSeries":
        return PriceSeries._from_validated(self._ticker, self._frame.tail(n))

    def __repr__(self) -> str:
        if self.empty:
            return f"PriceSeries({self._ticker!r}, empty)"
        first, last = self._frame["date"].iloc[0], self._frame["date"].iloc[-1]
        return f"PriceSeries({self._ticker!r}, {len(self)} bars, {first} ~ {last})"


class MarketDataProvider(ABC):
    """시장 데이터 제공 추상 클래스.

    코어는 시세를 직접 조회하거나 캐싱하지 않는다. 외부 협력자가 이 인터페이스를
    구현하여 PriceSeries와 현재가(Quote)를 공급한다.
    """

    @abstractmethod
    def get_price_series(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
    ) -> PriceSeries:
        """기간 내 OHLCV 시리즈 조회.

        Args:
            ticker: 종목 코드 (대문자, 길이 검증 완료)
            start_date: 시작일
            end_date: 종료일
        """
        ...

    @abstractmethod
    def get_quote(self, ticker: str) -> Quote:
        """현재가 조회."""
        ...

    @abstractmethod
    def get_tickers(self) -> list[str]:
        """조회 가능한 종목 코드 목록."""
        ...
