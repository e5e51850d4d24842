"""
Tests for WalletService: atomic buys/sells, cash movements, replay and per-user locking.
"""
import threading
from datetime import datetime, timezone

import pytest

from horizon_trader.brokers.mock_broker import InMemoryLedgerStore
from horizon_trader.core.exceptions import (
    InsufficientFundsError,
    InsufficientSharesError,
    InvalidOrderError,
    InvalidParamsError,
    TradingError,
)
from horizon_trader.core.ledger_store import TransactionType, Wallet
from horizon_trader.data.portfolio import Position, PositionLedger
from horizon_trader.data.wallet import WalletService, replay_transactions, summarize_wallet


@pytest.fixture
def service():
    """Commission 0.1%, slippage 0.05%."""
    return WalletService(commission_rate=0.001, slippage_rate=0.0005)


@pytest.fixture
def free_service():
    return WalletService()


@pytest.fixture
def wallet():
    return Wallet(user_id="alice", balance=10_000.0)


@pytest.fixture
def store_service():
    return WalletService(commission_rate=0.001, slippage_rate=0.0005, store=InMemoryLedgerStore())


class TestBuy:
    """Test buy transitions."""

    def test_exact_balance(self, free_service):
        """Buying for exactly the balance leaves 0."""
        update = free_service.buy(Wallet("alice", balance=1000.0), PositionLedger(), "AAPL", 10, 100.0)

        assert update.wallet.balance == 0.0
        assert update.position == Position("AAPL", 10, 100.0)

    def test_one_cent_over_fails(self, free_service):
        with pytest.raises(InsufficientFundsError) as exc:
            free_service.buy(Wallet("alice", balance=999.99), PositionLedger(), "AAPL", 10, 100.0)

        assert exc.value.required == pytest.approx(1000.0)
        assert exc.value.available == pytest.approx(999.99)
        assert exc.value.ticker == "AAPL"

    @pytest.mark.parametrize("quantity, price", [(1, 0.1), (3, 19.99), (7, 0.3), (150, 123.45), (199, 1.01)])
    def test_exact_balance_with_costs(self, service, quantity, price):
        """A balance of exactly quantity × price × (1 + commission + slippage) is enough."""
        balance = quantity * price * (1 + 0.001 + 0.0005)
        update = service.buy(Wallet("alice", balance=balance), PositionLedger(), "AAPL", quantity, price)

        assert update.wallet.balance == 0.0
        assert update.transaction.amount == -balance
        assert service.buy_total(quantity, price) == balance

    def test_one_cent_over_with_costs(self, service):
        with pytest.raises(InsufficientFundsError):
            service.buy(Wallet("alice", balance=1001.5 - 0.01), PositionLedger(), "AAPL", 10, 100.0)

    def test_costs_deducted(self, service, wallet):
        update = service.buy(wallet, PositionLedger(), "AAPL", 100, 50.0)
        txn = update.transaction

        assert txn.commission == pytest.approx(5.0)
        assert txn.slippage == pytest.approx(2.5)
        assert txn.amount == pytest.approx(-5007.5)
        assert update.wallet.balance == pytest.approx(10_000 - 5007.5)
        assert txn.balance_before == 10_000.0
        assert txn.balance_after == update.wallet.balance

    def test_avg_cost_excludes_fees(self, service, wallet):
        update = service.buy(wallet, PositionLedger(), "AAPL", 100, 50.0)

        assert update.ledger["AAPL"].avg_cost == 50.0

    def test_adds_to_existing_position(self, service, wallet):
        ledger = PositionLedger.from_positions([Position("AAPL", 100, 40.0)])
        update = service.buy(wallet, ledger, "AAPL", 100, 60.0)

        assert update.ledger["AAPL"].shares == 200
        assert update.ledger["AAPL"].avg_cost == pytest.approx(50.0)

    def test_counts_trade(self, service, wallet):
        update = service.buy(wallet, PositionLedger(), "AAPL", 1, 10.0)

        assert update.wallet.total_trades == 1
        assert update.transaction.transaction_type is TransactionType.BUY

    def test_failure_leaves_inputs_untouched(self, service, wallet):
        ledger = PositionLedger()
        with pytest.raises(InsufficientFundsError):
            service.buy(wallet, ledger, "AAPL", 1000, 50.0)

        assert wallet.balance == 10_000.0
        assert len(ledger) == 0

    @pytest.mark.parametrize("ticker, quantity, price", [
        ("AAPL", 0, 10.0),
        ("AAPL", -1, 10.0),
        ("AAPL", 1, -10.0),
        ("", 1, 10.0),
    ])
    def test_invalid_order(self, service, wallet, ticker, quantity, price):
        with pytest.raises(InvalidOrderError):
            service.buy(wallet, PositionLedger(), ticker, quantity, price)


class TestSell:
    """Test sell transitions."""

    @pytest.fixture
    def holding(self, service, wallet):
        return service.buy(wallet, PositionLedger(), "AAPL", 100, 50.0)

    def test_realized_net_of_costs(self, service, holding):
        update = service.sell(holding.wallet, holding.ledger, "AAPL", 100, 60.0)
        txn = update.transaction

        assert txn.amount == pytest.approx(6000 - 6 - 3)
        assert txn.realized_pnl == pytest.approx(1000 - 6 - 3)
        assert update.wallet.balance == pytest.approx(10_000 - 5007.5 + 5991)
        assert update.wallet.winning_trades == 1
        assert update.wallet.total_realized_pnl == pytest.approx(991)
        assert update.position is None
        assert "AAPL" not in update.ledger

    def test_flat_price_is_not_a_win(self, service, holding):
        """Selling at cost loses the fees, so it does not count as a winning trade."""
        update = service.sell(holding.wallet, holding.ledger, "AAPL", 100, 50.0)

        assert update.transaction.realized_pnl == pytest.approx(-7.5)
        assert update.wallet.winning_trades == 0
        assert update.wallet.total_trades == 2

    def test_partial_sell(self, service, holding):
        update = service.sell(holding.wallet, holding.ledger, "AAPL", 40, 55.0)

        assert update.position.shares == 60
        assert update.ledger["AAPL"].avg_cost == 50.0

    def test_oversell(self, service, holding):
        with pytest.raises(InsufficientSharesError):
            service.sell(holding.wallet, holding.ledger, "AAPL", 101, 60.0)

    def test_not_held(self, service, wallet):
        with pytest.raises(InsufficientSharesError) as exc:
            service.sell(wallet, PositionLedger(), "MSFT", 1, 60.0)

        assert exc.value.ticker == "MSFT"
        assert exc.value.available == 0


class TestCash:
    """Test deposits and withdrawals."""

    def test_deposit(self, service, wallet):
        update = service.deposit_funds(wallet, 500.0)

        assert update.wallet.balance == 10_500.0
        assert update.wallet.total_deposited == 500.0
        assert update.ledger is None
        assert update.transaction.amount == 500.0

    def test_withdraw(self, service, wallet):
        update = service.withdraw_funds(wallet, 10_000.0)

        assert update.wallet.balance == 0.0
        assert update.wallet.total_withdrawn == 10_000.0
        assert update.transaction.amount == -10_000.0
        assert update.transaction.transaction_type is TransactionType.WITHDRAWAL

    def test_withdraw_too_much(self, service, wallet):
        with pytest.raises(InsufficientFundsError):
            service.withdraw_funds(wallet, 10_000.01)

    @pytest.mark.parametrize("amount", [0, -100.0, float("inf")])
    def test_invalid_amount(self, service, wallet, amount):
        with pytest.raises(InvalidOrderError):
            service.deposit_funds(wallet, amount)

    def test_timestamp_passed_through(self, service, wallet):
        ts = datetime(2024, 3, 1, tzinfo=timezone.utc)

        assert service.deposit_funds(wallet, 1.0, timestamp=ts).transaction.timestamp == ts


class TestConfiguration:
    @pytest.mark.parametrize("kwargs", [{"commission_rate": 1.0}, {"slippage_rate": -0.1}])
    def test_invalid_rates(self, kwargs):
        with pytest.raises(InvalidParamsError):
            WalletService(**kwargs)

    def test_execute_without_store(self, service):
        with pytest.raises(TradingError):
            service.execute_deposit("alice", 100.0)


class TestStoreBacked:
    """Test execute_* with InMemoryLedgerStore."""

    def test_open_wallet_with_deposit(self, store_service):
        wallet = store_service.open_wallet("bob", initial_deposit=1000.0)

        assert wallet.balance == 1000.0
        assert store_service.store.load_wallet("bob") == wallet
        assert store_service.open_wallet("bob", initial_deposit=50.0) == wallet

    def test_round_trip(self, store_service):
        store_service.execute_deposit("bob", 10_000.0)
        store_service.execute_buy("bob", "AAPL", 100, 50.0)
        store_service.execute_sell("bob", "AAPL", 40, 60.0)

        store = store_service.store
        assert store.load_ledger("bob")["AAPL"].shares == 60
        assert [t.transaction_type for t in store.get_transactions("bob")] == [
            TransactionType.DEPOSIT, TransactionType.BUY, TransactionType.SELL,
        ]

    def test_failed_trade_commits_nothing(self, store_service):
        store_service.execute_deposit("bob", 100.0)
        with pytest.raises(InsufficientFundsError):
            store_service.execute_buy("bob", "AAPL", 10, 50.0)

        store = store_service.store
        assert store.load_wallet("bob").balance == 100.0
        assert len(store.load_ledger("bob")) == 0
        assert len(store.get_transactions("bob")) == 1

    def test_replay_matches_stored_state(self, store_service):
        store_service.execute_deposit("bob", 10_000.0)
        store_service.execute_buy("bob", "AAPL", 100, 50.0)
        store_service.execute_buy("bob", "MSFT", 10, 300.0)
        store_service.execute_buy("bob", "AAPL", 20, 45.0)
        store_service.execute_sell("bob", "AAPL", 120, 55.0)
        store_service.execute_withdrawal("bob", 1000.0)

        store = store_service.store
        wallet, ledger = replay_transactions("bob", store.get_transactions("bob"))

        assert wallet == store.load_wallet("bob")
        assert ledger == store.load_ledger("bob")

    def test_replay_rejects_other_users(self, store_service):
        store_service.execute_deposit("bob", 10.0)

        with pytest.raises(InvalidOrderError):
            replay_transactions("alice", store_service.store.get_transactions("bob"))


class TestSummary:
    def test_summary_values(self, free_service, wallet):
        update = free_service.buy(wallet, PositionLedger(), "AAPL", 50, 100.0)
        summary = summarize_wallet(update.wallet, update.ledger, {"AAPL": 120.0})

        assert summary["balance"] == 5000.0
        assert summary["holdings_value"] == 6000.0
        assert summary["total_value"] == 11_000.0
        assert summary["cash_percentage"] == pytest.approx(5000 / 11_000 * 100)
        assert summary["unrealized_pnl"] == pytest.approx(1000.0)
        assert summary["positions"][0]["current_price"] == 120.0

    def test_empty_wallet(self):
        summary = summarize_wallet(Wallet("nobody"), PositionLedger())

        assert summary["total_value"] == 0.0
        assert summary["cash_percentage"] == 100.0
        assert summary["win_rate"] == 0.0


class TestLocking:
    """Test per-user lock isolation."""

    def test_same_user_same_lock(self, service):
        assert service.lock_for("alice") is service.lock_for("alice")

    def test_different_users_different_locks(self, service):
        assert service.lock_for("alice") is not service.lock_for("bob")

    def test_lock_is_reentrant(self, service, wallet):
        with service.lock_for("alice"):
            update = service.deposit_funds(wallet, 1.0)

        assert update.wallet.balance == 10_001.0

    def test_concurrent_deposits_are_serialized(self, store_service):
        """No lost updates when many threads deposit to the same wallet."""
        def deposit_many():
            for _ in range(20):
                store_service.execute_deposit("carol", 1.0)

        threads = [threading.Thread(target=deposit_many) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        store = store_service.store
        assert store.load_wallet("carol").balance == 160.0
        assert len(store.get_transactions("carol")) == 160
