"""
Adapter alpaca-py: mapowanie błędów SDK na GatewayError, budowanie zleceń
SDK, zapytania o bary (akcje/krypto), DRY_RUN i ponowienia sieciowe.
SDK jest zamockowane; nic nie idzie do sieci.
"""
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock

import pytest
import requests
from alpaca.common.exceptions import APIError
from alpaca.data.enums import Adjustment, CryptoFeed
from alpaca.trading.enums import OrderClass, OrderSide, QueryOrderStatus, TimeInForce
from alpaca.trading.requests import LimitOrderRequest, MarketOrderRequest, StopOrderRequest

from tradeclient.app import order_service
from tradeclient.backend.broker import alpaca_gateway
from tradeclient.backend.broker.alpaca_gateway import AlpacaGateway, GatewayConfig, classify_api_error
from tradeclient.domain.dto import BarQuery, OrderRequest
from tradeclient.domain.errors import BrokerConfigError, ErrorKind, GatewayError


def api_error(message: str, status=None, reason=None, text=None) -> APIError:
    http_error = None
    if status is not None:
        http_error = Mock()
        http_error.response.status_code = status
        http_error.response.reason = reason
        http_error.response.text = text
    return APIError(message, http_error)


@pytest.fixture
def sdk():
    return SimpleNamespace(trading=MagicMock(), stock=MagicMock(), crypto=MagicMock())


@pytest.fixture
def gw(sdk):
    cfg = GatewayConfig(api_key_id="key", api_secret_key="secret", paper=True)
    return AlpacaGateway(cfg, trading=sdk.trading, stock_data=sdk.stock, crypto_data=sdk.crypto)


# ---------- błędy ----------

@pytest.mark.parametrize(
    "message,status,kind",
    [
        ('{"code":42910000,"message":"rate limit exceeded"}', 429, ErrorKind.RATE_LIMIT),
        ("too many requests", None, ErrorKind.RATE_LIMIT),
        ('{"message":"not found"}', 404, ErrorKind.NOT_FOUND),
        ("404 Client Error", None, ErrorKind.NOT_FOUND),
        ('{"message":"forbidden"}', 403, ErrorKind.AUTH),
        ('{"message":"insufficient buying power"}', 403, ErrorKind.REJECTED),
        ('{"message":"insufficient qty available"}', 422, ErrorKind.REJECTED),
        ('{"message":"internal error"}', 500, ErrorKind.OTHER),
    ],
)
def test_classify_api_error(message, status, kind):
    err = classify_api_error(api_error(message, status))
    assert err.kind is kind
    assert err.status_code == status


def test_classify_keeps_response_details():
    err = classify_api_error(api_error('{"message":"nope"}', 422, reason="Unprocessable Entity", text='{"message":"nope"}'))
    assert err.status_text == "Unprocessable Entity"
    assert err.body == '{"message":"nope"}'


def test_api_error_is_not_retried(gw, sdk):
    sdk.trading.get_account.side_effect = api_error("rate limit", 429)
    with pytest.raises(GatewayError) as exc:
        gw.get_account()
    assert exc.value.kind is ErrorKind.RATE_LIMIT
    assert sdk.trading.get_account.call_count == 1


def test_network_errors_retried_then_mapped(gw, sdk, monkeypatch):
    sleeps = []
    monkeypatch.setattr(alpaca_gateway.time, "sleep", sleeps.append)
    sdk.trading.get_all_positions.side_effect = requests.ConnectionError("down")

    with pytest.raises(GatewayError) as exc:
        gw.get_positions()

    assert exc.value.kind is ErrorKind.NETWORK
    assert sdk.trading.get_all_positions.call_count == 3
    assert sleeps == [0.5, 1.0]


def test_missing_keys_rejected_also_in_dry_run():
    from tradeclient.config import Settings

    with pytest.raises(BrokerConfigError):
        GatewayConfig.from_settings(Settings(APCA_API_KEY_ID=None, APCA_API_SECRET_KEY=None, DRY_RUN=False))
    with pytest.raises(BrokerConfigError):
        GatewayConfig.from_settings(Settings(APCA_API_KEY_ID=None, APCA_API_SECRET_KEY=None, DRY_RUN=True))
    cfg = GatewayConfig.from_settings(Settings(APCA_API_KEY_ID="k", APCA_API_SECRET_KEY="s", DRY_RUN=True))
    assert cfg.dry_run


# ---------- konto / pozycje / zlecenia ----------

def test_account_positions_orders_mapping(gw, sdk):
    sdk.trading.get_account.return_value = SimpleNamespace(
        equity="10500.5", last_equity="10000", buying_power="20000", cash="5000", status="ACTIVE"
    )
    sdk.trading.get_all_positions.return_value = [
        SimpleNamespace(symbol="MSFT", qty="-5", side="short", avg_entry_price="300",
                        market_value="-1500", unrealized_pl="12.5", cost_basis="-1512.5"),
    ]
    sdk.trading.get_orders.return_value = [
        SimpleNamespace(id="abc", symbol="AAPL", side=OrderSide.SELL, qty="0.35", order_type="stop",
                        time_in_force=TimeInForce.GTC, order_class=OrderClass.SIMPLE, status="new",
                        stop_price="95", limit_price=None, client_order_id="c-1"),
    ]

    acc = gw.get_account()
    assert (acc.equity, acc.last_equity, acc.buying_power) == ("10500.5", "10000", "20000")

    pos = gw.get_positions()[0]
    assert (pos.symbol, pos.qty, pos.cost_basis) == ("MSFT", -5.0, "-1512.5")

    order = gw.get_orders("open")[0]
    assert (order.id, order.side, order.qty, order.type, order.time_in_force, order.order_class) == (
        "abc", "sell", 0.35, "stop", "gtc", "simple",
    )
    assert order.stop_price == 95.0
    req = sdk.trading.get_orders.call_args.kwargs["filter"]
    assert req.status == QueryOrderStatus.OPEN


# ---------- zlecenia SDK ----------

def test_bracket_request(gw, sdk):
    sdk.trading.submit_order.return_value = SimpleNamespace(
        id="o-1", symbol="AAPL", side=OrderSide.BUY, qty="2", order_type="market",
        time_in_force=TimeInForce.DAY, order_class=OrderClass.BRACKET, status="accepted",
    )
    primary, _ = order_service.buy_plan("AAPL", 2, 95.0, 110.0)
    primary.client_id = "test-AAPL-buy-1"

    placed = gw.create_order(primary)

    req = sdk.trading.submit_order.call_args.kwargs["order_data"]
    assert isinstance(req, MarketOrderRequest)
    assert req.order_class == OrderClass.BRACKET
    assert req.stop_loss.stop_price == 95.0
    assert req.take_profit.limit_price == 110.0
    assert req.time_in_force == TimeInForce.DAY
    assert req.client_order_id == "test-AAPL-buy-1"
    assert placed.id == "o-1"
    assert placed.order_class == "bracket"


def test_exit_requests():
    stop, take = order_service.exit_orders("AAPL", 0.35, 95.0, 110.0)
    gw = AlpacaGateway(GatewayConfig("k", "s"), trading=MagicMock(), stock_data=MagicMock(), crypto_data=MagicMock())

    stop_req = gw._to_sdk_order(stop)
    take_req = gw._to_sdk_order(take)

    assert isinstance(stop_req, StopOrderRequest)
    assert stop_req.stop_price == 95.0
    assert stop_req.side == OrderSide.SELL
    assert stop_req.time_in_force == TimeInForce.GTC
    assert isinstance(take_req, LimitOrderRequest)
    assert take_req.limit_price == 110.0


def test_close_and_cancel(gw, sdk):
    sdk.trading.close_position.return_value = SimpleNamespace(
        id="c-1", symbol="AAPL", side=OrderSide.SELL, qty="2", order_type="market", time_in_force=TimeInForce.DAY
    )
    sdk.trading.cancel_orders.return_value = [object(), object()]

    assert gw.close_position("AAPL").id == "c-1"
    gw.close_position("BTC/USD")
    gw.cancel_order("o-1")
    assert gw.cancel_all_orders() == 2
    assert [c.args[0] for c in sdk.trading.close_position.call_args_list] == ["AAPL", "BTCUSD"]
    sdk.trading.cancel_order_by_id.assert_called_once_with("o-1")


def test_dry_run_simulates_mutations(sdk):
    gw = AlpacaGateway(
        GatewayConfig("k", "s", dry_run=True), trading=sdk.trading, stock_data=sdk.stock, crypto_data=sdk.crypto
    )
    sdk.trading.get_orders.return_value = []
    placed = gw.create_order(OrderRequest(symbol="AAPL", side="buy", qty=0.5))
    stop = gw.create_order(OrderRequest(symbol="AAPL", side="sell", qty=0.5, type="stop", stop_price=95.0))

    assert placed.id.startswith("SIM-")
    assert gw.get_order(placed.id).status == "filled"
    assert [o.id for o in gw.get_orders("open")] == [stop.id]
    assert gw.get_order(stop.id).status == "accepted"
    assert gw.cancel_all_orders() == 1
    assert gw.get_orders("open") == []
    sdk.trading.submit_order.assert_not_called()
    sdk.trading.cancel_orders.assert_not_called()


# ---------- bary ----------

def _sdk_bar(i: int):
    return SimpleNamespace(
        timestamp=datetime(2024, 1, 2, 15, 30 + i, tzinfo=timezone.utc),
        open=100 + i, high=101 + i, low=99 + i, close=100.5 + i, volume=1000, vwap=100.2, trade_count=12,
    )


def test_stock_bars_request(gw, sdk):
    sdk.stock.get_stock_bars.return_value = SimpleNamespace(data={"AAPL": [_sdk_bar(0), _sdk_bar(1)]})

    bars = gw.get_bars(BarQuery(symbol="AAPL", timeframe="1Min", limit=100))

    req = sdk.stock.get_stock_bars.call_args.args[0]
    assert req.limit == 100
    assert req.adjustment == Adjustment.RAW
    assert [b.close for b in bars] == [100.5, 101.5]
    assert bars[0].symbol == "AAPL"


def test_crypto_bars_use_us_feed(gw, sdk):
    sdk.crypto.get_crypto_bars.return_value = SimpleNamespace(data={"BTC/USD": [_sdk_bar(0)]})

    bars = gw.get_bars(BarQuery(symbol="BTC/USD", timeframe="1Hour", limit=10, feed="us"))

    assert sdk.crypto.get_crypto_bars.call_args.kwargs["feed"] == CryptoFeed.US
    sdk.stock.get_stock_bars.assert_not_called()
    assert len(bars) == 1


def test_bars_missing_symbol_is_empty(gw, sdk):
    sdk.stock.get_stock_bars.return_value = SimpleNamespace(data={})
    assert gw.get_historical_bars(
        BarQuery(symbol="AAPL", timeframe="1Day", limit=1000, start="2024-01-01", end="2024-02-01")
    ) == []
    req = sdk.stock.get_stock_bars.call_args.args[0]
    assert req.start.replace(tzinfo=None) == datetime(2024, 1, 1)


def test_latest_trade(gw, sdk):
    sdk.stock.get_stock_latest_trade.return_value = {"AAPL": SimpleNamespace(price=187.5, size=10, timestamp=None)}
    trade = gw.get_latest_trade("AAPL")
    assert (trade.symbol, trade.price, trade.size) == ("AAPL", 187.5, 10.0)
