# tradeclient/app/__main__.py
from __future__ import annotations

import argparse
import asyncio
import sys

from loguru import logger

from tradeclient.app.trading_client import TradingAccountClient, build_client
from tradeclient.domain.errors import BrokerError
from tradeclient.infra.logging import setup_logging

ACTIONS = ["info", "positions", "orders", "bars", "buy", "sell", "close", "cancel", "cancel-all"]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tradeclient",
        description="Runner do testowania klienta konta (paper/live, DRY_RUN z .env).",
    )
    p.add_argument(
        "action",
        choices=ACTIONS,
        help="info (konto), positions, orders (otwarte), bars, buy (z SL/TP), sell, close, cancel, cancel-all.",
    )
    p.add_argument("--symbol", default="AAPL", help="Ticker lub para krypto, np. BTC/USD (domyślnie AAPL).")
    p.add_argument("--qty", type=float, default=None, help="Ilość (ułamki dozwolone). Dla sell domyślnie cała pozycja.")
    p.add_argument("--stop-loss", type=float, default=None, help="Cena stop-loss dla buy.")
    p.add_argument("--take-profit", type=float, default=None, help="Cena take-profit dla buy.")
    p.add_argument("--timeframe", default="1Day", help="Interwał barów (domyślnie 1Day).")
    p.add_argument("--limit", type=int, default=100, help="Liczba barów (domyślnie 100).")
    p.add_argument("--order-id", default=None, help="ID zlecenia dla 'cancel'.")
    p.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Poziom logowania (domyślnie LOG_LEVEL z .env).",
    )
    return p


async def run(args: argparse.Namespace, client: TradingAccountClient) -> int:
    await client.initialize()

    if args.action == "info":
        print("\n=== ACCOUNT ===")
        print(f"Portfolio    : {client.get_portfolio_value():.2f}")
        print(f"Buying Power : {client.get_buying_power():.2f}")
        print(f"Day P/L      : {client.get_day_pl():.2f} ({client.get_day_pl_percent():.2f}%)")
        print()
        return 0

    if args.action == "positions":
        print("\n=== OPEN POSITIONS ===")
        if not client.positions:
            print("(brak)")
        for p in client.positions.values():
            print(f"{p.symbol:>8}  qty={p.qty:<10}  avg={p.avg_entry_price}  mkt_val={p.market_value}  uPL={p.unrealized_pl}")
        print()
        return 0

    if args.action == "orders":
        print("\n=== OPEN ORDERS ===")
        if not client.orders:
            print("(brak)")
        for o in client.orders.values():
            print(f"{o.id}  {o.side:<4} {o.symbol:>8} x{o.qty}  {o.type}/{o.time_in_force}  class={o.order_class}")
        print()
        return 0

    if args.action == "bars":
        bars = await client.get_bars(args.symbol, args.timeframe, args.limit)
        print(f"\n=== BARS {args.symbol} {args.timeframe} ({len(bars)}) ===")
        for b in bars[-10:]:
            print(f"{b.timestamp}  O={b.open}  H={b.high}  L={b.low}  C={b.close}  V={b.volume}")
        print()
        return 0

    if args.action == "buy":
        if args.qty is None or args.stop_loss is None or args.take_profit is None:
            print("buy wymaga --qty, --stop-loss i --take-profit")
            return 2
        order = await client.buy_market(args.symbol, args.qty, args.stop_loss, args.take_profit)
        print(f"\n=== BUY ===\n{order}\n")
        return 0

    if args.action == "sell":
        order = await client.sell_market(args.symbol, args.qty)
        print(f"\n=== SELL ===\n{order}\n")
        return 0

    if args.action == "close":
        await client.close_position(args.symbol)
        print(f"\n=== CLOSE ===\n{args.symbol}: zamknięto\n")
        return 0

    if args.action == "cancel":
        if not args.order_id:
            print("cancel wymaga --order-id")
            return 2
        await client.cancel_order(args.order_id)
        print(f"\n=== CANCEL ===\n{args.order_id}\n")
        return 0

    if args.action == "cancel-all":
        await client.cancel_all_orders()
        print("\n=== CANCEL ALL ===\nok\n")
        return 0

    print("Nieznana akcja.")
    return 2


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)

    try:
        client = build_client()
        return asyncio.run(run(args, client))
    except BrokerError as e:
        logger.error(f"Błąd: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nPrzerwano.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
