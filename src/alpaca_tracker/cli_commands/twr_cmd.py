from __future__ import annotations

from datetime import date
from typing import Sequence

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from alpaca_tracker.config import TOTAL_ACCOUNTS_NAME, AccountConfig, Settings, TWRContext, load_accounts
from alpaca_tracker.twr.models import TWRPoint, series_to_frame
from alpaca_tracker.twr.window import HistoryPeriod, history_window
from alpaca_tracker.utils.dates import market_today, parse_ymd
from alpaca_tracker.utils.formatting import fmt_pct, fmt_signed_usd, fmt_usd, pct_style
from alpaca_tracker.utils.logging import log_event
from alpaca_tracker.utils.settings import safe_load_settings


def _settings() -> Settings:
    settings = safe_load_settings()
    if settings is None:
        raise typer.BadParameter("Could not load settings from .env or the environment.")
    return settings


def _load() -> tuple[list[AccountConfig], TWRContext, int, float]:
    settings = _settings()
    accounts = load_accounts(settings)
    if not accounts:
        raise typer.BadParameter(
            "No accounts configured. Set ALPACA_API_KEY/ALPACA_API_SECRET or create TRACKER_ACCOUNTS_FILE."
        )
    return accounts, settings.twr_context(), settings.fetch_workers, settings.http_timeout


def _window(period: str, start: str, end: str, today: date, first_trade_date: date | None) -> tuple[date, date]:
    try:
        p = HistoryPeriod(period)
    except ValueError:
        raise typer.BadParameter(f"Unknown period '{period}'. Use one of: {', '.join(x.value for x in HistoryPeriod)}")
    s, e = history_window(p, today, first_trade_date)
    try:
        if start:
            s = max(parse_ymd(start), first_trade_date) if first_trade_date else parse_ymd(start)
        if end:
            e = parse_ymd(end)
    except ValueError:
        raise typer.BadParameter("Dates must be YYYY-MM-DD.")
    if s > e:
        raise typer.BadParameter(f"Start {s} is after end {e}.")
    return s, e


def _fail(console: Console, err: Exception) -> None:
    console.print(Panel(f"[red]{err}[/red]", title="TWR unavailable", expand=False))
    raise typer.Exit(code=1)


def _render(console: Console, title: str, series: Sequence[TWRPoint], rows: int) -> None:
    if not series:
        console.print(Panel("No equity history in the selected window.", title=title, expand=False))
        return
    last = series[-1]
    console.print(
        Panel(
            f"[b]Window:[/b] {series[0].date} → {last.date}\n"
            f"[b]Equity:[/b] {fmt_usd(last.equity)}\n"
            f"[b]TWR:[/b] [{pct_style(last.cumulative_twr)}]{fmt_pct(last.cumulative_twr)}[/{pct_style(last.cumulative_twr)}]\n"
            f"[b]Net flows:[/b] {fmt_signed_usd(sum(p.net_cash_flow for p in series[1:]))}",
            title=title,
            expand=False,
        )
    )
    tbl = Table(title=f"Last {min(rows, len(series))} day(s)")
    tbl.add_column("date", style="bold")
    tbl.add_column("equity", justify="right")
    tbl.add_column("net flow", justify="right")
    tbl.add_column("daily", justify="right")
    tbl.add_column("cumulative", justify="right")
    for p in series[-max(1, int(rows)):]:
        tbl.add_row(
            p.date.isoformat(),
            fmt_usd(p.equity),
            fmt_signed_usd(p.net_cash_flow) if p.net_cash_flow else "",
            f"[{pct_style(p.daily_return)}]{fmt_pct(p.daily_return)}[/{pct_style(p.daily_return)}]",
            f"[{pct_style(p.cumulative_twr)}]{fmt_pct(p.cumulative_twr)}[/{pct_style(p.cumulative_twr)}]",
        )
    console.print(tbl)


def _emit(console: Console, title: str, series: Sequence[TWRPoint], *, rows: int, csv_path: str, as_json: bool) -> None:
    if csv_path:
        series_to_frame(series).to_csv(csv_path)
        console.print(f"[dim]Wrote {len(series)} row(s) to {csv_path}[/dim]")
    if as_json:
        log_event(title, {"points": [p.as_dict() for p in series]})
        return
    _render(console, title, series, rows)


def register_accounts(app: typer.Typer) -> None:
    @app.command("accounts")
    def accounts_cmd():
        """List configured accounts."""
        settings = _settings()
        accounts = load_accounts(settings)
        c = Console()
        if not accounts:
            c.print(Panel("No accounts configured.", title="Accounts", expand=False))
            raise typer.Exit(code=0)
        tbl = Table(title=f"Accounts ({settings.accounts_file})")
        tbl.add_column("name", style="bold")
        tbl.add_column("mode")
        tbl.add_column("first trade")
        for a in accounts:
            tbl.add_row(a.name, "PAPER" if a.paper else "LIVE", a.first_trade_date.isoformat() if a.first_trade_date else "")
        c.print(tbl)


def register(twr_app: typer.Typer) -> None:
    @twr_app.command("account")
    def twr_account(
        name: str = typer.Argument(..., help="Account name (see `tracker accounts`)"),
        period: str = typer.Option("1M", "--period", help="1D, 1W, 1M, 3M, 1A, all, custom"),
        start: str = typer.Option("", "--start", help="Override window start (YYYY-MM-DD)"),
        end: str = typer.Option("", "--end", help="Override window end (YYYY-MM-DD)"),
        live: bool = typer.Option(True, "--live/--no-live", help="Estimate today's point from the live balance"),
        rows: int = typer.Option(20, "--rows", help="Table rows to show (most recent)"),
        csv_path: str = typer.Option("", "--csv", help="Also write the series to this CSV path"),
        as_json: bool = typer.Option(False, "--json", help="Print the series as JSON instead of a table"),
    ):
        """Time-weighted return series for one account."""
        from alpaca_tracker.data.alpaca import AlpacaAPIError, AlpacaDataSource
        from alpaca_tracker.twr.service import TWRUnavailableError, compute_account_twr

        accounts, ctx, _workers, timeout = _load()
        account = next((a for a in accounts if a.name == name), None)
        if account is None:
            raise typer.BadParameter(f"Unknown account '{name}'. Known: {', '.join(a.name for a in accounts)}")

        c = Console()
        today = market_today(ctx.market_tz)
        s, e = _window(period, start, end, today, account.first_trade_date)
        try:
            series = compute_account_twr(
                AlpacaDataSource(ctx, [account], timeout=timeout), account, start=s, end=e, context=ctx, today=today, live=live
            )
        except (TWRUnavailableError, AlpacaAPIError) as err:
            _fail(c, err)
            return
        _emit(c, f"TWR: {account.name}", series, rows=rows, csv_path=csv_path, as_json=as_json)

    @twr_app.command("total")
    def twr_total(
        period: str = typer.Option("1M", "--period", help="1D, 1W, 1M, 3M, 1A, all, custom"),
        start: str = typer.Option("", "--start", help="Override window start (YYYY-MM-DD)"),
        end: str = typer.Option("", "--end", help="Override window end (YYYY-MM-DD)"),
        live: bool = typer.Option(True, "--live/--no-live", help="Estimate today's point from the live balances"),
        trim: bool = typer.Option(True, "--trim/--no-trim", help="Skip the flat pre-funding stretch"),
        rows: int = typer.Option(20, "--rows", help="Table rows to show (most recent)"),
        csv_path: str = typer.Option("", "--csv", help="Also write the series to this CSV path"),
        as_json: bool = typer.Option(False, "--json", help="Print the series as JSON instead of a table"),
    ):
        """Time-weighted return series for all configured accounts combined."""
        from alpaca_tracker.data.alpaca import AlpacaAPIError, AlpacaDataSource
        from alpaca_tracker.twr.service import TWRUnavailableError, compute_total_twr

        accounts, ctx, workers, timeout = _load()
        c = Console()
        today = market_today(ctx.market_tz)
        firsts = [a.first_trade_date for a in accounts if a.first_trade_date is not None]
        s, e = _window(period, start, end, today, max(firsts) if firsts else None)
        try:
            series = compute_total_twr(
                AlpacaDataSource(ctx, accounts, timeout=timeout),
                accounts,
                start=s,
                end=e,
                context=ctx,
                today=today,
                live=live,
                trim_inactive=trim,
                workers=workers,
            )
        except (TWRUnavailableError, AlpacaAPIError) as err:
            _fail(c, err)
            return
        _emit(c, f"TWR: {TOTAL_ACCOUNTS_NAME}", series, rows=rows, csv_path=csv_path, as_json=as_json)

    @twr_app.command("daily-change")
    def twr_daily_change(
        as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    ):
        """Today's change vs the last close, per account and in aggregate."""
        from alpaca_tracker.data.alpaca import AlpacaDataSource
        from alpaca_tracker.twr.service import collect_daily_changes

        accounts, ctx, workers, timeout = _load()
        c = Console()
        res = collect_daily_changes(AlpacaDataSource(ctx, accounts, timeout=timeout), accounts, context=ctx, workers=workers)
        if as_json:
            log_event("Daily change", {"status": res.status.value, "result": res})
            raise typer.Exit(code=0 if res.ready else 1)

        tbl = Table(title="Daily change")
        tbl.add_column("account", style="bold")
        tbl.add_column("last close", justify="right")
        tbl.add_column("now", justify="right")
        tbl.add_column("change", justify="right")
        tbl.add_column("%", justify="right")
        for d in res.accounts:
            tbl.add_row(
                d.account,
                fmt_usd(d.previous_equity),
                fmt_usd(d.current_equity),
                fmt_signed_usd(d.change),
                f"[{pct_style(d.change_pct)}]{fmt_pct(d.change_pct)}[/{pct_style(d.change_pct)}]",
            )
        if res.ready:
            tbl.add_row(
                TOTAL_ACCOUNTS_NAME,
                fmt_usd(res.previous_equity),
                fmt_usd(res.current_equity),
                fmt_signed_usd(res.change),
                f"[{pct_style(res.change_pct)}]{fmt_pct(res.change_pct)}[/{pct_style(res.change_pct)}]",
                style="bold",
            )
            c.print(tbl)
            return
        c.print(
            Panel(
                f"[b]Status:[/b] {res.status.value}\n"
                f"[b]Failed:[/b] {', '.join(res.failed) or '-'}\n"
                f"[b]Pending:[/b] {', '.join(res.pending) or '-'}",
                title=f"{TOTAL_ACCOUNTS_NAME}: daily change unavailable",
                expand=False,
            )
        )
        raise typer.Exit(code=1)
