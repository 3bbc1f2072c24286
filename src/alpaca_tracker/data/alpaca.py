from __future__ import annotations

import logging
import threading
from datetime import date, timedelta
from typing import Any, Iterable

import requests
from alpaca.trading.client import TradingClient
from requests.exceptions import RequestException

from alpaca_tracker.config import AccountConfig, TWRContext
from alpaca_tracker.twr.models import ActivityRecord, EquitySnapshot
from alpaca_tracker.utils.dates import epoch_to_market_date, parse_iso_date

logger = logging.getLogger(__name__)

LIVE_BASE_URL = "https://api.alpaca.markets"
PAPER_BASE_URL = "https://paper-api.alpaca.markets"
CASH_FLOW_TYPES = ("CSD", "CSW")
PAGE_SIZE = 100
MAX_PAGES = 1000


class AlpacaAPIError(RuntimeError):
    def __init__(self, message: str, *, endpoint: str = "", status: int | None = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status


def _to_float(x: Any) -> float:
    try:
        return float(x) if x is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _column(payload: dict[str, Any], key: str, n: int) -> list[Any]:
    """Fetch a history column, broadcasting scalars and padding short/missing columns with None."""
    v = payload.get(key)
    if v is None:
        return [None] * n
    if not isinstance(v, list):
        return [v] * n
    return list(v) + [None] * max(0, n - len(v))


def parse_portfolio_history(payload: dict[str, Any], tz: str, timeframe: str = "1D") -> list[EquitySnapshot]:
    """
    Convert a portfolio-history payload (parallel arrays) into snapshots.

    Null numeric fields become 0.0; bars without a timestamp are dropped.
    """
    timestamps = payload.get("timestamp") or []
    equities = payload.get("equity") or []
    n = min(len(timestamps), len(equities))
    pnls = _column(payload, "profit_loss", n)
    pnl_pcts = _column(payload, "profit_loss_pct", n)
    bases = _column(payload, "base_value", n)

    out: list[EquitySnapshot] = []
    for i in range(n):
        ts = timestamps[i]
        if ts is None:
            continue
        equity = _to_float(equities[i])
        out.append(
            EquitySnapshot(
                date=epoch_to_market_date(ts, tz, timeframe),
                equity=equity,
                pnl=_to_float(pnls[i]),
                pnl_pct=_to_float(pnl_pcts[i]),
                base_value=_to_float(bases[i]) if bases[i] is not None else equity,
            )
        )
    return out


def parse_activity(row: dict[str, Any]) -> ActivityRecord:
    return ActivityRecord(
        activity_type=str(row.get("activity_type") or ""),
        date=parse_iso_date(row.get("date") or row.get("transaction_time")),
        net_amount=None if row.get("net_amount") is None else str(row.get("net_amount")),
        id=str(row.get("id") or ""),
    )


class AlpacaAccountClient:
    """
    Thin REST client for the account endpoints the TWR engine consumes.

    Portfolio history and activities go over plain HTTP; the live balance goes
    through the alpaca-py TradingClient. Without an injected session each
    worker thread gets its own `requests.Session`.
    """

    def __init__(
        self,
        account: AccountConfig,
        *,
        session: requests.Session | None = None,
        trading: TradingClient | None = None,
        timeout: float = 30.0,
        attempts: int = 3,
    ):
        self.account = account
        self.base_url = PAPER_BASE_URL if account.paper else LIVE_BASE_URL
        self._session = session
        self._local = threading.local()
        self._trading = trading
        self._lock = threading.Lock()
        self.timeout = timeout
        self.attempts = max(1, int(attempts))

    @property
    def session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        s = getattr(self._local, "session", None)
        if s is None:
            s = requests.Session()
            self._local.session = s
        return s

    @property
    def trading(self) -> TradingClient:
        with self._lock:
            if self._trading is None:
                self._trading = TradingClient(self.account.api_key, self.account.api_secret, paper=self.account.paper)
            return self._trading

    def _headers(self) -> dict[str, str]:
        return {
            "APCA-API-KEY-ID": self.account.api_key,
            "APCA-API-SECRET-KEY": self.account.api_secret,
            "Accept": "application/json",
        }

    def _get(self, endpoint: str, params: dict[str, Any]) -> Any:
        url = f"{self.base_url}/v2/{endpoint}"
        last_err: Exception | None = None
        for attempt in range(self.attempts):
            try:
                r = self.session.get(url, params=params, headers=self._headers(), timeout=self.timeout)
            except RequestException as e:
                last_err = e
                logger.debug("GET %s failed (attempt %d/%d): %s", endpoint, attempt + 1, self.attempts, e)
                continue
            if r.status_code != 200:
                raise AlpacaAPIError(
                    f"Alpaca {endpoint} returned HTTP {r.status_code} for account '{self.account.name}'",
                    endpoint=endpoint,
                    status=r.status_code,
                )
            try:
                return r.json()
            except ValueError as e:
                raise AlpacaAPIError(f"Alpaca {endpoint} returned invalid JSON", endpoint=endpoint) from e
        raise AlpacaAPIError(
            f"Alpaca {endpoint} unreachable for account '{self.account.name}': {last_err}",
            endpoint=endpoint,
        ) from last_err

    def portfolio_history(
        self,
        start: date,
        end: date,
        *,
        timeframe: str = "1D",
        extended_hours: bool = False,
    ) -> dict[str, Any]:
        payload = self._get(
            "account/portfolio/history",
            {
                "start": start.isoformat(),
                "end": end.isoformat(),
                "timeframe": timeframe,
                "extended_hours": "true" if extended_hours else "false",
            },
        )
        if not isinstance(payload, dict):
            raise AlpacaAPIError("Unexpected portfolio history payload", endpoint="account/portfolio/history")
        return payload

    def _activities_of_type(self, activity_type: str, start: date, end: date) -> list[dict[str, Any]]:
        endpoint = f"account/activities/{activity_type}"
        rows: list[dict[str, Any]] = []
        token: str | None = None
        for _page in range(MAX_PAGES):
            params: dict[str, Any] = {
                # `after` is exclusive; step back a day so flows on `start` are included.
                "after": (start - timedelta(days=1)).isoformat(),
                "until": end.isoformat(),
                "page_size": PAGE_SIZE,
                "direction": "asc",
            }
            if token:
                params["page_token"] = token
            payload = self._get(endpoint, params)

            # Two response shapes: a bare array, or {"activities": [...], "next_page_token": ...}.
            if isinstance(payload, list):
                rows.extend(payload)
                if len(payload) < PAGE_SIZE:
                    break
                token = str(payload[-1].get("id") or "") if payload else ""
            elif isinstance(payload, dict):
                rows.extend(payload.get("activities") or [])
                token = payload.get("next_page_token") or ""
            else:
                raise AlpacaAPIError("Unexpected activities payload", endpoint=endpoint)
            if not token:
                break
        else:
            logger.warning("Activity pagination for %s stopped at %d pages", activity_type, MAX_PAGES)
        return rows

    def cash_flow_activities(self, start: date, end: date) -> list[ActivityRecord]:
        out: list[ActivityRecord] = []
        for typ in CASH_FLOW_TYPES:
            out.extend(parse_activity(row) for row in self._activities_of_type(typ, start, end))
        logger.debug("Fetched %d cash-flow activities for %s", len(out), self.account.name)
        return out

    def current_equity(self) -> float:
        acct = self.trading.get_account()
        return _to_float(getattr(acct, "equity", None))


class AlpacaDataSource:
    """
    `AccountDataSource` backed by Alpaca, one client per configured account.

    Clients for `accounts` are built up front; any other account gets one on
    first use under a lock, since fetches arrive from worker threads.
    """

    def __init__(self, context: TWRContext, accounts: Iterable[AccountConfig] = (), *, timeout: float = 30.0):
        self.context = context
        self.timeout = timeout
        self._lock = threading.Lock()
        self._clients: dict[str, AlpacaAccountClient] = {
            a.name: AlpacaAccountClient(a, timeout=timeout) for a in accounts
        }

    def client(self, account: AccountConfig) -> AlpacaAccountClient:
        with self._lock:
            c = self._clients.get(account.name)
            if c is None:
                c = AlpacaAccountClient(account, timeout=self.timeout)
                self._clients[account.name] = c
            return c

    def equity_history(self, account: AccountConfig, start: date, end: date) -> list[EquitySnapshot]:
        payload = self.client(account).portfolio_history(
            start,
            end,
            timeframe=self.context.timeframe,
            extended_hours=self.context.extended_hours,
        )
        return parse_portfolio_history(payload, self.context.market_tz, self.context.timeframe)

    def cash_flows(self, account: AccountConfig, start: date, end: date) -> list[ActivityRecord]:
        return self.client(account).cash_flow_activities(start, end)

    def current_equity(self, account: AccountConfig) -> float:
        return self.client(account).current_equity()
