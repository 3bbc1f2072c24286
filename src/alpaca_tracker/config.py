from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_NAME = "Default"
TOTAL_ACCOUNTS_NAME = "Total Accounts"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Single-account shortcut. When TRACKER_ACCOUNTS_FILE is missing these keys
    # become the implicit "Default" account.
    ALPACA_API_KEY: str | None = None
    ALPACA_API_SECRET: str | None = None
    ALPACA_PAPER: bool = True

    TRACKER_ACCOUNTS_FILE: str = "data/accounts.json"
    # Exchange-local calendar used to bucket equity bars and cash flows into days.
    TRACKER_MARKET_TZ: str = "America/New_York"
    TRACKER_TIMEFRAME: str = "1D"
    TRACKER_EXTENDED_HOURS: bool = False

    # Live point materiality: a same-day point is only replaced when equity moves
    # more than this many dollars or cumulative TWR moves more than this fraction.
    TRACKER_EQUITY_CHANGE_THRESHOLD: float = 0.01
    TRACKER_TWR_CHANGE_THRESHOLD: float = 0.00001

    TRACKER_FETCH_WORKERS: int = 8
    TRACKER_HTTP_TIMEOUT: float = 30.0

    # Backwards-compatible snake_case accessors used across the codebase.
    @property
    def alpaca_api_key(self) -> str | None:
        return self.ALPACA_API_KEY

    @property
    def alpaca_api_secret(self) -> str | None:
        return self.ALPACA_API_SECRET

    @property
    def alpaca_paper(self) -> bool:
        return self.ALPACA_PAPER

    @property
    def accounts_file(self) -> str:
        return self.TRACKER_ACCOUNTS_FILE

    @property
    def market_tz(self) -> str:
        return (self.TRACKER_MARKET_TZ or "America/New_York").strip()

    @property
    def timeframe(self) -> str:
        return (self.TRACKER_TIMEFRAME or "1D").strip()

    @property
    def extended_hours(self) -> bool:
        return self.TRACKER_EXTENDED_HOURS

    @property
    def fetch_workers(self) -> int:
        return max(1, int(self.TRACKER_FETCH_WORKERS))

    @property
    def http_timeout(self) -> float:
        return float(self.TRACKER_HTTP_TIMEOUT)

    def twr_context(self) -> "TWRContext":
        return TWRContext(
            market_tz=self.market_tz,
            timeframe=self.timeframe,
            extended_hours=self.extended_hours,
            equity_threshold=float(self.TRACKER_EQUITY_CHANGE_THRESHOLD),
            twr_threshold=float(self.TRACKER_TWR_CHANGE_THRESHOLD),
        )


class AccountConfig(BaseModel):
    name: str
    api_key: str
    api_secret: str
    paper: bool = True
    # Earliest day any series for this account may start on.
    first_trade_date: date | None = None


@dataclass(frozen=True)
class TWRContext:
    """
    Explicit engine context passed into every computation entry point.

    Holds nothing mutable; two computations never share state through it.
    """

    market_tz: str = "America/New_York"
    timeframe: str = "1D"
    extended_hours: bool = False
    equity_threshold: float = 0.01
    twr_threshold: float = 0.00001

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.market_tz)


def load_settings() -> Settings:
    return Settings()


def load_accounts(settings: Settings) -> list[AccountConfig]:
    """
    Load the configured accounts.

    Preference order:
    - TRACKER_ACCOUNTS_FILE (JSON list of account objects)
    - ALPACA_API_KEY / ALPACA_API_SECRET as a single "Default" account
    - no accounts
    """
    path = Path(settings.accounts_file)
    if path.exists():
        raw = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            raw = raw.get("accounts") or []
        accounts = [AccountConfig.model_validate(item) for item in raw]
        names = [a.name for a in accounts]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate account names in {path}: {', '.join(dupes)}")
        if TOTAL_ACCOUNTS_NAME in names:
            raise ValueError(f"'{TOTAL_ACCOUNTS_NAME}' is reserved for the aggregate view")
        logger.debug("Loaded %d account(s) from %s", len(accounts), path)
        return accounts

    if settings.alpaca_api_key and settings.alpaca_api_secret:
        return [
            AccountConfig(
                name=DEFAULT_ACCOUNT_NAME,
                api_key=settings.alpaca_api_key,
                api_secret=settings.alpaca_api_secret,
                paper=settings.alpaca_paper,
            )
        ]
    return []
