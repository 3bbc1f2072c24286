"""Centralized settings utilities."""

from __future__ import annotations

import os

from alpaca_tracker.config import Settings, load_settings


def safe_load_settings() -> Settings | None:
    """
    Load settings with graceful fallback.

    If .env is unreadable (e.g., sandbox), construct Settings directly from environment variables.
    Returns None if settings cannot be constructed.
    """
    try:
        return load_settings()
    except Exception:
        try:
            return Settings.model_construct(
                ALPACA_API_KEY=os.getenv("ALPACA_API_KEY"),
                ALPACA_API_SECRET=os.getenv("ALPACA_API_SECRET"),
                ALPACA_PAPER=str(os.getenv("ALPACA_PAPER", "true")).lower() not in {"0", "false", "no"},
                TRACKER_ACCOUNTS_FILE=os.getenv("TRACKER_ACCOUNTS_FILE", "data/accounts.json"),
                TRACKER_MARKET_TZ=os.getenv("TRACKER_MARKET_TZ", "America/New_York"),
                TRACKER_TIMEFRAME=os.getenv("TRACKER_TIMEFRAME", "1D"),
                TRACKER_EXTENDED_HOURS=str(os.getenv("TRACKER_EXTENDED_HOURS", "false")).lower() in {"1", "true", "yes"},
                TRACKER_EQUITY_CHANGE_THRESHOLD=float(os.getenv("TRACKER_EQUITY_CHANGE_THRESHOLD", "0.01")),
                TRACKER_TWR_CHANGE_THRESHOLD=float(os.getenv("TRACKER_TWR_CHANGE_THRESHOLD", "0.00001")),
                TRACKER_FETCH_WORKERS=int(os.getenv("TRACKER_FETCH_WORKERS", "8")),
                TRACKER_HTTP_TIMEOUT=float(os.getenv("TRACKER_HTTP_TIMEOUT", "30")),
            )
        except Exception:
            return None
