"""Market identity: classify activity text into asset/timeframe and derive keys.

Everything here is pure; the registry owns state.
"""
from __future__ import annotations
import re
from datetime import datetime
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from updown_paper.models import Activity, UP, DOWN

ET = ZoneInfo("America/New_York")

ASSET_PATTERNS = (
    ("BTC", re.compile(r"\b(bitcoin|btc)\b", re.I)),
    ("ETH", re.compile(r"\b(ethereum|eth)\b", re.I)),
    ("SOL", re.compile(r"\b(solana|sol)\b", re.I)),
    ("XRP", re.compile(r"\b(xrp|ripple)\b", re.I)),
)

_TF_15 = re.compile(r"\b15\s*m(in(ute)?s?)?\b|updown-15m", re.I)
_TF_5 = re.compile(r"\b5\s*m(in(ute)?s?)?\b|updown-5m", re.I)
_TF_1H = re.compile(r"\b1\s*h(our|r)?\b|\bhourly\b|updown-1h", re.I)
_LONE_HOUR = re.compile(r"\b(\d{1,2})\s*(am|pm)[\s-]*et\b", re.I)
_N_MIN = re.compile(r"\b(\d{1,2})\s*min", re.I)

_WINDOW = re.compile(
    r"(\d{1,2}):(\d{2})\s*(am|pm)?\s*[-–]\s*(\d{1,2}):(\d{2})\s*(am|pm)?",
    re.I,
)
_WINDOW_WITH_TZ = re.compile(_WINDOW.pattern + r"(\s*et\b)?", re.I)

_SLUG_UPDOWN = re.compile(r"updown-(5|15)m-(\d{9,})")
_SLUG_HOURLY = re.compile(r"([a-z]+)-(\d{1,2})-(\d{1,2})(am|pm)-et$")

MONTHS = {
    m: i + 1
    for i, m in enumerate(
        ["january", "february", "march", "april", "may", "june", "july",
         "august", "september", "october", "november", "december"]
    )
}

UP_WORDS = {"up", "higher", "above", "yes"}
DOWN_WORDS = {"down", "lower", "below", "no"}

WINDOW_MINUTES = {"5": 5, "15": 15, "1h": 60}


def _to_24h(hour: int, meridiem: Optional[str]) -> int:
    if not meridiem:
        return hour
    pm = meridiem.lower() == "pm"
    if pm and hour != 12:
        return hour + 12
    if not pm and hour == 12:
        return 0
    return hour


def extract_time_window(text: str) -> Optional[Tuple[int, int]]:
    """Return (start, end) minutes-of-day for an `H:MM-H:MM` window, if any.

    A start without AM/PM borrows the end's meridiem.
    """
    m = _WINDOW.search(text or "")
    if not m:
        return None
    sh, sm, smer, eh, em, emer = m.groups()
    start = _to_24h(int(sh), smer or emer) * 60 + int(sm)
    end = _to_24h(int(eh), emer) * 60 + int(em)
    return start, end


def _window_timeframe(text: str) -> Optional[str]:
    window = extract_time_window(text)
    if not window:
        return None
    span = (window[1] - window[0]) % (24 * 60)
    for tf, minutes in WINDOW_MINUTES.items():
        if span == minutes:
            return tf
    return None


def classify(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Map free text (title, slug) to (asset, timeframe)."""
    text = text or ""
    asset = next((name for name, pat in ASSET_PATTERNS if pat.search(text)), None)

    timeframe = None
    if _TF_15.search(text):
        timeframe = "15"
    elif _TF_5.search(text):
        timeframe = "5"
    elif _TF_1H.search(text):
        timeframe = "1h"
    elif _WINDOW.search(text):
        timeframe = _window_timeframe(text)
    elif _LONE_HOUR.search(text):
        timeframe = "1h"
    return asset, timeframe


def _hour_of(text: str) -> Optional[int]:
    m = _LONE_HOUR.search(text or "")
    if not m:
        return None
    return _to_24h(int(m.group(1)), m.group(2))


def _activity_text(activity: Activity) -> str:
    return " ".join(x for x in (activity.title, activity.slug, activity.event_slug) if x)


def rotating_type(text: str) -> Optional[str]:
    asset, timeframe = classify(text)
    if not asset or not timeframe:
        return None
    return f"{asset}-UpDown-{timeframe}"


def type_key(text: str) -> Optional[str]:
    category = rotating_type(text)
    if not category:
        return None
    if category.endswith("-1h"):
        hour = _hour_of(text)
        if hour is not None:
            return f"{category}-{hour}"
    return category


def market_key(activity: Activity) -> str:
    if activity.condition_id:
        return f"CID-{activity.condition_id[:10]}"

    text = _activity_text(activity)
    key = type_key(text)
    if key:
        return key

    asset, _ = classify(text)
    m = _N_MIN.search(text)
    if asset and m:
        return f"{asset}-{m.group(1)}min"

    slug = activity.slug or activity.event_slug
    if slug:
        return "-".join(slug.split("-")[:4])[:40]

    words = activity.title.split()
    if words:
        return "-".join(words[:2])
    return "Unknown"


def resolve_side(activity: Activity) -> str:
    if activity.outcome_index is not None:
        return UP if activity.outcome_index == 0 else DOWN
    for text in (activity.outcome, activity.asset):
        tokens = set(re.findall(r"[a-z]+", (text or "").lower()))
        if tokens & UP_WORDS:
            return UP
        if tokens & DOWN_WORDS:
            return DOWN
    return UP


def trade_id(activity: Activity) -> str:
    ref = activity.transaction_hash or str(activity.timestamp)
    return f"{ref}:{activity.asset}:{activity.side.upper()}"


def base_market_name(name: str) -> str:
    """Title with its time window removed, e.g. 'Bitcoin Up or Down - November 5'."""
    stripped = _WINDOW_WITH_TZ.sub("", name or "")
    return stripped.strip(" ,-–")


def window_start_minutes(name: str) -> Optional[int]:
    window = extract_time_window(name)
    return window[0] if window else None


def time_window_elapsed(name: str, now_ts: float) -> bool:
    window = extract_time_window(name)
    if not window:
        return False
    now_et = datetime.fromtimestamp(now_ts, ET)
    now_min = now_et.hour * 60 + now_et.minute
    start_min, end_min = window
    if end_min <= start_min:
        # window runs past midnight, e.g. 11:45PM-12:00AM
        end_min += 24 * 60
        if now_min < 6 * 60:
            now_min += 24 * 60
        return now_min > end_min
    # early-morning end seen in the evening belongs to a past day
    if end_min < 6 * 60 and now_min > 18 * 60:
        return True
    return now_min > end_min


def infer_end_ts(activity: Activity, now_ts: float) -> Optional[float]:
    if activity.end_date:
        return float(activity.end_date)

    slug = (activity.slug or activity.event_slug or "").lower()
    m = _SLUG_UPDOWN.search(slug)
    if m:
        return float(int(m.group(2)) + int(m.group(1)) * 60)

    m = _SLUG_HOURLY.search(slug)
    if m and m.group(1) in MONTHS:
        year = datetime.fromtimestamp(now_ts, ET).year
        hour = _to_24h(int(m.group(3)), m.group(4))
        try:
            start = datetime(year, MONTHS[m.group(1)], int(m.group(2)), hour, tzinfo=ET)
        except ValueError:
            return None
        return start.timestamp() + 3600.0
    return None
