"""
Activity Calendar
Plots time-bounded activities (projects, meetings, trainings, holidays) across four
interchangeable views: a multi-year timeline, a month grid, an ISO-week grid and a
single-day agenda. Reads activities and holidays from Excel, works out what is
visible for the current period, and outputs a rendered view as PNG plus a summary.

Features:
  - Period navigation across year, month, ISO-week (52/53) and day boundaries
  - Overlap filtering with clipping at the window edges
  - Regional holidays merged in as read-only pseudo-activities
  - Rows grouped by type, status or category, stacked into non-colliding lanes
  - Percentage geometry (timeline), day cells (month/week), hour cells (day)
  - Recurring activities (RRULE) expanded into the visible window
  - Deep-link seeding, period labels, tooltips and activity filters
"""

import argparse
import difflib
import io
import math
import os
import re
import sys
from calendar import monthrange
from datetime import date, datetime, timedelta
from urllib.parse import parse_qs

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
from matplotlib.patches import FancyBboxPatch
import numpy as np
import pandas as pd
from dateutil.rrule import rrulestr
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.worksheet.datavalidation import DataValidation


# ── Constants ────────────────────────────────────────────────────────────────

_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_INPUT = os.path.join(_DIR, "calendar_data.xlsx")
DEFAULT_OUTDIR = os.path.join(_DIR, "output")

# Inclusive navigation range. Overridable per navigator and via --min-year/--max-year.
YEAR_MIN = 2025
YEAR_MAX = 2030

VIEW_MODES = ["timeline", "month", "week", "day"]
VIEW_MODE_LABELS = {
    "timeline": "Timeline",
    "month": "Month",
    "week": "Week",
    "day": "Day",
}
GROUP_BY_KEYS = ["type", "status", "category"]

CELL_WIDTH_PX = 100      # month/week grid cell
MIN_BAR_WIDTH_PX = 30    # applied at render time only
HOUR_CELLS = 24

OTHER_ROW = "Other"

ACTIVITY_TYPES = {
    "project":  {"label": "Project",  "row": "Projects",  "color": "#4CAF50"},
    "meeting":  {"label": "Meeting",  "row": "Meetings",  "color": "#9C27B0"},
    "training": {"label": "Training", "row": "Trainings", "color": "#FF9800"},
    "holiday":  {"label": "Holiday",  "row": "Holidays",  "color": "#F44336"},
}
UNKNOWN_TYPE = {"label": "Unknown", "row": OTHER_ROW, "color": "#9E9E9E"}

ACTIVITY_STATUSES = {
    "confirmed":    {"label": "Confirmed",    "row": "Confirmed",    "color": "#FF4081"},
    "tentative":    {"label": "Tentative",    "row": "Tentative",    "color": "#03A9F4"},
    "hypothetical": {"label": "Hypothetical", "row": "Hypothetical", "color": "#FFEB3B"},
}
UNKNOWN_STATUS = {"label": "Unknown", "row": OTHER_ROW, "color": "#9E9E9E"}

TYPE_VALUES = list(ACTIVITY_TYPES)
STATUS_VALUES = list(ACTIVITY_STATUSES)

REGIONS = {
    "italy": "Italy",
    "europe": "Europe",
    "usa": "USA",
    "asia": "Asia",
}
HOLIDAY_KINDS = ["national", "religious", "observance"]

# Legacy data without an explicit category is bucketed from its title.
CATEGORY_KEYWORDS = [
    ("Projects", ("project",)),
    ("Meetings", ("meeting",)),
    ("Trainings", ("training", "conference")),
]

DEFAULT_ROW_ORDER = {
    "type": ["Projects", "Meetings", "Trainings", "Holidays", OTHER_ROW],
    "status": ["Confirmed", "Tentative", "Hypothetical", "Holidays", OTHER_ROW],
    "category": ["Projects", "Meetings", "Holidays", "Trainings", OTHER_ROW],
}

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
SHORT_MONTHS = [m[:3] for m in MONTH_NAMES]
DAY_ABBR = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

STYLE = {
    "font_family": "DejaVu Sans",
    "title_size": 16,
    "subtitle_size": 12,
    "label_size": 9.5,
    "tick_size": 8.5,
    "small_size": 7.5,
    "bg_color": "#FAFAFA",
    "panel_bg": "#FFFFFF",
    "text_primary": "#1A1A2E",
    "text_secondary": "#555555",
    "text_muted": "#999999",
    "grid_color": "#E0E0E0",
    "today_color": "#D32F2F",
    "row_shade_even": "#F5F5F5",
    "row_shade_odd": "#FFFFFF",
    "weekend_color": "#E0E0E0",
    "holiday_hatch": "//",
    "lane_height": 0.7,
    "dpi": 150,
    "fig_width": 18,
}


# ── Style Helpers ────────────────────────────────────────────────────────────

def apply_style():
    """Configure matplotlib rcParams for consistent styling."""
    plt.rcParams.update({
        "font.family": STYLE["font_family"],
        "font.size": STYLE["label_size"],
        "axes.facecolor": STYLE["panel_bg"],
        "figure.facecolor": STYLE["bg_color"],
        "axes.edgecolor": STYLE["grid_color"],
        "axes.linewidth": 0.8,
        "axes.grid": False,
        "xtick.color": STYLE["text_secondary"],
        "ytick.color": STYLE["text_secondary"],
        "text.color": STYLE["text_primary"],
    })


def style_axes(ax, title=""):
    """Apply consistent axis styling."""
    if title:
        ax.set_title(title, fontsize=STYLE["subtitle_size"], fontweight="bold",
                     color=STYLE["text_primary"], pad=12, loc="left")
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.spines["left"].set_linewidth(0.6)
    ax.spines["bottom"].set_linewidth(0.6)
    ax.grid(axis="x", alpha=0.15, linewidth=0.5, color=STYLE["grid_color"])
    ax.set_axisbelow(True)


def add_header_footer(fig, title, subtitle=""):
    """Add a title block and generation timestamp footer."""
    fig.suptitle(title, fontsize=STYLE["title_size"], fontweight="bold",
                 color=STYLE["text_primary"], y=0.98, x=0.04, ha="left")
    if subtitle:
        fig.text(0.04, 0.935, subtitle, fontsize=STYLE["small_size"] + 1,
                 color=STYLE["text_muted"], ha="left")
    fig.text(0.98, 0.008, f"Generated {datetime.now().strftime('%d %b %Y %H:%M')}",
             ha="right", fontsize=STYLE["small_size"], color=STYLE["text_muted"])
    fig.text(0.04, 0.008, "Activity Calendar",
             ha="left", fontsize=STYLE["small_size"], color=STYLE["text_muted"])


def draw_rounded_bar(ax, x, y, width, height, color, alpha=1.0,
                     edgecolor=None, linewidth=1.0, hatch="", zorder=3):
    """Draw a horizontal bar with rounded corners using FancyBboxPatch."""
    if width <= 0:
        return None
    rounding = min(0.12, height * 0.3, width * 0.05)
    fancy = FancyBboxPatch(
        (x, y - height / 2), width, height,
        boxstyle=f"round,pad=0,rounding_size={rounding}",
        facecolor=color, alpha=alpha,
        edgecolor=edgecolor or color, linewidth=linewidth,
        hatch=hatch, zorder=zorder,
    )
    ax.add_patch(fancy)
    return fancy


# ── Value Helpers ────────────────────────────────────────────────────────────

def to_datetime(d):
    """Coerce a date, datetime or Timestamp to a naive datetime, keeping the time.
    Aware values are converted to local time first, so mixed offsets share one clock."""
    if isinstance(d, pd.Timestamp):
        if pd.isna(d):
            raise TypeError("to_datetime got NaT")
        d = d.to_pydatetime()
    if isinstance(d, datetime):
        return d.astimezone().replace(tzinfo=None) if d.tzinfo else d
    if isinstance(d, date):
        return datetime(d.year, d.month, d.day)
    raise TypeError(f"expected date or datetime, got {type(d).__name__}: {d!r}")


def norm_date(d):
    """Normalise to midnight datetime for safe day arithmetic and set membership."""
    d = to_datetime(d)
    return datetime(d.year, d.month, d.day)


def clean_str(val):
    """Return stripped string or empty string for NaN/None."""
    if val is None or (isinstance(val, float) and math.isnan(val)):
        return ""
    if val is pd.NaT:
        return ""
    return str(val).strip()


def parse_date(val, context="", keep_time=False):
    """Parse a date from an Excel cell or string. Handles datetime, Timestamp and text.
    Midnight-normalised unless keep_time is set."""
    ctx = f" ({context})" if context else ""
    if val is None or (not isinstance(val, str) and pd.isna(val)):
        raise ValueError(f"Date is blank{ctx}")
    if isinstance(val, (datetime, date)):
        return to_datetime(val) if keep_time else norm_date(val)
    if isinstance(val, str):
        val = val.strip()
        if not val:
            raise ValueError(f"Date is blank{ctx}")
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M",
                    "%Y-%m-%dT%H:%M", "%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y"):
            try:
                parsed = datetime.strptime(val, fmt)
            except ValueError:
                continue
            return parsed if keep_time else norm_date(parsed)
        raise ValueError(f"Cannot parse date{ctx}: {val!r}. Expected YYYY-MM-DD or DD/MM/YYYY")
    raise ValueError(f"Cannot parse date{ctx}: {val!r}")


def _require_int(value, name):
    """Fail fast on caller defects: navigation fields must be integers."""
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}: {value!r}")
    return int(value)


def type_info(activity_type):
    """Style entry for an activity type, with an explicit fallback for unknown values."""
    return ACTIVITY_TYPES.get(clean_str(activity_type).lower(), UNKNOWN_TYPE)


def status_info(status):
    """Style entry for an activity status, with an explicit fallback for unknown values."""
    return ACTIVITY_STATUSES.get(clean_str(status).lower(), UNKNOWN_STATUS)


def type_label(activity_type):
    return type_info(activity_type)["label"]


def status_label(status):
    return status_info(status)["label"]


def type_color(activity_type):
    return type_info(activity_type)["color"]


def region_label(region):
    """User-facing label for a region key; unknown regions are shown as given."""
    key = clean_str(region).lower()
    return REGIONS.get(key, clean_str(region))


# ── Calendar Math ────────────────────────────────────────────────────────────
# Months are 0-based throughout (January == 0); days and ISO weeks are 1-based.

def clamp(value, lo, hi):
    """Clamp value into [lo, hi]."""
    return max(lo, min(hi, value))


def iso_week_of(d):
    """ISO 8601 week number; the week's Thursday decides which year owns it."""
    return to_datetime(d).isocalendar()[1]


def iso_weeks_in_year(year):
    """Number of ISO weeks in a year (52 or 53). 28 December is always in the last one."""
    return date(year, 12, 28).isocalendar()[1]


def iso_week_start(year, iso_week):
    """Monday 00:00 of the given ISO week."""
    return datetime.fromisocalendar(year, iso_week, 1)


def days_in_month(year, month):
    """Days in a 0-based month."""
    return monthrange(year, month + 1)[1]


def clamp_month(month):
    return clamp(month, 0, 11)


def clamp_day(year, month, day):
    return clamp(day, 1, days_in_month(year, clamp_month(month)))


def clamp_iso_week(year, iso_week):
    return clamp(iso_week, 1, iso_weeks_in_year(year))


def start_of_day(d):
    return norm_date(d)


def end_of_day(d):
    """Last representable instant of the day."""
    return norm_date(d) + timedelta(days=1, microseconds=-1)


def start_of_week(d):
    """Monday of the ISO week containing the given date."""
    d = norm_date(d)
    return d - timedelta(days=d.weekday())


def end_of_week(d):
    return end_of_day(start_of_week(d) + timedelta(days=6))


def start_of_month(d):
    d = to_datetime(d)
    return datetime(d.year, d.month, 1)


def end_of_month(d):
    d = to_datetime(d)
    return end_of_day(datetime(d.year, d.month, monthrange(d.year, d.month)[1]))


def days_between(start, end):
    """Whole calendar days from start to end (time of day ignored, may be negative)."""
    return (norm_date(end) - norm_date(start)).days


def is_weekend(d):
    return to_datetime(d).weekday() >= 5


def _step_month(year, month, step):
    """(year, month) one month forward or back, rolling the year at the ends."""
    month = clamp_month(month) + step
    if month > 11:
        return year + 1, 0
    if month < 0:
        return year - 1, 11
    return year, month


# ── Period Navigation ────────────────────────────────────────────────────────

def make_period(view_mode="timeline", year=YEAR_MIN, month=0, iso_week=1, day=1):
    """Build a period dict. Only the fields of the active view mode are authoritative."""
    if view_mode not in VIEW_MODES:
        raise ValueError(f"Unknown view mode {view_mode!r}. Valid: {', '.join(VIEW_MODES)}")
    return {
        "view_mode": view_mode,
        "year": year,
        "month": month,
        "iso_week": iso_week,
        "day": day,
    }


def step_period(period, step):
    """Return the period one step forward (step=1) or back (step=-1) in its view mode.

    Pure and unbounded: the year may leave the configured range, and it is up to
    PeriodNavigator to reject such a result. The active field is clamped before
    stepping so a retained out-of-range value never produces a skipped period.
    """
    if step not in (1, -1):
        raise ValueError(f"step must be 1 or -1, got {step!r}")
    p = dict(period)
    mode = p["view_mode"]

    if mode == "timeline":
        p["year"] += step

    elif mode == "month":
        p["year"], p["month"] = _step_month(p["year"], p["month"], step)

    elif mode == "week":
        week = clamp_iso_week(p["year"], p["iso_week"])
        if step > 0:
            if week < iso_weeks_in_year(p["year"]):
                week += 1
            else:
                p["year"] += 1
                week = 1
        else:
            if week > 1:
                week -= 1
            else:
                # 52 vs 53: the previous year's count is recomputed, never assumed
                p["year"] -= 1
                week = iso_weeks_in_year(p["year"])
        p["iso_week"] = week

    elif mode == "day":
        year, month = p["year"], clamp_month(p["month"])
        day = clamp_day(year, month, p["day"])
        if step > 0:
            if day < days_in_month(year, month):
                day += 1
            else:
                year, month = _step_month(year, month, 1)
                day = 1
        else:
            if day > 1:
                day -= 1
            else:
                year, month = _step_month(year, month, -1)
                day = days_in_month(year, month)
        p["year"], p["month"], p["day"] = year, month, day

    else:
        raise ValueError(f"Unknown view mode {mode!r}")

    return p


class PeriodNavigator:
    """Tracks where in time the calendar is looking, independent of the active view.

    next()/previous() follow the transition rules of the current view mode and
    are no-ops at the edges of [min_year, max_year]. go_to() jumps directly and
    clamps every field instead of raising. Switching view mode never resets the
    other fields, so returning to a mode restores its previous sub-position.

    Not thread-safe: callers serialize navigation calls.
    """

    def __init__(self, period=None, min_year=YEAR_MIN, max_year=YEAR_MAX):
        min_year = _require_int(min_year, "min_year")
        max_year = _require_int(max_year, "max_year")
        if min_year > max_year:
            raise ValueError(f"min_year {min_year} is after max_year {max_year}")
        self.min_year = min_year
        self.max_year = max_year
        if period is None:
            period = make_period(year=min_year)
        base = make_period(period.get("view_mode", "timeline"))
        base.update({k: period[k] for k in base if k in period})
        for key in ("year", "month", "iso_week", "day"):
            base[key] = _require_int(base[key], key)
        self._period = base
        self._clamp_active()

    def __repr__(self):
        return f"PeriodNavigator({self._period!r}, min_year={self.min_year}, max_year={self.max_year})"

    @property
    def view_mode(self):
        return self._period["view_mode"]

    def current_period(self):
        """Read-only snapshot of the navigation state."""
        return dict(self._period)

    def _clamp_active(self):
        p = self._period
        p["year"] = clamp(p["year"], self.min_year, self.max_year)
        mode = p["view_mode"]
        if mode in ("month", "day"):
            p["month"] = clamp_month(p["month"])
        if mode == "week":
            p["iso_week"] = clamp_iso_week(p["year"], p["iso_week"])
        if mode == "day":
            p["day"] = clamp_day(p["year"], p["month"], p["day"])

    def _in_range(self, period):
        return self.min_year <= period["year"] <= self.max_year

    def has_next(self):
        return self._in_range(step_period(self._period, 1))

    def has_previous(self):
        return self._in_range(step_period(self._period, -1))

    def next(self):
        """Step forward one period; a no-op past max_year."""
        candidate = step_period(self._period, 1)
        if self._in_range(candidate):
            self._period = candidate
        return self.current_period()

    def previous(self):
        """Step back one period; a no-op before min_year."""
        candidate = step_period(self._period, -1)
        if self._in_range(candidate):
            self._period = candidate
        return self.current_period()

    def set_view_mode(self, view_mode):
        if view_mode not in VIEW_MODES:
            raise ValueError(f"Unknown view mode {view_mode!r}. Valid: {', '.join(VIEW_MODES)}")
        self._period["view_mode"] = view_mode
        self._clamp_active()
        return self.current_period()

    def go_to(self, year, month=None, iso_week=None, day=None, view_mode=None):
        """Jump directly to a position. Out-of-range values clamp to the nearest valid one."""
        year = _require_int(year, "year")
        p = dict(self._period)
        if view_mode is not None:
            if view_mode not in VIEW_MODES:
                raise ValueError(f"Unknown view mode {view_mode!r}. Valid: {', '.join(VIEW_MODES)}")
            p["view_mode"] = view_mode
        p["year"] = clamp(year, self.min_year, self.max_year)
        if month is not None:
            p["month"] = clamp_month(_require_int(month, "month"))
        if iso_week is not None:
            p["iso_week"] = clamp_iso_week(p["year"], _require_int(iso_week, "iso_week"))
        if day is not None:
            p["day"] = clamp_day(p["year"], p["month"], _require_int(day, "day"))
        self._period = p
        self._clamp_active()
        return self.current_period()

    def go_to_date(self, d):
        """Jump to the period containing a calendar date, keeping the view mode."""
        seeded = period_from_date(d, self.view_mode, self.min_year, self.max_year)
        return self.go_to(seeded["year"], seeded["month"], seeded["iso_week"], seeded["day"])


def period_from_date(d, view_mode="timeline", min_year=YEAR_MIN, max_year=YEAR_MAX):
    """Seed a period from a calendar date (typically today), clamped into the year range.

    In week mode the year is the ISO year that owns the date's week, so the first
    days of January can land in week 52/53 of the previous year. In other modes
    the calendar year is kept and the ISO week is pinned to that year's first or
    last week when the date's week belongs to a neighbouring year.

    A date outside [min_year, max_year] lands on the nearest edge: the last
    month, week and day of max_year, or the first ones of min_year.
    """
    d = norm_date(d)
    iso_year, iso_week, _ = d.isocalendar()
    year = d.year
    if view_mode == "week":
        year = iso_year
    elif iso_year < year:
        iso_week = 1
    elif iso_year > year:
        iso_week = iso_weeks_in_year(year)
    month, day = d.month - 1, d.day
    if year > max_year:
        year, month, iso_week, day = max_year, 11, iso_weeks_in_year(max_year), 31
    elif year < min_year:
        year, month, iso_week, day = min_year, 0, 1, 1
    period = make_period(view_mode, year, month, iso_week, day)
    return PeriodNavigator(period, min_year, max_year).current_period()


def parse_deep_link(query, today=None, min_year=YEAR_MIN, max_year=YEAR_MAX):
    """Seed a period from a URL query string such as 'view=week&year=2026&week=53'.

    Recognised keys: view, date (YYYY-MM-DD), year, month (1-12), week, day.
    Unparsable values are reported and ignored; numeric values are clamped.
    """
    params = {k: v[-1] for k, v in parse_qs(query.lstrip("?")).items() if v}
    view_mode = params.get("view", "timeline").lower()
    if view_mode not in VIEW_MODES:
        print(f"  WARNING: Deep link view {view_mode!r} not recognised, using timeline.")
        view_mode = "timeline"

    seed = today or datetime.now()
    if "date" in params:
        try:
            seed = parse_date(params["date"], context="deep link 'date'")
        except ValueError as e:
            print(f"  WARNING: {e}")
    nav = PeriodNavigator(period_from_date(seed, view_mode, min_year, max_year),
                          min_year, max_year)

    fields = {}
    for key, field in (("year", "year"), ("month", "month"), ("week", "iso_week"), ("day", "day")):
        if key not in params:
            continue
        try:
            fields[field] = int(params[key])
        except ValueError:
            print(f"  WARNING: Deep link {key}={params[key]!r} is not a number, ignoring.")
    if "month" in fields:
        fields["month"] -= 1  # links carry human months
    if fields:
        current = nav.current_period()
        nav.go_to(fields.pop("year", current["year"]), **fields)
    return nav.current_period()


# ── Period Windows ───────────────────────────────────────────────────────────

def period_window(period):
    """Active window [start, end] for a period: year, month, ISO week or day.
    The end is the last instant of the final day, so the bounds are inclusive."""
    mode = period["view_mode"]
    year = period["year"]
    if mode == "timeline":
        return datetime(year, 1, 1), end_of_day(datetime(year, 12, 31))
    month = clamp_month(period.get("month", 0))
    if mode == "month":
        start = datetime(year, month + 1, 1)
        return start, end_of_month(start)
    if mode == "week":
        start = iso_week_start(year, clamp_iso_week(year, period.get("iso_week", 1)))
        return start, end_of_day(start + timedelta(days=6))
    if mode == "day":
        start = datetime(year, month + 1, clamp_day(year, month, period.get("day", 1)))
        return start, end_of_day(start)
    raise ValueError(f"Unknown view mode {mode!r}")


def window_cell_count(period):
    """Cells across the window: days for timeline/month/week, hours for day."""
    if period["view_mode"] == "day":
        return HOUR_CELLS
    start, end = period_window(period)
    return days_between(start, end) + 1


def window_cells(period, holidays=None, enabled_regions=None):
    """Header cells for the active window.

    timeline: one per month; month/week: one per day with weekend and holiday
    flags; day: one per hour.
    """
    start, end = period_window(period)
    mode = period["view_mode"]

    if mode == "timeline":
        cells = []
        for m in range(12):
            first = datetime(period["year"], m + 1, 1)
            cells.append({
                "date": first,
                "label": f"{SHORT_MONTHS[m]} {period['year']}",
                "days": days_in_month(period["year"], m),
            })
        return cells

    if mode == "day":
        return [{"hour": h, "date": start + timedelta(hours=h),
                 "label": _format_time(start + timedelta(hours=h))}
                for h in range(HOUR_CELLS)]

    by_day = {}
    in_window = holidays_for_window(holidays or [], start, end)
    for holiday in _enabled_holidays(in_window, enabled_regions):
        by_day.setdefault(norm_date(holiday["date"]), []).append(clean_str(holiday.get("name")))

    cells = []
    d = start
    while d <= end:
        cells.append({
            "date": d,
            "label": str(d.day),
            "weekday": DAY_ABBR[d.weekday()],
            "is_weekend": is_weekend(d),
            "holidays": by_day.get(d, []),
        })
        d += timedelta(days=1)
    return cells


# ── Labels & Tooltips ────────────────────────────────────────────────────────

def _format_day(d):
    return f"{SHORT_MONTHS[d.month - 1]} {d.day}, {d.year}"


def _format_time(d):
    hour = d.hour % 12 or 12
    return f"{hour}:{d.minute:02d} {'AM' if d.hour < 12 else 'PM'}"


def format_date_range(start, end):
    """Compact human date range: 'June 10 - 20, 2025', 'June 30 - July 2, 2025'."""
    start, end = norm_date(start), norm_date(end)
    if start == end:
        return f"{MONTH_NAMES[start.month - 1]} {start.day}, {start.year}"
    if start.year == end.year:
        if start.month == end.month:
            return f"{MONTH_NAMES[start.month - 1]} {start.day} - {end.day}, {end.year}"
        return (f"{MONTH_NAMES[start.month - 1]} {start.day} - "
                f"{MONTH_NAMES[end.month - 1]} {end.day}, {end.year}")
    return (f"{MONTH_NAMES[start.month - 1]} {start.day}, {start.year} - "
            f"{MONTH_NAMES[end.month - 1]} {end.day}, {end.year}")


def period_label(period):
    """Heading for the navigation controls."""
    start, end = period_window(period)
    mode = period["view_mode"]
    if mode == "timeline":
        return str(period["year"])
    if mode == "month":
        return f"{MONTH_NAMES[start.month - 1]} {start.year}"
    if mode == "week":
        week = clamp_iso_week(period["year"], period["iso_week"])
        return (f"Week {week}, {period['year']} "
                f"({SHORT_MONTHS[start.month - 1]} {start.day} - "
                f"{SHORT_MONTHS[end.month - 1]} {end.day})")
    return f"{start.strftime('%A')}, {MONTH_NAMES[start.month - 1]} {start.day}, {start.year}"


def tooltip_text(activity):
    """Deterministic, human-readable summary used by every view."""
    title = clean_str(activity.get("title")) or "(untitled)"
    label = type_label(activity.get("type"))
    status = clean_str(activity.get("status")).lower()
    if status in ACTIVITY_STATUSES:
        label = f"{label}, {status_label(status)}"

    span = activity_span(activity)
    if span is None:
        dates = "no dates"
    else:
        start, end = span
        if norm_date(start) == norm_date(end):
            dates = _format_day(start)
            if start.time() != end.time() or start.time() != datetime.min.time():
                dates += f", {_format_time(start)} - {_format_time(end)}"
        else:
            dates = f"{_format_day(start)} to {_format_day(end)}"

    text = f"{title} ({label}) - {dates}"
    for key, caption in (("description", "Description"), ("location", "Location"),
                         ("category", "Category")):
        value = clean_str(activity.get(key))
        if value:
            text += f"\n{caption}: {value}"
    if activity.get("is_system_holiday") and clean_str(activity.get("region")):
        text += f"\nRegion: {region_label(activity['region'])}"
    return text


# ── Activity Window Filter ───────────────────────────────────────────────────

def activity_span(activity):
    """(start, end) datetimes of an activity, or None if it has no usable date.
    A missing end falls back to the start and vice versa."""
    start = activity.get("start_date")
    end = activity.get("end_date")
    try:
        start = to_datetime(start) if start is not None else None
        end = to_datetime(end) if end is not None else None
    except TypeError:
        return None
    if start is None and end is None:
        return None
    return (start or end), (end or start)


def overlaps(activity, window_start, window_end):
    """True if the activity touches [window_start, window_end] at all."""
    span = activity_span(activity)
    if span is None:
        return False
    start, end = span
    return start <= window_end and end >= window_start


def filter_activities(activities, window_start, window_end):
    """Keep activities overlapping the window. Containment is not required:
    activities spanning the whole window or touching one edge are both kept."""
    visible = []
    for activity in activities:
        if activity_span(activity) is None:
            print(f"  WARNING: Activity {activity.get('id', '?')!r} has no usable dates, skipped.")
            continue
        if overlaps(activity, window_start, window_end):
            visible.append(activity)
    return visible


def apply_filters(activities, types=None, statuses=None, search="", category=None,
                  location=None, date_from=None, date_to=None, include_holidays=True):
    """Filter-panel narrowing. Every criterion left as None/empty matches everything."""
    types = {t.lower() for t in types} if types else None
    statuses = {s.lower() for s in statuses} if statuses else None
    needle = clean_str(search).lower()
    category = clean_str(category).lower()
    location = clean_str(location).lower()

    result = []
    for a in activities:
        is_holiday = bool(a.get("is_system_holiday"))
        if is_holiday and not include_holidays:
            continue
        if not is_holiday:
            if types is not None and clean_str(a.get("type")).lower() not in types:
                continue
            if statuses is not None and clean_str(a.get("status")).lower() not in statuses:
                continue
        if needle:
            haystack = " ".join(clean_str(a.get(k)) for k in
                                ("title", "description", "location", "category")).lower()
            if needle not in haystack:
                continue
        if category and clean_str(a.get("category")).lower() != category:
            continue
        if location and location not in clean_str(a.get("location")).lower():
            continue
        if date_from or date_to:
            lo = norm_date(date_from) if date_from else datetime.min
            hi = end_of_day(date_to) if date_to else datetime.max
            if not overlaps(a, lo, hi):
                continue
        result.append(a)
    return result


# ── Recurrence ───────────────────────────────────────────────────────────────

def _instance_id(parent_id, index):
    """'<parent>#<index>': unique for any parent id and any number of occurrences."""
    return f"{parent_id}#{index}"


def expand_recurring_activities(activities, window_start, window_end):
    """Replace activities carrying a recurrence_rule with their instances in the window.

    Instances keep the parent's duration, get a synthetic id and a
    parent_activity_id, and carry no rule. An unparsable rule keeps the original.
    """
    result = []
    for activity in activities:
        rule = clean_str(activity.get("recurrence_rule"))
        span = activity_span(activity)
        if not rule or span is None:
            result.append(activity)
            continue
        start, end = span
        duration = max(end - start, timedelta(0))
        try:
            recurrence = rrulestr(rule, dtstart=start)
            occurrences = recurrence.between(window_start - duration, window_end, inc=True)
        except (ValueError, TypeError, KeyError) as e:
            print(f"  WARNING: Could not expand recurrence for activity "
                  f"{activity.get('id', '?')!r}: {e}")
            result.append(activity)
            continue
        for i, occurrence in enumerate(occurrences):
            instance = dict(activity)
            instance.update({
                "id": _instance_id(activity.get("id"), i),
                "start_date": occurrence,
                "end_date": occurrence + duration,
                "parent_activity_id": activity.get("id"),
                "recurrence_rule": None,
            })
            result.append(instance)
    return result


# ── Holiday Merger ───────────────────────────────────────────────────────────

def holiday_id(holiday):
    """Stable synthesized id: region, slugged name and date."""
    slug = re.sub(r"[^a-z0-9]+", "-", clean_str(holiday.get("name")).lower()).strip("-")
    region = clean_str(holiday.get("region")).lower() or "any"
    return f"holiday-{region}-{slug}-{norm_date(holiday['date']).strftime('%Y%m%d')}"


def _enabled_holidays(holidays, enabled_regions=None):
    if enabled_regions is None:
        return list(holidays)
    enabled = {clean_str(r).lower() for r in enabled_regions}
    return [h for h in holidays if clean_str(h.get("region")).lower() in enabled]


def holidays_to_activities(holidays):
    """Reshape holiday records into read-only pseudo-activities."""
    pseudo = []
    for holiday in holidays:
        try:
            day = norm_date(holiday["date"])
        except (KeyError, TypeError) as e:
            print(f"  WARNING: Skipping holiday {clean_str(holiday.get('name'))!r}: {e}")
            continue
        region = clean_str(holiday.get("region")).lower()
        kind = clean_str(holiday.get("kind")).lower() or "national"
        pseudo.append({
            "id": holiday_id(holiday),
            "title": clean_str(holiday.get("name")) or "Holiday",
            "description": f"{kind.capitalize()} holiday in {region_label(region) or 'all regions'}",
            "start_date": day,
            "end_date": day,
            "type": "holiday",
            "status": None,
            "category": None,
            "location": None,
            "region": region,
            "is_system_holiday": True,
        })
    return pseudo


def merge_holidays(activities, holidays, enabled_regions=None):
    """Concatenate holiday pseudo-activities for the enabled regions onto the activities.
    No deduplication: one holiday date in two enabled regions yields two entries."""
    return list(activities) + holidays_to_activities(_enabled_holidays(holidays, enabled_regions))


def holidays_for_year(holidays, year):
    """Holiday records for a year. A region with no records for the year gets its
    earliest year's fixed dates projected onto it (29 Feb dropped in common years)."""
    by_region = {}
    for h in holidays:
        try:
            day = norm_date(h["date"])
        except (KeyError, TypeError) as e:
            print(f"  WARNING: Skipping holiday {clean_str(h.get('name'))!r}: {e}")
            continue
        by_region.setdefault(clean_str(h.get("region")).lower(), []).append((day, h))

    result = []
    for region, dated in by_region.items():
        in_year = [h for d, h in dated if d.year == year]
        if in_year:
            result.extend(in_year)
            continue
        base_year = min(d.year for d, _ in dated)
        for d, h in dated:
            if d.year != base_year:
                continue
            if d.month == 2 and d.day == 29 and monthrange(year, 2)[1] == 28:
                continue
            projected = dict(h)
            projected["date"] = datetime(year, d.month, d.day)
            result.append(projected)
    return result


def holidays_for_window(holidays, window_start, window_end):
    """Holiday records for every calendar year a window touches (a week can span two)."""
    result = []
    for year in range(window_start.year, window_end.year + 1):
        result.extend(holidays_for_year(holidays, year))
    return result


# ── Activity Grouper ─────────────────────────────────────────────────────────

def infer_category(activity):
    """Row for data without an explicit category, from type and title keywords."""
    if clean_str(activity.get("type")).lower() == "holiday":
        return "Holidays"
    title = clean_str(activity.get("title")).lower()
    for row, keywords in CATEGORY_KEYWORDS:
        if any(k in title for k in keywords):
            return row
    return OTHER_ROW


def row_key(activity, group_by):
    """Row label for one activity under a grouping key."""
    if group_by == "type":
        return type_info(activity.get("type"))["row"]
    if group_by == "status":
        status = clean_str(activity.get("status")).lower()
        if status in ACTIVITY_STATUSES:
            return ACTIVITY_STATUSES[status]["row"]
        if clean_str(activity.get("type")).lower() == "holiday":
            return "Holidays"
        return OTHER_ROW
    if group_by == "category":
        return clean_str(activity.get("category")) or infer_category(activity)
    raise ValueError(f"Unknown grouping key {group_by!r}. Valid: {', '.join(GROUP_BY_KEYS)}")


def group_activities(activities, group_by="type", row_order=None):
    """Partition activities into ordered (row_label, activities) pairs.

    Rows follow row_order first (the default candidate order when None), then
    first occurrence. Rows left empty are dropped. With the default order the
    Other row always comes last.
    """
    if group_by not in GROUP_BY_KEYS:
        raise ValueError(f"Unknown grouping key {group_by!r}. Valid: {', '.join(GROUP_BY_KEYS)}")
    order = DEFAULT_ROW_ORDER[group_by] if row_order is None else list(row_order)
    buckets = {label: [] for label in order}
    for activity in activities:
        buckets.setdefault(row_key(activity, group_by), []).append(activity)
    if row_order is None and OTHER_ROW in buckets:
        buckets[OTHER_ROW] = buckets.pop(OTHER_ROW)
    return [(label, items) for label, items in buckets.items() if items]


# ── Timeline Layout Engine ───────────────────────────────────────────────────

def timeline_geometry(activity, period_start, period_end):
    """Percentage (offset, extent) of an activity inside a timeline period.

    The activity is clipped at the period edges. Both values stay within
    [0, 100] and offset + extent never exceeds 100; a malformed activity
    (end before start) gets a zero extent.
    """
    span = activity_span(activity)
    if span is None:
        return 0.0, 0.0
    start, end = span
    effective_start = max(start, period_start)
    effective_end = min(end, period_end)
    total_days = days_between(period_start, period_end) + 1

    offset = days_between(period_start, effective_start) / total_days * 100
    extent = (days_between(effective_start, effective_end) + 1) / total_days * 100
    if end < start:
        extent = 0.0
    offset = clamp(offset, 0.0, 100.0)
    extent = clamp(extent, 0.0, 100.0 - offset)
    return offset, extent


def cell_geometry(activity, window_start, cell_count):
    """(start_day_index, span_days) of an activity on a day grid of cell_count cells."""
    span = activity_span(activity)
    if span is None:
        return 0, 0
    start, end = span
    last = cell_count - 1
    start_index = clamp(days_between(window_start, start), 0, last)
    end_index = clamp(days_between(window_start, end), 0, last)
    if end < start:
        return start_index, 0
    return start_index, max(0, end_index - start_index + 1)


def cell_pixels(start_index, span_days, cell_width=CELL_WIDTH_PX):
    """(left, width) in pixels for a grid segment."""
    return start_index * cell_width, span_days * cell_width


def rendered_width(extent, container_width, min_width=MIN_BAR_WIDTH_PX):
    """Width in the container's units for a percentage extent, never below min_width.
    This is the only place the minimum visible width is applied."""
    return max(extent / 100 * container_width, min_width)


def activity_hours(activity, day_start):
    """Hour cells (0-23) of a day that an activity is shown in.

    An hour is included when the activity intersects it, or when the activity
    starts on that day at that hour (zero-duration and malformed activities).
    """
    span = activity_span(activity)
    if span is None:
        return []
    start, end = span
    day_start = norm_date(day_start)
    next_day = day_start + timedelta(days=1)
    hours = []
    for h in range(HOUR_CELLS):
        cell_start = day_start + timedelta(hours=h)
        cell_end = cell_start + timedelta(hours=1)
        intersects = start < cell_end and end >= cell_start
        starts_here = day_start <= start < next_day and start.hour == h
        if intersects or starts_here:
            hours.append(h)
    return hours


def bucket_by_hour(activities, day):
    """{hour: [activities]} for every hour of the day, empty hours included."""
    buckets = {h: [] for h in range(HOUR_CELLS)}
    for activity in activities:
        for h in activity_hours(activity, day):
            buckets[h].append(activity)
    return buckets


def layout_segment(activity, row, period, window=None):
    """Render geometry for one activity in the period's window.

    Returns a segment dict: activity, row, offset, extent, unit and lane.
    Units are "percent" (timeline), "cells" (month/week) or "hours" (day).
    """
    window_start, window_end = window or period_window(period)
    mode = period["view_mode"]
    segment = {"activity": activity, "row": row, "lane": 0}
    if mode == "timeline":
        offset, extent = timeline_geometry(activity, window_start, window_end)
        segment.update(offset=offset, extent=extent, unit="percent")
    elif mode in ("month", "week"):
        offset, extent = cell_geometry(activity, window_start, window_cell_count(period))
        segment.update(offset=offset, extent=extent, unit="cells")
    elif mode == "day":
        hours = activity_hours(activity, window_start)
        # Hour cells are contiguous for a well-formed activity
        segment.update(offset=hours[0] if hours else 0, extent=len(hours),
                       unit="hours", hours=hours)
    else:
        raise ValueError(f"Unknown view mode {mode!r}")
    return segment


def assign_lanes(segments):
    """Stack segments of one row into non-colliding lanes (greedy first fit).
    Zero-extent markers still occupy their position. Returns the lane count."""
    lane_ends = []
    for segment in segments:
        start = segment["offset"]
        stop = start + segment["extent"] if segment["extent"] > 0 else start + 1e-9
        for lane, lane_end in enumerate(lane_ends):
            if lane_end <= start:
                segment["lane"] = lane
                lane_ends[lane] = stop
                break
        else:
            segment["lane"] = len(lane_ends)
            lane_ends.append(stop)
    return len(lane_ends)


def _segment_sort_key(segment):
    span = activity_span(segment["activity"]) or (datetime.min, datetime.min)
    return (segment["offset"], span[0], clean_str(segment["activity"].get("title")))


def visible_segments(activities, holidays, period, group_by="type",
                     enabled_regions=None, row_order=None):
    """The composed pipeline every view renders from.

    Recurring activities are expanded, holidays projected onto the window's
    years and merged in for the enabled regions, the result filtered to the
    period's window, grouped into rows, laid out and stacked into lanes.
    Returns [(row_label, [segment, ...]), ...].
    """
    window = period_window(period)
    expanded = expand_recurring_activities(activities, *window)
    merged = merge_holidays(expanded, holidays_for_window(holidays or [], *window),
                            enabled_regions)
    visible = filter_activities(merged, *window)

    rows = []
    for label, row_activities in group_activities(visible, group_by, row_order):
        segments = [layout_segment(a, label, period, window) for a in row_activities]
        segments.sort(key=_segment_sort_key)
        assign_lanes(segments)
        rows.append((label, segments))
    return rows


# ── Snapshots ────────────────────────────────────────────────────────────────

class CalendarSession:
    """Latest activity/holiday snapshot plus the shared navigator.

    Fetches resolve into load_snapshot(); a snapshot older than the one held is
    dropped whole, never merged. Every segments() call is a full recomputation.
    """

    def __init__(self, navigator=None, group_by="type", enabled_regions=None):
        if group_by not in GROUP_BY_KEYS:
            raise ValueError(f"Unknown grouping key {group_by!r}. Valid: {', '.join(GROUP_BY_KEYS)}")
        self.navigator = navigator or PeriodNavigator()
        self.group_by = group_by
        self.enabled_regions = enabled_regions
        self.activities = []
        self.holidays = []
        self.version = -1

    def load_snapshot(self, activities, holidays=None, version=None):
        """Replace the snapshot if it is newer. Returns True when accepted."""
        if version is None:
            version = self.version + 1
        if version <= self.version:
            print(f"  NOTE: Ignoring stale snapshot v{version} (holding v{self.version}).")
            return False
        self.activities = list(activities)
        self.holidays = list(holidays or [])
        self.version = version
        return True

    def segments(self, group_by=None, row_order=None):
        return visible_segments(self.activities, self.holidays,
                                self.navigator.current_period(),
                                group_by or self.group_by,
                                self.enabled_regions, row_order)


# ── Data Loading ─────────────────────────────────────────────────────────────

def normalize_columns(df, required, optional=()):
    """Rename columns in place to their canonical spelling, matching case-insensitively.
    Returns the set of required columns still missing."""
    df.columns = [str(c).strip() for c in df.columns]
    lookup = {c.lower(): c for c in df.columns}
    renames = {}
    for canonical in list(required) + list(optional):
        actual = lookup.get(canonical.lower())
        if actual is not None and actual != canonical:
            renames[actual] = canonical
    df.rename(columns=renames, inplace=True)
    return set(required) - set(df.columns)


def normalize_activity(activity):
    """Lower-case type/status, and move a status value found in 'type' (legacy data)
    into 'status' when that is empty. The type itself is left as it was."""
    activity["type"] = clean_str(activity.get("type")).lower()
    status = clean_str(activity.get("status")).lower()
    if not status and activity["type"] in ACTIVITY_STATUSES:
        status = activity["type"]
    activity["status"] = status or None
    return activity


def load_activities(filepath):
    """Load activities from the 'Activities' sheet. Bad rows are reported and skipped."""
    try:
        df = pd.read_excel(filepath, sheet_name="Activities")
    except Exception as e:
        print(f"  WARNING: Could not read Activities sheet: {e}")
        return []
    if df.empty:
        return []
    required = {"Title", "Start Date", "End Date", "Type"}
    optional = ("ID", "Status", "Category", "Location", "Region", "Description", "Recurrence")
    missing = normalize_columns(df, required, optional)
    if missing:
        print(f"  ERROR: Activities sheet is missing column(s): {', '.join(sorted(missing))}. "
              f"Found: {', '.join(df.columns)}")
        return []

    activities = []
    for idx, row in df.iterrows():
        row_num = idx + 2
        title = clean_str(row["Title"])
        if not title:
            continue  # skip blank rows
        try:
            start = parse_date(row["Start Date"], context=f"Activities row {row_num}, 'Start Date'",
                               keep_time=True)
            end = parse_date(row["End Date"], context=f"Activities row {row_num}, 'End Date'",
                             keep_time=True)
        except ValueError as e:
            print(f"  WARNING: Could not parse row {row_num}: {e}")
            continue

        raw_id = row.get("ID")
        activity_id = f"row-{row_num}"  # never equal to an explicit numeric ID
        if raw_id is not None and not pd.isna(raw_id):
            if isinstance(raw_id, (int, float, np.number)) and float(raw_id).is_integer():
                activity_id = int(raw_id)
            else:
                activity_id = clean_str(raw_id)

        activities.append(normalize_activity({
            "id": activity_id,
            "title": title,
            "start_date": start,
            "end_date": end,
            "type": row["Type"],
            "status": row.get("Status"),
            "category": clean_str(row.get("Category")) or None,
            "location": clean_str(row.get("Location")) or None,
            "region": clean_str(row.get("Region")).lower() or None,
            "description": clean_str(row.get("Description")) or None,
            "recurrence_rule": clean_str(row.get("Recurrence")) or None,
            "is_system_holiday": False,
            "_row": row_num,
        }))
    return activities


def load_holidays(filepath):
    """Load holidays from the 'Holidays' sheet. Returns [] if the sheet is missing."""
    try:
        df = pd.read_excel(filepath, sheet_name="Holidays")
    except Exception:
        return []
    if df.empty:
        return []
    missing = normalize_columns(df, {"Name", "Date", "Region"}, ("Kind",))
    if missing:
        print(f"  WARNING: Holidays sheet is missing column(s): {', '.join(sorted(missing))}. Skipping.")
        return []

    holidays = []
    for idx, row in df.iterrows():
        row_num = idx + 2
        name = clean_str(row["Name"])
        if not name:
            continue
        try:
            day = parse_date(row["Date"], context=f"Holidays row {row_num}, 'Date'")
        except ValueError as e:
            print(f"  WARNING: Could not parse holiday row {row_num}: {e}")
            continue
        region = clean_str(row["Region"]).lower()
        if region not in REGIONS:
            print(f"  WARNING: Holidays row {row_num}: region '{region}' not recognised.")
        holidays.append({
            "name": name,
            "date": day,
            "region": region,
            "kind": clean_str(row.get("Kind")).lower() or "national",
        })
    return holidays


def load_data(filepath):
    """Load the activity and holiday snapshot from the workbook."""
    activities = load_activities(filepath)
    holidays = load_holidays(filepath)
    if holidays:
        regions = sorted({h["region"] for h in holidays})
        print(f"  Holidays: {len(holidays)} across {', '.join(region_label(r) for r in regions)}")
    return activities, holidays


# ── Data Validation ──────────────────────────────────────────────────────────

def validate_activities(activities):
    """Check loaded activities. Returns (errors, warnings) lists.

    Nothing here stops a record from being laid out; warnings describe data the
    calendar degrades around. Duplicate ids are errors because segments refer
    back to their activity by id.
    """
    errors = []
    warnings = []
    seen_ids = {}

    for a in activities:
        row = a.get("_row", "?")
        activity_id = a.get("id")
        if activity_id in seen_ids:
            errors.append(f"Row {row}: id {activity_id!r} duplicates row {seen_ids[activity_id]}.")
        else:
            seen_ids[activity_id] = row

        if not clean_str(a.get("title")):
            warnings.append(f"Row {row}: title is empty.")

        a_type = clean_str(a.get("type")).lower()
        if a_type in ACTIVITY_STATUSES:
            warnings.append(f"Row {row}: type '{a_type}' is a status value (legacy data); "
                            f"shown under '{OTHER_ROW}' when grouped by type.")
        elif a_type not in ACTIVITY_TYPES:
            close = difflib.get_close_matches(a_type, TYPE_VALUES, n=1, cutoff=0.6)
            hint = f" Did you mean: '{close[0]}'?" if close else ""
            warnings.append(f"Row {row}: type '{a_type}' not recognised.{hint} "
                            f"Valid: {', '.join(TYPE_VALUES)}")

        status = clean_str(a.get("status")).lower()
        if status and status not in ACTIVITY_STATUSES:
            warnings.append(f"Row {row}: status '{status}' not recognised. "
                            f"Valid: {', '.join(STATUS_VALUES)}")

        span = activity_span(a)
        if span is None:
            warnings.append(f"Row {row}: no usable start or end date.")
        elif span[1] < span[0]:
            warnings.append(f"Row {row}: end date is before start date; "
                            f"it will show as a zero-width marker.")

    return errors, warnings


# ── Template Generation ─────────────────────────────────────────────────────

def generate_template(output_path):
    """Create an Excel workbook with Activities and Holidays sheets, example rows and dropdowns."""
    wb = Workbook()

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="2E3B4E", end_color="2E3B4E", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def style_header(ws):
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = header_alignment
            cell.border = thin_border

    def add_list_validation(ws, values, column, allow_blank):
        dv = DataValidation(type="list", formula1=f'"{",".join(values)}"', allow_blank=allow_blank)
        dv.error = f"Please select one of: {', '.join(values)}"
        dv.errorTitle = "Invalid value"
        ws.add_data_validation(dv)
        dv.add(f"{column}2:{column}500")

    # ── Sheet 1: Activities ──
    ws_act = wb.active
    ws_act.title = "Activities"
    ws_act.append(["ID", "Title", "Start Date", "End Date", "Type", "Status",
                   "Category", "Location", "Description", "Recurrence"])
    examples = [
        [1, "Platform Project", "2025-06-10", "2025-06-20", "project", "confirmed",
         "", "Milan", "Migration of the booking platform", ""],
        [2, "Quarterly Review Meeting", "2025-06-12 09:00", "2025-06-12 11:30", "meeting",
         "tentative", "", "Room 4", "", ""],
        [3, "Safety Training", "2025-09-01", "2025-09-03", "training", "confirmed",
         "Compliance", "", "", ""],
        [4, "Team Standup", "2025-06-02 09:30", "2025-06-02 09:45", "meeting", "confirmed",
         "", "", "", "FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=60"],
        [5, "Year-End Planning", "2025-12-15", "2026-01-16", "project", "hypothetical",
         "", "", "Spans the year boundary", ""],
    ]
    for example in examples:
        ws_act.append(example)
    for column, width in zip("ABCDEFGHIJ", (6, 32, 18, 18, 12, 14, 16, 16, 36, 40)):
        ws_act.column_dimensions[column].width = width
    style_header(ws_act)
    ws_act.freeze_panes = "A2"
    add_list_validation(ws_act, TYPE_VALUES, "E", allow_blank=False)
    add_list_validation(ws_act, STATUS_VALUES, "F", allow_blank=True)

    # ── Sheet 2: Holidays ──
    ws_hol = wb.create_sheet("Holidays")
    ws_hol.append(["Name", "Date", "Region", "Kind"])
    for holiday in [
        ["New Year's Day", "2025-01-01", "italy", "national"],
        ["New Year's Day", "2025-01-01", "europe", "national"],
        ["Epiphany", "2025-01-06", "italy", "religious"],
        ["Republic Day", "2025-06-02", "italy", "national"],
        ["Europe Day", "2025-05-09", "europe", "observance"],
        ["Independence Day", "2025-07-04", "usa", "national"],
        ["Diwali", "2025-11-12", "asia", "religious"],
        ["Christmas Day", "2025-12-25", "italy", "religious"],
    ]:
        ws_hol.append(holiday)
    for column, width in zip("ABCD", (30, 14, 12, 14)):
        ws_hol.column_dimensions[column].width = width
    style_header(ws_hol)
    ws_hol.freeze_panes = "A2"
    add_list_validation(ws_hol, list(REGIONS), "C", allow_blank=False)
    add_list_validation(ws_hol, HOLIDAY_KINDS, "D", allow_blank=True)

    if os.path.dirname(output_path):
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
    wb.save(output_path)
    print(f"Template created: {output_path}")
    print("  Sheets: Activities, Holidays")
    print(f"  Types: {', '.join(TYPE_VALUES)}; statuses: {', '.join(STATUS_VALUES)}")
    print(f"  Regions: {', '.join(REGIONS)}")


# ── Rendering ────────────────────────────────────────────────────────────────

def _axis_span(period):
    """Width of the x axis in segment units for the period's view mode."""
    if period["view_mode"] == "timeline":
        return 100.0
    return float(window_cell_count(period))


def _x_ticks(period):
    """(positions, labels) along the x axis."""
    cells = window_cells(period)
    mode = period["view_mode"]
    if mode == "timeline":
        total = window_cell_count(period)
        positions, labels, elapsed = [], [], 0
        for cell in cells:
            positions.append(elapsed / total * 100)
            labels.append(cell["label"].split()[0])
            elapsed += cell["days"]
        return positions, labels
    if mode == "day":
        return [c["hour"] for c in cells], [c["label"] for c in cells]
    return ([i + 0.5 for i in range(len(cells))],
            [f"{c['weekday']} {c['label']}" if mode == "week" else c["label"] for c in cells])


def render_view(rows, period, output_path, holidays=None, enabled_regions=None,
                cell_width=CELL_WIDTH_PX):
    """Render laid-out rows for the period to a PNG.
    Month and week grids are sized so each day cell is cell_width pixels wide."""
    apply_style()

    span = _axis_span(period)
    lanes_per_row = [max((s["lane"] for s in segments), default=0) + 1 for _, segments in rows]
    total_lanes = max(sum(lanes_per_row), 1)

    fig_width = STYLE["fig_width"]
    if period["view_mode"] in ("month", "week"):
        fig_width = max(fig_width, span * cell_width / STYLE["dpi"] / 0.82)
    fig_height = max(4, total_lanes * 0.45 + 2.5)
    fig = plt.figure(figsize=(fig_width, fig_height), facecolor=STYLE["bg_color"])
    ax = fig.add_axes([0.14, 0.14, 0.82, 0.72])
    axis_px = fig_width * STYLE["dpi"] * 0.82
    min_extent = MIN_BAR_WIDTH_PX / axis_px * span

    # Weekend and holiday columns on day grids
    if period["view_mode"] in ("month", "week"):
        for i, cell in enumerate(window_cells(period, holidays, enabled_regions)):
            if cell["is_weekend"]:
                ax.axvspan(i, i + 1, color=STYLE["weekend_color"], alpha=0.25, zorder=0)
            if cell["holidays"]:
                ax.axvspan(i, i + 1, color=ACTIVITY_TYPES["holiday"]["color"], alpha=0.06, zorder=0)

    y_ticks, y_labels = [], []
    y_top = total_lanes - 1
    for idx, ((label, segments), lanes) in enumerate(zip(rows, lanes_per_row)):
        y_base = y_top - sum(lanes_per_row[:idx])
        shade = STYLE["row_shade_even"] if idx % 2 == 0 else STYLE["row_shade_odd"]
        ax.axhspan(y_base - lanes + 0.5, y_base + 0.5, color=shade, alpha=0.6, zorder=0)
        y_ticks.append(y_base - (lanes - 1) / 2)
        y_labels.append(f"{label} ({len(segments)})")

        for segment in segments:
            activity = segment["activity"]
            y = y_base - segment["lane"]
            x = segment["offset"]
            if segment["unit"] == "percent":
                width = rendered_width(segment["extent"], span, min_extent)
                x = min(x, span - width)
            else:
                width = max(segment["extent"], min_extent)
            is_holiday = bool(activity.get("is_system_holiday"))
            color = type_color(activity.get("type"))
            status = clean_str(activity.get("status")).lower()
            draw_rounded_bar(ax, x, y, width, STYLE["lane_height"], color,
                             alpha=0.55 if status in ("tentative", "hypothetical") else 0.9,
                             edgecolor=status_info(status)["color"] if status else color,
                             hatch=STYLE["holiday_hatch"] if is_holiday else "")
            title = clean_str(activity.get("title"))
            if len(title) > 32:
                title = title[:29] + "..."
            ax.text(x + width + span * 0.004, y, title, va="center", ha="left",
                    fontsize=STYLE["small_size"], color=STYLE["text_primary"],
                    clip_on=True, zorder=5)

    # Today marker
    window_start, window_end = period_window(period)
    now = datetime.now()
    if window_start <= now <= window_end:
        marker = {"start_date": now, "end_date": now}
        today_x = layout_segment(marker, "", period, (window_start, window_end))["offset"]
        if period["view_mode"] == "day":
            today_x = now.hour + now.minute / 60
        ax.axvline(today_x, color=STYLE["today_color"], linewidth=1.5, alpha=0.7, zorder=10)

    positions, labels = _x_ticks(period)
    ax.set_xticks(positions)
    ax.set_xticklabels(labels, fontsize=STYLE["tick_size"],
                       rotation=45 if period["view_mode"] in ("month", "day") else 0)
    ax.set_xlim(0, span)
    ax.set_ylim(-0.6, total_lanes - 0.4)
    ax.set_yticks(y_ticks)
    ax.set_yticklabels(y_labels, fontsize=STYLE["label_size"], fontweight="bold")
    style_axes(ax, title=f"{VIEW_MODE_LABELS[period['view_mode']]} View")

    legend_handles = [mpatches.Patch(facecolor=info["color"], edgecolor=info["color"],
                                     label=info["label"]) for info in ACTIVITY_TYPES.values()]
    ax.legend(handles=legend_handles, loc="upper center", bbox_to_anchor=(0.5, -0.12),
              ncol=len(legend_handles), fontsize=STYLE["small_size"], frameon=False)

    if not rows:
        ax.text(span / 2, (total_lanes - 1) / 2, f"No activities for {period_label(period)}",
                ha="center", va="center", fontsize=STYLE["label_size"], color=STYLE["text_muted"])

    add_header_footer(fig, period_label(period),
                      f"{sum(len(s) for _, s in rows)} activities in {len(rows)} rows")

    if os.path.dirname(output_path):
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
    fig.savefig(output_path, dpi=STYLE["dpi"], bbox_inches="tight", facecolor=STYLE["bg_color"])
    plt.close(fig)
    print(f"  View saved: {output_path}")


# ── Summary ──────────────────────────────────────────────────────────────────

def print_summary(rows, period):
    """Print what the current period shows to the console."""
    window_start, window_end = period_window(period)
    segments = [s for _, row_segments in rows for s in row_segments]
    holidays = [s for s in segments if s["activity"].get("is_system_holiday")]
    clipped = []
    for s in segments:
        span = activity_span(s["activity"])
        if span and (span[0] < window_start or span[1] > window_end):
            clipped.append(s)
    markers = [s for s in segments if s["extent"] == 0]

    print()
    print("=" * 60)
    print(f"  {VIEW_MODE_LABELS[period['view_mode']].upper()} VIEW: {period_label(period)}")
    print("=" * 60)
    print(f"  Window:      {_format_day(window_start)} - {_format_day(window_end)}")
    print(f"  Activities:  {len(segments) - len(holidays)} "
          f"(+{len(holidays)} holiday{'s' if len(holidays) != 1 else ''})")
    for label, row_segments in rows:
        lanes = max((s["lane"] for s in row_segments), default=0) + 1
        print(f"    {label}: {len(row_segments)} in {lanes} lane{'s' if lanes != 1 else ''}")
    if clipped:
        print()
        print(f"  Clipped at window edges: {len(clipped)}")
        for s in clipped:
            print(f"    {clean_str(s['activity'].get('title'))}")
    if markers:
        print()
        print(f"  Zero-width markers: {len(markers)}")
        for s in markers:
            print(f"    {clean_str(s['activity'].get('title'))}")
    print("=" * 60)
    print()


class _TeeWriter:
    """Write to two streams simultaneously (for summary.txt capture)."""
    def __init__(self, a, b):
        self.a, self.b = a, b
    def write(self, data):
        self.a.write(data)
        self.b.write(data)
    def flush(self):
        self.a.flush()
        self.b.flush()


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Activity Calendar: lay out activities and holidays for a timeline, "
                    "month, week or day view"
    )
    parser.add_argument(
        "--template", action="store_true",
        help="Generate an Excel template with example data"
    )
    parser.add_argument(
        "--input", default=DEFAULT_INPUT,
        help="Path to Excel input file (default: calendar_data.xlsx)"
    )
    parser.add_argument(
        "--outdir", default=DEFAULT_OUTDIR,
        help="Output directory for the rendered view and summary (default: output/)"
    )
    parser.add_argument(
        "--view", default="timeline", choices=VIEW_MODES,
        help="View mode (default: timeline)"
    )
    parser.add_argument(
        "--date", default=None,
        help="Show the period containing this date (YYYY-MM-DD, default: today)"
    )
    parser.add_argument(
        "--link", default=None,
        help="Seed the period from a deep-link query, e.g. 'view=week&year=2026&week=53'"
    )
    parser.add_argument(
        "--next", dest="steps_next", type=int, default=0,
        help="Step forward this many periods"
    )
    parser.add_argument(
        "--prev", dest="steps_prev", type=int, default=0,
        help="Step back this many periods"
    )
    parser.add_argument(
        "--group-by", default="type", choices=GROUP_BY_KEYS,
        help="Row grouping (default: type)"
    )
    parser.add_argument(
        "--regions", nargs="+", default=None, choices=list(REGIONS),
        help="Holiday regions to show (default: all)"
    )
    parser.add_argument("--min-year", type=int, default=YEAR_MIN)
    parser.add_argument("--max-year", type=int, default=YEAR_MAX)
    parser.add_argument(
        "--cell-width", type=int, default=CELL_WIDTH_PX,
        help="Pixel width of a day cell in month/week views (default: 100)"
    )
    args = parser.parse_args(argv)

    if args.template:
        generate_template(args.input)
        return

    if not os.path.exists(args.input):
        print(f"Error: Input file not found: {args.input}")
        print("Run with --template first to create a template.")
        sys.exit(1)
    if args.min_year > args.max_year:
        print(f"  ERROR: --min-year {args.min_year} is after --max-year {args.max_year}.")
        sys.exit(1)

    # Period
    if args.link:
        period = parse_deep_link(args.link, min_year=args.min_year, max_year=args.max_year)
    else:
        seed = datetime.now()
        if args.date:
            try:
                seed = datetime.strptime(args.date, "%Y-%m-%d")
            except ValueError:
                print(f"  ERROR: Invalid --date '{args.date}'. Use YYYY-MM-DD format.")
                sys.exit(1)
        period = period_from_date(seed, args.view, args.min_year, args.max_year)
    navigator = PeriodNavigator(period, args.min_year, args.max_year)
    for _ in range(max(args.steps_next, 0)):
        navigator.next()
    for _ in range(max(args.steps_prev, 0)):
        navigator.previous()

    # Load
    print(f"Loading data from: {args.input}")
    activities, holidays = load_data(args.input)
    print(f"  Activities: {len(activities)}")

    errors, warnings = validate_activities(activities)
    for w in warnings:
        print(f"  WARNING: {w}")
    if errors:
        for e in errors:
            print(f"  ERROR: {e}")
        sys.exit(1)

    session = CalendarSession(navigator, group_by=args.group_by, enabled_regions=args.regions)
    session.load_snapshot(activities, holidays)
    rows = session.segments()
    period = navigator.current_period()

    summary_capture = io.StringIO()
    _orig_stdout = sys.stdout
    sys.stdout = _TeeWriter(_orig_stdout, summary_capture)
    try:
        print_summary(rows, period)
    finally:
        sys.stdout = _orig_stdout

    view_path = os.path.join(args.outdir, f"calendar_{period['view_mode']}.png")
    render_view(rows, period, view_path, holidays, args.regions, cell_width=args.cell_width)

    summary_path = os.path.join(args.outdir, "summary.txt")
    with open(summary_path, "w", encoding="utf-8") as sf:
        sf.write(summary_capture.getvalue())

    print()
    print("  Output:")
    for f in (view_path, summary_path):
        print(f"    {os.path.abspath(f)}")
    print("\nDone.")


if __name__ == "__main__":
    main()
