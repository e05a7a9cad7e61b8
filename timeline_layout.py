"""
Timeline Layout Engine
Reads time-bounded tasks from Excel or CSV, stacks overlapping tasks into lanes,
maps calendar dates onto a zoomable pixel timeline, and renders the result as a PNG.

Features:
  - Minimum-lane interval partitioning (inclusive day overlap)
  - Date → pixel position / width mapping with a fixed bar floor and spacing
  - Responsive timeline width derived from the viewport
  - Zoom in/out with clamped bounds, as explicit view state
  - Copy-on-write task rename (edit-in-place)
  - Ingestion validation that names the offending task id
"""

import argparse
import io
import math
import os
import sys
from bisect import bisect_left, insort
from collections import namedtuple
from datetime import date, datetime, timedelta

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
from matplotlib.patches import FancyBboxPatch
import numpy as np
import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.formatting.rule import FormulaRule


# ── Constants ────────────────────────────────────────────────────────────────

_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_INPUT = os.path.join(_DIR, "timeline_data.xlsx")
DEFAULT_OUTDIR = os.path.join(_DIR, "output")

TASKS_SHEET = "Tasks"
TASK_COLUMNS = ["ID", "Name", "Start Date", "End Date"]

SECONDS_PER_DAY = 24 * 60 * 60

# Pixel geometry of the timeline (bar floor and spacing are part of the visual contract)
DEFAULT_TIMELINE_WIDTH = 800
MAX_TIMELINE_WIDTH = 1000
VIEWPORT_FRACTION = 0.8
DEFAULT_VIEWPORT_WIDTH = 1250
MIN_BAR_WIDTH = 20
BAR_SPACING = 4

ZOOM_MIN = 0.25
ZOOM_MAX = 2.5
ZOOM_STEP = 1.2

MAX_AXIS_MARKERS = 10

EMPTY_TIME_RANGE = {"start": None, "end": None, "total_days": 0}

# Example data used ONLY when generating the Excel template via --template.
TEMPLATE_TASKS = [
    (1, "First item", "2024-01-01", "2024-01-05"),
    (2, "Second item", "2024-01-02", "2024-01-08"),
    (3, "Another item", "2024-01-06", "2024-01-13"),
    (4, "Another item", "2024-01-14", "2024-01-14"),
    (5, "Third item", "2024-01-09", "2024-01-18"),
    (6, "Fourth item with a super long name", "2024-01-12", "2024-02-16"),
    (7, "Fifth item with a super long name", "2024-01-15", "2024-02-15"),
    (8, "First item", "2024-01-19", "2024-01-22"),
    (9, "Second item", "2024-02-01", "2024-02-05"),
    (10, "Another item", "2024-02-10", "2024-02-19"),
    (11, "Another item", "2024-02-20", "2024-02-24"),
    (12, "Last item", "2024-02-26", "2024-03-01"),
]

STYLE = {
    "font_family": "DejaVu Sans",
    "title_size": 16,
    "subtitle_size": 12,
    "label_size": 9,
    "tick_size": 8,
    "small_size": 7.5,
    "bg_color": "#FAFAFA",
    "panel_bg": "#FFFFFF",
    "text_primary": "#1A1A2E",
    "text_secondary": "#555555",
    "text_muted": "#999999",
    "grid_color": "#E0E0E0",
    "today_color": "#D32F2F",
    "bar_color": "#3B82F6",
    "bar_text_color": "#FFFFFF",
    "edit_edge_color": "#FF8F00",
    "row_shade_even": "#F5F5F5",
    "row_shade_odd": "#FFFFFF",
    "bar_height": 0.75,
    "px_per_char": 6.5,
    "dpi": 150,
    "fig_width": 16,
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


def style_axes(ax, title):
    """Left-aligned lane count title, open top/right frame, vertical day grid behind the bars."""
    ax.set_title(title, fontsize=STYLE["subtitle_size"], fontweight="bold",
                 color=STYLE["text_primary"], pad=12, loc="left")
    for side in ("top", "right"):
        ax.spines[side].set_visible(False)
    ax.grid(axis="x", alpha=0.3, linewidth=0.5, color=STYLE["grid_color"])
    ax.set_axisbelow(True)


def add_header_footer(fig, title, subtitle=""):
    """Title and date-range subtitle on top; generation time and input file mtime in the footer."""
    fig.suptitle(title, fontsize=STYLE["title_size"], fontweight="bold",
                 color=STYLE["text_primary"], y=0.98, x=0.04, ha="left")
    if subtitle:
        fig.text(0.04, 0.925, subtitle, fontsize=STYLE["small_size"] + 1,
                 color=STYLE["text_muted"], ha="left")
    fig.text(0.98, 0.01, f"Generated {datetime.now().strftime('%d %b %Y %H:%M')}",
             ha="right", fontsize=STYLE["small_size"], color=STYLE["text_muted"])
    footer_left = "Timeline Layout Engine"
    if STYLE.get("_data_mtime"):
        footer_left += f"  ·  Data updated {STYLE['_data_mtime']}"
    fig.text(0.04, 0.01, footer_left,
             ha="left", fontsize=STYLE["small_size"], color=STYLE["text_muted"])


def draw_today_line(ax, x, y_top):
    """Draw a styled 'Today' marker at pixel offset x."""
    ax.axvline(x, color=STYLE["today_color"], linewidth=1.5,
               linestyle="-", alpha=0.7, zorder=10)
    ax.text(x + 3, y_top, "Today", fontsize=STYLE["small_size"] + 0.5,
            color=STYLE["today_color"], fontweight="bold", va="bottom",
            ha="left", style="italic")


def draw_task_bar(ax, left, y, width, edgecolor=None, linewidth=1.0):
    """Rounded task bar centred on lane row y, spanning left..left+width pixels."""
    height = STYLE["bar_height"]
    bar = FancyBboxPatch(
        (left, y - height / 2), width, height,
        boxstyle=f"round,pad=0,rounding_size={min(0.12, width * 0.05)}",
        facecolor=STYLE["bar_color"], edgecolor=edgecolor or STYLE["bar_color"],
        linewidth=linewidth, zorder=3,
    )
    ax.add_patch(bar)
    return bar


def truncate_label(text, width_px):
    """Shorten text with an ellipsis so it fits inside a bar width_px wide."""
    max_chars = int((width_px - 2 * BAR_SPACING) / STYLE["px_per_char"])
    if len(text) <= max_chars:
        return text
    if max_chars <= 1:
        return ""
    return text[:max_chars - 1] + "…"


# ── Date & Value Helpers ─────────────────────────────────────────────────────

def norm_date(d):
    """Normalise to midnight datetime; time-of-day is not modelled."""
    if isinstance(d, pd.Timestamp):
        d = d.to_pydatetime()
    if not isinstance(d, date):
        raise TypeError(f"norm_date expected date or datetime, got {type(d).__name__}: {d!r}")
    return datetime(d.year, d.month, d.day)


def clean_str(val):
    """Return stripped string or empty string for NaN/None."""
    if val is None or (isinstance(val, float) and math.isnan(val)) or val is pd.NaT:
        return ""
    return str(val).strip()


def clean_id(val):
    """Return a task id as int when it is integral, else a stripped string (None if blank)."""
    if isinstance(val, (int, np.integer)):
        return int(val)
    if isinstance(val, (float, np.floating)):
        if math.isnan(val):
            return None
        return int(val) if float(val).is_integer() else float(val)
    text = clean_str(val)
    return text or None


class _TeeWriter:
    """Mirror console output into any number of streams (summary.txt capture)."""
    def __init__(self, *streams):
        self.streams = streams
    def write(self, data):
        for s in self.streams:
            s.write(data)
    def flush(self):
        for s in self.streams:
            s.flush()


def parse_date(val, context=""):
    """Parse a date from a cell or API value — handles datetime, date, Timestamp, and string."""
    ctx = f" ({context})" if context else ""
    if val is None or (not isinstance(val, (str, date)) and pd.isna(val)):
        raise ValueError(f"Date is blank{ctx}")
    if isinstance(val, (datetime, date)):
        if val is pd.NaT:
            raise ValueError(f"Date is blank{ctx}")
        return norm_date(val)
    if isinstance(val, str):
        val = val.strip()
        if not val:
            raise ValueError(f"Date is blank{ctx}")
        for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"):
            try:
                return norm_date(datetime.strptime(val, fmt))
            except ValueError:
                pass
        raise ValueError(f"Cannot parse date{ctx}: {val!r}. Expected YYYY-MM-DD or DD/MM/YYYY")
    raise ValueError(f"Cannot parse date{ctx}: {val!r}")


def days_between(start, end):
    """Whole days from start to end, rounded up (negative when end precedes start)."""
    return math.ceil((end - start).total_seconds() / SECONDS_PER_DAY)


# ── Interval Model ───────────────────────────────────────────────────────────

class ValidationError(ValueError):
    """A task record that cannot be laid out (missing id, bad date, start after end)."""

    def __init__(self, task_id, message):
        self.task_id = task_id
        self.reason = message
        super().__init__(f"Task {task_id!r}: {message}")


def _is_blank_id(task_id):
    if isinstance(task_id, str):
        return not task_id.strip()
    return task_id is None or (pd.api.types.is_scalar(task_id) and pd.isna(task_id))


def normalize_task(record):
    """Return a canonical copy of a task record with midnight datetime start/end.

    Raises ValidationError naming the task id when the record cannot be laid out.
    """
    task_id = record.get("id")
    row = record.get("_row")
    where = f"row {row}" if row is not None else ""
    if _is_blank_id(task_id):
        raise ValidationError(None, f"id is missing{f' ({where})' if where else ''}")

    try:
        start = parse_date(record.get("start"), context=where or "start")
        end = parse_date(record.get("end"), context=where or "end")
    except (ValueError, TypeError) as e:
        raise ValidationError(task_id, str(e)) from e

    if start > end:
        raise ValidationError(
            task_id,
            f"start {start.strftime('%Y-%m-%d')} is after end {end.strftime('%Y-%m-%d')}")

    task = dict(record)
    task.update({
        "id": task_id,
        "name": clean_str(record.get("name")),
        "start": start,
        "end": end,
    })
    return task


def normalize_tasks(records):
    """Normalise a whole collection; the first malformed record raises ValidationError."""
    return [normalize_task(r) for r in records]


def validate_tasks(records):
    """Normalise records without raising. Returns (tasks, errors, warnings).

    Malformed records become errors and are left out of tasks; well-formed records
    are kept regardless of their neighbours.
    """
    tasks = []
    errors = []
    warnings = []
    seen_ids = {}

    for record in records:
        try:
            task = normalize_task(record)
        except ValidationError as e:
            errors.append(str(e))
            continue

        label = f"Task {task['id']!r}"
        if not task["name"]:
            warnings.append(f"{label}: name is blank.")
        if task["id"] in seen_ids:
            warnings.append(f"{label}: duplicate id (first seen as '{seen_ids[task['id']]}').")
        else:
            seen_ids[task["id"]] = task["name"]
        tasks.append(task)

    return tasks, errors, warnings


def task_span(task):
    """(start, end) of a task as midnight datetimes, whatever form the record holds them in."""
    return parse_date(task["start"], context="start"), parse_date(task["end"], context="end")


def overlaps(a, b):
    """True when two tasks share at least one day (both ends inclusive)."""
    a_start, a_end = task_span(a)
    b_start, b_end = task_span(b)
    return a_start <= b_end and b_start <= a_end


def filter_tasks_by_window(tasks, date_from=None, date_to=None):
    """Keep only tasks overlapping the [date_from, date_to] window (either bound optional)."""
    if date_from is not None:
        date_from = parse_date(date_from, context="window start")
    if date_to is not None:
        date_to = parse_date(date_to, context="window end")
    if date_from and date_to and date_from > date_to:
        raise ValueError(f"Window start {date_from:%Y-%m-%d} is after window end {date_to:%Y-%m-%d}")

    filtered = []
    for t in tasks:
        start, end = task_span(t)
        if date_from and end < date_from:
            continue  # task ends before window
        if date_to and start > date_to:
            continue  # task starts after window
        filtered.append(t)
    return filtered


def rename_task(tasks, task_id, new_name):
    """Return a new collection with every task carrying task_id renamed.

    Untouched tasks are the same objects as in the input; renamed tasks are new dicts.
    """
    name = clean_str(new_name)
    if not name:
        raise ValueError(f"Task {task_id!r}: name cannot be blank")
    renamed = []
    found = False
    for task in tasks:
        if task["id"] == task_id:
            task = dict(task, name=name)
            found = True
        renamed.append(task)
    if not found:
        raise KeyError(task_id)
    return renamed


# ── Lane Assignment ──────────────────────────────────────────────────────────

def assign_lanes(tasks):
    """Partition tasks into the minimum number of lanes with no overlap inside a lane.

    Tasks are visited by start date (ties keep input order). Each task goes to the
    lane whose last end is the latest one still before the task's start; among
    lanes freed on the same day the earliest-opened wins. Lanes are returned in
    the order they were opened and hold the input task objects themselves.
    """
    lanes = []
    free = []  # sorted (tracked_end, lane_index)

    spans = [(task_span(t), t) for t in tasks]
    for (start, end), task in sorted(spans, key=lambda s: s[0][0]):
        i = bisect_left(free, (start,))
        if i == 0:
            lanes.append([task])
            insort(free, (end, len(lanes) - 1))
            continue

        j = bisect_left(free, (free[i - 1][0],))
        tracked_end, lane_idx = free.pop(j)
        lanes[lane_idx].append(task)
        insort(free, (max(tracked_end, end), lane_idx))

    return lanes


def peak_overlap(tasks):
    """Maximum number of tasks active on any single day."""
    events = []
    for t in tasks:
        start, end = task_span(t)
        events.append((start, 1))
        events.append((end + timedelta(days=1), -1))
    # ends (-1) sort before starts (+1) on the same instant
    events.sort()

    active = 0
    peak = 0
    for _, delta in events:
        active += delta
        peak = max(peak, active)
    return peak


def find_task(lanes, task_id):
    """Locate the first task with task_id. Returns (lane_index, task) or None."""
    for lane_idx, lane in enumerate(lanes):
        for task in lane:
            if task["id"] == task_id:
                return lane_idx, task
    return None


# ── Time Range & Coordinate Mapping ──────────────────────────────────────────

def calculate_time_range(tasks):
    """Earliest and latest date over all task starts/ends, plus the distance in whole days.

    Empty input returns the zero range (start/end None, total_days 0).
    """
    if not tasks:
        return dict(EMPTY_TIME_RANGE)

    dates = [parse_date(d) for t in tasks for d in (t["start"], t["end"])]
    start = min(dates)
    end = max(dates)
    return {
        "start": start,
        "end": end,
        "total_days": days_between(start, end),
    }


def calculate_position(start_date, time_range, timeline_width=DEFAULT_TIMELINE_WIDTH):
    """Left offset in pixels of a bar starting on start_date (never negative).

    A zero-day range has no scale, so every bar starts at 0.
    """
    total_days = time_range["total_days"]
    if total_days <= 0:
        return 0.0
    days_from_start = days_between(time_range["start"], parse_date(start_date, context="position"))
    position = (days_from_start / total_days) * timeline_width
    return max(0.0, position)


def calculate_width(start_date, end_date, time_range, timeline_width=DEFAULT_TIMELINE_WIDTH):
    """Width in pixels of a bar covering start_date..end_date inclusive.

    Bars lose BAR_SPACING pixels for the gap to their neighbour and never shrink
    below MIN_BAR_WIDTH. A zero-day range yields MIN_BAR_WIDTH.
    """
    total_days = time_range["total_days"]
    if total_days <= 0:
        return float(MIN_BAR_WIDTH)
    start = parse_date(start_date, context="width start")
    end = parse_date(end_date, context="width end")
    duration_in_days = days_between(start, end) + 1
    width = (duration_in_days / total_days) * timeline_width
    return max(float(MIN_BAR_WIDTH), width - BAR_SPACING)


def timeline_width_for_viewport(viewport_width):
    """Timeline pixel budget for a viewport: 80% of it, capped at MAX_TIMELINE_WIDTH."""
    if viewport_width <= 0:
        raise ValueError(f"Viewport width must be positive, got {viewport_width}")
    return min(MAX_TIMELINE_WIDTH, viewport_width * VIEWPORT_FRACTION)


def axis_markers(time_range, timeline_width=DEFAULT_TIMELINE_WIDTH, max_markers=MAX_AXIS_MARKERS):
    """Evenly spaced (pixel, label) date markers for the axis, without repeated labels."""
    if max_markers < 1:
        raise ValueError(f"max_markers must be at least 1, got {max_markers}")
    start = time_range["start"]
    if start is None:
        return []

    total_days = time_range["total_days"]
    label_fmt = "%b %Y" if total_days > 365 else "%d %b"
    count = min(max_markers, total_days + 1)

    markers = []
    seen = set()
    for offset in np.linspace(0, total_days, count):
        day = start + timedelta(days=int(round(offset)))
        label = day.strftime(label_fmt)
        if label in seen:
            continue
        seen.add(label)
        markers.append((calculate_position(day, time_range, timeline_width), label))
    return markers


# ── View State ───────────────────────────────────────────────────────────────

ViewState = namedtuple("ViewState", ["zoom", "viewport_width", "editing_task_id"],
                       defaults=[1.0, DEFAULT_VIEWPORT_WIDTH, None])
ViewState.__doc__ = "Interactive state handed to each layout pass (never mutated)."


def clamp_zoom(zoom):
    return min(ZOOM_MAX, max(ZOOM_MIN, zoom))


def zoom_in(view):
    return view._replace(zoom=clamp_zoom(view.zoom * ZOOM_STEP))


def zoom_out(view):
    return view._replace(zoom=clamp_zoom(view.zoom / ZOOM_STEP))


def reset_zoom(view):
    return view._replace(zoom=1.0)


def begin_edit(view, task_id):
    return view._replace(editing_task_id=task_id)


def cancel_edit(view):
    return view._replace(editing_task_id=None)


def commit_edit(tasks, view, new_name):
    """Rename the task being edited. Returns (new_tasks, view with editing cleared)."""
    if view.editing_task_id is None:
        raise ValueError("No task is being edited")
    new_tasks = rename_task(tasks, view.editing_task_id, new_name)
    return new_tasks, cancel_edit(view)


# ── Layout Pass ──────────────────────────────────────────────────────────────

def layout_timeline(tasks, view=None):
    """Run a full layout pass over normalised tasks.

    Returns a dict with the time range, the unzoomed timeline width, the zoom,
    the zoomed content width, and lanes of placements {task, left, width}
    whose pixel values already include the zoom factor.
    """
    view = view or ViewState()
    zoom = clamp_zoom(view.zoom)
    time_range = calculate_time_range(tasks)
    timeline_width = timeline_width_for_viewport(view.viewport_width)

    lanes = []
    for lane in assign_lanes(tasks):
        placements = []
        for task in lane:
            left = calculate_position(task["start"], time_range, timeline_width)
            width = calculate_width(task["start"], task["end"], time_range, timeline_width)
            placements.append({
                "task": task,
                "left": left * zoom,
                "width": width * zoom,
            })
        lanes.append(placements)

    return {
        "time_range": time_range,
        "timeline_width": timeline_width,
        "zoom": zoom,
        "content_width": timeline_width * zoom,
        "editing_task_id": view.editing_task_id,
        "lanes": lanes,
    }


# ── Template Generation ─────────────────────────────────────────────────────

def generate_template(output_path):
    """Create an Excel template with a Tasks sheet, example data, date validation,
    and highlighting for rows whose end date is before the start date."""
    wb = Workbook()

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="2E3B4E", end_color="2E3B4E", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    ws = wb.active
    ws.title = TASKS_SHEET
    ws.append(TASK_COLUMNS)
    for task_id, name, start, end in TEMPLATE_TASKS:
        ws.append([task_id, name,
                   datetime.strptime(start, "%Y-%m-%d"),
                   datetime.strptime(end, "%Y-%m-%d")])

    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment
        cell.border = thin_border
    for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
        for cell in row:
            cell.border = thin_border
            cell.alignment = Alignment(vertical="center")
        row[2].number_format = "yyyy-mm-dd"
        row[3].number_format = "yyyy-mm-dd"

    ws.column_dimensions["A"].width = 8
    ws.column_dimensions["B"].width = 40
    ws.column_dimensions["C"].width = 14
    ws.column_dimensions["D"].width = 14
    ws.freeze_panes = "A2"

    # Date validation on Start/End columns (extends past the example rows)
    dv_date = DataValidation(type="date", operator="greaterThan", formula1="DATE(1900,1,1)",
                             allow_blank=True)
    dv_date.error = "Please enter a date (YYYY-MM-DD)"
    dv_date.errorTitle = "Invalid Date"
    ws.add_data_validation(dv_date)
    dv_date.add("C2:D500")

    # End before start → red row
    ws.conditional_formatting.add(
        "A2:D500",
        FormulaRule(formula=["AND($C2<>\"\",$D2<>\"\",$D2<$C2)"],
                    font=Font(bold=True, color="C62828"), fill=PatternFill(bgColor="FFCDD2")))

    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
    wb.save(output_path)
    print(f"  Template saved: {output_path}")
    print(f"  Example tasks: {len(TEMPLATE_TASKS)}")


# ── Data Loading ─────────────────────────────────────────────────────────────

def normalize_columns(df, expected):
    """Rename DataFrame columns to their expected spelling (case/whitespace-insensitive).
    Returns the set of expected columns still missing."""
    lookup = {name.strip().lower(): name for name in expected}
    renames = {}
    for col in df.columns:
        key = str(col).strip().lower()
        if key in lookup:
            renames[col] = lookup[key]
    df.rename(columns=renames, inplace=True)
    return set(expected) - set(df.columns)


def load_tasks(filepath):
    """Load raw task records from the 'Tasks' sheet of an Excel file, or from a CSV file.

    Records keep their cell values as read; dates are parsed later by validate_tasks.
    """
    try:
        if os.path.splitext(filepath)[1].lower() == ".csv":
            df = pd.read_csv(filepath)
        else:
            df = pd.read_excel(filepath, sheet_name=TASKS_SHEET)
    except Exception as e:
        print(f"  WARNING: Could not read tasks from {filepath}: {e}")
        return []
    if df.empty:
        return []
    missing = normalize_columns(df, set(TASK_COLUMNS))
    if missing:
        print(f"  ERROR: Tasks are missing column(s): {', '.join(sorted(missing))}. "
              f"Found: {', '.join(str(c) for c in df.columns)}")
        return []

    records = []
    for idx, row in df.iterrows():
        if all(pd.isna(row[col]) for col in TASK_COLUMNS):
            continue  # skip blank rows
        records.append({
            "id": clean_id(row["ID"]),
            "name": clean_str(row["Name"]),
            "start": row["Start Date"],
            "end": row["End Date"],
            "_row": idx + 2,
        })
    return records


# ── Chart: Timeline ──────────────────────────────────────────────────────────

def render_timeline(layout, output_path, title="Timeline"):
    """Render the laid-out timeline as one row of bars per lane."""
    apply_style()

    lanes = layout["lanes"]
    if not lanes:
        print("  No timeline data. Check that the input has at least one valid task.")
        return

    time_range = layout["time_range"]
    zoom = layout["zoom"]
    n_lanes = len(lanes)
    right_edge = max(p["left"] + p["width"] for lane in lanes for p in lane)
    x_max = max(layout["content_width"], right_edge) + BAR_SPACING

    fig_height = max(3.5, n_lanes * 0.45 + 2.5)
    fig = plt.figure(figsize=(STYLE["fig_width"], fig_height), facecolor=STYLE["bg_color"])
    ax = fig.add_axes([0.08, 0.14, 0.88, 0.72])

    # ── Alternating lane shading ──
    for i in range(n_lanes):
        shade = STYLE["row_shade_even"] if i % 2 == 0 else STYLE["row_shade_odd"]
        ax.axhspan(i - 0.5, i + 0.5, color=shade, alpha=0.6, zorder=0)

    # ── Bars (lane 0 on top) ──
    editing_id = layout.get("editing_task_id")
    for lane_idx, lane in enumerate(lanes):
        y = n_lanes - 1 - lane_idx
        for p in lane:
            task = p["task"]
            is_editing = editing_id is not None and task["id"] == editing_id
            draw_task_bar(ax, p["left"], y, p["width"],
                          edgecolor=STYLE["edit_edge_color"] if is_editing else None,
                          linewidth=2.0 if is_editing else 1.0)
            ax.text(p["left"] + BAR_SPACING, y, truncate_label(clean_str(task.get("name")), p["width"]),
                    fontsize=STYLE["small_size"], color=STYLE["bar_text_color"],
                    va="center", ha="left", zorder=5)

    # ── Axis ──
    markers = axis_markers(time_range, layout["timeline_width"])
    ax.set_xticks([px * zoom for px, _ in markers])
    ax.set_xticklabels([label for _, label in markers], fontsize=STYLE["tick_size"])
    ax.set_yticks(range(n_lanes))
    ax.set_yticklabels([f"Lane {n_lanes - i}" for i in range(n_lanes)],
                       fontsize=STYLE["label_size"])
    ax.set_xlim(0, x_max)
    ax.set_ylim(-0.5, n_lanes - 0.5)

    today = norm_date(datetime.now())
    if time_range["start"] is not None and time_range["start"] <= today <= time_range["end"]:
        draw_today_line(ax, calculate_position(today, time_range, layout["timeline_width"]) * zoom,
                        n_lanes - 0.45)

    style_axes(ax, f"{sum(len(lane) for lane in lanes)} tasks in {n_lanes} lanes")

    legend_handles = [mpatches.Patch(facecolor=STYLE["bar_color"], edgecolor=STYLE["bar_color"],
                                     label="Task")]
    if editing_id is not None:
        legend_handles.append(mpatches.Patch(facecolor=STYLE["bar_color"],
                                             edgecolor=STYLE["edit_edge_color"],
                                             linewidth=2.0, label="Editing"))
    ax.legend(handles=legend_handles, loc="upper center", bbox_to_anchor=(0.5, -0.1),
              ncol=len(legend_handles), fontsize=STYLE["small_size"], frameon=True,
              framealpha=0.95, edgecolor=STYLE["grid_color"], fancybox=True)

    subtitle = ""
    if time_range["start"] is not None:
        subtitle = (f"{time_range['start'].strftime('%d %b %Y')} — "
                    f"{time_range['end'].strftime('%d %b %Y')}  ·  zoom {zoom * 100:.0f}%")
    add_header_footer(fig, title, subtitle)

    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
    fig.savefig(output_path, dpi=STYLE["dpi"], bbox_inches="tight", facecolor=STYLE["bg_color"])
    plt.close(fig)
    print(f"  Timeline saved: {output_path}")


# ── Summary ──────────────────────────────────────────────────────────────────

def print_summary(layout):
    """Print layout statistics and lane contents to console."""
    lanes = layout["lanes"]
    time_range = layout["time_range"]
    tasks = [p["task"] for lane in lanes for p in lane]
    peak = peak_overlap(tasks)

    print()
    print("=" * 60)
    print("  TIMELINE SUMMARY")
    print("=" * 60)
    print(f"  Tasks:         {len(tasks)}")
    if time_range["start"] is not None:
        print(f"  Range:         {time_range['start'].strftime('%d %b %Y')} — "
              f"{time_range['end'].strftime('%d %b %Y')} ({time_range['total_days']} days)")
    else:
        print("  Range:         (empty)")
    print(f"  Lanes:         {len(lanes)}")
    print(f"  Peak overlap:  {peak} task{'s' if peak != 1 else ''} at once")
    print(f"  Width:         {layout['timeline_width']:.0f}px at zoom {layout['zoom'] * 100:.0f}% "
          f"({layout['content_width']:.0f}px)")
    for lane_idx, lane in enumerate(lanes):
        print()
        print(f"  Lane {lane_idx + 1} ({len(lane)} task{'s' if len(lane) != 1 else ''}):")
        for p in lane:
            t = p["task"]
            start, end = task_span(t)
            print(f"    [{t['id']}] {t.get('name') or '(unnamed)'}: "
                  f"{start:%d %b} – {end:%d %b}  "
                  f"left {p['left']:.0f}px, width {p['width']:.0f}px")
    print("=" * 60)


# ── Main ─────────────────────────────────────────────────────────────────────

def _parse_rename(value):
    """Split an 'ID=New name' argument."""
    task_id, sep, name = value.partition("=")
    if not sep or not task_id.strip():
        raise argparse.ArgumentTypeError(f"Expected ID=NAME, got {value!r}")
    return task_id.strip(), name


def _resolve_task_id(tasks, raw_id):
    """Match a command-line id against task ids, which may be ints."""
    for t in tasks:
        if str(t["id"]) == raw_id:
            return t["id"]
    return raw_id


def build_view(args):
    """Build the ViewState described by the command-line zoom flags."""
    view = ViewState(zoom=clamp_zoom(args.zoom), viewport_width=args.viewport_width)
    for _ in range(args.zoom_in):
        view = zoom_in(view)
    for _ in range(args.zoom_out):
        view = zoom_out(view)
    return view


def build_parser():
    parser = argparse.ArgumentParser(
        description="Timeline Layout Engine — stack overlapping tasks into lanes and render a timeline"
    )
    parser.add_argument(
        "--template", action="store_true",
        help="Generate an Excel template with example tasks"
    )
    parser.add_argument(
        "--input", default=DEFAULT_INPUT,
        help="Path to Excel (.xlsx) or CSV input file (default: timeline_data.xlsx)"
    )
    parser.add_argument(
        "--outdir", default=DEFAULT_OUTDIR,
        help="Output directory for timeline.png and summary.txt (default: output/)"
    )
    parser.add_argument(
        "--viewport-width", type=float, default=DEFAULT_VIEWPORT_WIDTH,
        help=f"Viewport width in pixels; the timeline uses 80%% of it up to {MAX_TIMELINE_WIDTH}px"
    )
    parser.add_argument(
        "--zoom", type=float, default=1.0,
        help=f"Initial zoom factor, clamped to [{ZOOM_MIN}, {ZOOM_MAX}] (default: 1.0)"
    )
    parser.add_argument(
        "--zoom-in", type=int, default=0, metavar="N",
        help=f"Apply N zoom-in steps (x{ZOOM_STEP} each)"
    )
    parser.add_argument(
        "--zoom-out", type=int, default=0, metavar="N",
        help=f"Apply N zoom-out steps (/{ZOOM_STEP} each)"
    )
    parser.add_argument(
        "--rename", type=_parse_rename, action="append", default=[], metavar="ID=NAME",
        help="Rename a task before layout (repeatable, not saved back to the input)"
    )
    parser.add_argument(
        "--from", dest="date_from", default=None,
        help="Only include tasks overlapping with this start date (YYYY-MM-DD)"
    )
    parser.add_argument(
        "--to", dest="date_to", default=None,
        help="Only include tasks overlapping with this end date (YYYY-MM-DD)"
    )
    parser.add_argument(
        "--skip-invalid", action="store_true",
        help="Lay out the valid tasks even when some rows fail validation"
    )
    parser.add_argument(
        "--no-render", action="store_true",
        help="Print the summary only, without writing timeline.png"
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.template:
        generate_template(args.input)
        return

    if not os.path.exists(args.input):
        print(f"Error: Input file not found: {args.input}")
        print("Run with --template first to create a template.")
        sys.exit(1)

    if args.viewport_width <= 0:
        print(f"  ERROR: --viewport-width must be positive, got {args.viewport_width:g}.")
        sys.exit(1)

    # Load
    print(f"Loading tasks from: {args.input}")
    try:
        mtime = datetime.fromtimestamp(os.path.getmtime(args.input))
        STYLE["_data_mtime"] = mtime.strftime("%d %b %Y %H:%M")
    except OSError:
        pass
    records = load_tasks(args.input)
    print(f"  Rows: {len(records)}")

    # Validate
    tasks, errors, warnings = validate_tasks(records)
    for w in warnings:
        print(f"  WARNING: {w}")
    if errors:
        if not args.skip_invalid:
            for e in errors:
                print(f"  ERROR: {e}")
            sys.exit(1)
        for e in errors:
            print(f"  WARNING: Skipping invalid task. {e}")
    print(f"  Tasks: {len(tasks)}")

    # Date window
    if args.date_from or args.date_to:
        try:
            filtered = filter_tasks_by_window(tasks, args.date_from, args.date_to)
        except ValueError as e:
            print(f"  ERROR: Invalid date window: {e}")
            sys.exit(1)
        window_desc = " ".join(part for part in (
            f"from {args.date_from}" if args.date_from else "",
            f"to {args.date_to}" if args.date_to else "") if part)
        print(f"  Date filter ({window_desc}): {len(filtered)} of {len(tasks)} tasks")
        tasks = filtered
        if not tasks:
            print("  WARNING: 0 tasks overlap with date window.")

    # Edits (copy-on-write; each rename produces a new collection)
    for raw_id, new_name in args.rename:
        task_id = _resolve_task_id(tasks, raw_id)
        view = begin_edit(ViewState(), task_id)
        try:
            tasks, _ = commit_edit(tasks, view, new_name)
        except KeyError:
            print(f"  WARNING: --rename: no task with id {raw_id!r}.")
        except ValueError as e:
            print(f"  WARNING: --rename: {e}.")

    # Layout
    view = build_view(args)
    layout = layout_timeline(tasks, view)

    summary_capture = io.StringIO()
    _orig_stdout = sys.stdout
    sys.stdout = _TeeWriter(_orig_stdout, summary_capture)
    try:
        print_summary(layout)
    finally:
        sys.stdout = _orig_stdout

    output_files = []
    os.makedirs(args.outdir, exist_ok=True)
    if not args.no_render:
        timeline_path = os.path.join(args.outdir, "timeline.png")
        render_timeline(layout, timeline_path,
                        title=f"Timeline: {os.path.splitext(os.path.basename(args.input))[0]}")
        if layout["lanes"]:
            output_files.append(timeline_path)

    summary_path = os.path.join(args.outdir, "summary.txt")
    with open(summary_path, "w", encoding="utf-8") as sf:
        sf.write(summary_capture.getvalue())
    output_files.append(summary_path)

    print()
    print("  Output:")
    for f in output_files:
        print(f"    {os.path.abspath(f)}")
    print("\nDone.")


if __name__ == "__main__":
    main()
