import calendar
from datetime import MAXYEAR, MINYEAR, date, datetime

from analysis import filter_items, parse_date, to_number

PRESETS = ("this-year", "this-month", "last-3-months", "last-year", "all", "custom")
DEFAULT_PRESET = "this-year"


def _today(now=None):
    if now is None:
        return date.today()
    if isinstance(now, datetime):
        return now.date()
    return now


def preset_range(preset, now=None):
    """
    Concrete (start, end) for a preset relative to ``now``. Returns None for
    ``custom`` (and unknown presets): the current bounds stay as they are.
    """
    today = _today(now)
    if preset == "this-year":
        return date(today.year, 1, 1), today
    if preset == "this-month":
        return date(today.year, today.month, 1), today
    if preset == "last-3-months":
        month = today.month - 2
        year = today.year
        if month < 1:
            month += 12
            year -= 1
        return date(year, month, 1), today
    if preset == "last-year":
        y = today.year - 1
        return date(y, 1, 1), date(y, 12, 31)
    if preset == "all":
        return None, None
    return None


def year_month_range(year, month=None):
    year = int(to_number(year) or 0) or None
    month = int(to_number(month) or 0) or None
    if year and not MINYEAR <= year <= MAXYEAR:
        year = None
    if month and not 1 <= month <= 12:
        month = None
    if year and month:
        return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])
    if year:
        return date(year, 1, 1), date(year, 12, 31)
    return None


def year_options(items, now=None):
    """
    Years offered by the year selector, newest first, plus the default
    selection (the current year when present).
    """
    years = set()
    for it in items:
        d = parse_date(it.get("updated_at"))
        if d:
            years.add(d.year)
            continue
        y = to_number(it.get("release_year"))
        if y is not None:
            years.add(int(y))
    current = _today(now).year
    if not years:
        years = set(range(current - 9, current + 1))
    ordered = sorted(years, reverse=True)
    selected = current if current in years else ordered[0]
    return {"years": ordered, "selected": selected}


class FilterController:
    """
    Holds the selected date range and calls ``on_change`` after every change
    of bounds. The callback runs synchronously, so the last change wins.
    """

    def __init__(self, on_change=None, now=None):
        self.on_change = on_change or (lambda: None)
        self.now = now
        self.start = None
        self.end = None
        self.preset = "all"
        self.year = None
        self.month = None

    def _set_range(self, start, end):
        self.start = parse_date(start)
        self.end = parse_date(end)

    def apply_preset(self, preset, refresh=True):
        self.preset = preset
        rng = preset_range(preset, self.now)
        if rng is not None:
            self._set_range(*rng)
        if refresh:
            self.on_change()

    def set_start(self, value):
        self.start = parse_date(value)
        self.preset = "custom"
        self.on_change()

    def set_end(self, value):
        self.end = parse_date(value)
        self.preset = "custom"
        self.on_change()

    def set_year_month(self, year=None, month=None):
        self.year = year
        self.month = month
        rng = year_month_range(year, month)
        if rng is None:
            return
        self._set_range(*rng)
        self.preset = "custom"
        self.on_change()

    def selected_range(self):
        return self.start, self.end

    def filtered(self, items):
        return filter_items(items, self.start, self.end)

    @classmethod
    def from_args(cls, args, on_change=None, now=None):
        """
        Build a controller from query-string style arguments: ``preset``,
        ``year``/``month``, ``start``/``end``. Later selections override
        earlier ones in that order.
        """
        ctl = cls(on_change=on_change, now=now)
        preset = (args.get("preset") or DEFAULT_PRESET).strip()
        ctl.apply_preset(preset if preset in PRESETS else DEFAULT_PRESET, refresh=False)
        if args.get("year"):
            ctl.set_year_month(args.get("year"), args.get("month"))
        if args.get("start"):
            ctl.set_start(args.get("start"))
        if args.get("end"):
            ctl.set_end(args.get("end"))
        return ctl
