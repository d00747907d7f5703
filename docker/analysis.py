"""
Statistics over the accumulated movie history.

Every function is a pure function of its arguments: the dashboard is rebuilt
from the raw items on each call and nothing is cached between calls.
"""
import math
import re
import traceback
from datetime import date, datetime

STOP_WORDS = {
    'the', 'a', 'an', 'and', 'or', 'but', 'if', 'then', 'else', 'when', 'while', 'of', 'at', 'by', 'for', 'with',
    'without', 'to', 'from', 'in', 'on', 'into', 'onto', 'over', 'under', 'as', 'is', 'are', 'was', 'were', 'be',
    'been', 'being', 'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would', 'shall', 'should', 'can', 'could',
    'may', 'might', 'must',
    'this', 'that', 'these', 'those', 'it', 'its', 'he', 'she', 'they', 'them', 'we', 'you', 'your', 'i', 'me', 'my',
    'mine', 'our', 'ours', 'their', 'theirs', 'who', 'whom', 'which', 'what', 'where', 'why', 'how',
    'movie', 'film', 'watch', 'watched', 'seen', 'like', 'just', 'very', 'also', 'one', 'two', 'get', 'got', 'see',
    '的', '了', '在', '和', '是', '也', '就', '都', '而', '与', '或', '及', '被', '于', '对', '从', '到', '但', '而且', '所以',
    '如果', '因为', '还有', '我们', '你们', '他们', '她们', '它们', '这', '那', '一个', '没有', '还是', '已经', '就是', '对于',
    '以及', '其中', '其中的',
}
POSITIVE_WORDS = ['good', 'great', 'love', 'excellent', 'amazing', 'favorite', '喜欢', '好看', '精彩', '推荐', '不错', '喜爱', '超赞']
NEGATIVE_WORDS = ['bad', 'terrible', 'boring', 'worst', 'disappoint', 'hate', '难看', '糟糕', '失望', '无聊', '一般', '欠缺']

NOUN_SUFFIXES = ['ment', 'ness', 'tion', 'sion', 'ity', 'er', 'or', 'ist', 'ism', 'age', 'ence', 'ship']
ADJ_SUFFIXES = ['able', 'ible', 'al', 'ful', 'ic', 'ive', 'less', 'ous', 'ish', 'y', 'ent', 'ant']
AFFIXES = tuple(NOUN_SUFFIXES + ADJ_SUFFIXES)

# Present on nearly every douban movie, so it tells nothing about taste.
DEFAULT_GENRE = '剧情'
UNKNOWN_GENRE = '未知类型'
UNKNOWN_REGION = '未知地区'
UNKNOWN_DECADE = '未知年代'
UNKNOWN_TITLE = '未知影片'

FIELD_SPLIT_RE = re.compile(r"[，,、/;|]+")
ISO_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})")
NON_WORD_RE = re.compile(r"[^\u4e00-\u9fffA-Za-z0-9]+")
LATIN_RE = re.compile(r"^[A-Za-z0-9]+$")
CJK_RUN_RE = re.compile(r"[\u4e00-\u9fff]+")
CJK_CHAR_RE = re.compile(r"[\u4e00-\u9fff]")
INFLECTION_RE = re.compile(r"(ing|ed|s)$")

RATING_BINS = [(f"{n}星", n, n) for n in range(1, 6)]
DURATION_BINS = [
    ("<90分钟", 0, 90),
    ("90-120分钟", 90, 120),
    ("120-150分钟", 120, 150),
    (">150分钟", 150, math.inf),
]
TWO_YEARS_DAYS = 365 * 2
TOP_KEYWORDS = 10
CREATOR_MIN_COUNT = 5


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def to_number(value):
    """Finite float for numeric values and numeric strings, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    try:
        s = str(value).strip()
        if not s:
            return None
        n = float(s)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def rating_of(item):
    return to_number(item.get("rating"))


def parse_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    m = ISO_DATE_RE.match(str(value or ""))
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def normalize_field(value):
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [v.strip() for v in FIELD_SPLIT_RE.split(str(value)) if v.strip()]


def normalize_genres(value):
    return [g for g in normalize_field(value) if g != DEFAULT_GENRE]


def comments_of(item):
    comments = item.get("comments")
    if isinstance(comments, list):
        return comments
    return [comments] if comments else []


def average(values):
    nums = [n for n in (to_number(v) for v in values) if n is not None]
    if not nums:
        return None
    return sum(nums) / len(nums)


def share(count, total, digits=1):
    if not total:
        return 0.0
    return round(count / total * 100, digits)


def round_or_none(value, digits=2):
    return None if value is None else round(value, digits)


# ---------------------------------------------------------------------------
# Buckets
# ---------------------------------------------------------------------------

def new_bucket():
    return {"count": 0, "ratingSum": 0.0, "ratingCount": 0}


def accumulate_bucket(buckets, key, rating):
    entry = buckets.get(key)
    if entry is None:
        entry = buckets[key] = new_bucket()
    entry["count"] += 1
    if rating is not None:
        entry["ratingSum"] += rating
        entry["ratingCount"] += 1


def bucket_avg(entry):
    return entry["ratingSum"] / entry["ratingCount"] if entry["ratingCount"] else None


def bucket_list(buckets, sort_by_key=True):
    rows = [{"key": k, "count": v["count"], "avg_rating": bucket_avg(v)} for k, v in buckets.items()]
    if sort_by_key:
        rows.sort(key=lambda r: r["key"])
    return rows


def aggregate_field_stats(items, extractor):
    """Per-value count and average rating, most frequent first."""
    buckets = {}
    for item in items:
        rating = rating_of(item)
        for val in extractor(item) or []:
            key = str(val).strip() if val is not None else ""
            if key:
                accumulate_bucket(buckets, key, rating)
    rows = [{"label": k, "count": v["count"], "avg_rating": bucket_avg(v)} for k, v in buckets.items()]
    rows.sort(key=lambda r: -r["count"])
    return rows


def frequency_map(items, extractor):
    counts = {}
    for item in items:
        for val in extractor(item):
            if val:
                counts[val] = counts.get(val, 0) + 1
    return sorted(counts.items(), key=lambda kv: -kv[1])


# ---------------------------------------------------------------------------
# Filtering and time
# ---------------------------------------------------------------------------

def filter_items(items, start=None, end=None):
    """
    Items dated within [start, end]; a missing bound is open. Items whose
    updated_at does not parse are always kept.
    """
    start = parse_date(start)
    end = parse_date(end)
    out = []
    for item in items:
        d = parse_date(item.get("updated_at"))
        if d is None:
            out.append(item)
            continue
        if start and d < start:
            continue
        if end and d > end:
            continue
        out.append(item)
    return out


def week_key(d):
    iso_year, iso_week, _ = d.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def build_time_aggregations(items):
    agg = {
        "daily": {},
        "weekly": {},
        "monthly": {},
        "yearly": {},
        "earliest": None,
        "latest": None,
        "dated_count": 0,
    }
    for item in items:
        d = parse_date(item.get("updated_at"))
        if d is None:
            continue
        agg["dated_count"] += 1
        if agg["earliest"] is None or d < agg["earliest"]:
            agg["earliest"] = d
        if agg["latest"] is None or d > agg["latest"]:
            agg["latest"] = d
        rating = rating_of(item)
        accumulate_bucket(agg["daily"], d.isoformat(), rating)
        accumulate_bucket(agg["weekly"], week_key(d), rating)
        accumulate_bucket(agg["monthly"], f"{d.year}-{d.month:02d}", rating)
        accumulate_bucket(agg["yearly"], str(d.year), rating)
    return agg


def monthly_pace(time_agg):
    if not time_agg["dated_count"] or not time_agg["monthly"]:
        return None
    return round(time_agg["dated_count"] / len(time_agg["monthly"]), 1)


def hide_yearly(start, end):
    start = parse_date(start)
    end = parse_date(end)
    return bool(start and end and (end - start).days < TWO_YEARS_DAYS)


def time_analysis(time_agg, yearly_hidden=False):
    monthly = bucket_list(time_agg["monthly"])
    yearly = bucket_list(time_agg["yearly"])
    out = {
        "monthly": monthly[-12:],
        "yearly": [] if yearly_hidden else yearly,
        "hide_yearly": yearly_hidden,
        "weekly_buckets": len(time_agg["weekly"]),
        "daily_buckets": len(time_agg["daily"]),
        "peak": None,
        "low": None,
        "trend": None,
        "monthly_pace": monthly_pace(time_agg),
        "earliest": time_agg["earliest"].isoformat() if time_agg["earliest"] else None,
        "latest": time_agg["latest"].isoformat() if time_agg["latest"] else None,
    }
    if monthly:
        peak = low = monthly[0]
        for row in monthly[1:]:
            if row["count"] > peak["count"]:
                peak = row
            if row["count"] < low["count"]:
                low = row
        out["peak"] = {"key": peak["key"], "count": peak["count"]}
        out["low"] = {"key": low["key"], "count": low["count"]}
        if len(monthly) > 1:
            delta = monthly[-1]["count"] - monthly[0]["count"]
            out["trend"] = "rising" if delta > 0 else ("falling" if delta < 0 else "stable")
    return out


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------

def rating_histogram(ratings):
    total = len(ratings)
    out = []
    for label, lo, hi in RATING_BINS:
        count = sum(1 for r in ratings if lo <= r <= hi)
        out.append({"label": label, "count": count, "share": share(count, total)})
    return out


def quantile(sorted_values, q):
    if not sorted_values:
        return None
    pos = (len(sorted_values) - 1) * q
    base = int(math.floor(pos))
    rest = pos - base
    if base + 1 < len(sorted_values):
        return sorted_values[base] + rest * (sorted_values[base + 1] - sorted_values[base])
    return sorted_values[base]


def compute_quantiles(ratings):
    if not ratings:
        return {}
    s = sorted(ratings)
    return {
        "min": s[0],
        "q1": quantile(s, 0.25),
        "median": quantile(s, 0.5),
        "q3": quantile(s, 0.75),
        "max": s[-1],
    }


def rating_analysis(items, time_agg):
    ratings = [r for r in (rating_of(i) for i in items) if r is not None]
    monthly = bucket_list(time_agg["monthly"])
    return {
        "histogram": rating_histogram(ratings),
        "quantiles": compute_quantiles(ratings),
        "timeline": monthly[-12:],
        "rated_count": len(ratings),
    }


# ---------------------------------------------------------------------------
# Summary cards and top lists
# ---------------------------------------------------------------------------

def summary_cards(items):
    ratings = [r for r in (rating_of(i) for i in items) if r is not None]
    durations = [d for d in (to_number(i.get("duration_minutes")) for i in items) if d is not None]
    comment_chars = sum(len(str(c)) for i in items for c in comments_of(i) if c)
    avg_rating = average(ratings)
    avg_duration = average(durations)
    return {
        "total": len(items),
        "avg_rating": round_or_none(avg_rating),
        "avg_duration_minutes": None if avg_duration is None else int(round(avg_duration)),
        "total_hours": round(sum(durations) / 60, 1) if durations else None,
        "comment_chars": comment_chars,
    }


def _rating_label(item):
    r = rating_of(item)
    if r is None:
        return []
    return [f"{item.get('rating')} 星"]


def top_lists(items, limit=5):
    return {
        "genres": frequency_map(items, lambda i: normalize_genres(i.get("genres")))[:limit],
        "languages": frequency_map(items, lambda i: normalize_field(i.get("languages")))[:limit],
        "ratings": frequency_map(items, _rating_label)[:limit],
    }


# ---------------------------------------------------------------------------
# Genres, creators, regions, durations, decades
# ---------------------------------------------------------------------------

def genre_combo_stats(items):
    """Tally of each item's first two genres, joined order-independently."""
    buckets = {}
    for item in items:
        genres = [g.strip() for g in normalize_genres(item.get("genres"))[:2] if g.strip()]
        if not genres:
            continue
        key = " × ".join(sorted(genres))
        accumulate_bucket(buckets, key, rating_of(item))
    rows = [{"label": k, "count": v["count"], "avg_rating": bucket_avg(v)} for k, v in buckets.items()]
    rows.sort(key=lambda r: -r["count"])
    return rows


def genre_preference(items):
    return {
        "preference": aggregate_field_stats(items, lambda i: normalize_genres(i.get("genres")))[:8],
        "combos": genre_combo_stats(items)[:10],
    }


CREATOR_ROLES = (
    ("directors", "导演"),
    ("writers", "编剧"),
    ("actors", "演员"),
)


def creator_stats(items, min_count=CREATOR_MIN_COUNT, limit=50):
    out = {}
    for field, role in CREATOR_ROLES:
        rows = aggregate_field_stats(items, lambda i, f=field: normalize_field(i.get(f)))
        out[field] = [dict(r, role=role) for r in rows if r["count"] >= min_count][:limit]
    return out


def _with_share(rows, limit=10):
    total = sum(r["count"] for r in rows)
    return [dict(r, share=share(r["count"], total)) for r in rows[:limit]]


def region_language_stats(items):
    return {
        "regions": _with_share(aggregate_field_stats(items, lambda i: normalize_field(i.get("regions")))),
        "languages": _with_share(aggregate_field_stats(items, lambda i: normalize_field(i.get("languages")))),
    }


def duration_bins(items):
    stats = [dict(label=label, min=lo, max=hi, **new_bucket()) for label, lo, hi in DURATION_BINS]
    for item in items:
        d = to_number(item.get("duration_minutes"))
        if d is None:
            continue
        for b in stats:
            if b["min"] <= d < b["max"]:
                b["count"] += 1
                r = rating_of(item)
                if r is not None:
                    b["ratingSum"] += r
                    b["ratingCount"] += 1
                break
    total = len(items)
    return [
        {"label": b["label"], "count": b["count"], "share": share(b["count"], total), "avg_rating": bucket_avg(b)}
        for b in stats
    ]


def decade_label(year):
    y = to_number(year)
    if y is None:
        return UNKNOWN_DECADE
    return f"{int(math.floor(y / 10) * 10)}s"


def decade_summary(items):
    buckets = {}
    for item in items:
        if to_number(item.get("release_year")) is None:
            continue
        accumulate_bucket(buckets, decade_label(item.get("release_year")), rating_of(item))
    return [
        {"label": r["key"], "count": r["count"], "avg_rating": r["avg_rating"]}
        for r in bucket_list(buckets)
    ]


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

def _has_affix(token):
    return token.endswith(AFFIXES)


def build_keywords(text, top_n=TOP_KEYWORDS):
    """
    Rank keyword candidates in free text. Latin words are kept by length and
    suffix rules; CJK runs contribute every 2..4 character n-gram.
    """
    if not text:
        return []
    tokens = []
    for part in NON_WORD_RE.sub(" ", text).split():
        if LATIN_RE.match(part):
            word = part.lower()
            if len(word) < 3 or word in STOP_WORDS:
                continue
            if INFLECTION_RE.search(word) and len(word) <= 5:
                continue
            if _has_affix(word) or len(word) >= 4:
                tokens.append(word)
            continue
        for seq in CJK_RUN_RE.findall(part):
            max_n = min(4, len(seq))
            for n in range(2, max_n + 1):
                for i in range(len(seq) - n + 1):
                    gram = seq[i:i + n]
                    if gram not in STOP_WORDS:
                        tokens.append(gram)

    freq = {}
    for token in tokens:
        if token and len(token) <= 30:
            freq[token] = freq.get(token, 0) + 1

    def rank(entry):
        token, count = entry
        return (-count, not CJK_CHAR_RE.search(token), not _has_affix(token), len(token))

    return sorted(freq.items(), key=rank)[:top_n]


def sentiment_breakdown(texts):
    result = {"positive": 0, "neutral": 0, "negative": 0}
    for text in texts:
        lower = text.lower()
        score = sum(1 for w in POSITIVE_WORDS if w.lower() in lower)
        score -= sum(1 for w in NEGATIVE_WORDS if w.lower() in lower)
        if score > 0:
            result["positive"] += 1
        elif score < 0:
            result["negative"] += 1
        else:
            result["neutral"] += 1
    return result


def comment_analysis(items):
    comments = []
    longest = {"length": 0, "title": ""}
    for item in items:
        title = item.get("title") or UNKNOWN_TITLE
        for text in comments_of(item):
            if not text:
                continue
            content = str(text).strip()
            if not content:
                continue
            comments.append({"text": content, "title": title})
            if len(content) > longest["length"]:
                longest = {"length": len(content), "title": title}

    total_chars = sum(len(c["text"]) for c in comments)
    texts = [c["text"] for c in comments]
    return {
        "count": len(comments),
        "total_chars": total_chars,
        "avg_length": round(total_chars / len(comments), 1) if comments else None,
        "longest": longest if longest["length"] else None,
        "keywords": [{"word": w, "count": n} for w, n in build_keywords(" ".join(texts))] if comments else [],
        "sentiment": sentiment_breakdown(texts),
    }


# ---------------------------------------------------------------------------
# Correlations and persona
# ---------------------------------------------------------------------------

def correlations(items, min_count=2, limit=8):
    buckets = {}
    for item in items:
        genre = (normalize_genres(item.get("genres")) or [UNKNOWN_GENRE])[0]
        region = (normalize_field(item.get("regions")) or [UNKNOWN_REGION])[0]
        decade = decade_label(item.get("release_year"))
        accumulate_bucket(buckets, f"{genre} × {region} × {decade}", rating_of(item))
    rows = [
        {"label": k, "count": v["count"], "avg_rating": bucket_avg(v)}
        for k, v in buckets.items() if v["count"] >= min_count
    ]
    rows.sort(key=lambda r: -(r["avg_rating"] or 0))
    return rows[:limit]


def persona(items, time_agg):
    genres = aggregate_field_stats(items, lambda i: normalize_genres(i.get("genres")))
    regions = aggregate_field_stats(items, lambda i: normalize_field(i.get("regions")))
    languages = aggregate_field_stats(items, lambda i: normalize_field(i.get("languages")))
    directors = aggregate_field_stats(items, lambda i: normalize_field(i.get("directors")))

    def top(rows, with_count=False):
        if not rows:
            return None
        if with_count:
            return {"label": rows[0]["label"], "count": rows[0]["count"]}
        return rows[0]["label"]

    best = None
    for g in genres:
        if g["avg_rating"] is None:
            continue
        if best is None or g["avg_rating"] > best["avg_rating"]:
            best = g

    return {
        "monthly_pace": monthly_pace(time_agg),
        "top_genre": top(genres, with_count=True),
        "top_region": top(regions),
        "top_language": top(languages),
        "top_director": top(directors, with_count=True),
        "best_rated_genre": {"label": best["label"], "avg_rating": best["avg_rating"]} if best else None,
    }


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

def _section(name, fn, *args):
    try:
        return fn(*args)
    except Exception as e:
        print(f"Analysis section {name} failed: {e}")
        traceback.print_exc()
        return None


def build_dashboard(items, start=None, end=None):
    """
    Every dashboard section for the items dated within [start, end]. A
    section that fails is logged and reported as None; the others still run.
    """
    items = [i for i in (items or []) if isinstance(i, dict)]
    filtered = filter_items(items, start, end)
    time_agg = build_time_aggregations(filtered)
    start_d = parse_date(start)
    end_d = parse_date(end)
    return {
        "range": {
            "start": start_d.isoformat() if start_d else None,
            "end": end_d.isoformat() if end_d else None,
        },
        "summary": _section("summary", summary_cards, filtered),
        "top_lists": _section("top_lists", top_lists, filtered),
        "time": _section("time", time_analysis, time_agg, hide_yearly(start_d, end_d)),
        "rating": _section("rating", rating_analysis, filtered, time_agg),
        "genres": _section("genres", genre_preference, filtered),
        "creators": _section("creators", creator_stats, filtered),
        "regions_languages": _section("regions_languages", region_language_stats, filtered),
        "durations": _section("durations", duration_bins, filtered),
        "decades": _section("decades", decade_summary, filtered),
        "comments": _section("comments", comment_analysis, filtered),
        "correlations": _section("correlations", correlations, filtered),
        "persona": _section("persona", persona, filtered, time_agg),
    }
