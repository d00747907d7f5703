"""
HTML extraction for douban "collect" listing pages and movie detail pages.

Everything here is pure: HTML text in, plain dicts out. Network access and
rate limiting live in douban_fetch.
"""
import re
from collections import namedtuple

from bs4 import BeautifulSoup, NavigableString, Tag, Comment


DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
RATING_T_RE = re.compile(r"rating([1-5])-t")
ALLSTAR_RE = re.compile(r"allstar([1-5])")
TITLE_SPLIT_RE = re.compile(r"\s*/\s*")
VALUE_SPLIT_RE = re.compile(r"\s+/\s+")
DURATION_RE = re.compile(r"(\d+)\s*分钟?")
DIGITS_RE = re.compile(r"(\d+)")
YEAR_RE = re.compile(r"(\d{4})")

# Music rows carry a "修改" (edit) link in the comment slot when no comment exists.
MODIFIED_MARKER = "修改"

# Labels used in the #info block of a movie detail page.
LABEL_DIRECTORS = "导演"
LABEL_WRITERS = "编剧"
LABEL_ACTORS = "主演"
LABEL_GENRES = "类型"
LABEL_REGIONS = "制片国家/地区"
LABEL_LANGUAGES = "语言"
LABEL_RELEASE = "上映日期"
LABEL_RUNTIME = "片长"


class Node:
    """Query wrapper around one parsed element."""

    def __init__(self, tag):
        self._tag = tag

    @classmethod
    def from_html(cls, html):
        return cls(BeautifulSoup(html or "", "lxml"))

    @property
    def name(self):
        return self._tag.name

    def select(self, css):
        return [Node(t) for t in self._tag.select(css)]

    def select_one(self, css):
        t = self._tag.select_one(css)
        return Node(t) if t is not None else None

    def attr(self, name, default=""):
        v = self._tag.get(name)
        if v is None:
            return default
        if isinstance(v, (list, tuple)):
            return " ".join(v)
        return v

    def text(self):
        return self._tag.get_text()

    def text_of(self, css):
        """Concatenated text of every match, like a jQuery ``.text()`` call."""
        return "".join(t.get_text() for t in self._tag.select(css))

    def parent(self):
        p = self._tag.parent
        return Node(p) if isinstance(p, Tag) else None

    def child_with_class(self, cls):
        for c in self._tag.find_all(True, recursive=False):
            if cls in (c.get("class") or []):
                return Node(c)
        return None

    def class_tokens(self):
        """Class attribute strings of this element and all descendants, in document order."""
        out = []
        own = self._tag.get("class") if isinstance(self._tag, Tag) else None
        if own:
            out.append(" ".join(own))
        for d in self._tag.find_all(True):
            cls = d.get("class")
            if cls:
                out.append(" ".join(cls))
        return out

    def following_siblings(self):
        """Yield Node for element siblings and str for text siblings."""
        for sib in self._tag.next_siblings:
            if isinstance(sib, Tag):
                yield Node(sib)
            elif isinstance(sib, NavigableString) and not isinstance(sib, Comment):
                yield str(sib)


def collapse_ws(text):
    return re.sub(r"\s+", " ", text or "").strip()


# ---------------------------------------------------------------------------
# Listing fields
# ---------------------------------------------------------------------------

def _title_anchor(node):
    titled = node.select("h2 a[title]")
    if titled:
        return titled[0]
    links = node.select(".title a")
    return links[0] if links else None


def extract_title(node):
    """Return (title, title_arr, link) for a listing node."""
    anchor = _title_anchor(node)
    if anchor is None:
        return "", "", ""
    raw = anchor.attr("title") or anchor.text()
    normalized = collapse_ws(raw)
    parts = TITLE_SPLIT_RE.split(normalized) if normalized else []
    return (parts[0] if parts else ""), normalized, anchor.attr("href")


def extract_cover(node):
    img = node.select_one("img")
    return img.attr("src") if img is not None else ""


def extract_rating(node):
    classes = " ".join(node.class_tokens())
    m = RATING_T_RE.search(classes)
    if m:
        return int(m.group(1))
    m = ALLSTAR_RE.search(classes)
    if m:
        return int(m.group(1))
    return ""


def extract_date(text):
    m = DATE_RE.search(text or "")
    return m.group(0) if m else ""


def extract_desc(node):
    return node.text_of(".intro").strip() or node.text_of(".pub").strip()


def _nth_text(node, css, index):
    found = node.select(css)
    if len(found) <= index:
        return ""
    return found[index].text().strip()


def comment_default(node):
    return node.text_of(".comment").strip()


def comment_games(node):
    return _nth_text(node, ".content > div", 2)


def comment_music(node):
    comment = _nth_text(node, ".info > ul > li", 3)
    if comment.startswith(MODIFIED_MARKER):
        return ""
    return comment


# ---------------------------------------------------------------------------
# Category dispatch
# ---------------------------------------------------------------------------

CategoryKind = namedtuple("CategoryKind", ["name", "selector", "comment", "has_desc", "wants_detail"])

DEFAULT_KIND = CategoryKind("books", ".subject-item", comment_default, True, False)

CATEGORY_KINDS = {
    "books": DEFAULT_KIND,
    "movies": CategoryKind("movies", ".comment-item", comment_default, False, True),
    "music": CategoryKind("music", ".comment-item", comment_music, True, False),
    "games": CategoryKind("games", ".common-item", comment_games, True, False),
}


def kind_for(category):
    return CATEGORY_KINDS.get(category, DEFAULT_KIND)


def parse_node(node, kind):
    title, title_arr, link = extract_title(node)
    comment = kind.comment(node)
    item = {
        "title": title,
        "title_arr": title_arr,
        "link": link,
        "cover": extract_cover(node),
        "rating": extract_rating(node),
        "updated_at": extract_date(node.text_of(".date").strip()),
        "comments": [comment] if comment else [],
    }
    if kind.has_desc:
        item["desc"] = extract_desc(node)
    return item


def parse_listing(html, category, known_links=None):
    """
    Parse one listing page.

    Returns ``(items, detail_queue)`` where detail_queue lists, in page order,
    the movie items whose link is not in ``known_links`` and so still need a
    detail-page fetch. The queue is always empty for non-movie categories.
    """
    known_links = known_links or set()
    kind = kind_for(category)
    root = Node.from_html(html)
    items = []
    queue = []
    queued = set()
    for node in root.select(kind.selector):
        item = parse_node(node, kind)
        items.append(item)
        link = item["link"]
        if kind.wants_detail and link and link not in known_links and link not in queued:
            queued.add(link)
            queue.append(item)
    return items, queue


# ---------------------------------------------------------------------------
# Movie detail page
# ---------------------------------------------------------------------------

def clean_info_text(text):
    text = (text or "").replace("\xa0", " ").replace("更多...", "")
    text = re.sub(r"^[：:\s]+", "", text)
    return collapse_ws(text)


def collect_info_field(info, label):
    label_span = None
    for span in info.select("span.pl"):
        if span.text().strip().startswith(label):
            label_span = span
            break
    if label_span is None:
        return ""

    parent = label_span.parent()
    if parent is not None and parent.name == "span":
        attrs = parent.child_with_class("attrs")
        if attrs is not None:
            return clean_info_text(attrs.text())

    segments = []
    for sib in label_span.following_siblings():
        if isinstance(sib, str):
            segments.append(sib)
            continue
        if sib.name == "br":
            break
        segments.append(sib.text())
    return clean_info_text("".join(segments))


def split_values(text):
    if not text:
        return []
    return [p.strip() for p in VALUE_SPLIT_RE.split(text) if p.strip()]


def format_field(values):
    # One value is stored bare, several as a list; stored documents rely on it.
    if not values:
        return ""
    return values[0] if len(values) == 1 else values


def extract_duration_minutes(values):
    for value in values:
        m = DURATION_RE.search(value)
        if m:
            return int(m.group(1))
    for value in values:
        m = DIGITS_RE.search(value)
        if m:
            return int(m.group(1))
    return ""


def extract_release_year(values):
    years = []
    for value in values:
        m = YEAR_RE.search(value)
        if m:
            years.append(int(m.group(1)))
    return min(years) if years else None


def parse_movie_detail(html):
    """Structured metadata from a movie detail page; {} when there is no #info block."""
    info = Node.from_html(html).select_one("#info")
    if info is None:
        return {}

    def grab(label):
        return split_values(collect_info_field(info, label))

    res = {
        "directors": format_field(grab(LABEL_DIRECTORS)),
        "writers": format_field(grab(LABEL_WRITERS)),
        "actors": format_field(grab(LABEL_ACTORS)),
        "genres": format_field(grab(LABEL_GENRES)),
        "regions": format_field(grab(LABEL_REGIONS)),
        "languages": format_field(grab(LABEL_LANGUAGES)),
        "duration_minutes": extract_duration_minutes(grab(LABEL_RUNTIME)),
    }
    release_year = extract_release_year(grab(LABEL_RELEASE))
    if release_year:
        res["release_year"] = release_year
    return res
