import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    v = os.getenv(name)
    if v is None:
        return default
    s = str(v).strip().lower()
    return s in ("1", "true", "yes", "y", "on")

def _env_int(name, default):
    try:
        v = os.getenv(name, None)
        if v is None:
            return default
        return int(str(v).strip())
    except Exception:
        return default


class MissingCredentialsError(RuntimeError):
    pass


class FetchError(RuntimeError):
    pass


COOKIE = os.getenv("DOUBAN_COOKIE", "")
USER_ID = os.getenv("DOUBAN_USER_ID", "")

DATA_DIR = os.getenv("DATA_DIR", "./data")
# Directory holding index.html / analysis.html and their assets.
STATIC_DIR = os.getenv("STATIC_DIR", os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
PORT = _env_int("PORT", 3000)
DEBUG = _env_bool("FLASK_DEBUG", default=False)

USER_AGENT = "Mozilla/5.0"
REQUEST_TIMEOUT_S = _env_int("REQUEST_TIMEOUT_S", 20)
MOVIE_DETAIL_DELAY_MS = _env_int("MOVIE_DETAIL_DELAY_MS", 800)
PAGE_DELAY_MS = _env_int("PAGE_DELAY_MS", 1300)
PAGE_SIZE = _env_int("PAGE_SIZE", 15)
MAX_PAGES = _env_int("MAX_PAGES", 1000)

# Scrape order for a full refresh.
CATEGORIES = ("movies", "books", "music", "games")


def category_urls(user_id=None):
    """
    Base listing URL per category. The page offset is appended as
    ``start=<n>`` so every base ends with ``?`` or ``&``.
    """
    uid = user_id if user_id is not None else USER_ID
    return {
        "movies": f"https://movie.douban.com/people/{uid}/collect?",
        "books": f"https://book.douban.com/people/{uid}/collect?",
        "games": f"https://www.douban.com/people/{uid}/games?action=collect&",
        "music": f"https://music.douban.com/people/{uid}/collect?",
    }


def require_credentials(cookie=None, user_id=None):
    cookie = COOKIE if cookie is None else cookie
    user_id = USER_ID if user_id is None else user_id
    if not cookie:
        raise MissingCredentialsError("DOUBAN_COOKIE is not set")
    if not user_id:
        raise MissingCredentialsError("DOUBAN_USER_ID is not set")
    return cookie, user_id
