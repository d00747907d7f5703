"""
Incremental scraper for douban collection pages.

Pages of one category are fetched strictly one after another. After every
page the merged history is written back, so a failure part-way through a
run keeps everything saved before it.
"""
import threading
import time

import requests

import douban_config
from douban_config import FetchError
from douban_parse import parse_listing, parse_movie_detail
from history_store import load_history, save_history

STOP_EXHAUSTED = "exhausted"
STOP_CAUGHT_UP = "caught-up"
STOP_MAX_PAGES = "max-pages"


def fetch_page(url, cookie=None):
    resp = requests.get(
        url,
        headers={
            "cookie": douban_config.COOKIE if cookie is None else cookie,
            "user-agent": douban_config.USER_AGENT,
        },
        timeout=douban_config.REQUEST_TIMEOUT_S,
    )
    if not resp.ok:
        raise FetchError(f"Request failed {resp.status_code}: {url}")
    return resp.text


def fetch_movie_detail(link):
    """
    Fetch one movie detail page after the courtesy delay. Any failure is
    logged and turns into an empty overlay so the caller's page keeps going.
    """
    try:
        time.sleep(douban_config.MOVIE_DETAIL_DELAY_MS / 1000.0)
        html = fetch_page(link)
        return parse_movie_detail(html)
    except Exception as e:
        print(f"Failed to fetch movie detail {link}: {e}")
        return {}


def parse_items(html, category, known_links=None):
    items, queue = parse_listing(html, category, known_links)
    for item in queue:
        print(f"Fetching detail for movie: {item['title']}")
        item.update(fetch_movie_detail(item["link"]))
    return items


def fetch_with_pagination(category, base_url=None, data_dir=None):
    """
    Walk the listing pages of ``category`` from offset 0 and merge newly seen
    items into its history.

    Stops on an empty page, on a page without any new item (after saving it),
    or after MAX_PAGES pages. Listing fetch errors propagate to the caller.
    """
    base = base_url or douban_config.category_urls()[category]
    page_size = douban_config.PAGE_SIZE
    history = load_history(category, data_dir)
    known_links = {it.get("link") for it in history if it.get("link")}

    start = 0
    pages = 0
    added = 0
    stopped = STOP_MAX_PAGES
    for _ in range(douban_config.MAX_PAGES):
        url = f"{base}start={start}"
        print(f"Fetching {category} page start={start}")
        html = fetch_page(url)
        items = parse_items(html, category, known_links)
        pages += 1
        if not items:
            print("No more items, stop paging.")
            stopped = STOP_EXHAUSTED
            break

        new_ones = []
        for it in items:
            link = it.get("link")
            if link and link not in known_links:
                known_links.add(link)
                new_ones.append(it)

        history = new_ones + history
        save_history(category, history, data_dir)
        added += len(new_ones)
        print(f"{category}: saved page start={start}, pageNew={len(new_ones)}, total={len(history)}")

        if not new_ones:
            print("Page contains no new items, stop paging.")
            stopped = STOP_CAUGHT_UP
            break

        time.sleep(douban_config.PAGE_DELAY_MS / 1000.0)
        start += page_size

    print(f"{category}: finished. history={len(history)}")
    return {"new": added, "total": len(history), "pages": pages, "stopped": stopped}


def scrape_all(categories=None, data_dir=None):
    """
    Full refresh of every category. Missing credentials abort before any
    request; a failing category is reported and the next one still runs.
    """
    douban_config.require_credentials()
    results = {}
    for category in categories or douban_config.CATEGORIES:
        try:
            results[category] = fetch_with_pagination(category, data_dir=data_dir)
        except Exception as e:
            print(f"{category}: scrape aborted: {e}")
            results[category] = {"error": str(e)}
    return results


class RefreshLock:
    """
    Non-blocking guard around a full scrape. A second caller is turned away
    instead of queued.
    """

    def __init__(self):
        self._lock = threading.Lock()

    def try_acquire(self):
        return self._lock.acquire(blocking=False)

    def release(self):
        self._lock.release()

    @property
    def busy(self):
        return self._lock.locked()

    def run(self, fn, *args, **kwargs):
        """
        Run ``fn`` while holding the lock. Returns ``(True, result)``, or
        ``(False, None)`` without calling ``fn`` when a run is in progress.
        """
        if not self.try_acquire():
            return False, None
        try:
            return True, fn(*args, **kwargs)
        finally:
            self.release()
            print("Fetch lock released")


if __name__ == "__main__":
    for name, res in scrape_all().items():
        print(f"{name}: {res}")
