"""
Endpoint tests for the tracker's Flask server.
"""

import threading

import pytest

import douban_config
import watch_tracker
from history_store import save_history


class FakeResponse:
    def __init__(self, ok=True, content=b"\xff\xd8jpeg"):
        self.ok = ok
        self.status_code = 200 if ok else 404
        self.content = content


@pytest.fixture
def data_dir(monkeypatch, tmp_path):
    monkeypatch.setattr(douban_config, "DATA_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def client(data_dir):
    watch_tracker.app.config["TESTING"] = True
    return watch_tracker.app.test_client()


class TestCacheImage:
    def test_writes_jpeg_by_id(self, client, data_dir, monkeypatch):
        monkeypatch.setattr(watch_tracker.requests, "get", lambda url, **kw: FakeResponse())
        resp = client.post("/api/cache-image", json={"pic_id": "p1292052", "url": "https://img.example/a.jpg"})
        assert resp.status_code == 200
        assert (data_dir / "pic" / "p1292052.jpg").read_bytes() == b"\xff\xd8jpeg"

    def test_overwrites_existing(self, client, data_dir, monkeypatch):
        monkeypatch.setattr(watch_tracker.requests, "get", lambda url, **kw: FakeResponse(content=b"one"))
        client.post("/api/cache-image", json={"id": "x", "url": "https://img.example/a.jpg"})
        monkeypatch.setattr(watch_tracker.requests, "get", lambda url, **kw: FakeResponse(content=b"two"))
        client.post("/api/cache-image", json={"id": "x", "url": "https://img.example/a.jpg"})
        assert (data_dir / "pic" / "x.jpg").read_bytes() == b"two"

    def test_missing_fields(self, client):
        resp = client.post("/api/cache-image", json={"url": "https://img.example/a.jpg"})
        assert resp.status_code == 400

    def test_remote_failure(self, client, monkeypatch):
        monkeypatch.setattr(watch_tracker.requests, "get", lambda url, **kw: FakeResponse(ok=False))
        resp = client.post("/api/cache-image", json={"pic_id": "p1", "url": "https://img.example/a.jpg"})
        assert resp.status_code == 502


class TestFresh:
    def test_success(self, client, monkeypatch):
        monkeypatch.setattr(watch_tracker, "scrape_all", lambda: {"movies": {"new": 1, "total": 1}})
        resp = client.get("/api/fresh")
        assert resp.status_code == 200
        assert resp.get_json()["success"] is True

    def test_category_failure_reported(self, client, monkeypatch):
        monkeypatch.setattr(watch_tracker, "scrape_all", lambda: {"movies": {"error": "Request failed 500"}})
        resp = client.get("/api/fresh")
        assert resp.status_code == 500
        assert resp.get_json()["results"]["movies"]["error"] == "Request failed 500"

    def test_exception_releases_lock(self, client, monkeypatch):
        def boom():
            raise douban_config.MissingCredentialsError("DOUBAN_COOKIE is not set")

        monkeypatch.setattr(watch_tracker, "scrape_all", boom)
        assert client.get("/api/fresh").status_code == 500
        assert not watch_tracker.refresh_lock.busy

    def test_overlapping_requests(self, data_dir, monkeypatch):
        started = threading.Event()
        finish = threading.Event()

        def slow_scrape():
            started.set()
            finish.wait(5)
            return {"movies": {"new": 0, "total": 0}}

        monkeypatch.setattr(watch_tracker, "scrape_all", slow_scrape)
        statuses = []

        def first_request():
            statuses.append(watch_tracker.app.test_client().get("/api/fresh").status_code)

        worker = threading.Thread(target=first_request)
        worker.start()
        assert started.wait(5)
        statuses.append(watch_tracker.app.test_client().get("/api/fresh").status_code)
        finish.set()
        worker.join(5)

        assert sorted(statuses) == [200, 409]


class TestAnalysisEndpoint:
    def test_dashboard_payload(self, client, data_dir):
        save_history("movies", [
            {"title": "a", "link": "l1", "rating": 5, "updated_at": "2020-06-15", "genres": ["剧情", "犯罪"]},
            {"title": "b", "link": "l2", "rating": 3, "updated_at": "2021-06-15", "genres": "喜剧"},
        ], str(data_dir))

        resp = client.get("/api/analysis?year=2020")
        body = resp.get_json()

        assert resp.status_code == 200
        assert resp.headers["Cache-Control"].startswith("no-store")
        assert body["success"] is True
        assert body["filter"]["preset"] == "custom"
        assert body["summary"]["total"] == 1
        assert body["rating"]["quantiles"]["median"] == 5
        assert body["filter"]["year_options"]["years"][:2] == [2021, 2020]

    def test_empty_history(self, client):
        body = client.get("/api/analysis?preset=all").get_json()
        assert body["summary"]["total"] == 0
        assert body["persona"]["top_genre"] is None

    def test_stray_history_entries_do_not_break_dashboard(self, client, data_dir):
        (data_dir / "movies.json").write_text(
            '{"items": [{"title": "a", "link": "l1", "rating": 4, "updated_at": "2020-06-15"}, "junk", 3]}',
            encoding="utf-8",
        )
        resp = client.get("/api/analysis?preset=all")
        assert resp.status_code == 200
        assert resp.get_json()["summary"]["total"] == 1

    def test_out_of_range_year_is_ignored(self, client):
        resp = client.get("/api/analysis?year=99999")
        assert resp.status_code == 200
        assert resp.get_json()["filter"]["preset"] == "this-year"

    def test_data_document_served(self, client, data_dir):
        save_history("movies", [{"title": "a", "link": "l1"}], str(data_dir))
        resp = client.get("/data/movies.json")
        assert resp.status_code == 200
        assert resp.get_json() == {"items": [{"title": "a", "link": "l1"}]}


class TestStaticFiles:
    @pytest.fixture
    def static_dir(self, monkeypatch, tmp_path):
        root = tmp_path / "static"
        (root / "scripts").mkdir(parents=True)
        (root / "index.html").write_text("<html>index</html>", encoding="utf-8")
        (root / "scripts" / "app.js").write_text("console.log(1);", encoding="utf-8")
        monkeypatch.setattr(douban_config, "STATIC_DIR", str(root))
        return root

    def test_index_and_assets(self, client, static_dir):
        assert client.get("/").data == b"<html>index</html>"
        resp = client.get("/scripts/app.js")
        assert resp.status_code == 200
        assert resp.data == b"console.log(1);"

    def test_missing_asset(self, client, static_dir):
        assert client.get("/scripts/nope.js").status_code == 404

    def test_api_routes_are_not_shadowed(self, client, static_dir):
        assert client.get("/api/refresh_status").get_json()["success"] is True
