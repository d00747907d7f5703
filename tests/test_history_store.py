import json
import os

from history_store import history_path, load_history, save_history


def test_missing_document_is_empty(tmp_path):
    assert load_history("movies", tmp_path) == []


def test_unparseable_document_is_empty(tmp_path):
    (tmp_path / "books.json").write_text("{not json", encoding="utf-8")
    assert load_history("books", tmp_path) == []


def test_document_without_items_list_is_empty(tmp_path):
    (tmp_path / "music.json").write_text(json.dumps({"items": "nope"}), encoding="utf-8")
    assert load_history("music", tmp_path) == []


def test_non_object_entries_are_dropped(tmp_path):
    (tmp_path / "movies.json").write_text(
        json.dumps({"items": [{"link": "a"}, "junk", None, 3, ["x"], {"link": "b"}]}), encoding="utf-8")
    assert load_history("movies", tmp_path) == [{"link": "a"}, {"link": "b"}]


def test_saved_document_is_world_readable(tmp_path):
    path = save_history("books", [{"link": "a"}], tmp_path)
    assert os.stat(path).st_mode & 0o777 == 0o644


def test_save_creates_directory_and_round_trips(tmp_path):
    target = tmp_path / "nested" / "data"
    items = [{"title": "肖申克的救赎", "link": "https://movie.douban.com/subject/1292052/", "rating": 5}]

    path = save_history("movies", items, target)

    assert path == history_path("movies", target)
    raw = (target / "movies.json").read_text(encoding="utf-8")
    assert "肖申克的救赎" in raw
    assert raw.startswith("{\n")
    assert json.loads(raw) == {"items": items}
    assert load_history("movies", target) == items


def test_save_rewrites_whole_document(tmp_path):
    save_history("games", [{"link": "a"}, {"link": "b"}], tmp_path)
    save_history("games", [{"link": "c"}], tmp_path)
    assert load_history("games", tmp_path) == [{"link": "c"}]
    assert [p.name for p in tmp_path.iterdir()] == ["games.json"]
