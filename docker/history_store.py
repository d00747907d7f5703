import json
import os
import tempfile

import douban_config


def history_path(category, data_dir=None):
    return os.path.join(data_dir or douban_config.DATA_DIR, f"{category}.json")


def load_history(category, data_dir=None):
    """
    Load the accumulated item list for a category. Returns an empty list if
    the document does not exist or cannot be parsed; entries that are not
    objects are dropped.
    """
    path = history_path(category, data_dir)
    try:
        if os.path.exists(path):
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            items = data.get("items") if isinstance(data, dict) else None
            if isinstance(items, list):
                return [it for it in items if isinstance(it, dict)]
    except Exception as e:
        print(f"History load error for {category}: {e}")
    return []


def save_history(category, items, data_dir=None):
    """
    Rewrite the whole category document as ``{"items": [...]}``. The file is
    written to a temp file next to the target and renamed over it.
    """
    path = history_path(category, data_dir)
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{category}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"items": items}, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        # mkstemp creates owner-only files
        os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
    return path
