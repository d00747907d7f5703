from flask import Flask, request, jsonify, send_from_directory
import os
import traceback

import requests
from werkzeug.utils import secure_filename

import douban_config
from analysis import build_dashboard
from analysis_filters import FilterController, year_options
from douban_fetch import RefreshLock, scrape_all
from history_store import load_history

app = Flask(__name__)

refresh_lock = RefreshLock()


@app.after_request
def add_no_cache_headers(response):
    """
    Prevent stale dashboard pages and API responses in browser caches.
    """
    try:
        p = request.path or ""
        if p == "/" or p == "/analysis" or p.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
    except Exception:
        pass
    return response


@app.route("/")
def index():
    return send_from_directory(douban_config.STATIC_DIR, "index.html")


@app.route("/analysis")
def analysis_page():
    return send_from_directory(douban_config.STATIC_DIR, "analysis.html")


@app.route("/<path:filename>")
def serve_static(filename):
    return send_from_directory(douban_config.STATIC_DIR, filename)


@app.route("/data/<path:filename>")
def serve_data(filename):
    return send_from_directory(os.path.abspath(douban_config.DATA_DIR), filename)


@app.route("/api/cache-image", methods=["POST"])
def api_cache_image():
    """
    Download a cover image and store it as <DATA_DIR>/pic/<id>.jpg. An
    existing file for the same id is overwritten.
    """
    body = request.get_json(silent=True) or {}
    pic_id = body.get("pic_id") or body.get("id")
    url = body.get("url")
    if not pic_id or not url:
        return jsonify({"success": False, "error": "missing id or url"}), 400

    filename = secure_filename(f"{pic_id}.jpg")
    if not filename or filename == "jpg":
        return jsonify({"success": False, "error": "invalid id"}), 400

    try:
        r = requests.get(url, headers={"user-agent": douban_config.USER_AGENT},
                         timeout=douban_config.REQUEST_TIMEOUT_S)
    except requests.RequestException as e:
        print(f"Image fetch error for {url}: {e}")
        return jsonify({"success": False, "error": "fetch remote failed"}), 502
    if not r.ok:
        return jsonify({"success": False, "error": "fetch remote failed"}), 502

    try:
        pic_dir = os.path.join(douban_config.DATA_DIR, "pic")
        os.makedirs(pic_dir, exist_ok=True)
        with open(os.path.join(pic_dir, filename), "wb") as f:
            f.write(r.content)
    except Exception as e:
        print(f"Image cache error: {e}")
        traceback.print_exc()
        return jsonify({"success": False, "error": "cache failed"}), 500
    return jsonify({"success": True, "file": filename})


@app.route("/api/fresh", methods=["GET", "POST"])
def api_fresh():
    """
    Run a full scrape. Only one run may be in flight; an overlapping request
    gets 409 instead of waiting.
    """
    try:
        acquired, results = refresh_lock.run(scrape_all)
    except Exception as e:
        print(f"Fetch failed: {e}")
        traceback.print_exc()
        return jsonify({"success": False, "error": str(e)}), 500

    if not acquired:
        print("Fetch already in progress, rejecting new request.")
        return jsonify({"success": False, "error": "fetch already in progress"}), 409

    failed = {k: v["error"] for k, v in results.items() if "error" in v}
    if failed:
        return jsonify({"success": False, "error": "fetch failed", "results": results}), 500
    return jsonify({"success": True, "message": "fetch completed", "results": results})


@app.route("/api/analysis", methods=["GET"])
def api_analysis():
    try:
        items = load_history("movies")
        ctl = FilterController.from_args(request.args)
        start, end = ctl.selected_range()
        payload = build_dashboard(items, start, end)
        payload["filter"] = {
            "preset": ctl.preset,
            "year_options": year_options(items),
        }
        payload["success"] = True
        return jsonify(payload)
    except Exception as e:
        print(f"Analysis error: {e}")
        traceback.print_exc()
        return jsonify({"success": False, "error": str(e)}), 500


@app.route("/api/refresh_status", methods=["GET"])
def api_refresh_status():
    return jsonify({"success": True, "busy": refresh_lock.busy})


if __name__ == "__main__":
    os.makedirs(os.path.join(douban_config.DATA_DIR, "pic"), exist_ok=True)

    print("=" * 60)
    print("DOUBAN COLLECTION TRACKER")
    print("=" * 60)
    print(f"UI:        http://0.0.0.0:{douban_config.PORT}")
    print(f"Dashboard: http://0.0.0.0:{douban_config.PORT}/analysis")
    print(f"Refresh:   http://0.0.0.0:{douban_config.PORT}/api/fresh")
    print(f"Movies:    {len(load_history('movies'))}")
    print("=" * 60 + "\n")
    app.run(host="0.0.0.0", port=douban_config.PORT, debug=douban_config.DEBUG, threaded=True)
