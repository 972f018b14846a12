import asyncio
import tempfile
import unittest
from pathlib import Path

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

import app as app_module
from lib.cache_manager import reset_caches
from lib.store import JsonDatabase, OverrideStore


def _touch(path: Path, data: bytes = b"") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        reset_caches()
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.media_root = base / "media"
        self.media_root.mkdir()

        app = app_module.app
        self._saved_state = (app.state.db, app.state.overrides, app.state.media_root)
        app.state.db = JsonDatabase(base / "db")
        app.state.overrides = OverrideStore(base / "db" / "overrides.json")
        app.state.media_root = self.media_root
        self.client = TestClient(app)

    def tearDown(self):
        app = app_module.app
        app.state.db, app.state.overrides, app.state.media_root = self._saved_state
        self._tmp.cleanup()
        reset_caches()


class HealthTests(ApiTestCase):
    def test_health(self):
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.json()["ok"])


class MiddlewareTests(ApiTestCase):
    def _dispatch(self, content_length: bytes):
        scope = {
            "type": "http",
            "method": "POST",
            "path": "/api/db/tags",
            "query_string": b"",
            "headers": [(b"content-length", content_length)],
            "client": ("testclient", 50000),
        }
        middleware = app_module.RequestSizeLimitMiddleware(app_module.app)

        async def call_next(request):
            return JSONResponse({"passed": True})

        return asyncio.run(middleware.dispatch(Request(scope), call_next))

    def test_non_numeric_content_length_is_rejected(self):
        self.assertEqual(self._dispatch(b"abc").status_code, 400)

    def test_oversized_and_normal_bodies(self):
        too_big = str(app_module.MAX_BODY_SIZE + 1).encode()
        self.assertEqual(self._dispatch(too_big).status_code, 413)
        self.assertEqual(self._dispatch(b"10").status_code, 200)

    def test_lifespan_logs_startup(self):
        with self.assertLogs("uvicorn.error", level="INFO") as logs:
            with TestClient(app_module.app) as client:
                self.assertEqual(client.get("/").status_code, 200)
        self.assertTrue(any("startup" in line for line in logs.output))


class DbEndpointTests(ApiTestCase):
    def test_crud_flow(self):
        res = self.client.post("/api/db/songs", json={"title": "RPG", "year": 2013})
        self.assertEqual(res.status_code, 201)
        created = res.json()
        self.assertTrue(created["id"].startswith("songs-"))

        res = self.client.post("/api/db/songs", json={"id": created["id"], "title": "dup"})
        self.assertEqual(res.status_code, 409)

        res = self.client.put("/api/db/songs", json={"id": created["id"], "album": "Tree"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["album"], "Tree")
        self.assertEqual(res.json()["createdAt"], created["createdAt"])

        res = self.client.get("/api/db/songs", params={"id": created["id"]})
        self.assertEqual(res.json()["album"], "Tree")

        res = self.client.delete("/api/db/songs", params={"id": created["id"]})
        self.assertEqual(res.json(), {"success": True})
        self.assertEqual(self.client.get("/api/db/songs").json(), [])

    def test_errors(self):
        self.assertEqual(self.client.get("/api/db/users").status_code, 400)
        self.assertEqual(self.client.put("/api/db/songs", json={"title": "x"}).status_code, 400)
        self.assertEqual(self.client.put("/api/db/songs", json={"id": "nope"}).status_code, 404)
        self.assertEqual(self.client.delete("/api/db/songs").status_code, 400)
        self.assertEqual(self.client.delete("/api/db/songs", params={"id": "nope"}).status_code, 404)
        self.assertEqual(self.client.get("/api/db/songs", params={"id": "nope"}).status_code, 404)

    def test_discography_completion_on_create(self):
        res = self.client.post("/api/db/discography", json={"title": "Tree"})
        body = res.json()
        self.assertFalse(body["isComplete"])
        self.assertIn("coverImage", body["missingFields"])


class SongsEndpointTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        _touch(self.media_root / "Dragon Night.mp3")
        _touch(self.media_root / "RPG.mp3")
        _touch(self.media_root / "RPG.jpg")
        _touch(self.media_root / "Unknown Demo.mp3")
        _touch(self.media_root / "videos" / "(2010)FACTORY LIVE" / "Dragon Night.mp4")
        db = app_module.app.state.db
        db.create("songs", {"id": "s1", "title": "Dragon Night", "album": "Tree", "year": 2014})
        db.create("songs", {"id": "s2", "title": "RPG", "album": "Tree", "year": 2013})
        db.create("songs", {"id": "s3", "title": "Unknown Demo", "year": 1999, "deletedAt": "2024-01-01"})

    def test_list_songs_sorted_by_year(self):
        res = self.client.get("/api/songs", params={"sort": "year_desc"})
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual([t["title"] for t in body["tracks"]], ["Dragon Night", "RPG", "Unknown Demo"])
        # 論理削除された曲メタデータはマージに使わない
        self.assertEqual(body["tracks"][2]["year"], "unset")
        self.assertEqual(body["total_files"], 4)
        self.assertEqual(body["tracks"][1]["cover"], "/api/media?file=RPG.jpg")

    def test_search_and_invalid_sort(self):
        res = self.client.get("/api/songs", params={"q": "rpg", "sort": "az"})
        self.assertEqual([t["title"] for t in res.json()["tracks"]], ["RPG"])
        res = self.client.get("/api/songs", params={"sort": "shuffle"})
        self.assertEqual(res.status_code, 422)
        self.assertEqual(res.json()["detail"]["collection"], "sort")

    def test_queue_follows_listing_order(self):
        res = self.client.get("/api/songs/queue", params={"sort": "az", "start": 1})
        body = res.json()
        self.assertEqual(body["start_index"], 1)
        self.assertEqual([t["name"] for t in body["tracks"]], ["Dragon Night.mp3", "RPG.mp3", "Unknown Demo.mp3"])

        res = self.client.get("/api/songs/queue", params={"start": 50})
        self.assertEqual(res.json()["start_index"], 0)

    def test_overrides_flow_into_listing(self):
        res = self.client.put("/api/overrides/lyrics/RPG.mp3", json={"value": "asobou"})
        self.assertEqual(res.status_code, 200)
        res = self.client.put("/api/overrides/credits/RPG.mp3", json={"value": {"writer": "Saori"}})
        self.assertEqual(res.status_code, 200)

        tracks = self.client.get("/api/songs", params={"q": "asobou"}).json()["tracks"]
        self.assertEqual(len(tracks), 1)
        self.assertEqual(tracks[0]["writer"], "Saori")

        self.assertEqual(self.client.delete("/api/overrides/lyrics/RPG.mp3").status_code, 200)
        self.assertEqual(self.client.get("/api/overrides/lyrics/RPG.mp3").status_code, 404)
        self.assertEqual(self.client.get("/api/overrides/ratings").status_code, 400)

    def test_videos_grouped(self):
        groups = self.client.get("/api/videos").json()["groups"]
        self.assertEqual([g["category"] for g in groups], ["Videos / (2010)FACTORY LIVE"])
        self.assertEqual(groups[0]["year"], 2010)

    def test_smart_playlist(self):
        body = self.client.get("/api/playlists/smart/energetic").json()
        self.assertEqual([t["name"] for t in body["tracks"]], ["Dragon Night.mp3", "RPG.mp3"])
        self.assertEqual(self.client.get("/api/playlists/smart/nope").status_code, 404)


class MediaEndpointTests(ApiTestCase):
    def test_serves_file_inside_root(self):
        _touch(self.media_root / "RPG.mp3", b"ID3")
        res = self.client.get("/api/media", params={"file": "RPG.mp3"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.content, b"ID3")

    def test_rejects_bad_paths(self):
        self.assertEqual(self.client.get("/api/media").status_code, 400)
        self.assertEqual(self.client.get("/api/media", params={"file": "../secret.txt"}).status_code, 403)
        self.assertEqual(self.client.get("/api/media", params={"file": "missing.mp3"}).status_code, 404)


class HistoryAndBackupTests(ApiTestCase):
    def test_history_order(self):
        db = app_module.app.state.db
        db.create("history", {"id": "b", "date": {"year": 2011}, "title": "b"})
        db.create("history", {"id": "a", "date": {"year": 2010}, "title": "a"})
        events = self.client.get("/api/history").json()["events"]
        self.assertEqual([e["id"] for e in events], ["a", "b"])

    def test_backup_export_and_restore(self):
        self.client.post("/api/db/tags", json={"id": "t1", "name": "live"})
        res = self.client.get("/api/backup")
        self.assertIn("attachment", res.headers["content-disposition"])
        exported = res.json()
        self.assertEqual(exported["tags"][0]["id"], "t1")

        self.client.delete("/api/db/tags", params={"id": "t1"})
        res = self.client.post("/api/backup", json=exported)
        self.assertIn("tags", res.json()["restored"])
        self.assertEqual(len(self.client.get("/api/db/tags").json()), 1)

        self.assertEqual(self.client.post("/api/backup", json=[1, 2]).status_code, 400)


if __name__ == "__main__":
    unittest.main()
