import json
import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from lib.cache_manager import reset_caches
from lib.store.database import (
    DuplicateItemError,
    InvalidCollectionError,
    ItemNotFoundError,
    JsonDatabase,
)
from lib.store.records import compute_completion, generate_id, prepare_new_record, prepare_updates


class JsonDatabaseTests(unittest.TestCase):
    def setUp(self):
        reset_caches()
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.db = JsonDatabase(self.data_dir)

    def tearDown(self):
        self._tmp.cleanup()
        reset_caches()

    def test_missing_file_is_empty(self):
        self.assertEqual(self.db.load_data("songs"), [])

    def test_unknown_collection(self):
        with self.assertRaises(InvalidCollectionError):
            self.db.load_data("users")

    def test_create_get_update_remove(self):
        self.db.create("songs", {"id": "s1", "title": "RPG"})
        with self.assertRaises(DuplicateItemError):
            self.db.create("songs", {"id": "s1", "title": "RPG again"})

        updated = self.db.update("songs", "s1", {"album": "Tree", "id": "other"})
        self.assertEqual(updated["id"], "s1")
        self.assertEqual(updated["album"], "Tree")
        self.assertIn("updatedAt", updated)
        self.assertEqual(self.db.get_by_id("songs", "s1")["album"], "Tree")

        on_disk = json.loads((self.data_dir / "songs.json").read_text(encoding="utf-8"))
        self.assertEqual(on_disk[0]["album"], "Tree")

        self.assertTrue(self.db.remove("songs", "s1"))
        self.assertFalse(self.db.remove("songs", "s1"))
        with self.assertRaises(ItemNotFoundError):
            self.db.update("songs", "s1", {"album": "x"})

    def test_loaded_data_is_a_copy(self):
        self.db.create("songs", {"id": "s1", "title": "RPG"})
        self.db.load_data("songs")[0]["title"] = "changed"
        self.assertEqual(self.db.get_by_id("songs", "s1")["title"], "RPG")

    def test_non_array_file_raises(self):
        (self.data_dir / "tags.json").write_text('{"id": 1}', encoding="utf-8")
        with self.assertRaises(ValueError):
            self.db.load_data("tags")

    def test_soft_delete_and_query(self):
        self.db.create("history", {"id": "h1", "date": {"year": 2010}})
        self.db.create("history", {"id": "h2", "date": {"year": 2011}})
        self.db.soft_delete("history", "h1")
        active = self.db.query("history", lambda r: not r.get("deletedAt"))
        self.assertEqual([r["id"] for r in active], ["h2"])

    def test_bulk_update(self):
        self.db.save_data("tags", [{"id": "t1", "name": "a"}, {"id": "t2", "name": "b"}])
        count = self.db.bulk_update("tags", [
            {"id": "t1", "data": {"name": "A"}},
            {"id": "missing", "data": {"name": "?"}},
        ])
        self.assertEqual(count, 1)
        self.assertEqual(self.db.get_by_id("tags", "t1")["name"], "A")

    def test_bulk_update_recomputes_discography_completion(self):
        self.db.create("discography", prepare_new_record("discography", {"id": "d1", "title": "Tree"}))
        self.assertFalse(self.db.get_by_id("discography", "d1")["isComplete"])

        self.db.bulk_update("discography", [{"id": "d1", "data": {
            "releaseDate": "2015-01-14",
            "coverImage": "tree.jpg",
            "tracks": ["RPG"],
        }}])
        record = self.db.get_by_id("discography", "d1")
        self.assertTrue(record["isComplete"])
        self.assertNotIn("missingFields", record)

    def test_import_recomputes_discography_completion(self):
        self.db.import_all({"discography": [
            {"id": "d1", "title": "Tree", "isComplete": True},
            {"id": "d2", "title": "Eye", "releaseDate": "2019-02-27", "coverImage": "eye.jpg",
             "tracks": ["Eye"], "isComplete": False, "missingFields": ["coverImage"]},
        ]})
        incomplete = self.db.get_by_id("discography", "d1")
        self.assertFalse(incomplete["isComplete"])
        self.assertEqual(incomplete["missingFields"], ["releaseDate", "coverImage", "tracks"])
        self.assertTrue(self.db.get_by_id("discography", "d2")["isComplete"])

    def test_concurrent_creates_keep_every_record(self):
        def create(i):
            self.db.create("tags", {"id": f"t{i}", "name": f"tag {i}"})

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(create, range(20)))

        self.assertEqual(len(self.db.load_data("tags")), 20)
        self.db.clear_cache()
        self.assertEqual(len(self.db.load_data("tags")), 20)

    def test_concurrent_updates_on_separate_instances(self):
        self.db.create("songs", {"id": "s1", "title": "RPG"})
        other = JsonDatabase(self.data_dir)

        def update(i):
            db = self.db if i % 2 else other
            db.bulk_update("songs", [{"id": "s1", "data": {f"field{i}": i}}])

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(update, range(16)))

        record = self.db.get_by_id("songs", "s1")
        self.assertEqual(sorted(k for k in record if k.startswith("field")), sorted(f"field{i}" for i in range(16)))

    def test_backup_round_trip(self):
        self.db.create("songs", {"id": "s1", "title": "RPG"})
        backup = self.db.create_backup()
        self.assertTrue((backup / "songs.json").is_file())

        self.db.remove("songs", "s1")
        restored = self.db.restore_from_backup(backup)
        self.assertIn("songs", restored)
        self.assertIsNotNone(self.db.get_by_id("songs", "s1"))

    def test_import_ignores_non_arrays(self):
        restored = self.db.import_all({"songs": [{"id": "s9"}], "tags": "nope", "unknown": []})
        self.assertEqual(restored, ["songs"])
        self.assertEqual(self.db.load_data("tags"), [])


class RecordTests(unittest.TestCase):
    def test_generated_id_format(self):
        collection, millis, suffix = generate_id("songs").split("-")
        self.assertEqual(collection, "songs")
        self.assertTrue(millis.isdigit())
        self.assertEqual(len(suffix), 7)

    def test_new_record_keeps_given_id_and_stamps(self):
        record = prepare_new_record("songs", {"id": "s1", "title": "RPG"}, now="2024-01-01T00:00:00Z")
        self.assertEqual(record["id"], "s1")
        self.assertEqual(record["createdAt"], "2024-01-01T00:00:00Z")
        self.assertEqual(record["updatedAt"], "2024-01-01T00:00:00Z")
        self.assertNotIn("isComplete", record)

    def test_discography_completion(self):
        record = prepare_new_record("discography", {"title": "Tree", "discs": []})
        self.assertFalse(record["isComplete"])
        self.assertEqual(record["missingFields"], ["releaseDate", "coverImage", "tracks"])

        ok, missing = compute_completion({
            "title": "Tree",
            "releaseDate": "2015-01-14",
            "coverImage": "tree.jpg",
            "discs": [{"discNumber": 1, "tracks": [{"title": "RPG"}]}],
        })
        self.assertTrue(ok)
        self.assertEqual(missing, [])

    def test_updates_recompute_completion(self):
        existing = {"id": "d1", "title": "Tree", "releaseDate": "2015-01-14", "tracks": ["RPG"],
                    "createdAt": "2024-01-01T00:00:00Z"}
        changes = prepare_updates("discography", existing, {"id": "d1", "coverImage": "tree.jpg",
                                                            "createdAt": "tampered"})
        self.assertNotIn("id", changes)
        self.assertNotIn("createdAt", changes)
        self.assertTrue(changes["isComplete"])
        self.assertEqual(changes["missingFields"], [])


if __name__ == "__main__":
    unittest.main()
