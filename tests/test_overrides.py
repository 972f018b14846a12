import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from lib.store.overrides import OverrideStore, OverrideValidationError


class OverrideStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "overrides.json"
        self.store = OverrideStore(self.path)

    def tearDown(self):
        self._tmp.cleanup()

    def test_set_persists_across_instances(self):
        self.store.set("covers", "RPG.mp3", "custom.png")
        self.store.set("lyrics", "RPG.mp3", "asobou")

        reloaded = OverrideStore(self.path)
        self.assertEqual(reloaded.get("covers", "RPG.mp3"), "custom.png")
        self.assertEqual(reloaded.all("lyrics"), {"RPG.mp3": "asobou"})
        self.assertIsNone(reloaded.get("credits", "RPG.mp3"))

    def test_credits_are_cleaned(self):
        saved = self.store.set("credits", "RPG.mp3", {
            "writer": "  Saori ",
            "composer": "",
            "unknown": "x",
            "links": {"spotify": "https://open.spotify.com/track/abc", "youtube": ""},
        })
        self.assertEqual(saved, {"writer": "Saori", "links": {"spotify": "https://open.spotify.com/track/abc"}})

    def test_invalid_values(self):
        with self.assertRaises(OverrideValidationError):
            self.store.set("credits", "RPG.mp3", {"links": {"youtube": "javascript:alert(1)"}})
        with self.assertRaises(OverrideValidationError):
            self.store.set("covers", "RPG.mp3", 42)
        with self.assertRaises(OverrideValidationError):
            self.store.get("ratings", "RPG.mp3")

    def test_clear(self):
        self.store.set("covers", "RPG.mp3", "custom.png")
        self.assertTrue(self.store.clear("covers", "RPG.mp3"))
        self.assertFalse(self.store.clear("covers", "RPG.mp3"))
        self.assertEqual(OverrideStore(self.path).all("covers"), {})

    def test_snapshot_is_read_only(self):
        self.store.set("covers", "RPG.mp3", "custom.png")
        snapshot = self.store.snapshot()
        with self.assertRaises(TypeError):
            snapshot.covers["RPG.mp3"] = "other.png"
        # スナップショット後の変更は反映されない
        self.store.set("covers", "RPG.mp3", "newer.png")
        self.assertEqual(snapshot.covers["RPG.mp3"], "custom.png")

    def _moved_aside(self):
        return sorted(self.path.parent.glob("overrides.json.corrupt-*"))

    def test_corrupt_file_is_moved_aside_before_saving(self):
        broken = '{"covers": {"a.mp3": "a.png", "b.mp3": "b.pn'
        self.path.write_text(broken, encoding="utf-8")

        store = OverrideStore(self.path)
        with self.assertLogs("lib.store.overrides", level="WARNING"):
            self.assertEqual(store.all("covers"), {})
        store.set("covers", "c.mp3", "c.png")

        moved = self._moved_aside()
        self.assertEqual(len(moved), 1)
        self.assertEqual(moved[0].read_text(encoding="utf-8"), broken)
        self.assertEqual(OverrideStore(self.path).all("covers"), {"c.mp3": "c.png"})

    def test_non_object_file_is_moved_aside(self):
        for content in ('["a.mp3"]', '{"covers": ["a.png"]}'):
            with self.subTest(content=content):
                self.path.write_text(content, encoding="utf-8")
                with self.assertLogs("lib.store.overrides", level="WARNING"):
                    self.assertIsNone(OverrideStore(self.path).get("covers", "a.mp3"))
                self.assertFalse(self.path.exists())
        self.assertEqual(len(self._moved_aside()), 2)

    def test_concurrent_sets_keep_every_override(self):
        def put(i):
            self.store.set("lyrics", f"track{i}.mp3", f"line {i}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(put, range(20)))

        self.assertEqual(len(OverrideStore(self.path).all("lyrics")), 20)


if __name__ == "__main__":
    unittest.main()
