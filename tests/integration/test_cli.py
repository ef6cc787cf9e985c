import json
import shutil
import tempfile
import unittest
from pathlib import Path

from click.testing import CliRunner

from mdreader.cli_main import cli
from mdreader.models.config import AppConfig


class TestCLIIntegration(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.tmp = Path(tempfile.mkdtemp())
        self.notes = self.tmp / "notes"
        self.notes.mkdir()
        (self.notes / "test.md").write_text(
            "---\ntags: [demo]\n---\n# Test Doc\nHello World\n", encoding="utf-8"
        )
        (self.notes / "other.md").write_text("# Other\nSomething else\n", encoding="utf-8")

        self.config_path = self.tmp / "config.yml"
        AppConfig(db_path=str(self.tmp / "index.db"), watch_directory=str(self.notes)).save(self.config_path)

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def invoke(self, *args):
        return self.runner.invoke(cli, ["--config", str(self.config_path), *args])

    def test_full_flow(self):
        # 1. Index
        result = self.invoke("index")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Indexed 2 documents", result.output)

        # 2. Search
        result = self.invoke("search", "Hello")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Test Doc", result.output)
        self.assertIn("1 matches", result.output)

        # 3. Search as file list with a tag filter
        result = self.invoke("search", "else OR hello", "--tag", "demo", "--format", "files")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(result.output.split(), ["test.md"])

        # 4. Status
        result = self.invoke("status")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Documents", result.output)

        # 5. Get
        result = self.invoke("get", "test.md")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("# Test Doc", result.output)

        result = self.invoke("get", "missing.md")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("not found", result.output)

        # 6. Tags
        result = self.invoke("tags")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("demo", result.output)

        # 7. Check
        result = self.invoke("check")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("consistent", result.output)

    def test_search_json(self):
        self.invoke("index")
        result = self.invoke("search", "hello", "--format", "json")
        self.assertEqual(result.exit_code, 0, result.output)
        data = json.loads(result.output)
        self.assertEqual(data["total"], 1)
        self.assertEqual(data["results"][0]["path"], "test.md")
        self.assertIn("<mark>", data["results"][0]["snippet"])

    def test_search_errors(self):
        self.invoke("index")
        result = self.invoke("search", '"unterminated')
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Invalid search query", result.output)

        result = self.invoke("search", "hello", "--from", "yesterday")
        self.assertEqual(result.exit_code, 2)

    def test_reindex_removes_deleted_files(self):
        self.invoke("index")
        (self.notes / "other.md").unlink()
        result = self.invoke("index")
        self.assertIn("Removed 1 missing documents", result.output)

        result = self.invoke("search", "something", "--format", "json")
        self.assertEqual(json.loads(result.output)["total"], 0)

    def test_collections(self):
        self.invoke("index")
        result = self.invoke("collection", "create", "Reading List", "-d", "later")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("reading-list", result.output)

        result = self.invoke("collection", "add", "Reading List", "test.md", "other.md")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Added 2 of 2", result.output)

        result = self.invoke("collection", "add", "reading-list", "missing.md")
        self.assertEqual(result.exit_code, 1)

        result = self.invoke("collection", "show", "reading-list")
        self.assertIn("2 documents", result.output)
        self.assertIn("test.md", result.output)

        result = self.invoke("collection", "drop", "reading-list", "other.md")
        self.assertIn("Removed 1 of 1", result.output)

        result = self.invoke("collection", "create", "Reading List")
        self.assertEqual(result.exit_code, 1)

        result = self.invoke("collection", "remove", "reading-list")
        self.assertEqual(result.exit_code, 0)
        result = self.invoke("collection", "list")
        self.assertIn("No collections found", result.output)

        result = self.invoke("collection", "show", "reading-list")
        self.assertEqual(result.exit_code, 1)

    def test_config(self):
        result = self.invoke("config", "show")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("db_path", result.output)

        other = self.tmp / "other"
        other.mkdir()
        result = self.invoke("config", "set-root", str(other))
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(AppConfig.load(self.config_path).watch_directory, str(other.resolve()))

        result = self.invoke("config", "set-root", str(self.tmp / "missing"))
        self.assertNotEqual(result.exit_code, 0)

        result = self.invoke("config", "set", "upload_subdir", "inbox")
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(AppConfig.load(self.config_path).upload_subdir, "inbox")

    def test_index_missing_root(self):
        AppConfig(db_path=str(self.tmp / "index.db"), watch_directory=str(self.tmp / "gone")).save(
            self.config_path
        )
        result = self.invoke("index")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("does not exist", result.output)


if __name__ == "__main__":
    unittest.main()
