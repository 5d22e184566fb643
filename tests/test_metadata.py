import tempfile
import unittest
from pathlib import Path

from infer_kit.metadata import load_class_names


class TestLoadClassNames(unittest.TestCase):
    def _write(self, text: str, name: str = "data.yaml") -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_names_mapping(self) -> None:
        path = self._write("path: data\nnames:\n  0: person\n  1: 'hard hat'\nnc: 2\n")
        self.assertEqual(load_class_names(path), {0: "person", 1: "hard hat"})

    def test_names_inline_list(self) -> None:
        path = self._write("names: [person, \"car\", bus]\n")
        self.assertEqual(load_class_names(path), {0: "person", 1: "car", 2: "bus"})

    def test_names_dash_list(self) -> None:
        path = self._write("names:\n  - person\n  - car\n")
        self.assertEqual(load_class_names(path), {0: "person", 1: "car"})

    def test_plain_names_file(self) -> None:
        path = self._write("# classes\nperson\n\nbicycle\n", name="coco.names")
        self.assertEqual(load_class_names(path), {0: "person", 1: "bicycle"})

    def test_missing(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_class_names(Path(tempfile.gettempdir()) / "missing_names_1234.yaml")


if __name__ == "__main__":
    unittest.main()
