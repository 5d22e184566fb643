from __future__ import annotations

from pathlib import Path
from typing import Dict, Union


def _clean(value: str) -> str:
    return value.strip().strip("'").strip('"')


def load_class_names(metadata_path: Union[str, Path]) -> Dict[int, str]:
    """
    Load class names from a YOLO dataset / model metadata file.

    Both `names:` forms used by YOLO data files are understood:

        names:
          0: person
          1: bicycle

        names: [person, bicycle]

    as well as a bare `.names` / `classes.txt` file with one name per line.
    This function intentionally avoids adding a PyYAML dependency.
    """

    path = Path(metadata_path)
    if not path.exists():
        raise FileNotFoundError(f"Class metadata not found: {path}")

    lines = path.read_text(encoding="utf-8").splitlines()
    names: Dict[int, str] = {}
    in_names = False
    saw_names_key = False

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("names:"):
            saw_names_key = True
            rest = line[len("names:"):].strip()
            if rest.startswith("[") and rest.endswith("]"):
                items = [_clean(item) for item in rest[1:-1].split(",")]
                return {i: item for i, item in enumerate(items) if item}
            in_names = True
            continue
        if not in_names:
            continue

        # Parse "id: label" or "- label"; anything else ends the block.
        if line.startswith("- "):
            names[len(names)] = _clean(line[2:])
            continue
        if ":" not in line:
            break
        left, right = line.split(":", 1)
        left = left.strip()
        if not left.isdigit():
            break
        names[int(left)] = _clean(right)

    if saw_names_key:
        return names

    # Plain one-name-per-line file.
    plain = [_clean(line) for line in lines if line.strip() and not line.strip().startswith("#")]
    return {i: name for i, name in enumerate(plain)}
