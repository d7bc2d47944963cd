import pathlib
import sys
from pathlib import Path
from typing import Callable, Dict

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def stub_reader() -> Callable[[Dict[str, str]], Callable[[Path], str]]:
    """Build a statement text reader that serves text by file name."""

    def build(texts: Dict[str, str]) -> Callable[[Path], str]:
        def read(path: Path) -> str:
            if path.name not in texts:
                raise RuntimeError(f"cannot open {path.name}")
            return texts[path.name]

        return read

    return build
