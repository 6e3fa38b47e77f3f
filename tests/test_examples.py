import importlib.util
from pathlib import Path
from typing import Any

import pytest


def _load_from_file(name: str, sub_path: str | None = None) -> Any:
    path = Path(__file__).parent.parent / "examples"
    if sub_path is not None:
        path = path / sub_path
    path = path / f"{name}.py"
    spec = importlib.util.spec_from_file_location(name, path)
    assert spec is not None
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


def test_vmat_arc(tmp_path: Path, monkeypatch: Any) -> None:
    pytest.importorskip("pandas")
    pytest.importorskip("tabulate")
    monkeypatch.chdir(tmp_path)
    module = _load_from_file("vmat_arc")
    module.main()
