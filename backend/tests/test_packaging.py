from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


def test_project_metadata_points_at_shipped_files():
    project = tomllib.loads(PYPROJECT.read_text(encoding="utf-8"))["project"]
    readme = project.get("readme")
    if readme is not None:
        assert (PYPROJECT.parent / readme).name not in {"SPEC_FULL.md", "spec.md"}
    assert project["scripts"]["supportchat"] == "supportchat.cli.app:main"
