"""Fixtures that lay out fake virtual environments on disk."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import pytest


@dataclass
class FakeVenv:
    root: Path
    site_packages: Path

    @property
    def environ(self) -> dict[str, str]:
        return {"VIRTUAL_ENV": str(self.root)}

    def install(
        self,
        name: str,
        version: str,
        *,
        dir_name: str | None = None,
        direct_url: dict[str, Any] | str | None = None,
        provenance_url: dict[str, Any] | None = None,
    ) -> Path:
        dist_dir = self.site_packages / (dir_name or f"{name.replace('-', '_')}-{version}.dist-info")
        dist_dir.mkdir(parents=True)
        (dist_dir / "METADATA").write_text(
            f"Metadata-Version: 2.1\nName: {name}\nVersion: {version}\n",
            encoding="utf-8",
        )
        (dist_dir / "INSTALLER").write_text("uv\n", encoding="utf-8")
        if direct_url is not None:
            text = direct_url if isinstance(direct_url, str) else json.dumps(direct_url)
            (dist_dir / "direct_url.json").write_text(text, encoding="utf-8")
        if provenance_url is not None:
            (dist_dir / "provenance_url.json").write_text(json.dumps(provenance_url), encoding="utf-8")
        return dist_dir


def make_venv(base: Path, python_version: str = "3.12.3") -> FakeVenv:
    root = base / ".venv"
    major_minor = ".".join(python_version.split(".")[:2])
    site_packages = root / "lib" / f"python{major_minor}" / "site-packages"
    site_packages.mkdir(parents=True)
    (root / "bin").mkdir()
    (root / "bin" / "python").write_text("", encoding="utf-8")
    (root / "pyvenv.cfg").write_text(
        f"home = /usr/bin\nimplementation = CPython\nversion_info = {python_version}\n",
        encoding="utf-8",
    )
    return FakeVenv(root=root, site_packages=site_packages)


@pytest.fixture
def venv_factory(tmp_path: Path) -> Callable[..., FakeVenv]:
    def factory(name: str = "project", python_version: str = "3.12.3") -> FakeVenv:
        base = tmp_path / name
        base.mkdir()
        return make_venv(base, python_version)

    return factory


@pytest.fixture
def venv(venv_factory: Callable[..., FakeVenv]) -> FakeVenv:
    return venv_factory()
