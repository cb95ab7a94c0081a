"""Tests for lock document rendering and atomic output."""

import os
import tomllib
from pathlib import Path

import pytest

from pylock_core.environment import locate_environment
from pylock_core.errors import OutputWriteError
from pylock_core.inventory import Inventory, PackageRecord, PackageSource, scan_environment
from pylock_core.lockfile import (
    LockDocument,
    build_lock_document,
    check_lock,
    is_pylock_filename,
    render_lock,
    write_lock,
)

from conftest import FakeVenv


def _render(venv: FakeVenv) -> str:
    env = locate_environment(venv.environ)
    return render_lock(build_lock_document(env, scan_environment(env)))


def test_certifi_only_environment(venv: FakeVenv) -> None:
    venv.install("certifi", "2024.8.30")

    assert _render(venv) == (
        'lock-version = "1.0"\n'
        'created-by = "pylock"\n'
        'requires-python = ">=3.12"\n'
        "\n"
        "[[packages]]\n"
        'name = "certifi"\n'
        'version = "2024.8.30"\n'
    )


def test_empty_environment_keeps_header(venv: FakeVenv) -> None:
    text = _render(venv)
    assert text == (
        'lock-version = "1.0"\n'
        'created-by = "pylock"\n'
        'requires-python = ">=3.12"\n'
        "packages = []\n"
    )
    assert tomllib.loads(text)["packages"] == []


def test_output_is_identical_across_environments(venv_factory) -> None:
    first = venv_factory("first")
    second = venv_factory("second")
    for name in ("zipp", "Certifi", "attrs"):
        first.install(name, "1.0")
    for name in ("attrs", "zipp", "Certifi"):
        second.install(name, "1.0")

    text = _render(first)
    assert text == _render(second)
    assert str(first.root) not in text
    names = [package["name"] for package in tomllib.loads(text)["packages"]]
    assert names == ["attrs", "certifi", "zipp"]


def test_render_sorts_regardless_of_input_order() -> None:
    document = LockDocument(
        requires_python=">=3.12",
        packages=Inventory(
            records=(
                PackageRecord(name="zipp", version="3.20.2"),
                PackageRecord(name="attrs", version="24.2.0"),
            )
        ).sorted(),
    )
    text = render_lock(document)
    assert text.index('name = "attrs"') < text.index('name = "zipp"')


def test_sources_render_as_valid_toml() -> None:
    records = (
        PackageRecord(
            name="archived",
            version="1.0",
            source=PackageSource(
                kind="archive",
                url="https://example.org/archived-1.0.tar.gz",
                hashes=(("sha256", "beef"),),
            ),
        ),
        PackageRecord(
            name="local",
            version="0.1",
            source=PackageSource(kind="directory", path="tools/local", editable=True),
        ),
        PackageRecord(
            name="pinned",
            version="2.0",
            source=PackageSource(kind="vcs", vcs="git", url="https://example.org/pinned.git", commit_id="abc"),
        ),
        PackageRecord(
            name="wheel",
            version="3.0",
            source=PackageSource(
                kind="wheel",
                url="https://example.org/wheel-3.0-py3-none-any.whl",
                filename="wheel-3.0-py3-none-any.whl",
                hashes=(("sha256", "cafe"),),
            ),
        ),
    )
    text = render_lock(LockDocument(requires_python=">=3.12", packages=records))
    packages = tomllib.loads(text)["packages"]

    assert packages[0]["archive"] == {
        "url": "https://example.org/archived-1.0.tar.gz",
        "hashes": {"sha256": "beef"},
    }
    assert packages[1]["directory"] == {"path": "tools/local", "editable": True}
    assert packages[2]["vcs"] == {
        "type": "git",
        "url": "https://example.org/pinned.git",
        "commit-id": "abc",
    }
    assert packages[3]["wheels"] == [
        {
            "name": "wheel-3.0-py3-none-any.whl",
            "url": "https://example.org/wheel-3.0-py3-none-any.whl",
            "hashes": {"sha256": "cafe"},
        }
    ]


def test_source_tables_render_under_their_package() -> None:
    records = (
        PackageRecord(
            name="archived",
            version="1.0",
            source=PackageSource(
                kind="archive",
                url="https://example.org/archived-1.0.tar.gz",
                hashes=(("sha256", "beef"),),
            ),
        ),
        PackageRecord(
            name="local",
            version="0.1",
            source=PackageSource(kind="directory", path="tools/local", editable=True),
        ),
    )
    text = render_lock(LockDocument(requires_python=">=3.12", packages=records))

    assert text == (
        'lock-version = "1.0"\n'
        'created-by = "pylock"\n'
        'requires-python = ">=3.12"\n'
        "\n"
        "[[packages]]\n"
        'name = "archived"\n'
        'version = "1.0"\n'
        "\n"
        "[packages.archive]\n"
        'url = "https://example.org/archived-1.0.tar.gz"\n'
        "\n"
        "[packages.archive.hashes]\n"
        'sha256 = "beef"\n'
        "\n"
        "[[packages]]\n"
        'name = "local"\n'
        'version = "0.1"\n'
        "\n"
        "[packages.directory]\n"
        'path = "tools/local"\n'
        "editable = true\n"
    )


def test_strings_are_escaped() -> None:
    record = PackageRecord(name="odd", version='1.0"\\\n\x01')
    text = render_lock(LockDocument(requires_python=">=3.12", packages=(record,)))
    assert tomllib.loads(text)["packages"][0]["version"] == '1.0"\\\n\x01'


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("pylock.toml", True),
        ("pylock.test1.toml", True),
        ("pylock.dev.toml", True),
        ("pylock.a.b.toml", False),
        ("requirements.toml", False),
        ("pylock.json", False),
    ],
)
def test_pylock_filename_convention(name: str, expected: bool) -> None:
    assert is_pylock_filename(Path("some/dir") / name) is expected


def test_write_lock_replaces_file(tmp_path: Path) -> None:
    target = tmp_path / "pylock.toml"
    target.write_text("old\n")

    write_lock(target, "new\n")

    assert target.read_text() == "new\n"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["pylock.toml"]


def test_write_lock_missing_parent(tmp_path: Path) -> None:
    with pytest.raises(OutputWriteError, match="does not exist"):
        write_lock(tmp_path / "missing" / "pylock.toml", "text\n")


def test_failed_replace_leaves_destination_untouched(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "pylock.toml"
    target.write_text("old\n")

    def _fail(src, dst):
        raise PermissionError(13, "Permission denied", str(dst))

    monkeypatch.setattr(os, "replace", _fail)

    with pytest.raises(OutputWriteError, match="Permission denied"):
        write_lock(target, "new\n")

    assert target.read_text() == "old\n"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["pylock.toml"]


def test_check_lock(tmp_path: Path) -> None:
    target = tmp_path / "pylock.toml"
    assert check_lock(target, "a\n").missing

    target.write_text("a\n")
    assert check_lock(target, "a\n").ok

    result = check_lock(target, "b\n")
    assert not result.ok
    assert not result.missing
    assert "-a\n" in result.diff
    assert "+b\n" in result.diff
