from pathlib import Path
import textwrap

import pytest

from workon.manifest import MANIFEST_NAME, ManifestError, ManifestLoader


def write_manifest(directory: Path, body: str | None = None) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / MANIFEST_NAME
    path.write_text(
        textwrap.dedent(
            body
            or """
            resources:
              editor: code .
              docs: https://example.com/docs
            layouts:
              dev:
                - [editor]
                - [docs]
            default_layout: dev
            """
        ).strip(),
        encoding="utf-8",
    )
    return path


def test_find_walks_up_from_nested_directory(tmp_path: Path) -> None:
    manifest = write_manifest(tmp_path / "project")
    nested = tmp_path / "project" / "src" / "pkg"
    nested.mkdir(parents=True)

    found = ManifestLoader().find(nested)

    assert found == manifest.resolve()


def test_find_accepts_manifest_file(tmp_path: Path) -> None:
    manifest = write_manifest(tmp_path / "project")

    assert ManifestLoader().find(manifest) == manifest.resolve()


def test_find_project_by_name(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.mkdir()
    manifest = write_manifest(second / "blog")

    found = ManifestLoader([tmp_path / "missing", first, second]).find("blog")

    assert found == manifest.resolve()


def test_find_rejects_invalid_project_name(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ManifestError, match="Invalid project name"):
        ManifestLoader([tmp_path]).find("no such/project")


def test_find_reports_unknown_project(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ManifestError, match="not found in configured project paths"):
        ManifestLoader([tmp_path]).find("ghost")


def test_load_project_parses_manifest(tmp_path: Path) -> None:
    write_manifest(tmp_path / "project")

    project = ManifestLoader().load_project(tmp_path / "project")

    assert project.root == (tmp_path / "project").resolve()
    assert project.manifest.resource_names == ["editor", "docs"]
    assert project.manifest.default_layout == "dev"
    assert project.manifest.layouts == {"dev": [["editor"], ["docs"]]}


def test_load_coerces_scalar_commands(tmp_path: Path) -> None:
    path = write_manifest(tmp_path, "resources:\n  counter: 42\n")

    manifest = ManifestLoader().load(path)

    assert manifest.resources == {"counter": "42"}
    assert manifest.layouts is None


def test_load_reports_yaml_errors(tmp_path: Path) -> None:
    path = write_manifest(tmp_path, "resources: [unterminated\n")

    with pytest.raises(ManifestError, match="check YAML syntax"):
        ManifestLoader().load(path)


def test_load_requires_resources_section(tmp_path: Path) -> None:
    path = write_manifest(tmp_path, "layouts:\n  dev: []\n")

    with pytest.raises(ManifestError, match="missing 'resources' section"):
        ManifestLoader().load(path)


def test_load_rejects_empty_resources(tmp_path: Path) -> None:
    path = write_manifest(tmp_path, "resources: {}\n")

    with pytest.raises(ManifestError, match="No resources defined in manifest"):
        ManifestLoader().load(path)
