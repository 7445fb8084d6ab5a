"""Tests for manifest readers."""

import json
from pathlib import Path

import pytest

from compilegraph_cli.errors import ManifestError
from compilegraph_cli.manifest import JsonManifest, SourceTreeManifest, open_manifest
from compilegraph_cli.models import ModuleExports


def test_source_tree_lists_units(sample_project_path: Path):
    """Test that every .ex file with a module becomes a unit."""
    manifest = SourceTreeManifest(sample_project_path)
    units = {u.unit_id: u for u in manifest.list_compiled_units()}

    assert sorted(units) == [
        "lib/shop/config.ex",
        "lib/shop/formatter.ex",
        "lib/shop/invoice.ex",
        "lib/shop/macros.ex",
        "lib/shop/order.ex",
        "lib/shop/pricing.ex",
        "lib/shop/rates.ex",
        "lib/shop/tax.ex",
        "lib/shop/user.ex",
    ]
    assert units["lib/shop/order.ex"].modules == ["Shop.Order"]
    assert units["lib/shop/order.ex"].references == ["Shop.User"]
    assert units["lib/shop/pricing.ex"].references == ["Shop.Config", "Shop.Tax"]


def test_source_tree_skips_scripts_build_dirs_and_bad_files(write_sources):
    root = write_sources({
        "lib/ok.ex": "defmodule Ok do\nend\n",
        "lib/garbage.ex": "defmodule Garbage do\n  @doc \"unterminated\n",
        "lib/empty.ex": "# nothing here\n",
        "test/ok_test.exs": "defmodule OkTest do\nend\n",
        "deps/dep/lib/dep.ex": "defmodule Dep do\nend\n",
        "_build/dev/x.ex": "defmodule Built do\nend\n",
    })
    units = SourceTreeManifest(root).list_compiled_units()
    assert [u.unit_id for u in units] == ["lib/ok.ex"]


def test_source_tree_keeps_unparseable_unit(write_sources):
    """Test that a file that does not parse stays a unit with no references."""
    root = write_sources({
        "lib/broken.ex": (
            "defmodule Broken do\n"
            "  alias Other.Thing\n"
            "  defmodule Inner do\n"
            "    def f(), do: fn x -> x end\n"
            "  end\n"
            "  def g(, do: Thing.go()\n"
            "end\n"
        ),
        "lib/unclosed.ex": "defmodule Unclosed do\n  def h(), do: 1\n",
    })
    units = {u.unit_id: u for u in SourceTreeManifest(root).list_compiled_units()}

    assert units["lib/broken.ex"].modules == ["Broken", "Broken.Inner"]
    assert units["lib/broken.ex"].references == []
    assert units["lib/unclosed.ex"].modules == ["Unclosed"]


def test_source_tree_derives_exports(sample_project_path: Path):
    manifest = SourceTreeManifest(sample_project_path)
    exports = manifest.list_module_exports("Shop.Macros")
    assert exports.macros == {("schema_field", 1)}
    assert exports.functions == {("helper", 1)}
    assert manifest.list_module_exports("Not.A.Module") == ModuleExports()


def test_json_manifest(sample_project_path: Path):
    """Test reading units and exports from a JSON manifest."""
    manifest = JsonManifest(sample_project_path / "manifest.json")
    units = {u.unit_id: u for u in manifest.list_compiled_units()}

    assert len(units) == 9
    formatter = units["lib/shop/formatter.ex"]
    assert formatter.references == ["Shop.Config"]
    assert Path(formatter.source_path) == sample_project_path / "lib/shop/formatter.ex"

    rates = manifest.list_module_exports("Shop.Rates")
    assert rates.functions == {("rate", 0), ("currency_for", 1)}
    # Not listed in the document, derived from source
    assert manifest.list_module_exports("Shop.Tax").functions == {("apply", 1)}


def test_json_manifest_without_references(temp_dir: Path):
    path = temp_dir / "manifest.json"
    path.write_text(json.dumps({"units": [{"id": "lib/a.ex", "modules": ["A"]}]}))
    (unit,) = JsonManifest(path).list_compiled_units()
    assert unit.references is None
    assert unit.source_path == str(temp_dir / "lib/a.ex")


@pytest.mark.parametrize(
    "content",
    ["{not json", "[1, 2]", json.dumps({"units": [{"modules": ["A"]}]})],
)
def test_json_manifest_rejects_malformed(temp_dir: Path, content: str):
    path = temp_dir / "manifest.json"
    path.write_text(content)
    with pytest.raises(ManifestError):
        JsonManifest(path)


def test_json_manifest_missing_file(temp_dir: Path):
    with pytest.raises(ManifestError):
        JsonManifest(temp_dir / "missing.json")


def test_open_manifest(sample_project_path: Path, temp_dir: Path):
    assert isinstance(open_manifest(sample_project_path), SourceTreeManifest)
    assert isinstance(
        open_manifest(sample_project_path, sample_project_path / "manifest.json"),
        JsonManifest,
    )
    with pytest.raises(ManifestError):
        open_manifest(temp_dir / "missing")
