import json
from pathlib import Path

import cbor2
import pytest

from buildbackend.backend import BuildBackend
from buildbackend.manifest import Manifest
from buildbackend.platforms import Platform
from buildbackend.recipe import Build, BuildString, NoArchType, Package, PathSource, Recipe
from buildbackend.requirements import Requirements
from buildbackend.specs import MatchSpec, PackageName


def _recipe(tmp_path: Path) -> Recipe:
    return Recipe(
        package=Package(name=PackageName.parse("demo"), version="1.0"),
        source=(PathSource(path=tmp_path),),
        build=Build(number=1, script=("echo hi",), noarch=NoArchType.PYTHON),
        requirements=Requirements(run=(MatchSpec.parse("foo >=1"),)),
    )


def test_recipe_requires_a_source(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        Recipe(
            package=Package(name=PackageName.parse("demo"), version="1.0"),
            source=(),
            build=Build(),
            requirements=Requirements(),
        )


def test_with_build_string_returns_a_new_recipe(tmp_path: Path) -> None:
    recipe = _recipe(tmp_path)
    fixed = recipe.with_build_string("pyh0000000_1")

    assert fixed.build.string == BuildString.fixed("pyh0000000_1")
    assert recipe.build.string == BuildString.derived()
    assert fixed.build.script == recipe.build.script


def test_cbor_encoding_decodes_to_payload(tmp_path: Path) -> None:
    recipe = _recipe(tmp_path)
    assert cbor2.loads(recipe.to_cbor()) == recipe.to_payload()


def test_json_rendering(tmp_path: Path) -> None:
    recipe = _recipe(tmp_path)
    target = tmp_path / "recipe.json"
    text = recipe.to_json(target)

    assert target.read_text(encoding="utf-8") == text
    payload = json.loads(text)
    assert payload["package"] == {"name": "demo", "version": "1.0"}
    assert payload["build"]["noarch"] == "python"
    assert payload["requirements"]["run"] == ["foo >=1"]


def test_synthesis_is_deterministic(python_manifest: Path) -> None:
    manifest = Manifest.from_path(python_manifest)
    backend = BuildBackend.from_manifest(manifest)
    channel_config = backend.channel_config()

    first = backend.recipe(channel_config, Platform.LINUX_64, Platform.LINUX_64)
    second = backend.recipe(channel_config, Platform.LINUX_64, Platform.LINUX_64)

    assert first == second
    assert first.to_cbor() == second.to_cbor()
    assert first.digest() == second.digest()


def test_synthesized_python_recipe(python_manifest: Path) -> None:
    manifest = Manifest.from_path(python_manifest)
    backend = BuildBackend.from_manifest(manifest)
    recipe = backend.recipe(backend.channel_config(), Platform.LINUX_64, Platform.LINUX_64)

    assert recipe.source == (PathSource(path=manifest.manifest_root),)
    assert recipe.build.noarch is NoArchType.PYTHON
    assert recipe.build.number == 0
    assert recipe.about.license == "MIT"
    assert recipe.build.script == (
        "$PYTHON -m pip install --ignore-installed -vv --no-deps --no-build-isolation $SRC_DIR",
    )
