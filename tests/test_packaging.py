import pytest

from goanywhere.plugins.python.packaging import BUILD_SYSTEMS, generate_pyproject_toml


def test_setuptools_ships_library_as_package_data():
    text = generate_pyproject_toml("simple", "setuptools", "libsimple.so")

    assert 'build-backend = "setuptools.build_meta"' in text
    assert 'name = "simple"' in text
    assert 'packages = ["simple"]' in text
    assert '"simple" = ["libsimple.so"]' in text


@pytest.mark.parametrize("build_system", ["hatch", "uv"])
def test_hatchling_backends(build_system: str):
    text = generate_pyproject_toml("simple", build_system, "libsimple.dylib")

    assert 'build-backend = "hatchling.build"' in text
    assert 'artifacts = ["simple/libsimple.dylib"]' in text
    assert ("[tool.uv]" in text) == (build_system == "uv")


def test_poetry_includes_library():
    text = generate_pyproject_toml("simple", "poetry", "libsimple.dll")

    assert 'build-backend = "poetry.core.masonry.api"' in text
    assert "[tool.poetry]" in text
    assert "[project]" not in text
    assert 'include = [{ path = "simple/libsimple.dll", format = ["sdist", "wheel"] }]' in text


def test_unknown_build_system_falls_back_to_setuptools():
    assert generate_pyproject_toml("x", "bazel", "libx.so") == generate_pyproject_toml("x", "setuptools", "libx.so")


def test_every_build_system_declares_a_backend():
    for build_system in BUILD_SYSTEMS:
        text = generate_pyproject_toml("x", build_system, "libx.so")
        assert text.startswith("[build-system]\n")
        assert "build-backend" in text
