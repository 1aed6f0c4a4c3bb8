from __future__ import annotations

BUILD_SYSTEMS = ("setuptools", "hatch", "poetry", "uv")
DEFAULT_BUILD_SYSTEM = "setuptools"


def generate_pyproject_toml(name: str, build_system: str, library_file: str) -> str:
    """Return pyproject.toml text for a generated bindings package.

    The project is expected to hold ``<name>/__init__.py`` with the shared
    library ``library_file`` next to it. Unknown build systems fall back to
    setuptools.
    """
    if build_system not in BUILD_SYSTEMS:
        build_system = DEFAULT_BUILD_SYSTEM
    description = f"Python bindings for the Go package {name}."

    if build_system == "poetry":
        return "\n".join(
            [
                "[build-system]",
                'requires = ["poetry-core>=1.0.0"]',
                'build-backend = "poetry.core.masonry.api"',
                "",
                "[tool.poetry]",
                f'name = "{name}"',
                'version = "0.1.0"',
                f'description = "{description}"',
                "authors = []",
                f'packages = [{{ include = "{name}" }}]',
                f'include = [{{ path = "{name}/{library_file}", format = ["sdist", "wheel"] }}]',
                "",
                "[tool.poetry.dependencies]",
                'python = ">=3.10"',
                "",
            ]
        )

    project = [
        "[project]",
        f'name = "{name}"',
        'version = "0.1.0"',
        f'description = "{description}"',
        'requires-python = ">=3.10"',
        "dependencies = []",
        "",
    ]

    if build_system == "setuptools":
        return "\n".join(
            [
                "[build-system]",
                'requires = ["setuptools>=69", "wheel"]',
                'build-backend = "setuptools.build_meta"',
                "",
                *project,
                "[tool.setuptools]",
                f'packages = ["{name}"]',
                "",
                "[tool.setuptools.package-data]",
                f'"{name}" = ["{library_file}"]',
                "",
            ]
        )

    # hatch and uv both build through hatchling.
    lines = [
        "[build-system]",
        'requires = ["hatchling"]',
        'build-backend = "hatchling.build"',
        "",
        *project,
        "[tool.hatch.build.targets.wheel]",
        f'packages = ["{name}"]',
        f'artifacts = ["{name}/{library_file}"]',
        "",
    ]
    if build_system == "uv":
        lines.extend(["[tool.uv]", "package = true", ""])
    return "\n".join(lines)
