from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def _isolate_plugin_registry():
    # Tests run in one Python process; keep registrations from leaking between tests.
    from goanywhere import registry

    saved = dict(registry._REGISTRY)
    yield
    registry._REGISTRY.clear()
    registry._REGISTRY.update(saved)


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def simple_pkg():
    from dataclasses import replace

    from goanywhere.parser import parse_package

    return replace(parse_package(FIXTURES / "simple"), import_path="example.com/fixtures/simple")


@pytest.fixture
def complex_pkg():
    from dataclasses import replace

    from goanywhere.parser import parse_package

    return replace(parse_package(FIXTURES / "complex"), import_path="example.com/fixtures/complex")
