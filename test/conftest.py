import pytest
import sys
from pathlib import Path

SUPPORT_FILES = Path(__file__).parent / "support_files"


@pytest.fixture(autouse=True)
def use_asyncio_debug(monkeypatch):
    monkeypatch.setenv("PYTHONASYNCIODEBUG", "1")


@pytest.fixture
def support_files(monkeypatch):
    """Put the support modules on sys.path so the code generator can import them."""
    monkeypatch.syspath_prepend(str(SUPPORT_FILES))
    return SUPPORT_FILES


@pytest.fixture
def twin_impl(support_files):
    import twin_impl

    return twin_impl


@pytest.fixture
def generated_module(tmp_path, monkeypatch):
    """Write generated modules to a temporary directory and import one of them."""
    from flexifunc.codegen.writer import write_modules

    def load(modules: dict[str, str], module_name: str):
        list(write_modules(tmp_path, modules))
        monkeypatch.syspath_prepend(str(tmp_path))
        sys.modules.pop(module_name, None)
        return __import__(module_name)

    return load
