from pathlib import Path
from typing import Iterator

PACKAGE_INIT_TEXT = "# Package generated by flexifunc\n"


def module_path_for(output_dir: Path, module_name: str) -> Path:
    return output_dir / (module_name.replace(".", "/") + ".py")


def write_modules(output_dir: Path, modules: dict[str, str]) -> Iterator[Path]:
    """Write generated modules below output_dir, yielding each written path.

    Package directories created along the way get an `__init__.py` unless they
    already have one.
    """
    package_dirs = set()

    for module_name, code in modules.items():
        module_path = module_path_for(output_dir, module_name)
        module_path.parent.mkdir(parents=True, exist_ok=True)

        current = module_path.parent
        while current != output_dir and current not in package_dirs:
            package_dirs.add(current)
            current = current.parent

        module_path.write_text(code)
        yield module_path

    for dir_path in sorted(package_dirs):
        init_file = dir_path / "__init__.py"
        if not init_file.exists():
            init_file.write_text(PACKAGE_INIT_TEXT)
