import pytest

from flexifunc.codegen.cli import main


def test_cli_stdout(support_files, capsys):
    main(["-m", "twin_impl", "--stdout"])
    captured = capsys.readouterr()

    assert "# File: twin_generated.py" in captured.out
    assert "async def add_async(a: int, b: int) -> int:" in captured.out
    assert "Found Module: twin_generated with 2 items" in captured.err


def test_cli_writes_files(support_files, tmp_path, capsys):
    main(["-m", "twin_impl", "-o", str(tmp_path)])

    generated = tmp_path / "twin_generated.py"
    assert generated.exists()
    assert "async def parse_number_aio(text: str)" in generated.read_text()
    assert "Generation completed successfully!" in capsys.readouterr().err


def test_cli_without_modules(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["-m", "json"])
    assert exc_info.value.code == 1
    assert "No Module objects found" in capsys.readouterr().err


def test_cli_reports_malformed_functions(support_files, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["-m", "malformed_impl", "--stdout"])
    assert exc_info.value.code == 1
    assert "parameters[0]: parameter 'value' has no type" in capsys.readouterr().err


def test_cli_requires_module():
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 2
