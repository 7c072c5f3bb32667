import importlib

import pytest


ENTRYPOINTS = [
    "qrprep",
]

SUBCOMMANDS = [
    "inspect",
    "process",
]


@pytest.mark.parametrize("module_name", ENTRYPOINTS)
def test_entrypoint_help(module_name):
    module = importlib.import_module(module_name)
    assert hasattr(module, "main"), f"{module_name} missing main()"

    with pytest.raises(SystemExit) as excinfo:
        module.main(["--help"])

    assert excinfo.value.code == 0


@pytest.mark.parametrize("command", SUBCOMMANDS)
def test_subcommand_help(command):
    module = importlib.import_module("qrprep")

    with pytest.raises(SystemExit) as excinfo:
        module.main([command, "--help"])

    assert excinfo.value.code == 0


def test_no_command_prints_help(capsys):
    module = importlib.import_module("qrprep")

    assert module.main([]) == 1
    assert "usage" in capsys.readouterr().out
