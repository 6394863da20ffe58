import pytest

from trex.cli import build_parser, main
from trex.clone import DEFAULT_DESTINATION, DEFAULT_NAME, replace_names


def test_clone_defaults():
    args = build_parser().parse_args(["clone"])
    assert args.name == "maestro"
    assert args.destination == "/tmp/clone-test"
    assert (args.name, args.destination) == (DEFAULT_NAME, DEFAULT_DESTINATION)


def test_clone_options_are_parsed():
    args = build_parser().parse_args(["clone", "--name", "Svc", "--destination", "/x"])
    assert (args.name, args.destination) == ("Svc", "/x")


def test_main_without_command_prints_help(capsys):
    assert main([]) == 0
    out = capsys.readouterr().out
    assert "serve" in out
    assert "clone" in out


def test_main_clone_copies_current_directory(tmp_path, monkeypatch):
    src = tmp_path / "src"
    (src / "trex").mkdir(parents=True)
    (src / "trex" / "notes.txt").write_text("TRex notes\n")
    dst = tmp_path / "out"
    monkeypatch.chdir(src)

    assert main(["clone", "--name", "Maestro", "--destination", str(dst)]) == 0
    copied = dst / "maestro" / "notes.txt"
    assert copied.read_text() == replace_names("TRex notes\n", "Maestro")


def test_main_clone_rejects_unknown_arguments(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as excinfo:
        main(["clone", "--bogus"])
    assert excinfo.value.code == 2


def test_main_serve_rejects_unknown_flag():
    with pytest.raises(SystemExit) as excinfo:
        main(["serve", "--no-such-flag=1"])
    assert excinfo.value.code == 2


def test_main_serve_rejects_bad_flag_value():
    with pytest.raises(SystemExit) as excinfo:
        main(["serve", "--enable-https=maybe"])
    assert excinfo.value.code == 2