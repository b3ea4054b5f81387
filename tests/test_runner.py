"""End-to-end tests for the command-line entry point."""

from __future__ import annotations

import pytest

from fanssh.runner import main


@pytest.fixture
def groups_file(tmp_path):
    path = tmp_path / "groups"
    path.write_text("[lab]\nbox10\nbox2\n\n[all]\n@lab\nbox1\n")
    return path


def test_resolve_only(capsys, clean_env, groups_file):
    assert main(["-g", str(groups_file), "--resolve", "@all,extra1-2"]) == 0
    assert capsys.readouterr().out.split() == ["box1", "box2", "box10", "extra1", "extra2"]


def test_list_groups(capsys, clean_env, groups_file):
    assert main(["-g", str(groups_file), "--list-groups"]) == 0
    assert capsys.readouterr().out == "LAB\t2\nALL\t3\n"


def test_run_prints_in_host_order(capsys, clean_env, fake_ssh):
    assert main(["--ssh", str(fake_ssh), "h10,h2", "echo", "hi", "{}"]) == 0
    assert capsys.readouterr().out == "h2  : hi h2\nh10 : hi h10\n"


def test_run_returns_first_failure(capsys, clean_env, fake_ssh):
    code = main(["--ssh", str(fake_ssh), "-x", "never", "a,b", "test {} = a"])
    assert code == 1
    assert capsys.readouterr().out == "a : (no output)\nb : (no output)\n"


def test_no_wait_streams(capsys, clean_env, fake_ssh):
    assert main(["--ssh", str(fake_ssh), "-n", "a", "echo", "x"]) == 0
    assert capsys.readouterr().out == "a 0   : x\n"


def test_environment_supplies_client(capsys, monkeypatch, clean_env, fake_ssh):
    monkeypatch.setenv("FANSSH_SSH", str(fake_ssh))
    assert main(["solo", "echo", "ok"]) == 0
    assert capsys.readouterr().out == "solo : ok\n"


@pytest.mark.parametrize(
    "argv",
    [
        ["-n", "--order", "host", "a", "true"],
        ["web5-1", "true"],
        ["@missing", "true"],
        ["-c", "/nonexistent/fanssh.yaml", "a", "true"],
    ],
)
def test_errors_exit_one(capsys, clean_env, argv):
    assert main(argv) == 1
    assert "Error: " in capsys.readouterr().err


def test_missing_command(clean_env):
    with pytest.raises(SystemExit) as excinfo:
        main(["a"])
    assert excinfo.value.code == 2


def test_unreadable_groups_file_exits_one(capsys, clean_env, tmp_path):
    groups = tmp_path / "groups"
    groups.write_bytes(b"[WEB]\nweb\xff1\n")
    assert main(["-g", str(groups), "--resolve", "@WEB"]) == 1
    assert "Error: Cannot read groups file" in capsys.readouterr().err


def test_bad_output_dir_exits_one(capsys, clean_env, fake_ssh, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    argv = ["--ssh", str(fake_ssh), "-o", str(blocker / "out"), "h1", "true"]
    assert main(argv) == 1
    assert "Error: Cannot create output directory" in capsys.readouterr().err
