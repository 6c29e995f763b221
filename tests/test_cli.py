from pathlib import Path

import pytest
from typer.testing import CliRunner

from zkcluster_src.commands import app

runner = CliRunner()


@pytest.fixture
def cluster_env(monkeypatch, tmp_path: Path, data_dir: Path):
    monkeypatch.setenv("CLUSTER_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("CLUSTER_DATA", str(data_dir))
    monkeypatch.setenv("CLUSTER_BACKUP", str(tmp_path / "backup"))
    monkeypatch.setenv("CLUSTER_NAME", "testcluster")


def swarm(fake_run, active: bool) -> None:
    fake_run.respond(["docker", "node", "ls"], returncode=0 if active else 1)


def test_no_operation_prints_usage(fake_run):
    result = runner.invoke(app, [])
    assert result.exit_code == 1
    assert "Usage: zkcluster" in result.output
    assert fake_run.calls == []


def test_help_exits_with_one(fake_run):
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 1
    assert "--deploy" in result.output
    assert fake_run.calls == []


def test_deploy_without_stack_does_not_touch_docker(fake_run, cluster_env):
    result = runner.invoke(app, ["--deploy"])
    assert result.exit_code == 1
    assert "requires a stack argument" in result.output
    assert fake_run.calls == []


def test_multiple_operations_are_rejected(fake_run, cluster_env):
    result = runner.invoke(app, ["--deploy", "--remove", "web"])
    assert result.exit_code == 1
    assert fake_run.calls == []


def test_deploy_in_swarm_mode(fake_run, cluster_env, make_stack):
    directory = make_stack("web")
    swarm(fake_run, True)

    result = runner.invoke(app, ["--deploy", "web", "prod"])

    assert result.exit_code == 0, result.output
    assert fake_run.commands[0] == ["docker", "node", "ls"]
    deploy_cmd = fake_run.commands[-1]
    assert deploy_cmd[:3] == ["docker", "stack", "deploy"]
    assert deploy_cmd[-1] == "web"
    assert fake_run.calls[-1].cwd == directory


def test_deploy_without_swarm(fake_run, cluster_env, make_stack):
    make_stack("web")
    swarm(fake_run, False)

    result = runner.invoke(app, ["--deploy", "web"])

    assert result.exit_code == 0, result.output
    assert fake_run.commands[-1][:4] == ["docker", "compose", "-p", "web"]
    assert fake_run.commands[-1][-2:] == ["up", "-d"]


def test_failing_command_sets_exit_status(fake_run, cluster_env, make_stack):
    make_stack("web")
    swarm(fake_run, True)
    fake_run.respond(["docker", "stack", "rm"], returncode=4)

    result = runner.invoke(app, ["--remove", "web"])

    assert result.exit_code == 4
    assert "status 4" in result.output


def test_missing_stack_directory(fake_run, cluster_env):
    swarm(fake_run, True)

    result = runner.invoke(app, ["--remove", "ghost"])

    assert result.exit_code == 1
    assert "Stack directory not found" in result.output


def test_list_outside_swarm_mode(fake_run, cluster_env):
    swarm(fake_run, False)

    result = runner.invoke(app, ["--list", "services"])

    assert result.exit_code == 1
    assert "requires swarm mode" in result.output


def test_list_unknown_selector(fake_run, cluster_env):
    swarm(fake_run, True)

    result = runner.invoke(app, ["--list", "volumes"])

    assert result.exit_code == 1
    assert "Unknown list selector" in result.output


def test_balance_all(fake_run, cluster_env):
    swarm(fake_run, True)
    fake_run.respond(
        ["docker", "service", "ls", "--format", "{{.Name}}"], stdout="a\nb\n"
    )

    result = runner.invoke(app, ["--balance", "all"])

    assert result.exit_code == 0, result.output
    assert fake_run.commands[-2:] == [
        ["docker", "service", "update", "--force", "a"],
        ["docker", "service", "update", "--force", "b"],
    ]


def test_invalid_configuration(fake_run, monkeypatch, tmp_path: Path):
    config = tmp_path / "zkcluster.yaml"
    config.write_text("unknown: 1\n", encoding="utf-8")
    monkeypatch.setenv("CLUSTER_CONFIG", str(config))

    result = runner.invoke(app, ["--stats"])

    assert result.exit_code == 1
    assert "Configuration error" in result.output
    assert fake_run.calls == []


def test_malformed_yaml_is_a_configuration_error(
    fake_run, monkeypatch, tmp_path: Path
):
    config = tmp_path / "zkcluster.yaml"
    config.write_text("data: [unclosed\n", encoding="utf-8")
    monkeypatch.setenv("CLUSTER_CONFIG", str(config))

    result = runner.invoke(app, ["--stats"])

    assert result.exit_code == 1
    assert "Configuration error" in result.output
    assert fake_run.calls == []


def test_logs_follows_service(fake_run, cluster_env):
    swarm(fake_run, True)

    result = runner.invoke(app, ["--logs", "web_app"])

    assert result.exit_code == 0, result.output
    assert fake_run.commands[-1] == [
        "docker",
        "service",
        "logs",
        "--follow",
        "web_app",
    ]


def test_logs_outside_swarm_mode(fake_run, cluster_env):
    swarm(fake_run, False)

    result = runner.invoke(app, ["--logs", "web_app"])

    assert result.exit_code == 1
    assert "requires swarm mode" in result.output


def test_missing_executable_name_is_printed_literally(fake_run, cluster_env):
    swarm(fake_run, True)

    def missing(cmd):
        raise FileNotFoundError(2, "No such file or directory", "[bold]docker")

    fake_run.respond(["docker", "service", "logs"], action=missing)

    result = runner.invoke(app, ["--logs", "web_app"])

    assert result.exit_code == 1
    assert "[bold]docker not found" in result.output
