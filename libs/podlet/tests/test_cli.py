"""Tests for the podlet command line."""

import io
import json
import os
import subprocess
from types import SimpleNamespace

import pytest

from podlet.cli import attach_optional_values, main


@pytest.fixture
def compose_file(tmp_path):
    """Compose file with two services."""
    path = tmp_path / "compose.yaml"
    path.write_text(
        "name: mysite\n"
        "services:\n"
        "  web:\n"
        "    image: nginx\n"
        "    ports:\n"
        "      - \"8080:80\"\n"
        "  db:\n"
        "    image: postgres\n"
    )
    return path


@pytest.fixture
def container_payload():
    """``podman container inspect`` output for one container."""
    return [{
        "Name": "web",
        "Config": {"CreateCommand": ["podman", "run", "--name", "web", "nginx"]},
    }]


class TestAttachOptionalValues:
    """Tests for rewriting flags with optional values."""

    @pytest.mark.parametrize("argv,expected", [
        (["-f", "podman", "run", "nginx"], ["--file=.", "podman", "run", "nginx"]),
        (["--file", "compose"], ["--file=.", "compose"]),
        (["-a", "compose"], ["--absolute-host-paths=", "compose"]),
        (["--file=out", "compose"], ["--file=out", "compose"]),
        # options of the converted command are left alone
        (["podman", "run", "-a", "stdout", "nginx"], ["podman", "run", "-a", "stdout", "nginx"]),
    ])
    def test_rewrite(self, argv, expected):
        assert attach_optional_values(argv) == expected


class TestPodmanCommand:
    """Tests for podlet podman."""

    def test_stdout(self, capsys):
        assert main(["podman", "run", "-p", "8080:80", "nginx"]) == 0
        assert capsys.readouterr().out == "[Container]\nImage=nginx\nPublishPort=8080:80\n"

    def test_unit_and_install(self, capsys):
        assert main([
            "-d", "Web server",
            "--after", "network-online.target",
            "-i",
            "podman", "run", "nginx",
        ]) == 0

        assert capsys.readouterr().out == (
            "[Unit]\n"
            "Description=Web server\n"
            "After=network-online.target\n"
            "\n"
            "[Container]\n"
            "Image=nginx\n"
            "\n"
            "[Install]\n"
            "WantedBy=default.target\n"
        )

    def test_absolute_host_paths(self, capsys):
        assert main(["--absolute-host-paths=/srv/app", "podman", "run", "-v", "./data:/data", "nginx"]) == 0
        assert "Volume=/srv/app/data:/data\n" in capsys.readouterr().out

    def test_absolute_host_paths_default(self, capsys, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert main(["-a", "podman", "run", "-v", "./data:/data", "nginx"]) == 0
        assert f"Volume={os.path.join(os.getcwd(), 'data')}:/data\n" in capsys.readouterr().out

    def test_podman_version(self, capsys):
        assert main(["--podman-version", "4.8", "podman", "run", "--entrypoint", "/bin/sh", "nginx"]) == 0
        assert "PodmanArgs=--entrypoint /bin/sh\n" in capsys.readouterr().out

    def test_unknown_podman_version(self):
        with pytest.raises(SystemExit):
            main(["--podman-version", "3.0", "podman", "run", "nginx"])

    def test_error(self, capsys):
        assert main(["podman", "run"]) == 1
        assert capsys.readouterr().err.startswith("Error: ")

    def test_missing_command(self, capsys):
        assert main(["podman"]) == 1
        assert "missing podman command" in capsys.readouterr().err


class TestComposeCommand:
    """Tests for podlet compose."""

    def test_stdout(self, compose_file, capsys):
        assert main(["compose", str(compose_file)]) == 0

        assert capsys.readouterr().out == (
            "# web.container\n"
            "[Container]\n"
            "Image=nginx\n"
            "PublishPort=8080:80\n"
            "\n---\n\n"
            "# db.container\n"
            "[Container]\n"
            "Image=postgres\n"
        )

    def test_stdin(self, compose_file, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(compose_file.read_text()))

        assert main(["compose", "-"]) == 0
        assert "# db.container\n" in capsys.readouterr().out

    def test_found_in_current_directory(self, compose_file, capsys, monkeypatch):
        monkeypatch.chdir(compose_file.parent)

        assert main(["compose"]) == 0
        assert "# web.container\n" in capsys.readouterr().out

    def test_pod(self, compose_file, tmp_path):
        out = tmp_path / "out"

        assert main([f"--file={out}", "compose", "--pod", str(compose_file)]) == 0

        assert sorted(os.listdir(out)) == ["mysite-db.container", "mysite-web.container", "mysite.pod"]
        assert (out / "mysite.pod").read_text() == "[Pod]\nPublishPort=8080:80\n"

    def test_invalid_file(self, tmp_path, capsys):
        path = tmp_path / "compose.yaml"
        path.write_text("services:\n  web:\n    image: [nginx]\n")

        assert main(["compose", str(path)]) == 1
        assert "invalid compose file" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert main(["compose", str(tmp_path / "missing.yaml")]) == 1
        assert "Compose file not found" in capsys.readouterr().err


class TestWriteFiles:
    """Tests for writing files with --file."""

    def test_write(self, tmp_path, capsys):
        assert main([f"--file={tmp_path}", "podman", "run", "--name", "web", "nginx"]) == 0

        path = tmp_path / "web.container"
        assert path.read_text() == "[Container]\nContainerName=web\nImage=nginx\n"
        assert f"Written: {path}" in capsys.readouterr().err

    def test_current_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert main(["-f", "podman", "run", "nginx"]) == 0
        assert (tmp_path / "nginx.container").is_file()

    def test_refuses_to_overwrite(self, tmp_path, capsys):
        path = tmp_path / "nginx.container"
        path.write_text("keep\n")

        assert main([f"--file={tmp_path}", "podman", "run", "nginx"]) == 1
        assert "already exists" in capsys.readouterr().err
        assert path.read_text() == "keep\n"

        assert main([f"--file={tmp_path}", "--overwrite", "podman", "run", "nginx"]) == 0
        assert path.read_text() == "[Container]\nImage=nginx\n"

    def test_nothing_written_on_error(self, tmp_path):
        out = tmp_path / "out"

        assert main([f"--file={out}", "--podman-version", "4.8", "podman", "pod", "create", "web"]) == 1
        assert not out.exists()


class TestGenerateCommand:
    """Tests for podlet generate."""

    def test_from_json(self, tmp_path, container_payload, capsys):
        path = tmp_path / "inspect.json"
        path.write_text(json.dumps(container_payload))

        assert main(["generate", "container", "web", "--from-json", str(path)]) == 0
        assert capsys.readouterr().out == "[Container]\nContainerName=web\nImage=nginx\n"

    def test_runs_podman(self, container_payload, capsys, monkeypatch):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            return SimpleNamespace(returncode=0, stdout=json.dumps(container_payload), stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)

        assert main(["-n", "frontend", "generate", "container", "web"]) == 0
        assert calls == [["podman", "container", "inspect", "web"]]
        assert "ContainerName=web\n" in capsys.readouterr().out

    def test_podman_failure(self, capsys, monkeypatch):
        def fake_run(cmd, **kwargs):
            return SimpleNamespace(returncode=125, stdout="", stderr="Error: no such container web\n")

        monkeypatch.setattr(subprocess, "run", fake_run)

        assert main(["generate", "container", "web"]) == 1
        assert "no such container web" in capsys.readouterr().err

    def test_unknown_kind(self):
        with pytest.raises(SystemExit):
            main(["generate", "secret", "token"])


def test_no_command(capsys):
    assert main([]) == 0
    assert "usage: podlet" in capsys.readouterr().out
