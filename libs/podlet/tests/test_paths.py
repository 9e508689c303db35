"""Tests for podlet host path resolution."""

import pytest

from podlet.paths import absolutize, resolve_host_paths
from podlet.types import Build, Container, Globals, QuadletFile
from podlet.values import Device, VolumeSpec


class TestAbsolutize:
    """Tests for absolutize."""

    @pytest.mark.parametrize("path,expected", [
        ("./data", "/srv/app/data"),
        ("data", "/srv/app/data"),
        ("../shared", "/srv/shared"),
        ("/etc//caddy/../nginx", "/etc/nginx"),
        ("~/config", "~/config"),
        ("%h/config", "%h/config"),
        ("https://example.com/pod.yaml", "https://example.com/pod.yaml"),
    ])
    def test_paths(self, path, expected):
        assert absolutize(path, "/srv/app") == expected


class TestResolveHostPaths:
    """Tests for resolve_host_paths."""

    def test_container(self):
        """Test only host path keys are rewritten."""
        container = Container(
            image="caddy",
            volume=[
                VolumeSpec.parse("./Caddyfile:/etc/caddy/Caddyfile:Z"),
                VolumeSpec.parse("caddy-data:/data"),
            ],
            add_device=[Device.parse("/dev/fuse")],
            environment_file=["app.env"],
            podman_args=["--env-file ./other.env"],
        )
        file = QuadletFile(name="caddy", resource=container, globals=Globals(containers_conf_module=["mod.conf"]))

        resolved = resolve_host_paths(file, "/srv/app")

        assert [str(v) for v in resolved.resource.volume] == [
            "/srv/app/Caddyfile:/etc/caddy/Caddyfile:Z",
            "caddy-data:/data",
        ]
        assert str(resolved.resource.add_device[0]) == "/dev/fuse"
        assert resolved.resource.environment_file == ["/srv/app/app.env"]
        assert resolved.resource.podman_args == ["--env-file ./other.env"]
        assert resolved.globals.containers_conf_module == ["/srv/app/mod.conf"]

    def test_original_unchanged(self):
        file = QuadletFile(name="app", resource=Container(image="x", environment_file=["a.env"]))
        resolve_host_paths(file, "/srv")
        assert file.resource.environment_file == ["a.env"]

    def test_working_directory_keywords(self):
        keyword = QuadletFile(name="app", resource=Build(image_tag="app", set_working_directory="unit"))
        path = QuadletFile(name="app", resource=Build(image_tag="app", set_working_directory="."))

        assert resolve_host_paths(keyword, "/srv").resource.set_working_directory == "unit"
        assert resolve_host_paths(path, "/srv").resource.set_working_directory == "/srv"
