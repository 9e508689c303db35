"""Tests for podlet podman command parsing."""

import pytest

from podlet.context import ConversionContext
from podlet.errors import ParseError, UnsupportedOptionError
from podlet.options import (
    BuildOptions,
    ImagePullOptions,
    KubePlayOptions,
    NetworkCreateOptions,
    PodCreateOptions,
    RunOptions,
    VolumeCreateOptions,
    command_join,
    parse_podman_command,
)
from podlet.render import render
from podlet.values import PullPolicy, RestartPolicy


@pytest.fixture
def context():
    """Default conversion context."""
    return ConversionContext()


def convert(argv, context, **kwargs):
    options = parse_podman_command(argv)
    file = options.to_quadlet_file(context, **kwargs)
    return file, render(file, context)


class TestParsePodmanCommand:
    """Tests for subcommand dispatch."""

    @pytest.mark.parametrize("argv,model", [
        (["run", "nginx"], RunOptions),
        (["container", "create", "nginx"], RunOptions),
        (["pod", "create", "web"], PodCreateOptions),
        (["kube", "play", "pod.yaml"], KubePlayOptions),
        (["network", "create", "front"], NetworkCreateOptions),
        (["volume", "create", "data"], VolumeCreateOptions),
        (["build", "-t", "app", "."], BuildOptions),
        (["image", "pull", "nginx"], ImagePullOptions),
    ])
    def test_dispatch(self, argv, model):
        assert isinstance(parse_podman_command(argv), model)

    def test_unsupported_command(self):
        with pytest.raises(ParseError, match="unsupported podman command"):
            parse_podman_command(["container", "list"])

    def test_missing_command(self):
        with pytest.raises(ParseError, match="missing podman command"):
            parse_podman_command(["--log-level", "debug"])

    def test_global_options(self, context):
        _, text = convert(["--log-level", "debug", "run", "nginx"], context)

        assert text == "[Container]\nImage=nginx\nGlobalArgs=--log-level debug\n"


class TestRun:
    """Tests for podman run."""

    def test_caddy(self, context):
        file, text = convert([
            "run",
            "-p", "8000:80",
            "-p", "8443:443",
            "-v", "./Caddyfile:/etc/caddy/Caddyfile:Z",
            "-v", "caddy-data:/data",
            "docker.io/library/caddy:latest",
        ], context)

        assert file.file_name == "caddy.container"
        assert text == (
            "[Container]\n"
            "Image=docker.io/library/caddy:latest\n"
            "PublishPort=8000:80\n"
            "PublishPort=8443:443\n"
            "Volume=./Caddyfile:/etc/caddy/Caddyfile:Z\n"
            "Volume=caddy-data:/data\n"
        )

    def test_name(self, context):
        file, text = convert(["run", "--name", "web", "nginx"], context)

        assert file.file_name == "web.container"
        assert "ContainerName=web\n" in text

    def test_name_override(self, context):
        file, _ = convert(["run", "--name", "web", "nginx"], context, name="frontend")
        assert file.name == "frontend"

    def test_command(self, context):
        _, text = convert(["run", "alpine", "echo", "hello world"], context)
        assert "Exec=echo 'hello world'\n" in text

    def test_options_after_image_belong_to_command(self):
        options = RunOptions.parse(["alpine", "ls", "-l"])
        assert options.command == ["ls", "-l"]

    def test_discarded_options(self, context):
        _, text = convert(["run", "--rm", "-d", "--replace", "nginx"], context)
        assert text == "[Container]\nImage=nginx\n"

    def test_passthrough(self, context):
        _, text = convert(["run", "--memory", "512m", "--privileged", "nginx"], context)
        assert "PodmanArgs=--memory 512m --privileged\n" in text

    def test_restart(self, context):
        file, text = convert(["run", "--restart", "unless-stopped", "nginx"], context)

        assert file.service.restart == RestartPolicy.ALWAYS
        assert "[Service]\nRestart=always\n" in text

    def test_user_and_group(self, context):
        _, text = convert(["run", "--user", "1000:100", "nginx"], context)

        assert "Group=100\n" in text
        assert "User=1000\n" in text

    def test_boolean_flag_with_value(self):
        assert RunOptions.parse(["--read-only=true", "nginx"]).read_only
        assert not RunOptions.parse(["--read-only=false", "nginx"]).read_only

    def test_read_only_tmpfs(self, context):
        _, text = convert(["run", "--read-only-tmpfs=false", "nginx"], context)
        assert "ReadOnlyTmpfs=false\n" in text

    def test_auto_update_label(self, context):
        _, text = convert(["run", "--label", "io.containers.autoupdate=registry", "nginx"], context)

        assert "AutoUpdate=registry\n" in text
        assert "Label=" not in text

    def test_security_options(self, context):
        _, text = convert([
            "run",
            "--security-opt", "label=disable",
            "--security-opt", "no-new-privileges",
            "--security-opt", "apparmor=unconfined",
            "nginx",
        ], context)

        assert "SecurityLabelDisable=true\n" in text
        assert "NoNewPrivileges=true\n" in text
        assert "PodmanArgs=--security-opt apparmor=unconfined\n" in text

    def test_pull(self):
        assert RunOptions.parse(["--pull", "newer", "nginx"]).pull == PullPolicy.NEWER

    def test_invalid_value(self):
        with pytest.raises(ParseError, match="invalid value 'abc' for '--pids-limit'"):
            RunOptions.parse(["--pids-limit", "abc", "nginx"])

    def test_out_of_range(self):
        with pytest.raises(ParseError, match="--blkio-weight"):
            RunOptions.parse(["--blkio-weight", "5", "nginx"])

    def test_unknown_option(self):
        with pytest.raises(ParseError):
            RunOptions.parse(["--bogus", "nginx"])

    def test_missing_image(self):
        with pytest.raises(ParseError):
            RunOptions.parse(["--name", "web"])


class TestPodCreate:
    """Tests for podman pod create."""

    def test_pod(self, context):
        file, text = convert(["pod", "create", "--name", "web", "-p", "80:80"], context)

        assert file.file_name == "web.pod"
        assert text == "[Pod]\nPublishPort=80:80\n"

    def test_name_required(self, context):
        with pytest.raises(ParseError, match="pod name is required"):
            convert(["pod", "create"], context)

    def test_conflicting_names(self):
        with pytest.raises(ParseError, match="conflicts"):
            PodCreateOptions.parse(["--name", "a", "b"])

    def test_infra_conmon_pidfile(self, context):
        options = PodCreateOptions.parse(["--infra-conmon-pidfile", "/run/web.pid", "web"])

        with pytest.raises(UnsupportedOptionError, match="--infra-conmon-pidfile"):
            options.to_quadlet_file(context)
        assert options.to_quadlet_file(context, ignore_infra_conmon_pidfile=True).name == "web"


class TestKubePlay:
    def test_kube(self, context):
        file, text = convert([
            "kube", "play",
            "--annotation", "io.containers.autoupdate=registry",
            "--annotation", "team=web",
            "pod.yaml",
        ], context)

        assert file.file_name == "pod.kube"
        assert text == (
            "[Kube]\n"
            "AutoUpdate=registry\n"
            "PodmanArgs=--annotation team=web\n"
            "Yaml=pod.yaml\n"
        )


class TestNetworkCreate:
    def test_network(self, context):
        file, text = convert(
            ["network", "create", "--subnet", "10.0.0.0/24", "--internal", "-o", "mtu=1500", "front"],
            context,
        )

        assert file.file_name == "front.network"
        assert text == "[Network]\nInternal=true\nOptions=mtu=1500\nSubnet=10.0.0.0/24\n"

    def test_name_required(self, context):
        with pytest.raises(ParseError, match="network name is required"):
            convert(["network", "create"], context)


class TestVolumeCreate:
    def test_volume(self, context):
        file, text = convert(
            ["volume", "create", "-o", "type=tmpfs", "-o", "o=uid=1000,size=1g", "data"],
            context,
        )

        assert file.file_name == "data.volume"
        assert text == "[Volume]\nOptions=size=1g\nType=tmpfs\nUser=1000\n"

    def test_driver_is_passed_through(self, context):
        _, text = convert(["volume", "create", "--driver", "image", "data"], context)
        assert "PodmanArgs=--driver image\n" in text

    def test_invalid_option(self):
        with pytest.raises(ParseError, match="foo=bar"):
            VolumeCreateOptions.parse(["-o", "foo=bar", "data"])


class TestBuild:
    def test_build(self, context):
        file, text = convert(["build", "-t", "localhost/app:latest", "."], context)

        assert file.file_name == "app.build"
        assert text == "[Build]\nImageTag=localhost/app:latest\nSetWorkingDirectory=.\n"

    def test_tag_required(self):
        with pytest.raises(ParseError, match="exactly one image tag"):
            BuildOptions.parse(["."])

    def test_pull_boolean(self):
        assert BuildOptions.parse(["--pull=true", "-t", "app", "."]).pull == PullPolicy.ALWAYS

    @pytest.mark.parametrize("argv", [
        ["--runtime", "crun", "build", "--runtime-flag", "debug", "-t", "app", "."],
        ["image", "build", "--runtime", "crun", "--runtime-flag", "debug", "-t", "app", "."],
    ])
    def test_runtime_is_global(self, argv, context):
        _, text = convert(argv, context)
        assert "GlobalArgs=--runtime crun --runtime-flag debug\n" in text

    def test_ssh_is_passed_through(self, context):
        _, text = convert(["build", "--ssh", "default", "-t", "app", "."], context)

        assert "PodmanArgs=--ssh default\n" in text
        assert "GlobalArgs" not in text


class TestImagePull:
    def test_platform(self, context):
        file, text = convert(["pull", "--platform", "linux/arm64/v8", "quay.io/podman/hello"], context)

        assert file.file_name == "hello.image"
        assert text == (
            "[Image]\n"
            "Arch=arm64\n"
            "Image=quay.io/podman/hello\n"
            "OS=linux\n"
            "Variant=v8\n"
        )

    def test_platform_conflict(self):
        with pytest.raises(ParseError, match="conflicts"):
            ImagePullOptions.parse(["--platform", "linux/amd64", "--os", "linux", "nginx"])


def test_command_join():
    assert command_join(["sh", "-c", "echo $HOME"]) == "sh -c 'echo $HOME'"
    assert command_join(["a\x07b"]) == "ab"
