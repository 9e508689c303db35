"""Tests for podlet generation from podman inspect output."""

import pytest

from podlet.context import ConversionContext
from podlet.errors import IntrospectionShapeError, ParseError, UnsupportedOptionError
from podlet.introspect import (
    container_options,
    generate,
    normalize_payload,
    pod_members,
)
from podlet.render import render


@pytest.fixture
def context():
    """Default conversion context."""
    return ConversionContext()


@pytest.fixture
def container_payload():
    """Trimmed ``podman container inspect`` output."""
    return {
        "Id": "def456",
        "Name": "web",
        "Config": {
            "CreateCommand": [
                "/usr/bin/podman", "run", "-d", "--name", "web",
                "--pod", "mysite", "-p", "8080:80", "nginx:alpine",
            ],
        },
    }


@pytest.fixture
def pod_payload():
    """Trimmed ``podman pod inspect`` output."""
    return {
        "Name": "mysite",
        "CreateCommand": [
            "podman", "pod", "create", "--name", "mysite",
            "--infra-conmon-pidfile", "/run/user/1000/mysite.pid",
            "-p", "8080:80",
        ],
        "InfraContainerID": "abc123",
        "Containers": [
            {"Id": "abc123", "Name": "a1b2c3-infra"},
            {"Id": "def456", "Name": "web"},
        ],
    }


class TestNormalizePayload:
    """Tests for normalize_payload."""

    def test_object_and_list_are_equivalent(self, container_payload):
        assert normalize_payload(container_payload) is container_payload
        assert normalize_payload([container_payload]) is container_payload
        assert container_options(normalize_payload([container_payload])) == container_options(container_payload)

    @pytest.mark.parametrize("payload,shape", [
        ([], "a list of 0 items"),
        ([{}, {}], "a list of 2 items"),
        (["web"], "a list holding a str"),
        ("web", "str"),
    ])
    def test_invalid_shapes(self, payload, shape):
        with pytest.raises(IntrospectionShapeError, match=shape):
            normalize_payload(payload)


class TestGenerateContainer:
    def test_container(self, context, container_payload):
        files = generate("container", container_payload, context)

        assert [file.file_name for file in files] == ["web.container"]
        assert render(files[0], context) == (
            "[Container]\n"
            "ContainerName=web\n"
            "Image=nginx:alpine\n"
            "PodmanArgs=--pod mysite\n"
            "PublishPort=8080:80\n"
        )

    def test_name_override(self, context, container_payload):
        assert generate("container", container_payload, context, name="frontend")[0].name == "frontend"

    def test_missing_create_command(self, context):
        with pytest.raises(ParseError, match="no recorded create command"):
            generate("container", {"Config": {}}, context)

    def test_not_a_container_command(self, context):
        payload = {"Config": {"CreateCommand": ["podman", "volume", "create", "data"]}}

        with pytest.raises(ParseError, match="not a container create command"):
            generate("container", payload, context)


class TestGeneratePod:
    """Tests for pods and their containers."""

    def test_pod(self, context, pod_payload, container_payload):
        inspected = []

        def inspect(kind, name):
            inspected.append((kind, name))
            return [container_payload]

        files = generate("pod", pod_payload, context, inspect=inspect, ignore_infra_conmon_pidfile=True)

        assert inspected == [("container", "web")]
        assert [file.file_name for file in files] == ["mysite.pod", "web.container"]
        assert render(files[0], context) == "[Pod]\nPublishPort=8080:80\n"
        web = files[1].resource
        assert web.pod == "mysite.pod"
        assert web.podman_args == []

    def test_infra_conmon_pidfile(self, context, pod_payload):
        with pytest.raises(UnsupportedOptionError, match="--ignore-infra-conmon-pidfile"):
            generate("pod", pod_payload, context, inspect=lambda kind, name: {})

    def test_members_need_inspector(self, context, pod_payload):
        with pytest.raises(ParseError, match="requires podman"):
            generate("pod", pod_payload, context, ignore_infra_conmon_pidfile=True)

    def test_pod_members(self, pod_payload):
        assert pod_members(pod_payload) == ["web"]


class TestGenerateOthers:
    """Tests for networks, volumes and images."""

    def test_network(self, context):
        payload = {
            "name": "front",
            "driver": "bridge",
            "network_interface": "podman1",
            "subnets": [{"subnet": "10.89.0.0/24", "gateway": "10.89.0.1"}],
            "ipv6_enabled": False,
            "internal": False,
            "dns_enabled": True,
            "ipam_options": {"driver": "host-local"},
        }

        files = generate("network", [payload], context)

        assert [file.file_name for file in files] == ["front.network"]
        assert render(files[0], context) == (
            "[Network]\n"
            "Driver=bridge\n"
            "Gateway=10.89.0.1\n"
            "IPAMDriver=host-local\n"
            "PodmanArgs=--interface-name podman1\n"
            "Subnet=10.89.0.0/24\n"
        )

    def test_network_dns_disabled(self, context):
        files = generate("network", {"name": "internal", "dns_enabled": False}, context)
        assert files[0].resource.disable_dns

    def test_volume(self, context):
        payload = {
            "Name": "data",
            "Driver": "local",
            "Labels": {"app": "web"},
            "Options": {"type": "tmpfs", "o": "size=1g"},
        }

        files = generate("volume", payload, context)

        assert render(files[0], context) == (
            "[Volume]\n"
            "Label=app=web\n"
            "Options=size=1g\n"
            "Type=tmpfs\n"
        )

    def test_volume_options_without_value(self, context):
        payload = {"Name": "data", "Options": {"copy": "", "type": "tmpfs"}}

        files = generate("volume", payload, context)

        assert render(files[0], context) == "[Volume]\nCopy=true\nType=tmpfs\n"

    def test_volume_skips_unknown_options(self, context, caplog):
        payload = {"Name": "data", "Options": {"bogus": "1", "device": "/dev/sdb"}}

        files = generate("volume", payload, context)

        assert files[0].resource.device == "/dev/sdb"
        assert "bogus=1" in caplog.text

    def test_image(self, context):
        payload = {
            "RepoTags": ["docker.io/library/nginx:1.27", "docker.io/library/nginx:latest"],
            "Architecture": "amd64",
            "Os": "linux",
        }

        files = generate("image", payload, context)

        assert [file.file_name for file in files] == ["nginx.image"]
        assert render(files[0], context) == (
            "[Image]\n"
            "Arch=amd64\n"
            "Image=docker.io/library/nginx:latest\n"
            "OS=linux\n"
        )

    def test_untagged_image(self, context):
        with pytest.raises(ParseError, match="no tags"):
            generate("image", {"RepoTags": []}, context)

    def test_unknown_kind(self, context):
        with pytest.raises(ParseError, match="expected one of"):
            generate("secret", {}, context)
