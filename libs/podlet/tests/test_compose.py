"""Tests for podlet Compose conversion."""

import pytest

from podlet.compose import (
    ComposeDocument,
    convert_compose,
    network_to_quadlet,
    volume_to_quadlet,
)
from podlet.context import ConversionContext
from podlet.errors import (
    ConversionErrors,
    ParseError,
    PodletError,
    UndefinedReferenceError,
    UnsupportedOptionError,
)
from podlet.render import render, render_files
from podlet.service import ComposeService, parse_duration
from podlet.types import Build, Container, Pod
from podlet.values import RestartPolicy


@pytest.fixture
def context():
    """Default conversion context."""
    return ConversionContext()


@pytest.fixture
def pod_context():
    """Context grouping services into a pod."""
    return ConversionContext(pod=True)


@pytest.fixture
def mysite():
    """Compose document with two dependent services."""
    return {
        "name": "mysite",
        "services": {
            "caddy": {
                "image": "docker.io/library/caddy:latest",
                "ports": ["8000:80", "8443:443"],
                "volumes": ["./Caddyfile:/etc/caddy/Caddyfile:Z", "caddy-data:/data"],
                "depends_on": ["app"],
                "networks": ["front"],
            },
            "app": {
                "image": "localhost/app:latest",
                "environment": {"DATABASE_URL": "postgres://db/app"},
                "networks": ["front"],
            },
        },
        "networks": {"front": None},
        "volumes": {"caddy-data": None},
    }


def convert(data, context):
    return convert_compose(ComposeDocument.from_dict(data), context)


def by_name(files):
    return {file.file_name: file for file in files}


class TestComposeDocument:
    """Tests for ComposeDocument."""

    def test_from_dict(self, mysite):
        document = ComposeDocument.from_dict(mysite)

        assert document.name == "mysite"
        assert list(document.services) == ["caddy", "app"]
        assert isinstance(document.services["caddy"], ComposeService)
        assert document.networks == {"front": None}

    def test_version_is_ignored(self, context):
        document = ComposeDocument.from_dict({"version": "3.8", "services": {"web": {"image": "nginx"}}})
        assert document.check(context) == []

    def test_services_must_be_mapping(self):
        with pytest.raises(ParseError, match="expected a mapping"):
            ComposeDocument.from_dict({"services": ["web"]})

    def test_undefined_network(self, context):
        data = {"services": {"web": {"image": "nginx", "networks": ["foo"]}}}

        with pytest.raises(UndefinedReferenceError, match="service 'web' references network 'foo'") as exc:
            convert(data, context)
        assert exc.value.reference == "foo"
        assert exc.value.service == "web"

    def test_undefined_volume_and_dependency(self, context):
        data = {
            "services": {
                "web": {"image": "nginx", "volumes": ["data:/data"], "depends_on": ["db"]},
            },
        }

        with pytest.raises(ConversionErrors) as exc:
            convert(data, context)
        kinds = sorted(e.kind for e in exc.value.errors)
        assert kinds == ["service", "volume"]

    def test_errors_are_aggregated(self, context):
        data = {
            "configs": {"app": {"file": "./app.conf"}},
            "x-common": {"restart": "always"},
            "services": {
                "web": {"image": "nginx", "build": ".", "foo": "bar"},
            },
        }

        with pytest.raises(ConversionErrors, match="4 errors") as exc:
            convert(data, context)
        assert all(isinstance(e, UnsupportedOptionError) for e in exc.value.errors)

    def test_name_required_for_pod(self, pod_context):
        with pytest.raises(PodletError, match="'name' is required for pod output"):
            convert({"services": {"web": {"image": "nginx"}}}, pod_context)

    def test_services_required(self, context):
        with pytest.raises(ParseError, match="at least one service"):
            convert({"services": {}}, context)

    def test_only_external_secrets(self, context):
        data = {
            "services": {"web": {"image": "nginx", "secrets": ["token"]}},
            "secrets": {"token": {"file": "./token.txt"}},
        }

        with pytest.raises(UnsupportedOptionError, match="only external secrets"):
            convert(data, context)


class TestConvertCompose:
    """Tests for convert_compose."""

    def test_services(self, context, mysite):
        files = by_name(convert(mysite, context))

        assert sorted(files) == ["app.container", "caddy.container", "front.network"]
        assert render(files["caddy.container"], context) == (
            "[Unit]\n"
            "Requires=app.service\n"
            "After=app.service\n"
            "\n"
            "[Container]\n"
            "Image=docker.io/library/caddy:latest\n"
            "Network=front.network\n"
            "PublishPort=8000:80\n"
            "PublishPort=8443:443\n"
            "Volume=./Caddyfile:/etc/caddy/Caddyfile:Z\n"
            "Volume=caddy-data:/data\n"
        )

    def test_output_order(self, context, mysite):
        names = [file.file_name for file in convert(mysite, context)]
        assert names == ["caddy.container", "app.container", "front.network"]

    def test_deterministic(self, context, mysite):
        first = render_files(convert(mysite, context), context)
        second = render_files(convert(mysite, context), context)
        assert first == second

    def test_pod(self, pod_context, mysite):
        files = convert(mysite, pod_context)
        names = [file.file_name for file in files]

        assert names == ["mysite-caddy.container", "mysite-app.container", "front.network", "mysite.pod"]

        caddy = files[0]
        assert caddy.resource.pod == "mysite.pod"
        assert caddy.unit.requires == ["mysite-app.service"]
        assert caddy.unit.after == ["mysite-app.service"]
        assert caddy.resource.publish_port == []
        assert caddy.resource.network == []

        pod = files[-1].resource
        assert isinstance(pod, Pod)
        assert pod.publish_port == ["8000:80", "8443:443"]
        assert pod.network == ["front.network"]

    def test_pod_render(self, pod_context, mysite):
        files = by_name(convert(mysite, pod_context))

        assert render(files["mysite.pod"], pod_context) == (
            "[Pod]\n"
            "Network=front.network\n"
            "PublishPort=8000:80\n"
            "PublishPort=8443:443\n"
        )

    def test_dependencies(self, context):
        data = {
            "services": {
                "web": {
                    "image": "nginx",
                    "depends_on": {
                        "db": {"condition": "service_healthy", "restart": True},
                        "cache": {"condition": "service_started", "required": False},
                    },
                },
                "db": {"image": "postgres"},
                "cache": {"image": "valkey/valkey"},
            },
        }

        web = convert(data, context)[0]

        assert web.unit.after == ["db.service", "cache.service"]
        assert web.unit.requires == ["db.service"]
        assert web.unit.wants == ["cache.service"]
        assert web.unit.binds_to == ["db.service"]

    def test_completed_successfully_unsupported(self, context):
        data = {
            "services": {
                "web": {"image": "nginx", "depends_on": {"init": {"condition": "service_completed_successfully"}}},
                "init": {"image": "busybox"},
            },
        }

        with pytest.raises(UnsupportedOptionError, match="service_completed_successfully"):
            convert(data, context)

    def test_build(self, context):
        files = convert({"services": {"app": {"build": "."}}}, context)

        assert [file.file_name for file in files] == ["app.container", "app.build"]
        assert files[0].resource.image == "app.build"
        build = files[1].resource
        assert isinstance(build, Build)
        assert build.image_tag == "localhost/app:latest"
        assert build.set_working_directory == "."

    def test_pod_build(self, pod_context):
        files = convert({"name": "mysite", "services": {"app": {"build": "."}}}, pod_context)

        assert [file.file_name for file in files] == ["mysite-app.container", "mysite-app.build", "mysite.pod"]
        assert files[0].resource.image == "mysite-app.build"
        assert files[1].resource.image_tag == "localhost/app:latest"

    def test_long_secret_requires_source(self, context):
        data = {
            "services": {"web": {"image": "nginx", "secrets": [{"target": "token"}]}},
            "secrets": {"token": {"external": True}},
        }

        with pytest.raises(ParseError, match="missing 'source'") as exc:
            convert(data, context)
        assert exc.value.flag == "services.web.secrets"

    def test_blkio_config(self, context):
        data = {
            "services": {
                "db": {
                    "image": "postgres",
                    "blkio_config": {
                        "weight_device": [{"path": "/dev/sda", "weight": 200}],
                        "device_read_bps": [{"path": "/dev/sda", "rate": "12mb"}],
                    },
                },
            },
        }

        podman_args = convert(data, context)[0].resource.podman_args

        assert "--blkio-weight-device /dev/sda:200" in podman_args
        assert "--device-read-bps /dev/sda:12mb" in podman_args

    @pytest.mark.parametrize("blkio,missing", [
        ({"weight_device": [{"weight": 10}]}, "path"),
        ({"device_write_iops": [{"path": "/dev/sda"}]}, "rate"),
    ])
    def test_blkio_device_fields_required(self, context, blkio, missing):
        data = {"services": {"db": {"image": "postgres", "blkio_config": blkio}}}

        with pytest.raises(ParseError, match=f"missing '{missing}'"):
            convert(data, context)

    def test_volume_with_options(self, context):
        data = {
            "services": {"db": {"image": "postgres", "volumes": ["db-data:/var/lib/postgresql/data"]}},
            "volumes": {"db-data": {"driver_opts": {"type": "tmpfs", "device": "tmpfs", "o": "size=1g"}}},
        }

        files = by_name(convert(data, context))

        assert str(files["db.container"].resource.volume[0]) == "db-data.volume:/var/lib/postgresql/data"
        assert render(files["db-data.volume"], context) == (
            "[Volume]\nDevice=tmpfs\nOptions=size=1g\nType=tmpfs\n"
        )

    def test_restart_and_healthcheck(self, context):
        data = {
            "services": {
                "web": {
                    "image": "nginx",
                    "restart": "unless-stopped",
                    "healthcheck": {
                        "test": ["CMD", "curl", "-f", "http://localhost"],
                        "interval": "1m30s",
                        "retries": 3,
                    },
                },
            },
        }

        file = convert(data, context)[0]
        text = render(file, context)

        assert file.service.restart == RestartPolicy.ALWAYS
        assert 'HealthCmd=["curl", "-f", "http://localhost"]\n' in text
        assert "HealthInterval=1m30s\n" in text
        assert "HealthRetries=3\n" in text
        assert "[Service]\nRestart=always\n" in text

    def test_podman_args(self, context):
        data = {"services": {"web": {"image": "nginx", "mem_limit": "512m", "privileged": True, "cpu_period": "100ms"}}}

        container = convert(data, context)[0].resource

        assert container.podman_args == ["--memory 512m", "--cpu-period 100000", "--privileged"]

    def test_long_syntax(self, context):
        data = {
            "services": {
                "web": {
                    "image": "nginx",
                    "ports": [{"target": 80, "published": 8080, "host_ip": "127.0.0.1", "protocol": "tcp"}],
                    "volumes": [
                        {"type": "bind", "source": "./html", "target": "/usr/share/nginx/html", "read_only": True},
                        {"type": "tmpfs", "target": "/tmp", "tmpfs": {"size": "64m", "mode": 0o1777}},
                    ],
                },
            },
        }

        container = convert(data, context)[0].resource

        assert container.publish_port == ["127.0.0.1:8080:80/tcp"]
        assert str(container.volume[0]) == "./html:/usr/share/nginx/html:ro"
        assert container.tmpfs == ["/tmp:size=64m,mode=1777"]

    def test_service_errors_are_aggregated(self, context):
        data = {
            "services": {
                "web": {"image": "nginx", "pull_policy": "build"},
                "app": {"image": "app", "restart": "sometimes"},
            },
        }

        with pytest.raises(ConversionErrors) as exc:
            convert(data, context)
        assert len(exc.value.errors) == 2


class TestTopLevelResources:
    """Tests for network and volume conversion."""

    def test_network(self, context):
        file = network_to_quadlet("front", {
            "driver": "bridge",
            "internal": True,
            "ipam": {"config": [{"subnet": "10.1.0.0/24", "gateway": "10.1.0.1"}]},
        }, context)

        assert render(file, context) == (
            "[Network]\n"
            "Driver=bridge\n"
            "Gateway=10.1.0.1\n"
            "Internal=true\n"
            "Subnet=10.1.0.0/24\n"
        )

    def test_external_network(self, context):
        with pytest.raises(UnsupportedOptionError, match="external"):
            network_to_quadlet("front", {"external": True}, context)

    def test_empty_volume(self, context):
        assert volume_to_quadlet("data", None, context) is None
        assert volume_to_quadlet("data", {"driver": "local"}, context) is None

    def test_volume_driver(self, context):
        file = volume_to_quadlet("data", {"driver": "image"}, context)
        assert file.resource.podman_args == ["--driver image"]

    def test_invalid_driver_opt(self, context):
        with pytest.raises(ParseError, match="volumes.data.driver_opts"):
            volume_to_quadlet("data", {"driver_opts": {"bogus": "1"}}, context)


class TestParseDuration:
    @pytest.mark.parametrize("value,seconds", [
        ("1m30s", 90.0),
        ("500ms", 0.5),
        ("1h", 3600.0),
        (10, 10.0),
        ("2.5s", 2.5),
    ])
    def test_parse(self, value, seconds):
        assert parse_duration(value) == seconds

    @pytest.mark.parametrize("value", ["", "10x", "s", "1m 30s"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


def test_container_type(context):
    files = convert({"services": {"web": {"image": "nginx"}}}, context)
    assert isinstance(files[0].resource, Container)
