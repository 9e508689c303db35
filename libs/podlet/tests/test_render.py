"""Tests for podlet quadlet rendering."""

import pytest

from podlet.context import ConversionContext
from podlet.errors import VersionIncompatibleError
from podlet.render import escape_value, render, render_files, split_joined
from podlet.types import (
    Container,
    Install,
    Kube,
    KubeYamlFile,
    Network,
    Pod,
    QuadletFile,
    Unit,
)
from podlet.values import Notify, VolumeSpec
from podlet.versions import PodmanVersion


@pytest.fixture
def context():
    """Default conversion context."""
    return ConversionContext()


def container_file(**kwargs):
    return QuadletFile(name="web", resource=Container(image="nginx", **kwargs))


class TestRender:
    """Tests for render."""

    def test_container(self, context):
        text = render(container_file(publish_port=["8080:80"]), context)

        assert text == "[Container]\nImage=nginx\nPublishPort=8080:80\n"

    def test_sections(self, context):
        file = container_file()
        file.unit = Unit(description="Web server", after=["network-online.target"])
        file.install = Install.default()

        assert render(file, context) == (
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

    def test_repeated_keys_stay_separate(self, context):
        file = container_file(
            publish_port=["8000:80", "8443:443"],
            volume=[VolumeSpec.parse("./a:/a"), VolumeSpec.parse("b:/b")],
        )
        lines = render(file, context).splitlines()

        assert lines.count("PublishPort=8000:80") == 1
        assert lines.count("PublishPort=8443:443") == 1
        assert "Volume=./a:/a" in lines
        assert "Volume=b:/b" in lines

    def test_booleans(self, context):
        text = render(container_file(read_only=True, read_only_tmpfs=False), context)

        assert "ReadOnly=true\n" in text
        assert "ReadOnlyTmpfs=false\n" in text

    def test_notify(self, context):
        assert "Notify=true\n" in render(container_file(notify=Notify.CONTAINER), context)
        assert "Notify=healthy\n" in render(container_file(notify=Notify.HEALTHY), context)

    def test_kube_yaml_passthrough(self, context):
        file = KubeYamlFile("mysite-kube", "apiVersion: v1\n")

        assert file.file_name == "mysite-kube.yaml"
        assert render(file, context) == "apiVersion: v1\n"

    def test_resolves_host_paths(self):
        context = ConversionContext(resolve_dir="/srv/app")
        file = container_file(volume=[VolumeSpec.parse("./data:/data")])

        assert "Volume=/srv/app/data:/data\n" in render(file, context)


class TestJoinAndSplit:
    """Tests for space joined keys."""

    def test_joined(self, context):
        text = render(container_file(environment=["A=1", "B=two words"]), context)

        assert 'Environment=A=1 "B=two words"\n' in text

    def test_split(self):
        context = ConversionContext(split_options=frozenset({"Environment"}))
        text = render(container_file(environment=["A=1", "B=2"]), context)

        assert "Environment=A=1\nEnvironment=B=2\n" in text

    def test_colon_joined(self, context):
        text = render(container_file(mask=["/proc/acpi", "/sys/firmware"]), context)

        assert "Mask=/proc/acpi:/sys/firmware\n" in text

    @pytest.mark.parametrize("value,expected", [
        ("plain", "plain"),
        ("two words", '"two words"'),
        ('say "hi"', '"say \\"hi\\""'),
        ("back\\slash", '"back\\\\slash"'),
        ("", '""'),
    ])
    def test_escape_value(self, value, expected):
        assert escape_value(value) == expected

    def test_escaped_values_split_back(self):
        values = ["A=1", "B=two words", 'C="quoted"', "D=back\\slash", "E=line\nbreak"]
        line = " ".join(escape_value(v) for v in values)

        assert split_joined(line) == values

    def test_split_unterminated_quote(self):
        with pytest.raises(ValueError, match="unterminated quote"):
            split_joined('A="open')


class TestDowngrade:
    """Tests for rendering keys newer than the target version."""

    def test_key_to_podman_args(self):
        context = ConversionContext(podman_version=PodmanVersion.V4_8)
        text = render(container_file(entrypoint="/bin/sh"), context)

        assert "Entrypoint=" not in text
        assert "PodmanArgs=--entrypoint /bin/sh\n" in text

    def test_downgraded_args_follow_existing(self):
        context = ConversionContext(podman_version=PodmanVersion.V4_8)
        text = render(container_file(entrypoint="/bin/sh", podman_args=["--memory 1g"]), context)

        assert "PodmanArgs=--memory 1g --entrypoint /bin/sh\n" in text

    def test_value_to_podman_args(self):
        context = ConversionContext(podman_version=PodmanVersion.V4_8)
        text = render(container_file(notify=Notify.HEALTHY), context)

        assert "Notify=" not in text
        assert "PodmanArgs=--sdnotify healthy\n" in text

    def test_value_below_argument_support(self):
        context = ConversionContext(podman_version=PodmanVersion.V4_6)

        with pytest.raises(VersionIncompatibleError, match="Container.Notify=healthy"):
            render(container_file(notify=Notify.HEALTHY), context)

    def test_key_without_fallback(self):
        context = ConversionContext(podman_version=PodmanVersion.V4_8)

        with pytest.raises(VersionIncompatibleError, match=r"requires v5.0"):
            render(container_file(pod="mysite.pod"), context)

    def test_kind_not_available(self):
        context = ConversionContext(podman_version=PodmanVersion.V4_8)
        file = QuadletFile(name="mysite", resource=Pod(publish_port=["80:80"]))

        with pytest.raises(VersionIncompatibleError, match="Pod quadlet files"):
            render(file, context)

    def test_kube_auto_update(self):
        context = ConversionContext(podman_version=PodmanVersion.V4_6)
        file = QuadletFile(name="app", resource=Kube(yaml="app.yaml", auto_update=["web/registry"]))

        text = render(file, context)

        assert "PodmanArgs=--annotation=io.containers.autoupdate/web=registry\n" in text


class TestRenderFiles:
    def test_headers_and_separator(self, context):
        files = [
            container_file(),
            QuadletFile(name="front", resource=Network(driver="bridge")),
        ]

        assert render_files(files, context) == (
            "# web.container\n[Container]\nImage=nginx\n"
            "\n---\n\n"
            "# front.network\n[Network]\nDriver=bridge\n"
        )
