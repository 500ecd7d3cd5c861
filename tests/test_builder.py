"""
Unit tests for the stack builder.

Tests cover:
- Subnet block partitioning across tiers
- Usable zone count against the reported zone count
- Startup script rendering from the version table
- Fail-fast behaviour for unknown versions
- Tags, outputs and composition determinism
"""

import ipaddress
import itertools

import pytest

from craftforge.builder import build_stack, compose_stack, subnet_blocks, usable_zone_count
from craftforge.config import StackConfig
from craftforge.exceptions import ConfigurationError, GraphError, UnknownVersionError
from craftforge.expressions import Call, Ref, evaluate
from craftforge.models import DeclarationGraph
from craftforge.resource_db import SOFTWARE_DOWNLOAD_URLS
from craftforge.synth import to_terraform_json

EXPECTED_TAGS = {
    "app:namespace": "mc",
    "app:environment": "sandbox",
    "cdktf:stack-name": "mc-stack"
}


def _no_refs(ref):
    raise AssertionError(f"unexpected reference {ref}")


class TestSubnetBlocks:
    """Tests for subnet_blocks partitioning."""

    @pytest.mark.parametrize("max_azs", range(1, 11))
    @pytest.mark.parametrize("vpc_cidr", ["10.0.0.0/16", "172.16.0.0/12", "192.168.0.0/20"])
    def test_tiers_do_not_overlap(self, max_azs, vpc_cidr):
        blocks = subnet_blocks(vpc_cidr, max_azs)
        assert set(blocks) == {"private", "database", "public"}

        networks = []
        for tier, calls in blocks.items():
            assert len(calls) == max_azs
            networks.extend(ipaddress.ip_network(evaluate(c, _no_refs)) for c in calls)

        parent = ipaddress.ip_network(vpc_cidr)
        for network in networks:
            assert network.subnet_of(parent)
        for a, b in itertools.combinations(networks, 2):
            assert not a.overlaps(b)

    def test_tier_offsets(self):
        blocks = subnet_blocks("10.0.0.0/16", 2)
        assert [evaluate(c, _no_refs) for c in blocks["private"]] == ["10.0.0.0/24", "10.0.1.0/24"]
        assert [evaluate(c, _no_refs) for c in blocks["database"]] == ["10.0.10.0/24", "10.0.11.0/24"]
        assert [evaluate(c, _no_refs) for c in blocks["public"]] == ["10.0.20.0/24", "10.0.21.0/24"]

    def test_blocks_stay_deferred(self):
        call = subnet_blocks("10.0.0.0/16", 1)["public"][0]
        assert isinstance(call, Call)
        assert str(call) == '${cidrsubnet("10.0.0.0/16", 8, 20)}'


class TestUsableZones:
    """Tests for the deferred zone count and the subnet slices."""

    @pytest.mark.parametrize("max_azs", range(1, 11))
    @pytest.mark.parametrize("reported", [0, 1, 2, 3, 6, 10, 12])
    def test_zone_count_is_bounded(self, max_azs, reported, zone_resolver):
        graph = build_stack(
            StackConfig(namespace="mc", environment="sandbox", region="r", max_azs=max_azs),
            "mc-stack"
        )
        resolve = zone_resolver(reported)
        vpc = graph.get("vpc").attributes
        expected = min(reported, max_azs)

        assert len(evaluate(vpc["azs"], resolve)) == expected
        for tier in ("private_subnets", "database_subnets", "public_subnets"):
            assert len(evaluate(vpc[tier], resolve)) == expected

        count = evaluate(usable_zone_count(graph.get("azs").ref("names"), max_azs), resolve)
        assert count <= max_azs
        assert count <= reported

    def test_zone_count_is_not_eager(self, stack):
        azs = stack.get("vpc").attributes["azs"]
        assert isinstance(azs, Call)
        assert str(azs) == (
            "${slice(data.aws_availability_zones.azs.names, 0, "
            "min(length(data.aws_availability_zones.azs.names), 3))}"
        )


class TestStartupScript:
    """Tests for the instance boot script."""

    def test_download_url_from_table(self, stack):
        user_data = stack.get("minecraftServer").attributes["user_data"]
        assert user_data.name == "templatefile"
        assert user_data.args[1] == {"downloadUrl": SOFTWARE_DOWNLOAD_URLS["1.19.2"]}

        script = evaluate(user_data, _no_refs)
        assert f'"{SOFTWARE_DOWNLOAD_URLS["1.19.2"]}"' in script
        assert "${downloadUrl}" not in script

    def test_template_with_extra_variables(self, sample_config, tmp_path, monkeypatch):
        template = tmp_path / "init.sh"
        template.write_text("${downloadUrl} ${worldName}\n")
        monkeypatch.setattr("craftforge.builder.get_startup_template_path", lambda: template)

        graph = DeclarationGraph("mc-stack")
        with pytest.raises(ConfigurationError, match="worldName"):
            compose_stack(graph, sample_config)
        assert len(graph) == 0

    @pytest.mark.parametrize("body,variable", [
        ("${downloadUrl} ${upper(worldName)}\n", "worldName"),
        ("${downloadUrl} ${ worldName.x }\n", "worldName"),
        ("${downloadUrl}\n%{ if eula }accept%{ endif }\n", "eula"),
    ])
    def test_template_with_nested_variables(self, sample_config, tmp_path, monkeypatch, body, variable):
        template = tmp_path / "init.sh"
        template.write_text(body)
        monkeypatch.setattr("craftforge.builder.get_startup_template_path", lambda: template)

        graph = DeclarationGraph("mc-stack")
        with pytest.raises(ConfigurationError, match=variable):
            compose_stack(graph, sample_config)
        assert len(graph) == 0

    def test_missing_template(self, sample_config, tmp_path, monkeypatch):
        monkeypatch.setattr("craftforge.builder.get_startup_template_path", lambda: tmp_path / "none.sh")
        with pytest.raises(ConfigurationError, match="Cannot read startup template"):
            build_stack(sample_config, "mc-stack")


class TestUnknownVersion:
    """Tests for fail-fast version lookup."""

    def test_bogus_version_emits_nothing(self):
        config = StackConfig(namespace="mc", environment="sandbox", region="r", software_version="bogus")
        graph = DeclarationGraph("mc-stack")

        with pytest.raises(UnknownVersionError) as exc_info:
            compose_stack(graph, config)

        assert exc_info.value.version == "bogus"
        assert "1.19.2" in exc_info.value.known_versions
        assert len(graph) == 0
        assert graph.outputs == {}

    def test_is_a_configuration_error(self):
        config = StackConfig(namespace="mc", environment="sandbox", region="r", software_version="0.0.1")
        with pytest.raises(ConfigurationError):
            build_stack(config, "mc-stack")


class TestComposition:
    """Tests for the composed declarations."""

    def test_declarations_in_dependency_order(self, stack):
        assert list(stack.declarations) == [
            "aws", "tls", "random", "azs", "vpc", "minecraftSg",
            "tlsKeyPair", "keypair", "ami", "shuffle", "minecraftServer"
        ]

    @pytest.mark.parametrize("name", ["vpc", "minecraftSg", "keypair", "minecraftServer"])
    def test_tags(self, stack, name):
        assert stack.get(name).attributes["tags"] == EXPECTED_TAGS

    def test_vpc(self, stack):
        vpc = stack.get("vpc").attributes
        assert vpc["name"] == "mc-vpc"
        assert vpc["cidr"] == "10.0.0.0/16"
        assert vpc["enable_nat_gateway"] is True
        assert vpc["single_nat_gateway"] is True

    def test_security_group(self, sample_config):
        config = sample_config.model_copy(update={"allow_ingress_from": ["203.0.113.7/32"]})
        sg = build_stack(config, "mc-stack").get("minecraftSg").attributes

        assert sg["vpc_id"] == Ref(declaration="vpc", address="module.vpc", attribute="vpc_id")
        assert [(r["from_port"], r["to_port"], r["protocol"]) for r in sg["ingress"]] == [
            (22, 22, "tcp"), (25565, 25565, "tcp")
        ]
        assert all(r["cidr_blocks"] == ["203.0.113.7/32"] for r in sg["ingress"])
        assert sg["egress"] == [{
            "cidr_blocks": ["0.0.0.0/0"],
            "description": "Internet egress",
            "from_port": 0,
            "to_port": 0,
            "protocol": "-1",
            "ipv6_cidr_blocks": [],
            "prefix_list_ids": [],
            "security_groups": [],
            "self": False
        }]

    def test_key_pair(self, stack):
        assert stack.get("tlsKeyPair").attributes == {"algorithm": "RSA", "rsa_bits": 4096}
        keypair = stack.get("keypair").attributes
        assert keypair["key_name_prefix"] == "mc"
        assert keypair["public_key"].render() == "tls_private_key.tlsKeyPair.public_key_openssh"

    def test_ami_lookup(self, stack):
        ami = stack.get("ami").attributes
        assert ami["most_recent"] is True
        assert ami["filter"] == [
            {"name": "owner-alias", "values": ["amazon"]},
            {"name": "name", "values": ["amzn2-ami-hvm-*-x86_64-ebs"]}
        ]

    def test_instance(self, stack):
        instance = stack.get("minecraftServer").attributes
        assert instance["ami"].render() == "data.aws_ami.ami.id"
        assert instance["associate_public_ip_address"] is True
        assert instance["instance_type"] == "t2.small"
        assert instance["key_name"].render() == "aws_key_pair.keypair.key_name"
        assert str(instance["subnet_id"]) == "${element(random_shuffle.shuffle.result, 0)}"
        assert [str(i) for i in instance["vpc_security_group_ids"]] == ["${aws_security_group.minecraftSg.id}"]
        assert stack.get("shuffle").attributes["input"].render() == "module.vpc.public_subnets"

    def test_outputs(self, stack):
        assert {name: o.value.render() for name, o in stack.outputs.items()} == {
            "publicIp": "aws_instance.minecraftServer.public_ip",
            "privateIp": "aws_instance.minecraftServer.private_ip",
            "instanceId": "aws_instance.minecraftServer.id",
            "privateKey": "tls_private_key.tlsKeyPair.private_key_pem"
        }

    def test_only_private_key_is_sensitive(self, stack):
        assert [o.name for o in stack.outputs.values() if o.sensitive] == ["privateKey"]

    def test_composition_is_deterministic(self, sample_config):
        first = to_terraform_json(build_stack(sample_config, "mc-stack"))
        second = to_terraform_json(build_stack(sample_config, "mc-stack"))
        assert first == second

    def test_composing_twice_into_one_graph_fails(self, sample_config):
        graph = build_stack(sample_config, "mc-stack")
        with pytest.raises(GraphError, match="Duplicate declaration name"):
            compose_stack(graph, sample_config)
