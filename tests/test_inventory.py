"""Tests for inventory loading and host lookups."""

import json
import stat
import sys

import pytest

from sweep.exceptions import (
    CommandExecutionFailed,
    FileNotFound,
    InvalidHostId,
    InvalidInventory,
    InvalidToken,
)
from sweep.inventory import Inventory, load_inventory
from sweep.tag_query import TagQuery
from sweep.types import Host, HostId

from conftest import make_host

TOML_INVENTORY = """
[[hosts]]
id = "localhost"
address = "localhost:22"
user = "root"
tags = ["local"]
vars = { msg = "hi" }

[[hosts]]
id = "web01"
address = "10.0.0.1:2222"
tags = ["web", "prod"]
"""

JSON_INVENTORY = {
    "hosts": [
        {"id": "web01", "address": "10.0.0.1:22", "tags": ["web"], "vars": {"msg": "hi"}},
        {"id": "db01", "address": "10.0.0.2:22", "user": "postgres", "tags": ["db"]},
    ]
}

YAML_INVENTORY = """
hosts:
  - id: web01
    address: 10.0.0.1:22
    tags: [web, prod]
    vars:
      msg: hi
  - id: db01
    address: 10.0.0.2:22
"""


def write_program(path, body):
    """Write an executable Python script and return its path."""
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


class TestInventoryParsing:
    """Tests for building inventories from documents."""

    def test_from_toml(self):
        inventory = Inventory.from_toml(TOML_INVENTORY)

        assert len(inventory) == 2
        local, web = inventory.hosts
        assert local.id == HostId("localhost")
        assert local.vars == {"msg": "hi"}
        assert web.user == "root"
        assert web.port == 2222
        assert web.tag_names == {"web", "prod"}

    def test_from_json(self):
        inventory = Inventory.from_json(json.dumps(JSON_INVENTORY))

        assert [str(host.id) for host in inventory] == ["web01", "db01"]
        assert inventory.hosts[1].user == "postgres"

    def test_from_yaml(self):
        inventory = Inventory.from_yaml(YAML_INVENTORY)

        assert [str(host.id) for host in inventory] == ["web01", "db01"]
        assert inventory.hosts[0].vars == {"msg": "hi"}

    def test_empty_documents(self):
        """Test that a document without hosts is an empty inventory."""
        assert len(Inventory.from_toml("")) == 0
        assert len(Inventory.from_json("{}")) == 0
        assert len(Inventory.from_yaml("")) == 0

    @pytest.mark.parametrize("parse, content", [
        (Inventory.from_toml, "[[hosts]\nid ="),
        (Inventory.from_json, "{not json"),
        (Inventory.from_yaml, "hosts: [unclosed"),
    ])
    def test_syntax_errors(self, parse, content):
        with pytest.raises(InvalidInventory):
            parse(content)

    def test_invalid_structure(self):
        with pytest.raises(InvalidInventory):
            Inventory.from_json("[]")
        with pytest.raises(InvalidInventory):
            Inventory.from_json('{"hosts": {"id": "web01"}}')

    def test_invalid_host_id_fails_load(self):
        with pytest.raises(InvalidHostId):
            Inventory.from_json('{"hosts": [{"id": "-bad", "address": "x"}]}')


class TestInventoryProgram:
    """Tests for executable inventories."""

    def test_program_output_is_parsed(self, tmp_path):
        program = write_program(
            tmp_path / "inventory",
            f"import json\nprint(json.dumps({JSON_INVENTORY!r}))\n",
        )

        inventory = Inventory.from_program(program)
        assert [str(host.id) for host in inventory] == ["web01", "db01"]

    def test_program_failure(self, tmp_path):
        program = write_program(
            tmp_path / "inventory",
            "import sys\nsys.stderr.write('no credentials')\nsys.exit(3)\n",
        )

        with pytest.raises(CommandExecutionFailed) as exc_info:
            Inventory.from_program(program)

        message = str(exc_info.value)
        assert str(program) in message
        assert "exit status 3" in message
        assert "no credentials" in message
        assert exc_info.value.details["returncode"] == 3

    def test_program_not_executable(self, tmp_path):
        with pytest.raises(CommandExecutionFailed):
            Inventory.from_program(tmp_path / "missing")

    def test_program_invalid_output(self, tmp_path):
        program = write_program(tmp_path / "inventory", "print('not json')\n")

        with pytest.raises(InvalidInventory):
            Inventory.from_program(program)


class TestLoadInventory:
    """Tests for format detection in load_inventory."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFound):
            load_inventory(tmp_path / "missing.toml")

    def test_toml_by_default(self, tmp_path):
        path = tmp_path / "inventory"
        path.write_text(TOML_INVENTORY)
        assert len(load_inventory(path)) == 2

    def test_json(self, tmp_path):
        path = tmp_path / "inventory.json"
        path.write_text(json.dumps(JSON_INVENTORY))
        assert len(load_inventory(path)) == 2

    @pytest.mark.parametrize("suffix", [".yml", ".yaml"])
    def test_yaml(self, tmp_path, suffix):
        path = tmp_path / f"inventory{suffix}"
        path.write_text(YAML_INVENTORY)
        assert len(load_inventory(str(path))) == 2

    def test_executable_is_run(self, tmp_path):
        program = write_program(
            tmp_path / "inventory.py",
            "import json\nprint(json.dumps({'hosts': [{'id': 'gen01', 'address': 'gen'}]}))\n",
        )
        assert [str(host.id) for host in load_inventory(program)] == ["gen01"]

    def test_executable_document_is_parsed(self, tmp_path):
        """Test that a document suffix wins over the executable bit."""
        path = tmp_path / "inventory.json"
        path.write_text(json.dumps(JSON_INVENTORY))
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
        assert len(load_inventory(path)) == 2

    def test_directory(self, tmp_path):
        directory = tmp_path / "inventory.toml"
        directory.mkdir()
        with pytest.raises(InvalidInventory):
            load_inventory(directory)

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "inventory.toml"
        path.write_bytes(b"\xff\xfe\x00\x80")
        with pytest.raises(InvalidInventory, match="Cannot read inventory"):
            load_inventory(path)

    def test_toml_dates_in_vars(self, tmp_path):
        path = tmp_path / "inventory.toml"
        path.write_text(
            "[[hosts]]\nid = \"web01\"\naddress = \"web01:22\"\n"
            "vars = { when = 1979-05-27, at = 1979-05-27T07:32:00Z }\n"
        )
        host = load_inventory(path).hosts[0]
        assert host.vars == {"when": "1979-05-27", "at": "1979-05-27T07:32:00+00:00"}


class TestInventoryLookups:
    """Tests for host lookups and mutation."""

    def test_get_host_by_id(self, inventory):
        assert inventory.get_host_by_id("db01").user == "postgres"
        assert inventory.get_host_by_id(HostId("web02")).id == HostId("web02")
        assert inventory.get_host_by_id("missing") is None

    def test_get_host_by_id_validates(self, inventory):
        with pytest.raises(InvalidHostId):
            inventory.get_host_by_id("not valid")

    def test_duplicate_ids_first_match_wins(self):
        first = make_host("dup", address="first:22")
        second = make_host("dup", address="second:22")
        inventory = Inventory(hosts=[first, second])

        assert inventory.get_host_by_id("dup") is first

    def test_get_hosts_by_tag_query(self, inventory):
        assert [str(h.id) for h in inventory.get_hosts_by_tag_query("prod")] == ["web01", "db01"]
        assert [str(h.id) for h in inventory.get_hosts_by_tag_query("web & !staging")] == ["web01"]
        assert [str(h.id) for h in inventory.get_hosts_by_tag_query(TagQuery("db | staging"))] == [
            "web02", "db01",
        ]
        assert inventory.get_hosts_by_tag_query("nothing") == []

    def test_tag_query_errors_propagate(self, inventory):
        with pytest.raises(InvalidToken):
            inventory.get_hosts_by_tag_query("web &")

    def test_add_and_remove(self, inventory):
        inventory.add_host(make_host("cache01")).remove_host("web02")

        assert [str(host.id) for host in inventory] == ["web01", "db01", "cache01"]

        inventory.remove_host("missing")
        assert len(inventory) == 3
