"""
netsource — unit tests for reference data seeding

File: tests/unit/persistence/test_seed.py
Last updated: 2026-10-18

Purpose
- Validate seed document parsing and the insert-only-when-empty contract.

What this test file should cover
- The packaged ``seed_data.yaml`` loads and validates.
- Malformed documents raise ``SeedError`` with a useful location.
- ``seed_if_empty`` inserts once and never touches populated tables.
- Example services depend on groups existing.
"""

from __future__ import annotations

import json
import sqlite3
from itertools import count
from pathlib import Path

import pytest

from netsource.persistence.errors import SeedError
from netsource.persistence.schema import SchemaInitializer
from netsource.persistence.seed import (
    DEFAULT_SEED_PATH,
    SeedCoordinator,
    SeedDocument,
    canonical_json,
    load_seed_document,
    parse_seed_document,
)

from . import count_rows, make_manager, small_seed_document


def _sequential_ids(prefix: str = "id"):
    counter = count(1)
    return lambda: f"{prefix}-{next(counter)}"


def test_packaged_seed_document_loads() -> None:
    document = load_seed_document(DEFAULT_SEED_PATH)

    assert [group.name for group in document.groups] == ["Storage", "Security", "Data Services"]
    assert all(group.description for group in document.groups)
    assert {service.group for service in document.network_services} <= {
        group.name for group in document.groups
    }
    storage = next(s for s in document.network_services if s.type == "storage")
    assert storage.internal_ports == (9000,)
    assert storage.vlan == "20"


def test_parse_seed_document_applies_defaults() -> None:
    document = parse_seed_document(
        {
            "groups": [{"name": "Edge"}],
            "network_services": [{"group": "Edge", "name": "Proxy", "domain": "p.example"}],
        }
    )

    service = document.network_services[0]
    assert document.groups[0].description is None
    assert service.type == "web"
    assert service.internal_ports == ()
    assert service.tags == ()


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"groups": [], "extras": []}, "unknown top-level keys: extras"),
        ({"groups": {"name": "Edge"}}, "'groups' must be a list"),
        ({"groups": [{"description": "no name"}]}, r"groups\[0\]\.name"),
        ({"groups": [{"name": "Edge"}, {"name": "Edge"}]}, "group names must be unique"),
        (
            {"network_services": [{"group": "G", "name": "S", "domain": "d", "type": "mail"}]},
            r"network_services\[0\]\.type must be one of",
        ),
        (
            {"network_services": [{"group": "G", "name": "S", "domain": "d", "tags": "x"}]},
            "must be a list of strings",
        ),
    ],
)
def test_parse_seed_document_rejects_malformed_input(
    payload: dict[str, object], message: str
) -> None:
    with pytest.raises(SeedError, match=message):
        parse_seed_document(payload, source="inline")


@pytest.mark.parametrize("port", [0, 65536, "80", True])
def test_parse_seed_document_rejects_invalid_ports(port: object) -> None:
    payload = {
        "network_services": [
            {"group": "G", "name": "S", "domain": "d", "internal_ports": [port]},
        ]
    }
    with pytest.raises(SeedError, match="1..65535"):
        parse_seed_document(payload)


def test_load_seed_document_reports_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "seed.yaml"
    path.write_text("groups: [unclosed\n", encoding="utf-8")

    with pytest.raises(SeedError, match="invalid YAML"):
        load_seed_document(path)


def test_load_seed_document_requires_mapping(tmp_path: Path) -> None:
    path = tmp_path / "seed.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(SeedError, match="must decode to a mapping"):
        load_seed_document(path)


def test_load_seed_document_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SeedError, match="unable to read seed document"):
        load_seed_document(tmp_path / "absent.yaml")


def test_seed_if_empty_inserts_once(tmp_path: Path) -> None:
    with make_manager(tmp_path) as manager:
        SchemaInitializer(manager).apply_base_schema()
        coordinator = SeedCoordinator(manager, SeedDocument(groups=()))
        calls: list[int] = []

        def build(conn: sqlite3.Connection) -> list[dict[str, str]]:
            calls.append(1)
            return [{"id": "g1", "name": "Edge"}, {"id": "g2", "name": "Core"}]

        assert coordinator.seed_if_empty("groups", build) == 2
        assert coordinator.seed_if_empty("groups", build) == 0
        assert len(calls) == 1
        assert count_rows(manager.get_connection(), "groups") == 2


def test_seed_if_empty_leaves_populated_table_untouched(tmp_path: Path) -> None:
    with make_manager(tmp_path) as manager:
        SchemaInitializer(manager).apply_base_schema()
        with manager.transaction() as conn:
            conn.execute("INSERT INTO groups (id, name) VALUES ('existing', 'Custom')")
        coordinator = SeedCoordinator(manager, small_seed_document())

        inserted = coordinator.seed_reference_data()

        assert inserted["groups"] == 0
        names = [row["name"] for row in manager.query_all("SELECT name FROM groups")]
        assert names == ["Custom"]


def test_seed_if_empty_rejects_unsafe_identifiers(tmp_path: Path) -> None:
    with make_manager(tmp_path) as manager:
        coordinator = SeedCoordinator(manager, SeedDocument(groups=()))
        with pytest.raises(SeedError, match="invalid SQL identifier"):
            coordinator.seed_if_empty("groups; DROP TABLE groups", lambda conn: [])


def test_seed_if_empty_wraps_sqlite_errors(tmp_path: Path) -> None:
    with make_manager(tmp_path) as manager:
        coordinator = SeedCoordinator(manager, SeedDocument(groups=()))
        with pytest.raises(SeedError, match="seed table 'groups' failed") as excinfo:
            coordinator.seed_if_empty("groups", lambda conn: [])
        assert isinstance(excinfo.value.__cause__, sqlite3.Error)


def test_seed_reference_data_inserts_groups_then_services(tmp_path: Path) -> None:
    with make_manager(tmp_path) as manager:
        SchemaInitializer(manager).apply_base_schema()
        coordinator = SeedCoordinator(
            manager, small_seed_document(), id_factory=_sequential_ids()
        )

        inserted = coordinator.seed_reference_data()

        # The orphan example references a group that is not seeded.
        assert inserted == {"groups": 2, "network_services": 1}
        service = manager.query_one(
            "SELECT s.name, s.internal_ports, s.external_ports, s.tags, g.name AS group_name "
            "FROM network_services s JOIN groups g ON g.id = s.group_id"
        )
        assert service == {
            "name": "Public Proxy",
            "internal_ports": "[8080]",
            "external_ports": "[443,80]",
            "tags": '["proxy"]',
            "group_name": "Edge",
        }

        assert coordinator.seed_reference_data() == {"groups": 0, "network_services": 0}


def test_seed_reference_data_skips_services_without_groups(tmp_path: Path) -> None:
    with make_manager(tmp_path) as manager:
        SchemaInitializer(manager).apply_base_schema()
        document = SeedDocument(groups=(), network_services=small_seed_document().network_services)

        inserted = SeedCoordinator(manager, document).seed_reference_data()

        assert inserted == {"groups": 0, "network_services": 0}
        assert count_rows(manager.get_connection(), "network_services") == 0


def test_default_document_is_loaded_lazily(tmp_path: Path) -> None:
    with make_manager(tmp_path) as manager:
        SchemaInitializer(manager).apply_base_schema()
        coordinator = SeedCoordinator(manager)

        inserted = coordinator.seed_reference_data()

        assert inserted == {"groups": 3, "network_services": 3}
        assert coordinator.document == load_seed_document()


def test_canonical_json_is_compact_and_sorted() -> None:
    assert canonical_json([443, 80]) == "[443,80]"
    assert canonical_json({"b": 1, "a": ["x"]}) == '{"a":["x"],"b":1}'
    assert json.loads(canonical_json(["é"])) == ["é"]
