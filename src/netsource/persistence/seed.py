"""
netsource — baseline reference data.

File: src/netsource/persistence/seed.py
Last updated: 2026-10-18

Purpose
- Insert default groups and example network services into an empty store.

What should be included in this file
- Loading and validation of the packaged ``seed_data.yaml`` document.
- A generic "insert only when the table is empty" primitive.

Functional requirements
- Seeding runs on every pipeline execution but inserts only into empty tables.
- The count check and the inserts share one transaction.
- Services are seeded only once at least one group exists.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import yaml

from netsource.constants import SERVICE_TYPES
from netsource.persistence.connection import ConnectionManager, SQLValue
from netsource.persistence.errors import SeedError

logger = logging.getLogger(__name__)

DEFAULT_SEED_PATH: Final[Path] = Path(__file__).resolve().with_name("seed_data.yaml")

_IDENTIFIER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

SeedRow = Mapping[str, SQLValue]
RowBuilder = Callable[[sqlite3.Connection], Sequence[SeedRow]]


@dataclass(frozen=True, slots=True)
class GroupSeed:
    name: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class ServiceSeed:
    group: str
    name: str
    domain: str
    type: str = "web"
    internal_ports: tuple[int, ...] = ()
    external_ports: tuple[int, ...] = ()
    vlan: str | None = None
    cidr: str | None = None
    ip_address: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SeedDocument:
    groups: tuple[GroupSeed, ...]
    network_services: tuple[ServiceSeed, ...] = ()


def load_seed_document(path: str | Path = DEFAULT_SEED_PATH) -> SeedDocument:
    """Load and validate a seed document; malformed input raises ``SeedError``."""

    seed_path = Path(path)
    try:
        with seed_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as exc:
        raise SeedError(f"unable to read seed document {seed_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise SeedError(f"invalid YAML in seed document {seed_path}: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise SeedError(f"seed document {seed_path} must decode to a mapping")
    return parse_seed_document(payload, source=str(seed_path))


def parse_seed_document(payload: Mapping[str, Any], *, source: str = "<memory>") -> SeedDocument:
    unknown = sorted(set(payload) - {"groups", "network_services"})
    if unknown:
        raise SeedError(f"{source}: unknown top-level keys: {', '.join(map(str, unknown))}")

    raw_groups = payload.get("groups") or []
    raw_services = payload.get("network_services") or []
    if not isinstance(raw_groups, list):
        raise SeedError(f"{source}: 'groups' must be a list")
    if not isinstance(raw_services, list):
        raise SeedError(f"{source}: 'network_services' must be a list")

    groups = tuple(
        _parse_group(item, f"{source}: groups[{index}]") for index, item in enumerate(raw_groups)
    )
    names = [group.name for group in groups]
    if len(set(names)) != len(names):
        raise SeedError(f"{source}: group names must be unique")

    services = tuple(
        _parse_service(item, f"{source}: network_services[{index}]")
        for index, item in enumerate(raw_services)
    )
    return SeedDocument(groups=groups, network_services=services)


class SeedCoordinator:
    """Idempotent inserts of reference rows through a connection manager."""

    def __init__(
        self,
        manager: ConnectionManager,
        document: SeedDocument | None = None,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._manager = manager
        self._document = document
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    @property
    def document(self) -> SeedDocument:
        if self._document is None:
            self._document = load_seed_document()
        return self._document

    def seed_if_empty(self, table: str, row_builder: RowBuilder) -> int:
        """Insert rows from ``row_builder`` only when ``table`` has no rows.

        Returns the number of rows inserted; ``0`` when the table already had
        data or the builder produced nothing.
        """

        _validate_identifier(table)
        try:
            with self._manager.transaction() as conn:
                count_row = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
                if count_row is not None and int(count_row[0]) > 0:
                    return 0
                rows = list(row_builder(conn))
                if not rows:
                    return 0
                return _insert_rows(conn, table, rows)
        except sqlite3.Error as exc:
            raise SeedError(f"seed table {table!r} failed for {self._manager.path}: {exc}") from exc

    def seed_reference_data(self) -> dict[str, int]:
        """Seed default groups, then example services; return inserted counts per table."""

        document = self.document
        inserted = {
            "groups": self.seed_if_empty("groups", lambda conn: self._group_rows(document)),
            "network_services": self.seed_if_empty(
                "network_services", lambda conn: self._service_rows(conn, document)
            ),
        }
        if any(inserted.values()):
            logger.info("seeded reference data", extra={"inserted": inserted})
        return inserted

    def _group_rows(self, document: SeedDocument) -> list[SeedRow]:
        return [
            {"id": self._id_factory(), "name": group.name, "description": group.description}
            for group in document.groups
        ]

    def _service_rows(self, conn: sqlite3.Connection, document: SeedDocument) -> list[SeedRow]:
        group_ids = {
            str(row[1]): str(row[0]) for row in conn.execute("SELECT id, name FROM groups")
        }
        if not group_ids:
            logger.info("no groups present; skipping example network services")
            return []

        rows: list[SeedRow] = []
        for service in document.network_services:
            group_id = group_ids.get(service.group)
            if group_id is None:
                logger.debug(
                    "dropping example service %s: group %s missing", service.name, service.group
                )
                continue
            rows.append(
                {
                    "id": self._id_factory(),
                    "group_id": group_id,
                    "name": service.name,
                    "type": service.type,
                    "domain": service.domain,
                    "internal_ports": canonical_json(list(service.internal_ports)),
                    "external_ports": canonical_json(list(service.external_ports)),
                    "vlan": service.vlan,
                    "cidr": service.cidr,
                    "ip_address": service.ip_address,
                    "tags": canonical_json(list(service.tags)),
                }
            )
        return rows


def canonical_json(value: object) -> str:
    """Deterministic JSON for persisted array columns."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _insert_rows(conn: sqlite3.Connection, table: str, rows: Sequence[SeedRow]) -> int:
    columns = tuple(rows[0])
    for column in columns:
        _validate_identifier(column)
    for row in rows[1:]:
        if tuple(row) != columns:
            raise SeedError(f"seed rows for {table!r} must share the same columns")

    placeholders = ", ".join("?" for _ in columns)
    sql = f"INSERT OR IGNORE INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
    inserted = 0
    for row in rows:
        cursor = conn.execute(sql, tuple(row[column] for column in columns))
        inserted += max(cursor.rowcount, 0)
    return inserted


def _validate_identifier(name: str) -> None:
    if not isinstance(name, str) or _IDENTIFIER_PATTERN.match(name) is None:
        raise SeedError(f"invalid SQL identifier {name!r}")


def _parse_group(item: object, where: str) -> GroupSeed:
    if not isinstance(item, Mapping):
        raise SeedError(f"{where} must be a mapping")
    name = _required_text(item, "name", where)
    description = _optional_text(item, "description", where)
    return GroupSeed(name=name, description=description)


def _parse_service(item: object, where: str) -> ServiceSeed:
    if not isinstance(item, Mapping):
        raise SeedError(f"{where} must be a mapping")
    service_type = _optional_text(item, "type", where) or "web"
    if service_type not in SERVICE_TYPES:
        allowed = ", ".join(SERVICE_TYPES)
        raise SeedError(f"{where}.type must be one of {allowed}; got {service_type!r}")
    return ServiceSeed(
        group=_required_text(item, "group", where),
        name=_required_text(item, "name", where),
        domain=_required_text(item, "domain", where),
        type=service_type,
        internal_ports=_ports(item.get("internal_ports"), f"{where}.internal_ports"),
        external_ports=_ports(item.get("external_ports"), f"{where}.external_ports"),
        vlan=_optional_text(item, "vlan", where),
        cidr=_optional_text(item, "cidr", where),
        ip_address=_optional_text(item, "ip_address", where),
        tags=_tags(item.get("tags"), f"{where}.tags"),
    )


def _required_text(item: Mapping[str, object], key: str, where: str) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value.strip():
        raise SeedError(f"{where}.{key} must be a non-empty string")
    return value.strip()


def _optional_text(item: Mapping[str, object], key: str, where: str) -> str | None:
    value = item.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise SeedError(f"{where}.{key} must be a string")
    return str(value)


def _ports(value: object, where: str) -> tuple[int, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise SeedError(f"{where} must be a list of ports")
    ports: list[int] = []
    for port in value:
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            raise SeedError(f"{where} entries must be integers in 1..65535; got {port!r}")
        ports.append(port)
    return tuple(ports)


def _tags(value: object, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
        raise SeedError(f"{where} must be a list of strings")
    return tuple(value)


__all__ = [
    "DEFAULT_SEED_PATH",
    "GroupSeed",
    "RowBuilder",
    "SeedCoordinator",
    "SeedDocument",
    "SeedRow",
    "ServiceSeed",
    "canonical_json",
    "load_seed_document",
    "parse_seed_document",
]
