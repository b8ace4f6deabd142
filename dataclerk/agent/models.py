"""Data model shared across the query pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from itertools import groupby
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

QueryRow = Dict[str, Any]


@dataclass(frozen=True)
class SchemaColumn:
    """One column row as returned by the database proxy schema endpoint."""

    table_name: str
    column_name: str
    data_type: str

    @staticmethod
    def from_mapping(payload: Mapping[str, Any]) -> "SchemaColumn":
        try:
            return SchemaColumn(
                table_name=str(payload["table_name"]),
                column_name=str(payload["column_name"]),
                data_type=str(payload["data_type"]),
            )
        except KeyError as exc:
            raise ValueError(f"Schema row missing field {exc.args[0]!r}: {dict(payload)!r}") from exc


@dataclass(frozen=True)
class ColumnDefinition:
    name: str
    data_type: str
    constraints: str = ""


@dataclass(frozen=True)
class TableSchema:
    table_name: str
    columns: Tuple[ColumnDefinition, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "columns": [
                {"name": column.name, "data_type": column.data_type, "constraints": column.constraints}
                for column in self.columns
            ],
        }


def group_schema_columns(columns: Iterable[SchemaColumn]) -> List[TableSchema]:
    """Group flat column rows into tables sorted by table name.

    Column order inside a table follows the backend's order. The backend never
    reports constraints, so they are always empty.
    """
    ordered = sorted(columns, key=lambda column: column.table_name)
    return [
        TableSchema(
            table_name=table_name,
            columns=tuple(ColumnDefinition(name=c.column_name, data_type=c.data_type) for c in group),
        )
        for table_name, group in groupby(ordered, key=lambda column: column.table_name)
    ]


class ChartKind(Enum):
    BAR = "bar"
    LINE = "line"
    PIE = "pie"


@dataclass(frozen=True)
class TextBlock:
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "content": self.content}


@dataclass(frozen=True)
class TableBlock:
    description: str
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "table",
            "description": self.description,
            "headers": list(self.headers),
            "rows": [list(row) for row in self.rows],
        }


@dataclass(frozen=True)
class ChartBlock:
    description: str
    kind: ChartKind
    labels: List[str] = field(default_factory=list)
    values: List[float] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "chart",
            "description": self.description,
            "kind": self.kind.value,
            "labels": list(self.labels),
            "values": list(self.values),
        }


ContentBlock = Union[TextBlock, TableBlock, ChartBlock]


@dataclass(frozen=True)
class PipelineResult:
    sql_query: str
    rows: List[QueryRow]
    content_blocks: List[ContentBlock]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sql": self.sql_query,
            "rows": list(self.rows),
            "messages": [block.to_dict() for block in self.content_blocks],
        }


@dataclass(frozen=True)
class DatabaseHealth:
    database: str
    status: str
    current_time: str

    @staticmethod
    def from_mapping(payload: Mapping[str, Any]) -> "DatabaseHealth":
        return DatabaseHealth(
            database=str(payload.get("database", "")),
            status=str(payload.get("status", "")),
            current_time=str(payload.get("current_time", "")),
        )

    @property
    def is_up(self) -> bool:
        return self.status.strip().upper() == "UP"


class DatabaseStatus(Enum):
    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DatabaseInfo:
    """Listing summary for one database."""

    name: str
    status: DatabaseStatus
    table_count: int = 0
    health: str = "Unknown"
    last_updated: str = ""

    @staticmethod
    def from_health(name: str, health: DatabaseHealth | None, table_count: int) -> "DatabaseInfo":
        if health is None:
            return DatabaseInfo(
                name=name,
                status=DatabaseStatus.UNKNOWN,
                table_count=table_count,
                health="Unknown",
                last_updated="N/A",
            )
        return DatabaseInfo(
            name=name,
            status=DatabaseStatus.UP if health.is_up else DatabaseStatus.DOWN,
            table_count=table_count,
            health="Excellent" if health.is_up else "Down",
            last_updated=health.current_time or "N/A",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "table_count": self.table_count,
            "health": self.health,
            "last_updated": self.last_updated,
        }
