# opsbot/models.py
from dataclasses import dataclass, field
from typing import Any, Union

Row = dict[str, Any]


@dataclass(frozen=True)
class ColumnDescriptor:
    name: str
    sql_type: str
    nullable: bool
    default_expr: str | None = None

    def as_dict(self) -> dict:
        # key names mirror the /tables payload
        return {
            "column": self.name,
            "type": self.sql_type,
            "nullable": self.nullable,
            "default": self.default_expr,
        }


# table name -> columns in ordinal order
SchemaMap = dict[str, tuple[ColumnDescriptor, ...]]


@dataclass(frozen=True)
class ExecutionSuccess:
    rows: list[Row] = field(default_factory=list)
    row_count: int = 0
    field_names: list[str] = field(default_factory=list)

    ok = True


@dataclass(frozen=True)
class ExecutionFailure:
    message: str
    attempted_query: str

    ok = False


ExecutionOutcome = Union[ExecutionSuccess, ExecutionFailure]
