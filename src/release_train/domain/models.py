"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum, StrEnum
from typing import ClassVar, NoReturn, TypeVar, cast

from release_train.constants import DEFAULT_PRIORITY

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192
_MAX_ID = 256
_MAX_COLLECTION = 512


class WorkItemKind(StrEnum):
    STORY = "story"
    ENABLER = "enabler"
    FEATURE = "feature"


class DependencyStrength(StrEnum):
    HARD = "hard"
    SOFT = "soft"


class EnablerType(StrEnum):
    ARCHITECTURE = "architecture"
    INFRASTRUCTURE = "infrastructure"
    TECHNICAL_DEBT = "technical_debt"
    RESEARCH = "research"


class ValueStreamType(StrEnum):
    CUSTOMER_FACING = "customer_facing"
    REVENUE_GENERATING = "revenue_generating"
    EFFICIENCY_IMPROVING = "efficiency_improving"
    TECHNICAL_DEBT = "technical_debt"
    INFRASTRUCTURE = "infrastructure"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


def canonical_json(value: JSONValue) -> str:
    """Render JSON with sorted keys and compact separators."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _assign(instance: object, name: str, value: object) -> None:
    object.__setattr__(instance, name, value)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(
    value: object,
    path: str,
    *,
    min_len: int = 1,
    max_len: int = _MAX_TEXT,
) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_float(
    value: object,
    path: str,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        _fail(path, "must be finite")
    if minimum is not None and parsed < minimum:
        _fail(path, f"must be >= {minimum}")
    if maximum is not None and parsed > maximum:
        _fail(path, f"must be <= {maximum}")
    return parsed


def _as_date(value: object, path: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 date: {value!r} ({exc})")
    _fail(path, f"expected date or ISO-8601 string, got {type(value).__name__}")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(
    value: object,
    path: str,
    *,
    unique: bool = False,
    max_len: int = _MAX_TEXT,
) -> tuple[str, ...]:
    values = _as_sequence(value, path)
    if len(values) > _MAX_COLLECTION:
        _fail(path, f"too many items (>{_MAX_COLLECTION})")

    parsed: list[str] = []
    for index, item in enumerate(values):
        parsed.append(_as_str(item, f"{path}[{index}]", max_len=max_len))

    if unique and len(set(parsed)) != len(parsed):
        _fail(path, "contains duplicate values")
    return tuple(parsed)


def _as_str_dict(value: object, path: str, *, max_entries: int = 128) -> dict[str, str]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    if len(value) > max_entries:
        _fail(path, f"contains too many entries (>{max_entries})")

    parsed: dict[str, str] = {}
    for key in sorted(value, key=str):
        if not isinstance(key, str):
            _fail(path, f"key must be string, got {type(key).__name__}")
        parsed_key = _as_str(key, f"{path}.<key>")
        item = value[key]
        if isinstance(item, (int, float)) and not isinstance(item, bool):
            item = str(item)
        parsed[parsed_key] = _as_str(item, f"{path}.{parsed_key}", min_len=0)
    return parsed


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, Enum):
        raw = value.value
        if not isinstance(raw, str):
            _fail(path, "enum value must be string")
        return raw
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (tuple, list)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out
    if isinstance(value, CanonicalModel) and type(value).to_dict is not CanonicalModel.to_dict:
        return value.to_dict()
    if is_dataclass(value):
        out_obj: dict[str, JSONValue] = {}
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = _serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


def serialize(value: object, path: str = "value") -> JSONValue:
    """Serialize dataclasses, enums, dates and containers into canonical JSON data."""

    return _serialize_value(value, path)


_WORK_ITEM_FIELDS: frozenset[str] = frozenset(
    {
        "id",
        "title",
        "description",
        "parent_id",
        "estimated_size",
        "priority",
        "acceptance_criteria",
        "value_stream",
        "specialization",
        "verification",
        "attributes",
    }
)


@dataclass(frozen=True, slots=True)
class WorkItem(CanonicalModel):
    """Plannable unit of work; instantiate through ``Story``, ``Enabler`` or ``Feature``.

    ``estimated_size`` may be absent for enablers and features; the planner then
    uses the configured default item size. Sign and presence rules are checked by
    the dependency graph validator so that every offending item is reported at once.
    """

    kind: ClassVar[WorkItemKind]

    id: str
    title: str
    description: str = ""
    parent_id: str | None = None
    estimated_size: float | None = None
    priority: int = DEFAULT_PRIORITY
    acceptance_criteria: tuple[str, ...] = ()
    value_stream: ValueStreamType | None = None
    specialization: str | None = None
    verification: tuple[str, ...] = ()
    attributes: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        name = type(self).__name__
        if type(self) is WorkItem:
            _fail(name, "instantiate Story, Enabler or Feature")
        checked: dict[str, object] = {
            "id": _as_str(self.id, f"{name}.id", max_len=_MAX_ID),
            "title": _as_str(self.title, f"{name}.title", max_len=_MAX_ID),
            "description": _as_str(self.description, f"{name}.description", min_len=0),
            "priority": _as_int(self.priority, f"{name}.priority", minimum=1),
            "acceptance_criteria": _as_str_tuple(
                self.acceptance_criteria, f"{name}.acceptance_criteria"
            ),
            "verification": _as_str_tuple(self.verification, f"{name}.verification", unique=True),
            "attributes": _as_str_dict(self.attributes, f"{name}.attributes"),
        }
        # None stays None for the optional fields.
        if self.parent_id is not None:
            checked["parent_id"] = _as_str(self.parent_id, f"{name}.parent_id", max_len=_MAX_ID)
        if self.estimated_size is not None:
            checked["estimated_size"] = _as_float(self.estimated_size, f"{name}.estimated_size")
        if self.value_stream is not None:
            checked["value_stream"] = _as_enum(
                ValueStreamType, self.value_stream, f"{name}.value_stream"
            )
        if self.specialization is not None:
            checked["specialization"] = _as_str(
                self.specialization, f"{name}.specialization", max_len=_MAX_ID
            )
        for key, value in checked.items():
            _assign(self, key, value)
        self._validate_kind_fields(name)

    def _validate_kind_fields(self, name: str) -> None:
        return None

    def planning_size(self, default_size: float) -> float:
        """Return the estimated size, or ``default_size`` when no estimate exists."""

        if self.estimated_size is None:
            return float(default_size)
        return self.estimated_size

    @property
    def is_verified(self) -> bool:
        return bool(self.verification)

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"kind": self.kind.value}
        for dataclass_field in fields(self):
            out[dataclass_field.name] = _serialize_value(
                getattr(self, dataclass_field.name),
                f"{type(self).__name__}.{dataclass_field.name}",
            )
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> WorkItem:
        if not isinstance(data, Mapping):
            _fail("WorkItem", f"expected object, got {type(data).__name__}")
        kind = _as_enum(WorkItemKind, data.get("kind"), "WorkItem.kind")
        target = _WORK_ITEM_TYPES[kind]
        if cls is not WorkItem and cls is not target:
            _fail(cls.__name__, f"kind {kind.value!r} does not match {cls.__name__}")

        extra = target._kind_field_names()
        parsed = _expect_object(
            data,
            target.__name__,
            required={"id", "title", "kind"},
            optional=(set(_WORK_ITEM_FIELDS) | set(extra)) - {"id", "title"},
        )
        name = target.__name__
        kwargs: dict[str, object] = {
            "id": parsed["id"],
            "title": parsed["title"],
            "description": parsed.get("description", ""),
            "parent_id": parsed.get("parent_id"),
            "estimated_size": parsed.get("estimated_size"),
            "priority": parsed.get("priority", DEFAULT_PRIORITY),
            "acceptance_criteria": _as_str_tuple(
                parsed.get("acceptance_criteria", ()), f"{name}.acceptance_criteria"
            ),
            "value_stream": parsed.get("value_stream"),
            "specialization": parsed.get("specialization"),
            "verification": _as_str_tuple(
                parsed.get("verification", ()), f"{name}.verification", unique=True
            ),
            "attributes": parsed.get("attributes", {}),
        }
        for key in extra:
            if key in parsed:
                kwargs[key] = parsed[key]
        return target(**kwargs)  # type: ignore[arg-type]

    @classmethod
    def _kind_field_names(cls) -> tuple[str, ...]:
        return tuple(
            item.name for item in fields(cls) if item.name not in _WORK_ITEM_FIELDS
        )


@dataclass(frozen=True, slots=True)
class Story(WorkItem):
    kind: ClassVar[WorkItemKind] = WorkItemKind.STORY

    user_facing: bool = False

    def _validate_kind_fields(self, name: str) -> None:
        _assign(self, "user_facing", _as_bool(self.user_facing, f"{name}.user_facing"))


@dataclass(frozen=True, slots=True)
class Enabler(WorkItem):
    kind: ClassVar[WorkItemKind] = WorkItemKind.ENABLER

    enabler_type: EnablerType = EnablerType.ARCHITECTURE

    def _validate_kind_fields(self, name: str) -> None:
        _assign(
            self,
            "enabler_type",
            _as_enum(EnablerType, self.enabler_type, f"{name}.enabler_type"),
        )


@dataclass(frozen=True, slots=True)
class Feature(WorkItem):
    kind: ClassVar[WorkItemKind] = WorkItemKind.FEATURE


_WORK_ITEM_TYPES: dict[WorkItemKind, type[WorkItem]] = {
    WorkItemKind.STORY: Story,
    WorkItemKind.ENABLER: Enabler,
    WorkItemKind.FEATURE: Feature,
}


@dataclass(frozen=True, slots=True)
class DependencyEdge(CanonicalModel):
    """Directed dependency: ``source_id`` requires ``target_id`` to be done first."""

    source_id: str
    target_id: str
    strength: DependencyStrength = DependencyStrength.HARD
    rationale: str = ""
    confidence: float = 1.0

    def __post_init__(self) -> None:
        _assign(
            self,
            "source_id",
            _as_str(self.source_id, "DependencyEdge.source_id", max_len=_MAX_ID),
        )
        _assign(
            self,
            "target_id",
            _as_str(self.target_id, "DependencyEdge.target_id", max_len=_MAX_ID),
        )
        _assign(
            self,
            "strength",
            _as_enum(DependencyStrength, self.strength, "DependencyEdge.strength"),
        )
        _assign(
            self,
            "rationale",
            _as_str(self.rationale, "DependencyEdge.rationale", min_len=0),
        )
        _assign(
            self,
            "confidence",
            _as_float(self.confidence, "DependencyEdge.confidence", minimum=0.0, maximum=1.0),
        )

    @property
    def is_hard(self) -> bool:
        return self.strength is DependencyStrength.HARD

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DependencyEdge:
        parsed = _expect_object(
            data,
            "DependencyEdge",
            required={"source_id", "target_id"},
            optional={"strength", "rationale", "confidence"},
        )
        return cls(
            source_id=cast("str", parsed["source_id"]),
            target_id=cast("str", parsed["target_id"]),
            strength=cast("DependencyStrength", parsed.get("strength", DependencyStrength.HARD)),
            rationale=cast("str", parsed.get("rationale", "")),
            confidence=cast("float", parsed.get("confidence", 1.0)),
        )


@dataclass(frozen=True, slots=True)
class Team(CanonicalModel):
    """Delivery team profile. Capacity is always derived, never stored."""

    id: str
    name: str
    member_count: int
    average_velocity: float
    specializations: tuple[str, ...] = ()
    capacity_factor: float = 1.0
    timezone: str | None = None
    velocity_trend: float = 1.0

    def __post_init__(self) -> None:
        _assign(self, "id", _as_str(self.id, "Team.id", max_len=_MAX_ID))
        _assign(self, "name", _as_str(self.name, "Team.name", max_len=_MAX_ID))
        _assign(self, "member_count", _as_int(self.member_count, "Team.member_count"))
        _assign(
            self,
            "average_velocity",
            _as_float(self.average_velocity, "Team.average_velocity"),
        )
        _assign(
            self,
            "specializations",
            _as_str_tuple(self.specializations, "Team.specializations", unique=True),
        )
        _assign(
            self,
            "capacity_factor",
            _as_float(self.capacity_factor, "Team.capacity_factor"),
        )
        if self.timezone is not None:
            _assign(self, "timezone", _as_str(self.timezone, "Team.timezone"))
        _assign(
            self,
            "velocity_trend",
            _as_float(self.velocity_trend, "Team.velocity_trend"),
        )

    def has_specialization(self, tag: str) -> bool:
        normalized = tag.strip().lower()
        return any(item.lower() == normalized for item in self.specializations)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Team:
        parsed = _expect_object(
            data,
            "Team",
            required={"id", "name", "member_count", "average_velocity"},
            optional={"specializations", "capacity_factor", "timezone", "velocity_trend"},
        )
        return cls(
            id=cast("str", parsed["id"]),
            name=cast("str", parsed["name"]),
            member_count=cast("int", parsed["member_count"]),
            average_velocity=cast("float", parsed["average_velocity"]),
            specializations=_as_str_tuple(
                parsed.get("specializations", ()), "Team.specializations", unique=True
            ),
            capacity_factor=cast("float", parsed.get("capacity_factor", 1.0)),
            timezone=cast("str | None", parsed.get("timezone")),
            velocity_trend=cast("float", parsed.get("velocity_trend", 1.0)),
        )


@dataclass(frozen=True, slots=True)
class ProgramIncrement(CanonicalModel):
    """Fixed planning horizon. Date ordering is checked by the iteration generator."""

    id: str
    name: str
    start_date: date
    end_date: date

    def __post_init__(self) -> None:
        _assign(self, "id", _as_str(self.id, "ProgramIncrement.id", max_len=_MAX_ID))
        _assign(self, "name", _as_str(self.name, "ProgramIncrement.name", max_len=_MAX_ID))
        _assign(
            self,
            "start_date",
            _as_date(self.start_date, "ProgramIncrement.start_date"),
        )
        _assign(self, "end_date", _as_date(self.end_date, "ProgramIncrement.end_date"))

    @property
    def duration_days(self) -> int:
        """Calendar days covered, counting both the start and the end date."""

        return (self.end_date - self.start_date).days + 1

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ProgramIncrement:
        parsed = _expect_object(
            data,
            "ProgramIncrement",
            required={"id", "name", "start_date", "end_date"},
        )
        return cls(
            id=cast("str", parsed["id"]),
            name=cast("str", parsed["name"]),
            start_date=_as_date(parsed["start_date"], "ProgramIncrement.start_date"),
            end_date=_as_date(parsed["end_date"], "ProgramIncrement.end_date"),
        )


@dataclass(frozen=True, slots=True)
class Iteration(CanonicalModel):
    id: str
    name: str
    index: int
    start_date: date
    end_date: date
    goals: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _assign(self, "id", _as_str(self.id, "Iteration.id", max_len=_MAX_ID))
        _assign(self, "name", _as_str(self.name, "Iteration.name", max_len=_MAX_ID))
        _assign(self, "index", _as_int(self.index, "Iteration.index", minimum=0))
        start = _as_date(self.start_date, "Iteration.start_date")
        end = _as_date(self.end_date, "Iteration.end_date")
        if end < start:
            _fail("Iteration.end_date", "must not precede start_date")
        _assign(self, "start_date", start)
        _assign(self, "end_date", end)
        _assign(self, "goals", _as_str_tuple(self.goals, "Iteration.goals"))

    @property
    def number(self) -> int:
        """One-based iteration number used in display names."""

        return self.index + 1

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days + 1


__all__ = [
    "CanonicalModel",
    "DependencyEdge",
    "DependencyStrength",
    "Enabler",
    "EnablerType",
    "Feature",
    "Iteration",
    "JSONValue",
    "ProgramIncrement",
    "RiskLevel",
    "Story",
    "Team",
    "ValueStreamType",
    "WorkItem",
    "WorkItemKind",
    "canonical_json",
    "serialize",
]
