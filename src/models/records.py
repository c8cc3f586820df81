"""
Record Models for Album Tracker

These models define the schemas of everything the store keeps:
tasks (the cost-bearing tree), misc expenses, pipeline stages and the
opaque collections owned by other views (photos, vendors, events).

DESIGN DECISION: Records are parsed from two sources that we do not fully
control - documents pushed by the remote store and the JSON blob kept on the
device - and both were written by form widgets. The models therefore:
1. Use the camelCase wire names as aliases (parentId, actualCost, ...)
2. Keep unknown fields (entity-specific schemas live in the views)
3. Read blank form values as "not set" instead of rejecting the record
4. Still reject values that break an invariant (negative money)
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Iterable, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel


ZERO = Decimal(0)

# Money is exact internally and a plain JSON number on the wire.
Money = Annotated[
    Decimal,
    Field(ge=0, allow_inf_nan=False),
    PlainSerializer(float, return_type=float),
]

CHOICE_GROUP = "choice_group"
SETTINGS_DOCUMENT_ID = "settings"


def _blank_to_none(value: Any) -> Any:
    """Form widgets submit '' for untouched inputs."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


# =============================================================================
# BASE RECORD
# =============================================================================

class Record(BaseModel):
    """
    Any list-shaped record in a collection.

    Only the identifier is required. Every other key a view stores is kept
    as an extra field and written back untouched.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Unique record identifier (immutable)"
    )
    created_at: Optional[datetime] = Field(
        default=None,
        description="Server timestamp, only set for remotely created records"
    )

    def to_document(self) -> dict[str, Any]:
        """Convert to the JSON-safe wire form (camelCase keys)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def field_aliases(cls) -> dict[str, str]:
        """Map python field names to wire names."""
        return {
            name: info.alias or name
            for name, info in cls.model_fields.items()
        }

    @classmethod
    def prepare_fields(cls, fields: Mapping[str, Any]) -> dict[str, Any]:
        """
        Normalize a (partial) payload before it is written.

        Accepts python or wire names, drops `id` (identifiers never change
        after creation) and validates the values against this model.

        Returns:
            JSON-safe payload with wire names, limited to the given keys

        Raises:
            ValidationError: If a value is invalid for this record type
        """
        aliases = cls.field_aliases()
        wire = {
            aliases.get(key, key): value
            for key, value in fields.items()
            if key != "id"
        }
        validated = cls.model_validate({"id": "pending", **wire})
        dumped = validated.model_dump(by_alias=True, mode="json")
        return {key: dumped.get(key, wire[key]) for key in wire}


# =============================================================================
# TASK TREE
# =============================================================================

class Task(Record):
    """
    A node in the task forest.

    Cost precedence (the "effective cost") is paid, then quoted, then
    estimated: it models increasing certainty of spend.
    """

    parent_id: Optional[str] = Field(
        default=None,
        description="Parent task; roots have none"
    )
    type: Optional[str] = Field(
        default=None,
        description="'choice_group' marks mutually exclusive children"
    )
    selected_option_id: Optional[str] = Field(
        default=None,
        description="Chosen child of a choice group"
    )
    is_optional: bool = False
    archived: bool = False

    estimated_cost: Optional[Money] = None
    quoted_cost: Optional[Money] = None
    actual_cost: Optional[Money] = None

    @field_validator(
        'parent_id',
        'type',
        'selected_option_id',
        'estimated_cost',
        'quoted_cost',
        'actual_cost',
        mode='before',
    )
    @classmethod
    def blank_is_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator('is_optional', 'archived', mode='before')
    @classmethod
    def missing_flag_is_false(cls, v: Any) -> Any:
        return False if v is None or v == "" else v

    @property
    def is_choice_group(self) -> bool:
        return self.type == CHOICE_GROUP

    @property
    def recorded_actual(self) -> Decimal:
        """Money actually paid for this task itself."""
        return self.actual_cost or ZERO

    @property
    def effective_cost(self) -> Decimal:
        """Single cost figure: actual > quoted > estimated > 0."""
        if self.actual_cost and self.actual_cost > 0:
            return self.actual_cost
        if self.quoted_cost:
            return self.quoted_cost
        return self.estimated_cost or ZERO


# =============================================================================
# OTHER COLLECTIONS
# =============================================================================

class MiscExpense(Record):
    """Flat expense outside the task tree, always counted in full."""

    amount: Money = ZERO

    @field_validator('amount', mode='before')
    @classmethod
    def blank_amount_is_zero(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return ZERO if v is None else v


class Stage(Record):
    """Pipeline stage (ordered)."""

    name: str = ""
    order: int = 0


class Vendor(Record):
    """Vendor record; fields are owned by the vendor views."""


class Photo(Record):
    """Photo record; fields are owned by the gallery views."""


class Event(Record):
    """Calendar event; fields are owned by the calendar views."""


class ProjectSettings(BaseModel):
    """
    Singleton settings record.

    Free-form: every key is a preference owned by some view. Saving merges
    keys into the existing record.
    """
    model_config = ConfigDict(extra="allow")

    def merged(self, partial: Mapping[str, Any]) -> "ProjectSettings":
        return ProjectSettings.model_validate({**self.to_document(), **partial})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "ProjectSettings":
        """Build from a stored document, dropping the reserved identifier."""
        return cls.model_validate(
            {key: value for key, value in document.items() if key != "id"}
        )


DEFAULT_STAGES: tuple[Stage, ...] = (
    Stage(id="s1", name="Stage 1: Arrangements", order=1),
    Stage(id="s2", name="Stage 2: Pre-Production", order=2),
    Stage(id="s3", name="Stage 3: Recording", order=3),
    Stage(id="s4", name="Stage 4: Mixing/Mastering", order=4),
)


# =============================================================================
# COLLECTIONS
# =============================================================================

class Collection(str, Enum):
    """
    Entity collections known to the store.

    The value is the name used by the mutation contract.
    """
    TASKS = "tasks"
    PHOTOS = "photos"
    VENDORS = "vendors"
    MISC_EXPENSES = "misc_expenses"
    EVENTS = "events"
    STAGES = "stages"

    @property
    def slice_key(self) -> str:
        """Key of this collection in the in-memory snapshot."""
        if self is Collection.MISC_EXPENSES:
            return "misc"
        return self.value

    @property
    def remote_name(self) -> str:
        """Sub-collection name in the remote store."""
        return f"album_{self.value}"

    @property
    def record_model(self) -> type[Record]:
        return _RECORD_MODELS[self]

    @classmethod
    def parse(cls, value: "Collection | str") -> "Collection":
        """Accept an enum member, its value or its slice key."""
        if isinstance(value, Collection):
            return value
        for member in cls:
            if value in (member.value, member.slice_key):
                return member
        raise ValueError(f"Unknown collection: {value!r}")


_RECORD_MODELS: dict[Collection, type[Record]] = {
    Collection.TASKS: Task,
    Collection.PHOTOS: Photo,
    Collection.VENDORS: Vendor,
    Collection.MISC_EXPENSES: MiscExpense,
    Collection.EVENTS: Event,
    Collection.STAGES: Stage,
}


def parse_records(
    model: type[Record],
    documents: Iterable[Any],
) -> tuple[list[Record], list[dict[str, Any]]]:
    """
    Parse stored documents leniently.

    Returns:
        (records, skipped) where skipped holds {"id", "error"} entries for
        documents that could not be parsed
    """
    records: list[Record] = []
    skipped: list[dict[str, Any]] = []
    for document in documents:
        if not isinstance(document, Mapping):
            skipped.append({"id": None, "error": "not an object"})
            continue
        try:
            records.append(model.model_validate(document))
        except ValidationError as e:
            record_id = document.get("id")
            skipped.append({
                "id": None if record_id is None else str(record_id),
                "error": f"{e.error_count()} invalid field(s): "
                         + ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"]),
            })
    return records, skipped
