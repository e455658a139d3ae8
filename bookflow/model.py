import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, TypeAdapter
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base for models that travel as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class GatewayError(Exception):
    def __init__(self, msg: str = ""):
        super().__init__(msg)
        self.msg = msg


class CommandValidationError(GatewayError):
    """Malformed, missing or unknown command input. Never forwarded."""


class UpstreamError(GatewayError):
    """The engine (or a provider) call failed; carries the original message."""


class StreamTerminalError(GatewayError):
    """A poll failed; the stream ends with a single failure frame."""


class WorkflowAlreadyStarted(GatewayError):
    pass


# ---------------------------------------------------------------------------
# Workflow identity and state
# ---------------------------------------------------------------------------


class WorkflowRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    book_id: str = Field(min_length=1)
    workflow_id: str

    @classmethod
    def for_book(cls, book_id: str) -> "WorkflowRef":
        return cls(book_id=book_id, workflow_id=f"book-{book_id}")


class WorkflowStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {WorkflowStatus.COMPLETED.value, WorkflowStatus.FAILED.value, WorkflowStatus.CANCELLED.value}
)


class WorkflowState(_WireModel):
    """Snapshot returned by the engine's ``getWorkflowState`` query.

    Fields the gateway does not know about are kept as-is (``extra="allow"``)
    so the frame sent to the client is the engine's snapshot, not a subset.
    ``status`` stays a plain string; statuses outside ``WorkflowStatus`` are
    treated as non-terminal.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    workflow_id: str
    started_at: str | None = None
    updates: list[Any] = Field(default_factory=list)
    status: str
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_unset=True)

    @classmethod
    def failed(cls, workflow_id: str, message: str) -> "WorkflowState":
        return cls(
            workflow_id=workflow_id,
            started_at=datetime.datetime.now(datetime.timezone.utc).isoformat(),
            updates=[],
            status=WorkflowStatus.FAILED.value,
            error=message,
        )


# ---------------------------------------------------------------------------
# Update commands
# ---------------------------------------------------------------------------


class UpdateCommandBase(BaseModel):
    # Engine-side update name; differs from ``kind`` for selectCover.
    update_name: ClassVar[str]

    def update_args(self) -> list[Any]:
        return []


class SetCharacterSpec(UpdateCommandBase):
    kind: Literal["setCharacterSpec"] = "setCharacterSpec"
    update_name: ClassVar[str] = "setCharacterSpec"
    payload: dict[str, Any]

    def update_args(self) -> list[Any]:
        return [self.payload]


class ChooseCharacter(UpdateCommandBase):
    kind: Literal["chooseCharacter"] = "chooseCharacter"
    update_name: ClassVar[str] = "chooseCharacter"
    payload: StrictStr

    def update_args(self) -> list[Any]:
        return [self.payload]


class SetBookPrefs(UpdateCommandBase):
    kind: Literal["setBookPrefs"] = "setBookPrefs"
    update_name: ClassVar[str] = "setBookPrefs"
    payload: dict[str, Any]

    def update_args(self) -> list[Any]:
        return [self.payload]


class SelectCover(UpdateCommandBase):
    kind: Literal["selectCover"] = "selectCover"
    update_name: ClassVar[str] = "chooseCover"
    payload: StrictStr

    def update_args(self) -> list[Any]:
        return [self.payload]


class Pause(UpdateCommandBase):
    kind: Literal["pause"] = "pause"
    update_name: ClassVar[str] = "pause"


class Resume(UpdateCommandBase):
    kind: Literal["resume"] = "resume"
    update_name: ClassVar[str] = "resume"


class Cancel(UpdateCommandBase):
    kind: Literal["cancel"] = "cancel"
    update_name: ClassVar[str] = "cancel"


UpdateCommand = Annotated[
    Union[
        SetCharacterSpec,
        ChooseCharacter,
        SetBookPrefs,
        SelectCover,
        Pause,
        Resume,
        Cancel,
    ],
    Field(discriminator="kind"),
]

UPDATE_COMMAND_ADAPTER: TypeAdapter[UpdateCommand] = TypeAdapter(UpdateCommand)

UPDATE_KINDS: tuple[str, ...] = (
    "setCharacterSpec",
    "chooseCharacter",
    "setBookPrefs",
    "selectCover",
    "pause",
    "resume",
    "cancel",
)


# ---------------------------------------------------------------------------
# Theme
# ---------------------------------------------------------------------------

ImagePlacement = Literal["imageLeft", "imageRight", "imageTop"]
AspectRatio = Literal["4:3", "3:2", "1:1"]


class ThemePalette(_WireModel):
    primary: str
    secondary: str
    accent: str
    bg: str
    text: str
    muted: str


class ThemeFont(_WireModel):
    heading: str
    body: str
    display: str | None = None


class ThemeLayout(_WireModel):
    image_placement: ImagePlacement
    gutter: int = Field(ge=16, le=28)


class ThemeImage(_WireModel):
    aspect_ratio: AspectRatio
    style_hints: list[str]


class ThemeDescriptor(_WireModel):
    id: str
    seed: str
    palette: ThemePalette
    font: ThemeFont
    layout: ThemeLayout
    image: ThemeImage


# ---------------------------------------------------------------------------
# Image quality
# ---------------------------------------------------------------------------


class AlphaRange(_WireModel):
    min: float = 0
    max: float = 0


class Dimensions(_WireModel):
    width: int = 0
    height: int = 0


class AlphaMetadata(_WireModel):
    has_transparency: bool = False
    alpha_range: AlphaRange = Field(default_factory=AlphaRange)
    dimensions: Dimensions = Field(default_factory=Dimensions)
    file_size: int = 0


class QualityBreakdown(_WireModel):
    transparency: float
    edge_quality: float
    centering: float
    color_consistency: float
    technical: float
    total: int
