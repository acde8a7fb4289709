"""Assistant action models and their execution results."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from workbench.errors import InvalidAction


class ActionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class CreateOrUpdateFile(_ActionBase):
    type: Literal["createOrUpdateFile"] = "createOrUpdateFile"
    path: str = Field(min_length=1)
    content: str


class DeletePath(_ActionBase):
    type: Literal["deletePath"] = "deletePath"
    path: str = Field(min_length=1)


class RunCommand(_ActionBase):
    type: Literal["runCommand"] = "runCommand"
    command: str = Field(min_length=1)
    cwd: Optional[str] = None


Action = Annotated[
    Union[CreateOrUpdateFile, DeletePath, RunCommand],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


class ActionResult(BaseModel):
    """One action plus the fields the executor sets while applying it."""

    model_config = ConfigDict(frozen=True)

    index: int
    action: Optional[Action] = None
    raw: Optional[dict[str, Any]] = None
    status: ActionStatus = ActionStatus.PENDING
    message: Optional[str] = None
    output: Optional[str] = None
    exit_code: Optional[int] = None

    @property
    def type(self) -> str:
        if self.action is not None:
            return self.action.type
        return str((self.raw or {}).get("type", "unknown"))

    @property
    def is_terminal(self) -> bool:
        return self.status is not ActionStatus.PENDING

    def transition(self, status: ActionStatus, **fields: Any) -> "ActionResult":
        if self.is_terminal:
            raise ValueError(
                f"action {self.index} already finished with status {self.status.value}"
            )
        return self.model_copy(update={"status": status, **fields})

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.raw or {})
        if self.action is not None:
            payload.update(self.action.model_dump(exclude_none=True))
        payload["status"] = self.status.value
        for key in ("message", "output", "exit_code"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


def parse_action(raw: Any) -> Action:
    """Validate one untrusted action entry."""

    if isinstance(raw, (CreateOrUpdateFile, DeletePath, RunCommand)):
        return raw
    if not isinstance(raw, dict):
        raise InvalidAction(f"Action must be an object, got {type(raw).__name__}")
    try:
        return _action_adapter.validate_python(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'action'}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidAction(f"Invalid {raw.get('type', 'action')!s}: {problems}") from exc
