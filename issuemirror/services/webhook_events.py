"""Typed decoding of GitHub webhook deliveries.

Each delivery decodes to exactly one of ``IssuesEvent``, ``LabelEvent`` or
``UnsupportedEvent``. Handlers only ever see fields that passed validation.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Literal, Optional, Type, Union

import pydantic
from pydantic import BaseModel, Field, constr

from issuemirror.errors import ValidationError

NonEmptyStr = constr(strip_whitespace=True, min_length=1)
# Label names must arrive as JSON strings; numbers are not coerced.
LabelName = constr(strict=True, strip_whitespace=True, min_length=1)


class RepositoryOwner(BaseModel):
    login: NonEmptyStr


class RepositoryRef(BaseModel):
    name: NonEmptyStr
    owner: RepositoryOwner


class LabelPayload(BaseModel):
    name: LabelName
    color: Optional[str] = None
    description: Optional[str] = None


class IssuePayload(BaseModel):
    number: int = Field(ge=1)
    title: NonEmptyStr
    state: NonEmptyStr
    body: Optional[str] = None
    labels: Optional[List[LabelPayload]] = None
    created_at: Optional[datetime] = None


class RepositoryEvent(BaseModel):
    action: Optional[str] = None
    repository: RepositoryRef

    @property
    def owner(self) -> str:
        return self.repository.owner.login

    @property
    def repo(self) -> str:
        return self.repository.name


class IssuesEvent(RepositoryEvent):
    kind: Literal["issues"] = "issues"
    issue: IssuePayload


class LabelEvent(RepositoryEvent):
    kind: Literal["label"] = "label"
    action: NonEmptyStr
    label: LabelPayload


@dataclass(frozen=True)
class UnsupportedEvent:
    event_type: Optional[str]


WebhookEvent = Union[IssuesEvent, LabelEvent, UnsupportedEvent]

EVENT_MODELS: Dict[str, Type[RepositoryEvent]] = {
    "issues": IssuesEvent,
    "label": LabelEvent,
}


def _describe(error: pydantic.ValidationError) -> str:
    fields = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item.get("loc", ())) or "payload"
        fields.append(f"{loc} ({item.get('msg')})")
    return "Invalid webhook payload: " + "; ".join(fields)


def decode_event(event_type: Optional[str], raw_payload: bytes) -> WebhookEvent:
    """Decode a delivery body for its ``X-GitHub-Event`` type.

    Raises ValidationError when the body is not JSON or a required field is
    missing or has the wrong type.
    """
    model = EVENT_MODELS.get((event_type or "").strip().lower())
    if model is None:
        return UnsupportedEvent(event_type)
    try:
        return model.model_validate_json(raw_payload)
    except pydantic.ValidationError as e:
        raise ValidationError(_describe(e)) from e
