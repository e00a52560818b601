"""Resolution request model: the persisted unit of work and its status."""

from __future__ import annotations

import base64
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from pipeline_resolution.common import LABEL_KEY_RESOLVER_TYPE

CONDITION_SUCCEEDED = "Succeeded"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def encode_data(content: bytes) -> str:
    """Encode resolved bytes for the ``status.data`` field."""
    return base64.b64encode(content).decode("ascii")


def decode_data(data: str) -> bytes:
    """Inverse of :func:`encode_data`; rejects non-alphabet characters."""
    return base64.b64decode(data, validate=True)


class ConditionStatus(str, Enum):
    UNKNOWN = "Unknown"
    TRUE = "True"
    FALSE = "False"


class Condition(BaseModel):
    type: str = CONDITION_SUCCEEDED
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: datetime = Field(default_factory=_utcnow)


class ObjectMeta(BaseModel):
    """Identity and bookkeeping for a request.

    Attributes:
        name: Unique within the namespace
        namespace: Grouping scope (e.g., the pipeline's namespace)
        labels: Routing labels; must carry the resolver-type label
        creation_timestamp: When the request was created (aware UTC)
        resource_version: Bumped by the store on every write
    """

    name: str = Field(min_length=1)
    namespace: str = Field(default="default", min_length=1)
    labels: dict[str, str] = Field(default_factory=dict)
    creation_timestamp: datetime = Field(default_factory=_utcnow)
    resource_version: int = 0


class ResolutionRequestSpec(BaseModel):
    parameters: dict[str, str] = Field(default_factory=dict)


class ResolutionRequestStatus(BaseModel):
    conditions: list[Condition] = Field(default_factory=list)
    data: str = ""
    annotations: dict[str, str] = Field(default_factory=dict)

    def get_condition(self, condition_type: str = CONDITION_SUCCEEDED) -> Condition | None:
        for cond in self.conditions:
            if cond.type == condition_type:
                return cond
        return None

    def _set_condition(self, status: ConditionStatus, reason: str, message: str) -> None:
        current = self.get_condition()
        if current is not None and (current.status, current.reason, current.message) == (
            status,
            reason,
            message,
        ):
            return
        new = Condition(status=status, reason=reason, message=message)
        self.conditions = [c for c in self.conditions if c.type != CONDITION_SUCCEEDED]
        self.conditions.append(new)

    def initialize_conditions(self) -> None:
        if self.get_condition() is None:
            self._set_condition(ConditionStatus.UNKNOWN, "", "")

    def mark_in_progress(self, message: str) -> None:
        self._set_condition(ConditionStatus.UNKNOWN, "", message)

    def mark_succeeded(self) -> None:
        self._set_condition(ConditionStatus.TRUE, "", "")

    def mark_failed(self, reason: str, message: str) -> None:
        self._set_condition(ConditionStatus.FALSE, reason, message)


class ResolutionRequest(BaseModel):
    """A request to fetch a remote artifact via the resolver named in its labels."""

    metadata: ObjectMeta
    spec: ResolutionRequestSpec = Field(default_factory=ResolutionRequestSpec)
    status: ResolutionRequestStatus = Field(default_factory=ResolutionRequestStatus)

    @property
    def key(self) -> str:
        return f"{self.metadata.namespace}/{self.metadata.name}"

    @property
    def resolver_type(self) -> str | None:
        return self.metadata.labels.get(LABEL_KEY_RESOLVER_TYPE)

    def is_done(self) -> bool:
        """True once the request reached ``Succeeded`` or ``Failed``."""
        cond = self.status.get_condition()
        return cond is not None and cond.status != ConditionStatus.UNKNOWN

    def succeeded(self) -> bool:
        cond = self.status.get_condition()
        return cond is not None and cond.status == ConditionStatus.TRUE

    def decoded_data(self) -> bytes:
        return decode_data(self.status.data)

    @classmethod
    def new(
        cls,
        name: str,
        *,
        resolver_type: str,
        parameters: dict[str, str] | None = None,
        namespace: str = "default",
        labels: dict[str, str] | None = None,
    ) -> ResolutionRequest:
        """Build a fresh request routed to *resolver_type*."""
        all_labels = dict(labels or {})
        all_labels[LABEL_KEY_RESOLVER_TYPE] = resolver_type
        return cls(
            metadata=ObjectMeta(name=name, namespace=namespace, labels=all_labels),
            spec=ResolutionRequestSpec(parameters=dict(parameters or {})),
        )
