"""Core data models for devctl."""

import os
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

DEFAULT_ENVIRONMENT_ID = "default"
MANAGEMENT_CLUSTER_ID = "gaia"

# Timestamp layout used in the registry document
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: datetime | None) -> str:
    """Render a timestamp the way the registry document stores it."""
    return value.strftime(TIMESTAMP_FORMAT) if value else ""


def now() -> datetime:
    """Current local time truncated to whole seconds."""
    return datetime.now().replace(microsecond=0)


def is_path_safe_identifier(value: str) -> bool:
    """Whether an id can name exactly one file or directory under the cache root."""
    return bool(value) and value not in (".", "..") and "/" not in value and os.sep not in value


class ClusterReadiness(str, Enum):
    """Readiness of a workload cluster as reported by its custom resource."""

    READY = "ready"
    NOT_READY = "not-ready"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, value: Any) -> "ClusterReadiness":
        """Decode a loosely typed ``status.ready`` value.

        Booleans and "true"/"false" strings map to READY/NOT_READY; anything
        else (missing, numbers, nested objects) is UNKNOWN.
        """
        if isinstance(value, bool):
            return cls.READY if value else cls.NOT_READY
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered == "true":
                return cls.READY
            if lowered == "false":
                return cls.NOT_READY
        return cls.UNKNOWN


class Environment(BaseModel):
    """A remote site: one bastion host fronting one management cluster.

    Field aliases match the keys of the on-disk registry document.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="Unique environment identifier")
    display_name: str = Field("", alias="name", description="Human readable name")
    created_at: datetime | None = Field(None, alias="createTime")
    updated_at: datetime | None = Field(None, alias="updateTime")
    host: str = Field("", alias="ip", description="Bastion host address")
    ssh_user: str = Field("", alias="user")
    ssh_password: str = Field("", alias="password")
    management_kubeconfig_path: str = Field("", alias="kubeconfig")

    @field_validator("id")
    @classmethod
    def check_id(cls, value: str) -> str:
        """Reject ids that would escape their cache directory."""
        if not is_path_safe_identifier(value):
            raise ValueError(f"Invalid environment id: {value!r}")
        return value

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def parse_timestamp(cls, value: Any) -> Any:
        """Accept the document's ``YYYY-MM-DD HH:MM:SS`` layout."""
        if value in ("", None):
            return None
        if isinstance(value, str):
            try:
                return datetime.strptime(value, TIMESTAMP_FORMAT)
            except ValueError:
                return value
        return value

    @field_serializer("created_at", "updated_at")
    def serialize_timestamp(self, value: datetime | None) -> str:
        return format_timestamp(value)

    @property
    def is_local_default(self) -> bool:
        """True for the reserved entry pointing at an ambient kubeconfig."""
        return self.id == DEFAULT_ENVIRONMENT_ID

    def to_document(self) -> dict[str, Any]:
        """Serialize using the registry document keys."""
        return self.model_dump(by_alias=True)


class ClusterRecord(BaseModel):
    """Workload cluster discovered in a management cluster."""

    id: str
    display_name: str = ""
    os: str = ""
    arch: str = ""
    region: str = ""
    container_runtime: str = ""
    kubernetes_version: str = ""
    api_server_endpoint: str = ""
    ready: ClusterReadiness = ClusterReadiness.UNKNOWN
    kubeconfig_secret_name: str = ""


class NodeInfo(BaseModel):
    """Node name and internal address of a cluster member."""

    name: str
    internal_ip: str
