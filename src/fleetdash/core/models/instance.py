"""Wire models for fleet snapshots.

A snapshot is a JSON array of instances:

    [
        {
            "uuid": "wpdev-3f2a...",
            "status": "PartiallyRunning",
            "containers": [
                {"container_id": "ab12...", "container_image": "mysql",
                 "container_status": "Running"},
                ...
            ],
            "nginx_port": 49153,
            "adminer_port": 49154,
            "wordpress_data": {"site_url": "http://localhost:49153",
                               "adminer_url": "http://localhost:49154"}
        },
        ...
    ]

Models are frozen: a snapshot is replaced, never mutated.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from fleetdash.core.domain.instance import ContainerImage, ContainerStatus, InstanceStatus

_CONTAINER_STATUS_BY_ORDINAL = tuple(ContainerStatus)


class Container(BaseModel):
    """Single container embedded in an instance."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(alias="container_id")
    image: ContainerImage = Field(default=ContainerImage.UNKNOWN, alias="container_image")
    status: ContainerStatus = Field(default=ContainerStatus.UNKNOWN, alias="container_status")

    @field_validator("image", mode="before")
    @classmethod
    def _coerce_image(cls, value: Any) -> ContainerImage:
        try:
            return ContainerImage(str(value).lower())
        except ValueError:
            return ContainerImage.UNKNOWN

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> ContainerStatus:
        # Older servers serialize the enum ordinal instead of its name
        if isinstance(value, int) and not isinstance(value, bool):
            if 0 <= value < len(_CONTAINER_STATUS_BY_ORDINAL):
                return _CONTAINER_STATUS_BY_ORDINAL[value]
            return ContainerStatus.UNKNOWN
        try:
            return ContainerStatus(value)
        except ValueError:
            return ContainerStatus.UNKNOWN


class Endpoints(BaseModel):
    """Links derived from server configuration (display only)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    site_url: str = ""
    adminer_url: str = ""


class Instance(BaseModel):
    """Server-managed group of containers."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(alias="uuid")
    status: InstanceStatus = InstanceStatus.UNKNOWN
    containers: tuple[Container, ...] = ()
    nginx_port: int = 0
    adminer_port: int = 0
    endpoints: Endpoints | None = Field(default=None, alias="wordpress_data")

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> InstanceStatus:
        try:
            return InstanceStatus(value)
        except ValueError:
            return InstanceStatus.UNKNOWN

    @field_validator("containers", mode="before")
    @classmethod
    def _coerce_containers(cls, value: Any) -> Any:
        # The list endpoint keys containers by id; keep delivery order
        if isinstance(value, Mapping):
            return list(value.values())
        return value

    @property
    def site_url(self) -> str | None:
        if self.endpoints is None or not self.endpoints.site_url:
            return None
        return self.endpoints.site_url

    @property
    def database_admin_url(self) -> str | None:
        if self.endpoints is None or not self.endpoints.adminer_url:
            return None
        return (
            f"{self.endpoints.adminer_url}/?server={self.id}-mysql"
            "&username=wordpress&db=wordpress"
        )

    def container_summary(self) -> str:
        """Short 'running/total' summary for tables."""
        total = len(self.containers)
        if total == 0:
            return "-"
        running = sum(1 for c in self.containers if c.status == ContainerStatus.RUNNING)
        return f"{running}/{total} running"


_SNAPSHOT_ADAPTER: TypeAdapter[list[Instance]] = TypeAdapter(list[Instance])


def parse_snapshot(payload: str | bytes) -> tuple[Instance, ...]:
    """Decode a snapshot payload into instances.

    Raises:
        pydantic.ValidationError: If the payload is not valid JSON, is not
            an array, or any item does not match the instance shape.
    """
    return tuple(_SNAPSHOT_ADAPTER.validate_json(payload))


def parse_instances(data: Any) -> tuple[Instance, ...]:
    """Validate already-decoded JSON data (e.g. from the HTTP list endpoint)."""
    if isinstance(data, Mapping):
        data = list(data.values())
    return tuple(_SNAPSHOT_ADAPTER.validate_python(data))
