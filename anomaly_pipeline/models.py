from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .errors import BatchFailedError, ErrorKind, ProtocolError


# ---------------- wire models ----------------

class TelemetryMessage(BaseModel):
    """One telemetry message as produced by the device generator (PascalCase JSON)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    device_id: str = Field(min_length=1, validation_alias=AliasChoices("DeviceId", "deviceId", "device_id"))
    time_bucket: int = Field(validation_alias=AliasChoices("Month", "timeBucket", "month", "time_bucket"))
    temperature: float = Field(allow_inf_nan=False, validation_alias=AliasChoices("Temperature", "temperature"))
    humidity: float = Field(allow_inf_nan=False, validation_alias=AliasChoices("Humidity", "humidity"))
    water_level: float = Field(
        allow_inf_nan=False, validation_alias=AliasChoices("WaterLevel", "waterLevel", "water_level")
    )
    cluster_id: int = Field(validation_alias=AliasChoices("ClusterId", "clusterId", "cluster_id"))

    def to_record(self) -> "TelemetryRecord":
        return TelemetryRecord(
            device_id=self.device_id,
            time_bucket=self.time_bucket,
            temperature=self.temperature,
            humidity=self.humidity,
            water_level=self.water_level,
            cluster_id=self.cluster_id,
        )


class ScoringResponse(BaseModel):
    loss_mae: List[float]
    anomaly_std: List[bool]

    def to_verdict(self) -> "ScoringVerdict":
        return ScoringVerdict(loss_mae=tuple(self.loss_mae), anomaly_std=tuple(self.anomaly_std))


# ---------------- domain ----------------

@dataclass(frozen=True, order=True)
class GroupKey:
    device_id: str
    cluster_id: int
    time_bucket: int

    def __str__(self) -> str:
        return f"{self.device_id}/cluster={self.cluster_id}/bucket={self.time_bucket}"


@dataclass(frozen=True)
class TelemetryRecord:
    device_id: str
    time_bucket: int  # month in the generator's data set
    temperature: float
    humidity: float
    water_level: float
    cluster_id: int

    @property
    def key(self) -> GroupKey:
        return GroupKey(self.device_id, self.cluster_id, self.time_bucket)


@dataclass(frozen=True)
class AggregateStats:
    key: GroupKey
    count: int
    mean_temperature: float
    mean_humidity: float
    mean_water_level: float

    def as_vector(self) -> List[float]:
        """Request body for the scoring service; field order is fixed."""
        return [
            float(self.key.cluster_id),
            float(self.key.time_bucket),
            self.mean_temperature,
            self.mean_humidity,
            self.mean_water_level,
        ]


@dataclass(frozen=True)
class ScoringVerdict:
    loss_mae: Tuple[float, ...]
    anomaly_std: Tuple[bool, ...]

    def __post_init__(self) -> None:
        if len(self.loss_mae) != len(self.anomaly_std):
            raise ProtocolError(
                f"verdict length mismatch: loss_mae={len(self.loss_mae)} anomaly_std={len(self.anomaly_std)}"
            )

    @property
    def is_anomaly(self) -> bool:
        return any(self.anomaly_std)

    @property
    def max_loss(self) -> float:
        return max(self.loss_mae) if self.loss_mae else 0.0


@dataclass(frozen=True)
class AlertSuppressionRecord:
    device_id: str
    last_alerted_at: float  # unix seconds, UTC


class AlertAction(str, Enum):
    NONE = "none"
    RAISE = "raise"


@dataclass(frozen=True)
class AlertEvent:
    device_id: str
    cluster_id: int
    month: int
    loss_mae: Tuple[float, ...]
    max_loss: float
    raised_at: float

    event_type = "Anomaly"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type,
            "deviceId": self.device_id,
            "clusterId": self.cluster_id,
            "month": self.month,
            "loss_mae": list(self.loss_mae),
            "maxLoss": self.max_loss,
            "raisedAt": self.raised_at,
        }


@dataclass(frozen=True)
class GroupFailure:
    key: Optional[GroupKey]  # None for a message that never decoded
    kind: ErrorKind
    message: str
    index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": None
            if self.key is None
            else {"device_id": self.key.device_id, "cluster_id": self.key.cluster_id, "time_bucket": self.key.time_bucket},
            "kind": self.kind.value,
            "message": self.message,
            "index": self.index,
        }


@dataclass
class BatchOutcome:
    total_groups: int = 0
    succeeded_groups: int = 0
    decoded_records: int = 0
    alerts_raised: int = 0
    failures: List[GroupFailure] = field(default_factory=list)

    @property
    def group_failures(self) -> List[GroupFailure]:
        return [f for f in self.failures if f.key is not None]

    @property
    def decode_failures(self) -> List[GroupFailure]:
        return [f for f in self.failures if f.key is None]

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise BatchFailedError(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "total_groups": self.total_groups,
            "succeeded_groups": self.succeeded_groups,
            "decoded_records": self.decoded_records,
            "alerts_raised": self.alerts_raised,
            "failures": [f.to_dict() for f in self.failures],
        }
