"""
Data model for the offline layer.

Two families of records live in local storage:

* ``MutationRecord`` - one queued change waiting to reach the inspection API.
* ``OfflineInspection`` and its nested room/task/photo records - the cached
  inspection snapshots the inspector keeps editing while offline.

Everything here round-trips through plain JSON via ``to_dict``/``from_dict``.
"""

import time
import uuid
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List

from inspection_sync.photo_codec import EncodedImage


class MutationKind(str, Enum):
    """Which remote resource a mutation targets"""
    INSPECTION = "INSPECTION"
    ROOM = "ROOM"
    PHOTO = "PHOTO"


class MutationAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class MutationState(str, Enum):
    """Replay state of a queued mutation"""
    PENDING = "PENDING"
    IN_FLIGHT = "IN_FLIGHT"
    FAILED = "FAILED"


@dataclass
class MutationRecord:
    """A change that has not been confirmed by the server yet"""
    kind: MutationKind
    action: MutationAction
    payload: Dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    enqueued_at: float = field(default_factory=time.time)
    retry_count: int = 0
    state: MutationState = MutationState.PENDING
    last_error: Optional[str] = None

    def __post_init__(self):
        # Raises ValueError for anything outside the enums
        self.kind = MutationKind(self.kind)
        self.action = MutationAction(self.action)
        self.state = MutationState(self.state)
        if self.retry_count < 0:
            raise ValueError("retry_count cannot be negative")

    @classmethod
    def create(
        cls,
        kind: MutationKind,
        action: MutationAction,
        payload: Dict[str, Any],
        enqueued_at: Optional[float] = None,
    ) -> "MutationRecord":
        """Build a fresh PENDING record"""
        record = cls(kind=kind, action=action, payload=payload)
        if enqueued_at is not None:
            record.enqueued_at = enqueued_at
        return record

    def is_eligible(self, retry_limit: int) -> bool:
        """Whether an automatic sync pass may replay this record"""
        if self.state in (MutationState.PENDING, MutationState.IN_FLIGHT):
            return True
        return self.retry_count < retry_limit

    def is_stalled(self, retry_limit: int) -> bool:
        """Failed often enough to be left for manual attention"""
        return self.state == MutationState.FAILED and self.retry_count >= retry_limit

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["action"] = self.action.value
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MutationRecord":
        return cls(
            id=data["id"],
            kind=data["kind"],
            action=data["action"],
            payload=data.get("payload") or {},
            enqueued_at=float(data.get("enqueued_at", 0)),
            retry_count=int(data.get("retry_count", 0)),
            state=data.get("state", MutationState.PENDING),
            last_error=data.get("last_error"),
        )


# ==================== Offline inspection snapshots ====================

class InspectionStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    PENDING_SYNC = "PENDING_SYNC"


class RoomStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


@dataclass
class OfflineTask:
    """A single cleaning task on a room checklist"""
    id: str
    description: str
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineTask":
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            completed=bool(data.get("completed", False)),
        )


@dataclass
class OfflinePhoto:
    """A photo captured as evidence, kept encoded until upload"""
    id: str
    file_name: str
    image: EncodedImage
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "image": self.image.to_dict(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflinePhoto":
        return cls(
            id=data["id"],
            file_name=data.get("file_name", f"{data['id']}.jpg"),
            image=EncodedImage.from_dict(data["image"]),
            timestamp=float(data.get("timestamp", 0)),
        )


@dataclass
class OfflineRoomInspection:
    """Per-room checklist and photos inside an inspection"""
    id: str
    room_id: str
    room_name: str
    tasks: List[OfflineTask] = field(default_factory=list)
    photos: List[OfflinePhoto] = field(default_factory=list)
    notes: Optional[str] = None
    status: RoomStatus = RoomStatus.PENDING
    last_modified: float = field(default_factory=time.time)

    def __post_init__(self):
        self.status = RoomStatus(self.status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "room_id": self.room_id,
            "room_name": self.room_name,
            "tasks": [task.to_dict() for task in self.tasks],
            "photos": [photo.to_dict() for photo in self.photos],
            "notes": self.notes,
            "status": self.status.value,
            "last_modified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineRoomInspection":
        return cls(
            id=data["id"],
            room_id=data["room_id"],
            room_name=data.get("room_name", ""),
            tasks=[OfflineTask.from_dict(t) for t in data.get("tasks", [])],
            photos=[OfflinePhoto.from_dict(p) for p in data.get("photos", [])],
            notes=data.get("notes"),
            status=data.get("status", RoomStatus.PENDING),
            last_modified=float(data.get("last_modified", 0)),
        )


@dataclass
class OfflineInspection:
    """Cached inspection snapshot edited while offline"""
    id: str
    property_name: str
    property_id: Optional[str] = None
    room_inspections: List[OfflineRoomInspection] = field(default_factory=list)
    status: InspectionStatus = InspectionStatus.IN_PROGRESS
    created_at: float = field(default_factory=time.time)
    last_modified: float = field(default_factory=time.time)

    def __post_init__(self):
        self.status = InspectionStatus(self.status)

    def find_room(self, room_inspection_id: str) -> Optional[OfflineRoomInspection]:
        for room in self.room_inspections:
            if room.id == room_inspection_id:
                return room
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "property_name": self.property_name,
            "room_inspections": [room.to_dict() for room in self.room_inspections],
            "status": self.status.value,
            "created_at": self.created_at,
            "last_modified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineInspection":
        return cls(
            id=data["id"],
            property_id=data.get("property_id"),
            property_name=data.get("property_name", ""),
            room_inspections=[
                OfflineRoomInspection.from_dict(r) for r in data.get("room_inspections", [])
            ],
            status=data.get("status", InspectionStatus.IN_PROGRESS),
            created_at=float(data.get("created_at", 0)),
            last_modified=float(data.get("last_modified", 0)),
        )
