"""Room bed-occupancy ledger.

A room's ``status`` is always derived from ``occupiedBeds`` and ``capacity``
except for ``maintenance``, which is an explicit override that blocks new
assignments until it is lifted. Every ledger write is conditional on the
version that was read, so two assignments racing for the last free bed
cannot both land.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from config import settings
from database import create_document, find_by_id, find_one, get_documents, modify_versioned, to_object_id
from errors import Conflict, NotFound, ValidationError
from references import get_patient
from schemas import RoomCreate, RoomUpdate

logger = logging.getLogger(__name__)

ROOMS = "room"
MAINTENANCE = "maintenance"


def resolve_room_type(value: str) -> str:
    wanted = (value or "").strip().casefold()
    for room_type in settings.ROOM_TYPES:
        if room_type.casefold() == wanted:
            return room_type
    raise ValidationError(
        f"Invalid room type '{value}'", errors={"type": settings.ROOM_TYPES}
    )


def derive_room_status(occupied: int, capacity: int, current: Optional[str] = None) -> str:
    if current == MAINTENANCE:
        return MAINTENANCE
    return "occupied" if occupied >= capacity else "available"


def _ensure_unique_number(room_number: str, exclude_id: Optional[str] = None) -> None:
    query: Dict[str, Any] = {"roomNumber": room_number}
    if exclude_id is not None:
        query["_id"] = {"$ne": to_object_id(exclude_id)}
    if find_one(ROOMS, query) is not None:
        raise Conflict("Room number already exists")


def create_room(data: RoomCreate) -> Dict[str, Any]:
    _ensure_unique_number(data.roomNumber)
    try:
        room = create_document(
            ROOMS,
            {
                "roomNumber": data.roomNumber,
                "type": resolve_room_type(data.type),
                "capacity": data.capacity,
                "occupiedBeds": 0,
                "status": derive_room_status(0, data.capacity, data.status),
                "patient": [],
                "admittedDate": None,
                "dischargedDate": None,
            },
        )
    except DuplicateKeyError:
        raise Conflict("Room number already exists")
    logger.info("Room %s created with %d bed(s)", room["roomNumber"], room["capacity"])
    return room


def get_room(room_id: str) -> Dict[str, Any]:
    room = find_by_id(ROOMS, room_id)
    if room is None:
        raise NotFound("Room not found")
    return room


def list_rooms(
    status: Optional[str] = None, room_type: Optional[str] = None, limit: int = 100
) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if status:
        query["status"] = status
    if room_type:
        query["type"] = resolve_room_type(room_type)
    return get_documents(ROOMS, query, limit=limit)


def update_room(room_id: str, patch: RoomUpdate) -> Dict[str, Any]:
    changes = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}
    if "type" in changes:
        changes["type"] = resolve_room_type(changes["type"])
    if "roomNumber" in changes:
        _ensure_unique_number(changes["roomNumber"], exclude_id=room_id)

    def build(room: Dict[str, Any]) -> Dict[str, Any]:
        capacity = changes.get("capacity", room["capacity"])
        if capacity < room["occupiedBeds"]:
            raise Conflict(
                f"Capacity {capacity} is below the {room['occupiedBeds']} occupied bed(s)"
            )
        # An explicit "available" lifts maintenance; the count decides the rest
        override = changes.get("status", room["status"])
        fields = dict(changes)
        fields["status"] = derive_room_status(room["occupiedBeds"], capacity, override)
        return {"$set": fields}

    try:
        room = modify_versioned(ROOMS, room_id, build)
    except DuplicateKeyError:
        raise Conflict("Room number already exists")
    if room is None:
        raise NotFound("Room not found")
    return room


def assign_patient(
    room_id: str, patient_id: str, admitted_date: Optional[datetime] = None
) -> Dict[str, Any]:
    get_patient(patient_id)

    def build(room: Dict[str, Any]) -> Dict[str, Any]:
        if room["status"] == MAINTENANCE:
            raise Conflict("Room is under maintenance")
        if patient_id in room.get("patient", []):
            raise Conflict("Patient is already assigned to this room")
        if room["occupiedBeds"] >= room["capacity"]:
            raise Conflict("Room is at full capacity")
        occupied = room["occupiedBeds"] + 1
        return {
            "$push": {"patient": patient_id},
            "$set": {
                "occupiedBeds": occupied,
                "status": derive_room_status(occupied, room["capacity"], room["status"]),
                "admittedDate": admitted_date or datetime.utcnow(),
            },
        }

    room = modify_versioned(ROOMS, room_id, build)
    if room is None:
        raise NotFound("Room not found")
    logger.info(
        "Patient %s assigned to room %s (%d/%d)",
        patient_id, room["roomNumber"], room["occupiedBeds"], room["capacity"],
    )
    return room


def discharge_patient(
    room_id: str, patient_id: str, discharged_date: Optional[datetime] = None
) -> Dict[str, Any]:
    def build(room: Dict[str, Any]) -> Dict[str, Any]:
        if patient_id not in room.get("patient", []):
            raise NotFound("Patient not found in room")
        occupied = max(room["occupiedBeds"] - 1, 0)
        return {
            "$pull": {"patient": patient_id},
            "$set": {
                "occupiedBeds": occupied,
                "status": derive_room_status(occupied, room["capacity"], room["status"]),
                "dischargedDate": discharged_date or datetime.utcnow(),
            },
        }

    room = modify_versioned(ROOMS, room_id, build)
    if room is None:
        raise NotFound("Room not found")
    logger.info(
        "Patient %s discharged from room %s (%d/%d)",
        patient_id, room["roomNumber"], room["occupiedBeds"], room["capacity"],
    )
    return room


def delete_room(room_id: str) -> None:
    def build(room: Dict[str, Any]) -> Dict[str, Any]:
        if room.get("patient"):
            raise Conflict("Room still has assigned patients")
        return {"$set": {"isDeleted": True, "deletedAt": datetime.utcnow()}}

    if modify_versioned(ROOMS, room_id, build) is None:
        raise NotFound("Room not found")
    logger.info("Room %s deleted", room_id)
