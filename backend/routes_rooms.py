from typing import Optional

from fastapi import APIRouter

import rooms
from response import ok
from schemas import RoomAssign, RoomCreate, RoomDischarge, RoomUpdate

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.post("")
async def create_room(body: RoomCreate):
    return ok(rooms.create_room(body), "Room created", status_code=201)


@router.get("")
async def list_rooms(status: Optional[str] = None, type: Optional[str] = None, limit: int = 100):
    docs = rooms.list_rooms(status=status, room_type=type, limit=limit)
    return ok(docs, meta={"count": len(docs)})


@router.get("/{room_id}")
async def get_room(room_id: str):
    return ok(rooms.get_room(room_id))


@router.patch("/{room_id}")
async def update_room(room_id: str, body: RoomUpdate):
    return ok(rooms.update_room(room_id, body), "Room updated")


@router.delete("/{room_id}")
async def delete_room(room_id: str):
    rooms.delete_room(room_id)
    return ok(message="Room deleted")


@router.post("/{room_id}/assign")
async def assign_patient(room_id: str, body: RoomAssign):
    room = rooms.assign_patient(room_id, body.patient, body.admittedDate)
    return ok(room, "Patient assigned to room")


@router.post("/{room_id}/discharge")
async def discharge_patient(room_id: str, body: RoomDischarge):
    room = rooms.discharge_patient(room_id, body.patient, body.dischargedDate)
    return ok(room, "Patient discharged from room")
