"""Tests for the room bed-occupancy ledger."""

from datetime import datetime

import pytest

import database
import references
import rooms
from errors import Conflict, NotFound, ValidationError
from schemas import Patient, RoomCreate, RoomUpdate


def _room(capacity: int = 2, number: str = "101", **extra):
    return rooms.create_room(RoomCreate(roomNumber=number, capacity=capacity, **extra))


def _full_room(patient, other_patient):
    room = _room(capacity=2)
    rooms.assign_patient(room["_id"], patient["_id"])
    return rooms.assign_patient(room["_id"], other_patient["_id"])


class TestCreateRoom:
    def test_new_room_is_empty_and_available(self, mongo):
        room = _room(capacity=3)
        assert room["occupiedBeds"] == 0
        assert room["patient"] == []
        assert room["status"] == "available"
        assert room["type"] == "general"

    def test_room_type_is_canonicalised(self, mongo):
        assert _room(type="icu")["type"] == "ICU"

    def test_unknown_room_type(self, mongo):
        with pytest.raises(ValidationError):
            _room(type="ward")

    def test_duplicate_room_number(self, mongo):
        _room()
        with pytest.raises(Conflict):
            _room()

    def test_deleted_room_number_can_be_reused(self, mongo):
        room = _room()
        rooms.delete_room(room["_id"])
        assert _room()["roomNumber"] == "101"

    def test_created_under_maintenance(self, mongo):
        assert _room(status="maintenance")["status"] == "maintenance"

    def test_simultaneous_creates_cannot_duplicate_number(self, mongo, monkeypatch):
        # both requests pass the lookup before either has inserted
        monkeypatch.setattr(rooms, "find_one", lambda *args, **kwargs: None)
        _room()
        with pytest.raises(Conflict):
            _room()
        assert mongo["room"].count_documents({"roomNumber": "101", "isDeleted": False}) == 1

    def test_simultaneous_rename_cannot_duplicate_number(self, mongo, monkeypatch):
        _room(number="101")
        other = _room(number="102")
        monkeypatch.setattr(rooms, "find_one", lambda *args, **kwargs: None)
        with pytest.raises(Conflict):
            rooms.update_room(other["_id"], RoomUpdate(roomNumber="101"))
        assert rooms.get_room(other["_id"])["roomNumber"] == "102"


class TestAssignPatient:
    def test_assign_updates_ledger(self, patient):
        room = _room(capacity=2)
        admitted = datetime(2026, 3, 1, 9, 30)
        room = rooms.assign_patient(room["_id"], patient["_id"], admitted)
        assert room["occupiedBeds"] == 1
        assert room["patient"] == [patient["_id"]]
        assert room["status"] == "available"
        assert room["admittedDate"] == admitted

    def test_last_bed_marks_room_occupied(self, patient, other_patient):
        room = _full_room(patient, other_patient)
        assert room["occupiedBeds"] == 2
        assert room["status"] == "occupied"

    def test_full_room_conflict_leaves_state_unchanged(self, mongo, patient, other_patient):
        room = _full_room(patient, other_patient)
        third = references.create_patient(Patient(firstName="Lena", lastName="D", phone="9000000000"))

        with pytest.raises(Conflict):
            rooms.assign_patient(room["_id"], third["_id"])

        after = rooms.get_room(room["_id"])
        assert after["occupiedBeds"] == 2
        assert third["_id"] not in after["patient"]
        assert after["version"] == room["version"]

    def test_maintenance_blocks_assignment(self, patient):
        room = _room(status="maintenance")
        with pytest.raises(Conflict):
            rooms.assign_patient(room["_id"], patient["_id"])
        assert rooms.get_room(room["_id"])["occupiedBeds"] == 0

    def test_same_patient_twice(self, patient):
        room = _room(capacity=3)
        rooms.assign_patient(room["_id"], patient["_id"])
        with pytest.raises(Conflict):
            rooms.assign_patient(room["_id"], patient["_id"])

    def test_unknown_room(self, patient):
        with pytest.raises(NotFound):
            rooms.assign_patient("64b000000000000000000000", patient["_id"])

    def test_unknown_patient(self, mongo):
        room = _room()
        with pytest.raises(NotFound):
            rooms.assign_patient(room["_id"], "64b000000000000000000000")

    def test_racing_assignments_cannot_overshoot(self, patient, other_patient, monkeypatch):
        room = _room(capacity=1)
        original = database.update_by_id
        raced = []

        def racing_update(collection_name, doc_id, update, expected_version=None):
            if not raced:
                raced.append(True)
                # another request takes the last bed between our read and write
                rooms.assign_patient(room["_id"], other_patient["_id"])
            return original(collection_name, doc_id, update, expected_version)

        monkeypatch.setattr(database, "update_by_id", racing_update)
        with pytest.raises(Conflict):
            rooms.assign_patient(room["_id"], patient["_id"])

        after = rooms.get_room(room["_id"])
        assert after["occupiedBeds"] == 1
        assert after["patient"] == [other_patient["_id"]]


class TestDischargePatient:
    def test_discharge_from_full_room_frees_it(self, patient, other_patient):
        room = _full_room(patient, other_patient)
        room = rooms.discharge_patient(room["_id"], patient["_id"])
        assert room["occupiedBeds"] == 1
        assert room["status"] == "available"
        assert room["patient"] == [other_patient["_id"]]
        assert room["dischargedDate"] is not None

    def test_discharge_last_patient(self, patient):
        room = _room(capacity=2)
        rooms.assign_patient(room["_id"], patient["_id"])
        room = rooms.discharge_patient(room["_id"], patient["_id"])
        assert room["occupiedBeds"] == 0
        assert room["status"] == "available"

    def test_patient_not_in_room(self, patient, other_patient):
        room = _room()
        rooms.assign_patient(room["_id"], patient["_id"])
        with pytest.raises(NotFound):
            rooms.discharge_patient(room["_id"], other_patient["_id"])

    def test_unknown_room(self, patient):
        with pytest.raises(NotFound):
            rooms.discharge_patient("64b000000000000000000000", patient["_id"])

    def test_count_never_goes_negative(self, mongo, patient):
        room = _room()
        mongo["room"].update_one(
            {"_id": database.to_object_id(room["_id"])},
            {"$set": {"patient": [patient["_id"]], "occupiedBeds": 0}},
        )
        room = rooms.discharge_patient(room["_id"], patient["_id"])
        assert room["occupiedBeds"] == 0

    def test_discharge_keeps_maintenance(self, patient):
        room = _room()
        rooms.assign_patient(room["_id"], patient["_id"])
        rooms.update_room(room["_id"], RoomUpdate(status="maintenance"))
        room = rooms.discharge_patient(room["_id"], patient["_id"])
        assert room["status"] == "maintenance"


class TestUpdateAndDeleteRoom:
    def test_capacity_below_occupancy(self, patient, other_patient):
        room = _full_room(patient, other_patient)
        with pytest.raises(Conflict):
            rooms.update_room(room["_id"], RoomUpdate(capacity=1))

    def test_raising_capacity_rederives_status(self, patient, other_patient):
        room = _full_room(patient, other_patient)
        room = rooms.update_room(room["_id"], RoomUpdate(capacity=4))
        assert room["status"] == "available"

    def test_lifting_maintenance_on_full_room(self, patient, other_patient):
        room = _full_room(patient, other_patient)
        rooms.update_room(room["_id"], RoomUpdate(status="maintenance"))
        room = rooms.update_room(room["_id"], RoomUpdate(status="available"))
        assert room["status"] == "occupied"

    def test_rename_to_existing_number(self, mongo):
        _room(number="101")
        other = _room(number="102")
        with pytest.raises(Conflict):
            rooms.update_room(other["_id"], RoomUpdate(roomNumber="101"))

    def test_list_filters(self, patient):
        _room(number="101", type="ICU", capacity=1)
        _room(number="102")
        icu = rooms.list_rooms(room_type="icu")
        assert [r["roomNumber"] for r in icu] == ["101"]
        rooms.assign_patient(icu[0]["_id"], patient["_id"])
        assert [r["roomNumber"] for r in rooms.list_rooms(status="occupied")] == ["101"]

    def test_cannot_delete_occupied_room(self, patient):
        room = _room()
        rooms.assign_patient(room["_id"], patient["_id"])
        with pytest.raises(Conflict):
            rooms.delete_room(room["_id"])
        rooms.discharge_patient(room["_id"], patient["_id"])
        rooms.delete_room(room["_id"])
        with pytest.raises(NotFound):
            rooms.get_room(room["_id"])
