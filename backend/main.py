import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

import references
from config import settings
from database import db, ensure_indexes
from errors import HMSError
from response import err, ok
from routes_invoices import router as invoices_router
from routes_rooms import router as rooms_router
from schemas import Department, Doctor, Patient

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    logger.info("Indexes ensured on %s", settings.DATABASE_NAME)
    yield


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HMSError)
async def hms_error_handler(request: Request, exc: HMSError):
    return err(exc.message, status_code=exc.status_code, errors=exc.errors)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return err("Validation error", status_code=400, errors=jsonable_encoder(exc.errors()))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return err("Internal Server Error", status_code=500)


@app.get("/test")
async def test():
    if db() is None:
        return {"ok": False, "error": "Database not initialized"}
    return {"ok": True, "message": "DB connected"}


@app.post("/patients")
async def create_patient(p: Patient):
    return ok(references.create_patient(p), "Patient created", status_code=201)


@app.get("/patients")
async def list_patients(limit: int = 100):
    return ok(references.list_patients(limit=limit))


@app.get("/patients/{patient_id}")
async def get_patient(patient_id: str):
    return ok(references.get_patient(patient_id))


@app.post("/departments")
async def create_department(d: Department):
    return ok(references.create_department(d), "Department created", status_code=201)


@app.post("/doctors")
async def create_doctor(d: Doctor):
    return ok(references.create_doctor(d), "Doctor created", status_code=201)


@app.get("/doctors")
async def list_doctors(limit: int = 100):
    return ok(references.list_doctors(limit=limit))


@app.get("/doctors/{doctor_id}")
async def get_doctor(doctor_id: str):
    doctor, department = references.get_doctor(doctor_id)
    if department is not None:
        doctor["department"] = department
    return ok(doctor)


app.include_router(invoices_router)
app.include_router(rooms_router)
