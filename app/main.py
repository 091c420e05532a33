import uvicorn
from typing import List
from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR
)
from app.config import ROOT_PATH
from app.database import SessionLocal, init_db, close_db
from app.engine import ParkingEngine
from app.errors import CapacityExceeded, NotFound, StoreError, ValidationError
from app.events import build_event_sink
from app.schemas import (
    CloseDayResponse,
    VehicleEntryCreate,
    VehicleRemovedResponse,
    VehicleSessionPatch,
    VehicleSessionResponse
)
import logging

logging.basicConfig(level=logging.INFO)

app = FastAPI(
    title="Parking Service",
    version="1.0.0",
    root_path=ROOT_PATH
)


@app.on_event("startup")
async def on_startup():
    await init_db()
    app.state.engine = ParkingEngine(SessionLocal, build_event_sink())
    await app.state.engine.start()


@app.on_event("shutdown")
async def on_shutdown():
    await app.state.engine.shutdown()
    await close_db()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())}
    )


def get_engine(request: Request) -> ParkingEngine:
    return request.app.state.engine


@app.post("/api/v1/vehicles/", response_model=VehicleSessionResponse, status_code=HTTP_201_CREATED)
async def vehicle_entry(entry: VehicleEntryCreate, engine: ParkingEngine = Depends(get_engine)):
    try:
        return await engine.admit(
            entry.plate,
            entry.vehicle_class,
            entry.is_electric_or_hybrid,
            entry.assigned_spot
        )
    except CapacityExceeded as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreError as e:
        logging.error(f"Vehicle entry failed: {e}")
        raise HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to record vehicle entry")


@app.get("/api/v1/vehicles/", response_model=List[VehicleSessionResponse])
async def list_vehicles(engine: ParkingEngine = Depends(get_engine)):
    try:
        return await engine.list_all()
    except StoreError as e:
        logging.error(f"Listing vehicles failed: {e}")
        raise HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list vehicles")


@app.get("/api/v1/vehicles/{session_id}", response_model=VehicleSessionResponse)
async def get_vehicle(session_id: int, engine: ParkingEngine = Depends(get_engine)):
    try:
        return await engine.get(session_id)
    except NotFound as e:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=str(e))
    except StoreError as e:
        logging.error(f"Loading vehicle {session_id} failed: {e}")
        raise HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load vehicle")


@app.put("/api/v1/vehicles/{session_id}", response_model=VehicleSessionResponse)
async def update_vehicle(
    session_id: int,
    patch: VehicleSessionPatch,
    engine: ParkingEngine = Depends(get_engine)
):
    try:
        return await engine.update(session_id, patch)
    except NotFound as e:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=str(e))
    except (ValidationError, CapacityExceeded) as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreError as e:
        logging.error(f"Updating vehicle {session_id} failed: {e}")
        raise HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update vehicle")


@app.delete("/api/v1/vehicles/{session_id}", response_model=VehicleRemovedResponse)
async def remove_vehicle(session_id: int, engine: ParkingEngine = Depends(get_engine)):
    try:
        await engine.remove(session_id)
    except NotFound as e:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=str(e))
    except StoreError as e:
        logging.error(f"Removing vehicle {session_id} failed: {e}")
        raise HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to remove vehicle")

    return VehicleRemovedResponse(message="Vehicle removed", id=session_id)


@app.post("/api/v1/close-day/", response_model=CloseDayResponse)
async def close_day(engine: ParkingEngine = Depends(get_engine)):
    try:
        result = await engine.close_day()
    except StoreError as e:
        logging.error(f"Closing the day failed: {e}")
        raise HTTPException(status_code=HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to close the day")

    return CloseDayResponse(
        message="Day closed",
        total_revenue=result.total_revenue,
        settled=result.settled,
        failed_ids=result.failed_ids
    )

if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
