"""Stay ledger web API — booking views, intake, income and reconciliation.

Usage:
    uvicorn web.app:app --reload
    # or: python -m web.app

Errors: invalid or missing parameters answer 400 ``{"error": msg}``, an
unknown id 404, an active duplicate reference 409. Anything unexpected is
logged and answered with 500 and an empty result of the route's shape.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

import duckdb
from dotenv import find_dotenv, load_dotenv
from fastapi import Body, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pms.bulk_import import import_bookings, resolve_property_id
from pms.config import Settings, load_settings
from pms.errors import DuplicateReferenceError, NotFoundError, PmsError, ValidationError
from pms.filters import DateRange
from pms.income import IncomeTotals, income_summary, income_window, platform_income
from pms.infra import connect
from pms.ingest import detect_format, read_records
from pms.ledger import parse_ledger
from pms.models import NewBooking, Platform, to_date
from pms.queries import (
    bookings_checking_in,
    bookings_checking_out,
    bookings_for_day,
    occupancy_for_property,
    unassigned_for_day,
)
from pms.reconcile import run_reconciliation
from pms.store import BookingStore

log = logging.getLogger(__name__)

# Settings come from the environment; load a .env found upward from the CWD.
_dotenv_path = find_dotenv(usecwd=True)
if _dotenv_path:
    load_dotenv(_dotenv_path)

EMPTY_INCOME = {"totals": IncomeTotals().to_dict(), "records": []}

PATCH_ACTIONS = ("assign", "checkin", "checkout")


# --- Request bodies ---


class BookingAction(BaseModel):
    bookingId: int | None = None
    action: str | None = None
    roomId: int | None = None


class BookingRef(BaseModel):
    bookingId: int | None = None


class PropertyIn(BaseModel):
    name: str = ""


class RoomIn(BaseModel):
    propertyId: int
    name: str = ""


# --- Helpers ---


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _server_error(what: str, empty: Any) -> JSONResponse:
    log.exception("Failed to %s", what)
    return JSONResponse(status_code=500, content=empty)


def _require_range(start: str | None, end: str | None) -> DateRange:
    if not start or not end:
        raise ValidationError("start and end are required")
    return DateRange.parse(start, end)


def _day(value: str | None) -> date:
    return to_date(value) if value else date.today()


def get_store(request: Request) -> Iterator[BookingStore]:
    """One cursor per request over the shared connection."""
    cursor = request.app.state.conn.cursor()
    try:
        yield BookingStore(cursor)
    finally:
        cursor.close()


# --- App ---


def create_app(
    settings: Settings | None = None,
    conn: duckdb.DuckDBPyConnection | None = None,
) -> FastAPI:
    """Build the app; opens ``settings.db_path`` at startup unless *conn* is given."""
    settings = settings or load_settings(dotenv=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = app.state.conn is None
        if owned:
            app.state.conn = connect(settings.db_path)
            log.info("Opened database %s", settings.db_path)
        try:
            yield
        finally:
            if owned:
                app.state.conn.close()
                app.state.conn = None

    app = FastAPI(title="Stay Ledger", lifespan=lifespan)
    app.state.settings = settings
    app.state.conn = conn

    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("query", "body"))
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return _error(400, "; ".join(parts) or "Invalid request")

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(DuplicateReferenceError)
    async def _duplicate(request: Request, exc: DuplicateReferenceError):
        return _error(409, str(exc))

    # --- Booking views ---

    @app.get("/api/bookings")
    def list_bookings(
        day: str | None = Query(default=None, alias="date"),
        start: str | None = None,
        end: str | None = None,
        unassigned: bool = False,
        property_id: int | None = Query(default=None, alias="propertyId"),
        store: BookingStore = Depends(get_store),
    ):
        """Day view (default today), check-in range, or unassigned arrivals."""
        try:
            if unassigned:
                if not day:
                    raise ValidationError("date is required for unassigned bookings")
                return [b.to_dict() for b in unassigned_for_day(store, to_date(day))]
            if start or end:
                rng = _require_range(start, end)
                return [b.to_dict() for b in bookings_checking_in(store, rng, property_id)]
            return [e.to_dict() for e in bookings_for_day(store, _day(day), property_id)]
        except PmsError:
            raise
        except Exception:
            return _server_error("list bookings", [])

    @app.get("/api/by-room-property")
    def by_room_property(
        property_id: int | None = Query(default=None, alias="propertyId"),
        day: str | None = Query(default=None, alias="date"),
        store: BookingStore = Depends(get_store),
    ):
        try:
            if property_id is None:
                raise ValidationError("propertyId is required")
            entries = occupancy_for_property(store, property_id, _day(day))
            return [e.to_dict() for e in entries]
        except PmsError:
            raise
        except Exception:
            return _server_error("load room occupancy", [])

    def _by_checkout(
        start: str | None = None,
        end: str | None = None,
        property_id: int | None = Query(default=None, alias="propertyId"),
        store: BookingStore = Depends(get_store),
    ):
        try:
            rng = _require_range(start, end)
            return [b.to_dict() for b in bookings_checking_out(store, rng, property_id=property_id)]
        except PmsError:
            raise
        except Exception:
            return _server_error("list bookings by check-out", [])

    app.get("/api/by-checkout-range")(_by_checkout)
    app.get("/api/bookingsfordaterange")(_by_checkout)

    # --- Income ---

    @app.get("/api/income")
    def income(
        type: str = "daily",
        day: str | None = Query(default=None, alias="date"),
        month: str | None = None,
        from_: str | None = Query(default=None, alias="from"),
        to: str | None = None,
        platform: str | None = None,
        property_id: int | None = Query(default=None, alias="propertyId"),
        store: BookingStore = Depends(get_store),
    ):
        try:
            window = income_window(type, day=day, month=month, start=from_, end=to)
            return income_summary(store, window, platform, property_id).to_dict()
        except PmsError:
            raise
        except Exception:
            return _server_error("compute income", EMPTY_INCOME)

    @app.get("/api/income/platforms")
    def income_by_platform(
        start: str | None = None,
        end: str | None = None,
        property_id: int | None = Query(default=None, alias="propertyId"),
        store: BookingStore = Depends(get_store),
    ):
        try:
            rng = _require_range(start, end)
            groups = platform_income(store, rng, property_id)
            return [g.to_dict() for g in groups.values()]
        except PmsError:
            raise
        except Exception:
            return _server_error("compute platform income", [])

    # --- Catalogue ---

    @app.get("/api/properties")
    def list_properties(store: BookingStore = Depends(get_store)):
        try:
            return [p.to_dict() for p in store.list_properties()]
        except PmsError:
            raise
        except Exception:
            return _server_error("list properties", [])

    @app.post("/api/properties", status_code=201)
    def add_property(body: PropertyIn, store: BookingStore = Depends(get_store)):
        try:
            return store.add_property(body.name).to_dict()
        except PmsError:
            raise
        except Exception:
            return _server_error("add property", {})

    @app.get("/api/rooms")
    def list_rooms(
        property_id: int | None = Query(default=None, alias="propertyId"),
        store: BookingStore = Depends(get_store),
    ):
        try:
            return [r.to_dict() for r in store.list_rooms(property_id)]
        except PmsError:
            raise
        except Exception:
            return _server_error("list rooms", [])

    @app.post("/api/rooms", status_code=201)
    def add_room(body: RoomIn, store: BookingStore = Depends(get_store)):
        try:
            return store.add_room(body.propertyId, body.name).to_dict()
        except NotFoundError as e:
            raise ValidationError(str(e)) from e
        except PmsError:
            raise
        except Exception:
            return _server_error("add room", {})

    # --- Booking mutations ---

    @app.post("/api/bookings", status_code=201)
    def create_booking(
        payload: dict[str, Any] = Body(...),
        store: BookingStore = Depends(get_store),
    ):
        try:
            booking = store.create_booking(NewBooking.from_dict(payload))
        except NotFoundError as e:
            # An unknown property or room is a bad request, not a missing resource.
            raise ValidationError(str(e)) from e
        return booking.to_dict()

    @app.patch("/api/bookings")
    def update_booking(body: BookingAction, store: BookingStore = Depends(get_store)):
        if body.bookingId is None:
            raise ValidationError("bookingId is required")
        if body.action not in PATCH_ACTIONS:
            raise ValidationError(f"Unknown action: {body.action!r}")
        if body.action == "assign":
            if body.roomId is None:
                raise ValidationError("roomId is required for assign")
            return store.assign_room(body.bookingId, body.roomId).to_dict()
        if body.action == "checkin":
            return store.check_in(body.bookingId).to_dict()
        return store.check_out(body.bookingId).to_dict()

    @app.delete("/api/bookings")
    def delete_booking(
        body: BookingRef,
        permanent: bool = False,
        store: BookingStore = Depends(get_store),
    ):
        if body.bookingId is None:
            raise ValidationError("bookingId is required")
        if permanent:
            store.delete_permanently(body.bookingId)
            return {"deleted": body.bookingId}
        return store.cancel(body.bookingId).to_dict()

    # --- Uploads ---

    @app.post("/api/reconcile")
    def reconcile_upload(
        request: Request,
        file: UploadFile = File(...),
        start: str = Form(...),
        end: str = Form(...),
        platform: str = Form(default=Platform.BOOKING_COM.value),
        match: str | None = Form(default=None),
    ):
        """Match an uploaded payout ledger against stored bookings."""
        data = file.file.read()
        fmt = detect_format(file.filename or "")
        rng = _require_range(start, end)
        settings: Settings = request.app.state.settings
        cursor = request.app.state.conn.cursor()
        try:
            parsed = parse_ledger(data, fmt, settings.min_reference_length)
            result = run_reconciliation(
                BookingStore(cursor),
                parsed.rows,
                rng,
                platform=platform,
                mode=match or settings.match_mode,
                tolerance=settings.amount_tolerance,
                dropped=parsed.dropped,
                rejected=parsed.rejected,
            )
            return result.to_dict()
        except PmsError:
            raise
        except Exception:
            return _server_error(
                "reconcile ledger",
                {"rows": [], "groups": [], "counts": {}, "dropped": 0, "rejected": 0},
            )
        finally:
            cursor.close()

    @app.post("/api/bulk-bookings")
    def bulk_bookings(
        request: Request,
        file: UploadFile = File(...),
        propertyId: str | None = Form(default=None),
        start: str | None = Form(default=None),
        end: str | None = Form(default=None),
        save: bool = Form(default=False),
    ):
        """Parse a reservation export, flag known references, optionally save."""
        data = file.file.read()
        fmt = detect_format(file.filename or "")
        window = _require_range(start, end) if (start or end) else None
        cursor = request.app.state.conn.cursor()
        try:
            store = BookingStore(cursor)
            default_property = (
                resolve_property_id(store, propertyId) if propertyId else None
            )
            report = import_bookings(
                store,
                read_records(data, fmt),
                default_property_id=default_property,
                window=window,
                save=save,
            )
            return report.to_dict()
        except PmsError:
            raise
        except Exception:
            return _server_error("import bookings", {"rows": [], "counts": {}})
        finally:
            cursor.close()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = load_settings()
    uvicorn.run("web.app:app", host=settings.host, port=settings.port, reload=True)
