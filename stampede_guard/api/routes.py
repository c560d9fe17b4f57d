from contextlib import asynccontextmanager
from typing import Annotated, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from stampede_guard.core.admin import INVALID_CREDENTIALS, AdminConsole
from stampede_guard.core.exceptions import ContactNotFound, InvalidThreshold, StoredValueError
from stampede_guard.core.insights import InsightPanel, create_client
from stampede_guard.core.monitor import SafetyMonitor
from stampede_guard.core.shell import AppShell


# ---------- request payloads ----------
class IdentityPayload(BaseModel):
    user_id: Optional[str] = None
    user_name: Optional[str] = None


class SoundPayload(BaseModel):
    bins: Optional[list[Annotated[float, Field(ge=0, le=255)]]] = None  # raw byte frequency magnitudes
    level: Optional[float] = Field(None, ge=0, le=100)  # already normalised


class MotionPayload(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None


class LocationPayload(BaseModel):
    latitude: float
    longitude: float
    accuracy: float = 0.0


class LocationErrorPayload(BaseModel):
    message: str = "Location unavailable"


class ScreenPayload(BaseModel):
    screen: Literal["user", "admin"]


class LoginPayload(BaseModel):
    password: str


class ThresholdsPayload(BaseModel):
    panic_threshold: Optional[int] = None
    shake_threshold: Optional[int] = None


class FlagsPayload(BaseModel):
    auto_call: Optional[bool] = None
    auto_sms: Optional[bool] = None


class ContactPayload(BaseModel):
    name: str = ""
    phone: str = ""


def create_app(bus, scheduler=None, insight_client_factory=create_client, clock=None) -> FastAPI:
    """Wire the user view, admin view and shell over one storage bus."""
    monitor = SafetyMonitor(bus, scheduler=scheduler, clock=clock)
    admin = AdminConsole(bus)
    shell = AppShell(bus, admin)
    insights = InsightPanel(client_factory=insight_client_factory)

    @asynccontextmanager
    async def lifespan(app):
        yield
        insights.close()
        shell.close()
        monitor.close()

    app = FastAPI(title="Stampede Guard", lifespan=lifespan)
    app.state.monitor = monitor
    app.state.admin = admin
    app.state.shell = shell
    app.state.insights = insights

    @app.exception_handler(InvalidThreshold)
    async def invalid_threshold_handler(request, exc):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(ContactNotFound)
    async def contact_not_found_handler(request, exc):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StoredValueError)
    async def stored_value_handler(request, exc):
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    def require_admin():
        if not admin.authenticated:
            raise HTTPException(status_code=401, detail="Admin login required")

    # ---------- shell ----------
    @app.get("/")
    def home():
        return {"message": "Stampede Guard API is running.", "status": shell.status_line()}

    @app.get("/shell")
    def shell_status():
        return {
            "screen": shell.current_screen,
            "status": shell.status_line(),
            "authenticated": shell.is_authenticated,
            "safety_level": shell.global_state.safety_level,
        }

    @app.put("/shell/screen")
    def switch_screen(payload: ScreenPayload):
        shell.show(payload.screen)
        return {"screen": shell.current_screen}

    # ---------- user view ----------
    @app.get("/state")
    def get_state():
        return monitor.snapshot()

    @app.get("/identity")
    def get_identity():
        return {"user_id": monitor.user_id, "user_name": monitor.user_name, "needs_setup": monitor.needs_setup}

    @app.put("/identity")
    def update_identity(payload: IdentityPayload):
        return monitor.set_identity(payload.user_id, payload.user_name)

    @app.post("/sensors/sound")
    def ingest_sound(payload: SoundPayload):
        if payload.bins is not None:
            return monitor.ingest_sound_bins(payload.bins)
        if payload.level is not None:
            return monitor.ingest_sound(payload.level)
        raise HTTPException(status_code=422, detail="Provide either bins or level")

    @app.post("/sensors/motion")
    def ingest_motion(payload: MotionPayload):
        return monitor.ingest_motion(payload.x, payload.y, payload.z)

    @app.post("/sensors/location")
    def ingest_location(payload: LocationPayload):
        return monitor.update_location(payload.latitude, payload.longitude, payload.accuracy)

    @app.post("/sensors/location/error")
    def location_error(payload: LocationErrorPayload):
        return monitor.location_unavailable(payload.message)

    @app.post("/panic")
    def panic():
        alert = monitor.panic()
        return {"alert": alert, "state": monitor.snapshot()}

    @app.post("/safe")
    def mark_safe():
        return monitor.mark_safe()

    @app.get("/alerts")
    def list_alerts():
        return shell.alerts

    # ---------- admin view ----------
    @app.post("/admin/login")
    def login(payload: LoginPayload):
        if not shell.login(payload.password):
            raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
        return {"authenticated": True}

    @app.post("/admin/logout")
    def logout():
        admin.logout()
        return {"authenticated": False}

    @app.get("/admin/monitor", dependencies=[Depends(require_admin)])
    def admin_monitor():
        return {"user_state": shell.global_state, "alerts": shell.alerts}

    @app.get("/admin/settings", dependencies=[Depends(require_admin)])
    def get_settings():
        return admin.settings

    @app.put("/admin/thresholds", dependencies=[Depends(require_admin)])
    def update_thresholds(payload: ThresholdsPayload):
        if payload.panic_threshold is not None:
            admin.set_panic_threshold(payload.panic_threshold)
        if payload.shake_threshold is not None:
            admin.set_shake_threshold(payload.shake_threshold)
        return admin.settings

    @app.put("/admin/flags", dependencies=[Depends(require_admin)])
    def update_flags(payload: FlagsPayload):
        return admin.set_flags(payload.auto_call, payload.auto_sms)

    @app.post("/admin/contacts", status_code=201, dependencies=[Depends(require_admin)])
    def add_contact(payload: ContactPayload):
        contact = admin.save_contact(payload.name, payload.phone)
        if contact is None:
            raise HTTPException(status_code=422, detail="Name and phone are required")
        return contact

    @app.put("/admin/contacts/{contact_id}", dependencies=[Depends(require_admin)])
    def edit_contact(contact_id: str, payload: ContactPayload):
        contact = admin.save_contact(payload.name, payload.phone, contact_id=contact_id)
        if contact is None:
            raise HTTPException(status_code=422, detail="Name and phone are required")
        return contact

    @app.delete("/admin/contacts/{contact_id}", dependencies=[Depends(require_admin)])
    def remove_contact(contact_id: str):
        return admin.remove_contact(contact_id)

    @app.post("/admin/contacts/{contact_id}/toggle", dependencies=[Depends(require_admin)])
    def toggle_contact(contact_id: str):
        return admin.toggle_contact(contact_id)

    @app.post("/admin/insights", dependencies=[Depends(require_admin)])
    async def analyze_surroundings():
        location = shell.global_state.location
        if location is None:
            raise HTTPException(status_code=409, detail="No location fix for the user yet")
        return await insights.analyze(location)

    return app
