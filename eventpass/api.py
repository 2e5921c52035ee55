"""FastAPI application exposing registration and attendance endpoints."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

import anyio
from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .database import Database
from .errors import AlreadyMarkedError, EventPassError, ValidationError
from .mailer import ConfirmationMailer
from .models import Registration, parse_row_id
from .security import BearerAuth, GoogleIdentityVerifier, IdentityVerifier, StaffClaims, TokenIssuer
from .service import AttendanceService, AuthService, RegistrationForm, RegistrationService

logger = logging.getLogger("eventpass.api")

SERVICE_NAME = "ISTE Event Registration API"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(_WireModel):
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    year: Optional[str] = None
    branch: Optional[str] = None

    def to_form(self) -> RegistrationForm:
        return RegistrationForm(
            first_name=self.first_name or "",
            last_name=self.last_name or "",
            email=self.email or "",
            phone=self.phone or "",
            year=self.year or "",
            branch=self.branch or "",
        )


class RegisterResponse(_WireModel):
    """Body of a successful sign-up.

    ``email`` reports the confirmation delivery status; it is not the address.
    """

    message: str
    user_id: int = Field(..., alias="userId")
    email: str


class LoginRequest(BaseModel):
    credential: Optional[str] = None


class StaffResponse(BaseModel):
    id: int
    email: str
    name: Optional[str]


class LoginResponse(BaseModel):
    message: str
    token: str
    user: StaffResponse


class UpdateAttendanceRequest(_WireModel):
    user_id: Optional[Union[int, str]] = Field(default=None, alias="userId")


class ScanQRRequest(_WireModel):
    qr_data: Optional[Union[str, int, Dict[str, Any]]] = Field(default=None, alias="qrData")

    def as_text(self) -> str:
        if self.qr_data is None:
            return ""
        if isinstance(self.qr_data, dict):
            return json.dumps(self.qr_data)
        return str(self.qr_data)


class RegistrationResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: str
    year: str
    branch: str
    attended: bool
    created_at: datetime


class AttendanceResponse(BaseModel):
    message: str
    user: RegistrationResponse


class ScanSummary(BaseModel):
    id: int
    name: str
    email: str
    year: str
    branch: str
    attended: bool


class ScanResponse(BaseModel):
    message: str
    user: ScanSummary


class RegistrationListResponse(_WireModel):
    registrations: List[RegistrationResponse]
    total: int
    current_page: int = Field(..., alias="currentPage")
    total_pages: int = Field(..., alias="totalPages")


class StatsResponse(BaseModel):
    total_registrations: int
    total_attended: int
    total_not_attended: int
    attendance_percentage: Optional[float]


def registration_to_response(registration: Registration) -> RegistrationResponse:
    return RegistrationResponse(
        id=registration.id,
        first_name=registration.first_name,
        last_name=registration.last_name,
        email=registration.email,
        phone=registration.phone,
        year=registration.year,
        branch=registration.branch,
        attended=registration.attended,
        created_at=registration.created_at,
    )


def registration_to_summary(registration: Registration) -> ScanSummary:
    return ScanSummary(
        id=registration.id,
        name=registration.full_name,
        email=registration.email,
        year=registration.year,
        branch=registration.branch,
        attended=registration.attended,
    )


def _coerce_user_id(value: Optional[Union[int, str]]) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("User ID is required", field="userId")
    user_id = parse_row_id(value)
    if user_id is None:
        raise ValidationError("Invalid user ID", field="userId")
    return user_id


def _already_marked_response(exc: AlreadyMarkedError, user: BaseModel) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({"error": exc.message, "user": user}),
    )


def create_app(
    *,
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    mailer: Optional[ConfirmationMailer] = None,
    verifier: Optional[IdentityVerifier] = None,
    issuer: Optional[TokenIssuer] = None,
) -> FastAPI:
    """Create the registration API, wiring collaborators from ``settings``."""

    settings = settings or load_settings()
    if database is None:
        database = Database(settings.database_path)
    database.initialize()
    seeded = database.seed_staff(settings.staff)
    if seeded:
        logger.info("Added %s staff member(s) to the allow-list", seeded)

    issuer = issuer or TokenIssuer(settings.jwt_secret, ttl=timedelta(hours=settings.token_ttl_hours))
    verifier = verifier or GoogleIdentityVerifier(settings.google_client_id)
    mailer = mailer or ConfirmationMailer(settings.smtp)

    registration_service = RegistrationService(database, mailer)
    auth_service = AuthService(database, verifier, issuer)
    attendance_service = AttendanceService(database)
    require_staff = BearerAuth(issuer)

    app = FastAPI(title=SERVICE_NAME, version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.database = database

    @app.get("/")
    async def healthcheck() -> Dict[str, str]:
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
        }

    @app.post("/api/register", status_code=status.HTTP_201_CREATED)
    async def register(payload: RegisterRequest) -> RegisterResponse:
        registration = await anyio.to_thread.run_sync(registration_service.register, payload.to_form())
        return RegisterResponse(
            message="Registration successful",
            user_id=registration.id,
            email="Confirmation email sent successfully",
        )

    @app.post("/api/login", response_model=LoginResponse)
    async def login(payload: LoginRequest) -> LoginResponse:
        token, claims = await anyio.to_thread.run_sync(auth_service.login, payload.credential)
        return LoginResponse(
            message="Login successful",
            token=token,
            user=StaffResponse(id=claims.id, email=claims.email, name=claims.name),
        )

    @app.post("/api/update-attendance", response_model=AttendanceResponse)
    async def update_attendance(
        payload: UpdateAttendanceRequest,
        staff: StaffClaims = Depends(require_staff),
    ):
        user_id = _coerce_user_id(payload.user_id)
        try:
            registration = attendance_service.mark_attended(user_id)
        except AlreadyMarkedError as exc:
            logger.info("%s re-submitted attendance for registration #%s", staff.email, user_id)
            return _already_marked_response(exc, registration_to_response(exc.registration))
        return AttendanceResponse(
            message="Attendance updated successfully",
            user=registration_to_response(registration),
        )

    @app.post("/api/scan-qr", response_model=ScanResponse)
    async def scan_qr(payload: ScanQRRequest, staff: StaffClaims = Depends(require_staff)):
        try:
            registration = attendance_service.scan(payload.as_text())
        except AlreadyMarkedError as exc:
            logger.info("%s scanned registration #%s again", staff.email, exc.registration.id)
            return _already_marked_response(exc, registration_to_summary(exc.registration))
        return ScanResponse(
            message="Attendance marked successfully",
            user=registration_to_summary(registration),
        )

    @app.get("/api/registrations")
    async def list_registrations(
        page: int = 1,
        limit: int = 50,
        search: str = "",
        _: StaffClaims = Depends(require_staff),
    ) -> RegistrationListResponse:
        result = attendance_service.list_registrations(page=page, limit=limit, search=search)
        return RegistrationListResponse(
            registrations=[registration_to_response(item) for item in result.registrations],
            total=result.total,
            current_page=result.page,
            total_pages=result.total_pages,
        )

    @app.get("/api/user/{user_id}", response_model=RegistrationResponse)
    async def read_registration(user_id: str) -> RegistrationResponse:
        registration_id = parse_row_id(user_id)
        if registration_id is None:
            raise ValidationError("Invalid user ID", field="id")
        return registration_to_response(attendance_service.get_registration(registration_id))

    @app.get("/api/stats", response_model=StatsResponse)
    async def read_stats(_: StaffClaims = Depends(require_staff)) -> StatsResponse:
        stats = attendance_service.stats()
        return StatsResponse(
            total_registrations=stats.total_registrations,
            total_attended=stats.total_attended,
            total_not_attended=stats.total_not_attended,
            attendance_percentage=stats.attendance_percentage,
        )

    @app.exception_handler(EventPassError)
    async def handle_domain_error(request: Request, exc: EventPassError):
        content: Dict[str, Any]
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            content = {"error": exc.public_message}
            if settings.is_development:
                content["details"] = exc.message
        else:
            content = {"error": exc.message}
            field_name = getattr(exc, "field", None)
            if field_name:
                content["field"] = field_name
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(_: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error during %s %s", request.method, request.url.path)
        content: Dict[str, Any] = {"error": "Internal server error"}
        if settings.is_development:
            content["details"] = str(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    return app


__all__ = ["create_app"]
