"""FastAPI application serving the flight booking storefront."""
from __future__ import annotations

import base64
import json
import logging
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Literal, Optional

import pandas as pd
from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response, StreamingResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session, sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from .admin import FLIGHT_FIELDS, create_flight, delete_flight, update_flight
from .auth_provider import SIGNED_OUT, AuthSession, IdentityProvider, RestIdentityProvider
from .booking import book_flight, cancel_booking, list_user_bookings
from .catalog import CITIES, city_label, seed_catalog
from .config import Settings, configure_logging, load_settings
from .database import init_db
from .errors import (
    BackendError,
    ForbiddenError,
    NotFoundError,
    SoldOutError,
    UnauthenticatedError,
    ValidationError,
)
from .identity import IdentityAdapter
from .models import Flight
from .notifications import Notice, Notifier
from .search import get_flight_by_id, list_flights, search_flights

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.globals["city_label"] = city_label

ACCESS_COOKIE = "fb-access-token"
REFRESH_COOKIE = "fb-refresh-token"
FLASH_COOKIE = "fb-flash"

ExportFormat = Literal["csv", "xlsx"]
ProviderFactory = Callable[[], IdentityProvider]


class PageContext:
    """Per-request bundle of the row store, the identity adapter and notices.

    Auth state changes reported by the provider are turned into cookie
    updates on whatever response the route produces.
    """

    def __init__(self, request: Request, db: Session, provider: IdentityProvider) -> None:
        self.request = request
        self.db = db
        self.notifier = Notifier()
        self.identity = IdentityAdapter(provider, self.notifier)
        self._cookie_session: Optional[AuthSession] = None
        self._clear_cookies = False
        provider.on_auth_state_change(self._on_auth_change)
        for level, message in _read_flash(request):
            self.notifier.push(level, message)

    def _on_auth_change(self, event: str, session: Optional[AuthSession]) -> None:
        if event == SIGNED_OUT or session is None:
            self._cookie_session = None
            self._clear_cookies = True
        else:
            self._cookie_session = session
            self._clear_cookies = False

    def restore(self) -> None:
        access_token = self.request.cookies.get(ACCESS_COOKIE)
        if not access_token:
            return
        try:
            self.identity.provider.set_session(access_token, self.request.cookies.get(REFRESH_COOKIE, ""))
        except BackendError as exc:
            logger.warning("Discarding stored session: %s", exc)
            if exc.status_code is not None and 400 <= exc.status_code < 500:
                self._clear_cookies = True

    def _finish(self, response: Response, *, flash: Iterable[Notice] = ()) -> Response:
        if self._cookie_session is not None:
            response.set_cookie(ACCESS_COOKIE, self._cookie_session.access_token, httponly=True, samesite="lax")
            response.set_cookie(REFRESH_COOKIE, self._cookie_session.refresh_token, httponly=True, samesite="lax")
        elif self._clear_cookies:
            response.delete_cookie(ACCESS_COOKIE)
            response.delete_cookie(REFRESH_COOKIE)
        pending = [[notice.level, notice.message] for notice in flash]
        if pending:
            encoded = base64.urlsafe_b64encode(json.dumps(pending).encode("utf-8")).decode("ascii")
            response.set_cookie(FLASH_COOKIE, encoded, httponly=True, samesite="lax")
        elif FLASH_COOKIE in self.request.cookies:
            response.delete_cookie(FLASH_COOKIE)
        return response

    def render(self, name: str, context: Dict[str, Any], *, status_code: int = 200) -> Response:
        page = {
            "user": self.identity.current_user(),
            "notices": self.notifier.drain(),
            **context,
        }
        return self._finish(templates.TemplateResponse(self.request, name, page, status_code=status_code))

    def redirect(self, url: str) -> Response:
        """303 to ``url`` carrying this request's notices to the next page."""

        return self._finish(RedirectResponse(url, status_code=303), flash=self.notifier.drain())

    def not_found(self) -> Response:
        return self.render("not_found.html", {}, status_code=404)


def _read_flash(request: Request) -> List[tuple]:
    raw = request.cookies.get(FLASH_COOKIE)
    if not raw:
        return []
    try:
        decoded = base64.urlsafe_b64decode(raw.encode("ascii"))
        return [(level, message) for level, message in json.loads(decoded)]
    except (TypeError, ValueError):
        return []


def _inventory_frame(flights: Iterable[Flight]) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = []
    for flight in flights:
        row = {"id": flight.id}
        row.update({name: getattr(flight, name) for name in FLIGHT_FIELDS})
        rows.append(row)
    return pd.DataFrame(rows, columns=["id", *FLIGHT_FIELDS])


def _page_of(request: Request) -> Optional[PageContext]:
    return getattr(request.state, "page", None)


def _not_found(request: Request) -> Response:
    page = _page_of(request)
    if page is not None:
        return page.not_found()
    return templates.TemplateResponse(request, "not_found.html", {"user": None, "notices": []}, status_code=404)


def _redirect(request: Request, url: str) -> Response:
    page = _page_of(request)
    if page is not None:
        return page.redirect(url)
    return RedirectResponse(url, status_code=303)


async def _flight_form(request: Request) -> Dict[str, Any]:
    form = await request.form()
    return {name: form[name] for name in FLIGHT_FIELDS if name in form}


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_factory: Optional[sessionmaker[Session]] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> FastAPI:
    """Return the storefront application.

    ``session_factory`` and ``provider_factory`` default to the database and
    identity service named in ``settings``.
    """

    settings = settings or load_settings()
    configure_logging(settings.log_level)
    if session_factory is None:
        session_factory = init_db(settings.database_url)
        if settings.seed_catalog:
            seed_catalog(session_factory)
    if provider_factory is None:

        def rest_provider() -> IdentityProvider:
            return RestIdentityProvider(settings.auth_url, settings.auth_api_key, timeout=settings.auth_timeout)

        provider_factory = rest_provider

    app = FastAPI(title="Flight Booking", description="Search, book and manage flights")

    def get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def get_page(request: Request, db: Session = Depends(get_db)) -> PageContext:
        page = PageContext(request, db, provider_factory())
        request.state.page = page
        page.restore()
        return page

    @app.exception_handler(UnauthenticatedError)
    async def to_auth(request: Request, exc: UnauthenticatedError) -> Response:
        return _redirect(request, "/auth")

    @app.exception_handler(ForbiddenError)
    async def to_home(request: Request, exc: ForbiddenError) -> Response:
        return _redirect(request, "/")

    @app.exception_handler(NotFoundError)
    async def missing(request: Request, exc: NotFoundError) -> Response:
        return _not_found(request)

    @app.exception_handler(StarletteHTTPException)
    async def not_found(request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code == 404:
            return _not_found(request)
        return HTMLResponse(str(exc.detail), status_code=exc.status_code)

    @app.get("/", response_class=HTMLResponse)
    async def index(
        source: str = "",
        destination: str = "",
        date: str = "",
        page: PageContext = Depends(get_page),
    ) -> Response:
        try:
            flights = search_flights(
                page.db,
                source=source,
                destination=destination,
                departure_date=date,
                notifier=page.notifier,
            )
        except ValidationError as exc:
            page.notifier.error(str(exc))
            flights = []
        context = {
            "cities": CITIES,
            "flights": flights,
            "source": source,
            "destination": destination,
            "date": date,
            "searched": bool(source or destination or date),
        }
        return page.render("index.html", context)

    @app.get("/auth", response_class=HTMLResponse)
    async def auth_page(view: Literal["login", "signup"] = "login", page: PageContext = Depends(get_page)) -> Response:
        if page.identity.is_authenticated():
            return page.redirect("/")
        return page.render("auth.html", {"view": view, "email": ""})

    @app.get("/login")
    async def login_page(page: PageContext = Depends(get_page)) -> Response:
        return page.redirect("/" if page.identity.is_authenticated() else "/auth?view=login")

    @app.get("/signup")
    async def signup_page(page: PageContext = Depends(get_page)) -> Response:
        return page.redirect("/" if page.identity.is_authenticated() else "/auth?view=signup")

    @app.post("/auth/login")
    async def login(request: Request, page: PageContext = Depends(get_page)) -> Response:
        form = await request.form()
        email = str(form.get("email", ""))
        if page.identity.login(email, str(form.get("password", ""))):
            return page.redirect("/")
        return page.render("auth.html", {"view": "login", "email": email}, status_code=401)

    @app.post("/auth/signup")
    async def signup(request: Request, page: PageContext = Depends(get_page)) -> Response:
        form = await request.form()
        email = str(form.get("email", ""))
        created = page.identity.signup(
            str(form.get("first_name", "")),
            str(form.get("last_name", "")),
            email,
            str(form.get("password", "")),
        )
        if not created:
            return page.render("auth.html", {"view": "signup", "email": email}, status_code=400)
        if page.identity.is_authenticated():
            return page.redirect("/")
        return page.redirect("/auth?view=login")

    @app.post("/auth/logout")
    async def logout(page: PageContext = Depends(get_page)) -> Response:
        page.identity.logout()
        return page.redirect("/")

    @app.get("/booking/{flight_id}", response_class=HTMLResponse)
    async def booking_page(flight_id: int, page: PageContext = Depends(get_page)) -> Response:
        page.identity.require_user()
        flight = get_flight_by_id(page.db, flight_id, notifier=page.notifier)
        if flight is None:
            raise NotFoundError(f"flight {flight_id} not found")
        return page.render("booking.html", {"flight": flight})

    @app.post("/booking/{flight_id}")
    async def book(flight_id: int, page: PageContext = Depends(get_page)) -> Response:
        try:
            booking = book_flight(page.db, page.identity, flight_id=flight_id, notifier=page.notifier)
        except SoldOutError:
            flight = get_flight_by_id(page.db, flight_id)
            return page.render("booking.html", {"flight": flight}, status_code=409)
        if booking is None:
            flight = get_flight_by_id(page.db, flight_id)
            return page.render("booking.html", {"flight": flight}, status_code=503)
        return page.redirect("/bookings")

    @app.get("/bookings", response_class=HTMLResponse)
    async def bookings_page(page: PageContext = Depends(get_page)) -> Response:
        page.identity.require_user()
        bookings = list_user_bookings(page.db, page.identity, notifier=page.notifier)
        return page.render("bookings.html", {"bookings": bookings})

    @app.post("/bookings/{booking_id}/cancel")
    async def cancel(booking_id: int, page: PageContext = Depends(get_page)) -> Response:
        page.identity.require_user()
        cancel_booking(page.db, page.identity, booking_id=booking_id, notifier=page.notifier)
        return page.redirect("/bookings")

    def _admin_page(
        page: PageContext,
        *,
        editing: Optional[Flight] = None,
        errors: Optional[Dict[str, str]] = None,
        status_code: int = 200,
    ) -> Response:
        context = {
            "flights": list_flights(page.db, notifier=page.notifier),
            "cities": CITIES,
            "editing": editing,
            "errors": errors or {},
        }
        return page.render("admin.html", context, status_code=status_code)

    @app.get("/admin", response_class=HTMLResponse)
    async def admin_page(edit: Optional[int] = None, page: PageContext = Depends(get_page)) -> Response:
        page.identity.require_admin()
        editing = get_flight_by_id(page.db, edit) if edit is not None else None
        return _admin_page(page, editing=editing)

    @app.post("/admin/flights")
    async def admin_create(request: Request, page: PageContext = Depends(get_page)) -> Response:
        fields = await _flight_form(request)
        try:
            create_flight(page.db, page.identity, fields, notifier=page.notifier)
        except ValidationError as exc:
            page.notifier.error("Please correct the highlighted fields")
            return _admin_page(page, errors=exc.errors, status_code=400)
        return page.redirect("/admin")

    @app.post("/admin/flights/{flight_id}")
    async def admin_update(flight_id: int, request: Request, page: PageContext = Depends(get_page)) -> Response:
        fields = await _flight_form(request)
        try:
            update_flight(page.db, page.identity, flight_id, fields, notifier=page.notifier)
        except ValidationError as exc:
            page.notifier.error("Please correct the highlighted fields")
            editing = get_flight_by_id(page.db, flight_id)
            return _admin_page(page, editing=editing, errors=exc.errors, status_code=400)
        return page.redirect("/admin")

    @app.post("/admin/flights/{flight_id}/delete")
    async def admin_delete(flight_id: int, page: PageContext = Depends(get_page)) -> Response:
        delete_flight(page.db, page.identity, flight_id, notifier=page.notifier)
        return page.redirect("/admin")

    @app.get("/admin/export/{file_format}")
    async def export_inventory(file_format: ExportFormat, page: PageContext = Depends(get_page)) -> Response:
        page.identity.require_admin()
        dataframe = _inventory_frame(list_flights(page.db, notifier=page.notifier))
        filename = f"flight_inventory.{file_format}"
        headers = {"Content-Disposition": f"attachment; filename=\"{filename}\""}

        if file_format == "csv":
            buffer = StringIO()
            dataframe.to_csv(buffer, index=False)
            buffer.seek(0)
            return StreamingResponse(iter([buffer.getvalue()]), media_type="text/csv", headers=headers)

        buffer = BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            dataframe.to_excel(writer, index=False, sheet_name="Flights")
        buffer.seek(0)
        return StreamingResponse(
            buffer,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers=headers,
        )

    return app


__all__ = ["create_app", "PageContext"]
