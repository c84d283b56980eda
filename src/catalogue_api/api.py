"""
FastAPI REST API for the clinical assessment catalogue.

Admin routes (taxonomy, tests, resources, populations, clinical profiles)
require a bearer token; the search, themes and catalogue routes are public.
Every write runs in one database transaction.
"""
import json
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any, Dict, Optional

import httpx
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from . import assessments, clinical_profiles, populations, resources, search, taxonomy
from .auth import AuthenticatedUser, IdentityProvider, build_identity_provider, require_admin
from .bulk import run_bulk
from .config import Settings, load_settings
from .db import Database
from .errors import CatalogueError
from .kinds import get_kind
from .labels import parse_synonyms
from .locales import resolve_locale
from .log import configure_logging
from .models import ValidationStatus
from .schemas import (
    BulkRequest,
    CatalogueResponse,
    CharacteristicInput,
    CharacteristicRename,
    CharacteristicsResponse,
    ClinicalProfileInput,
    ClinicalProfileRename,
    ClinicalProfilesResponse,
    DeletedTermResponse,
    PopulationsResponse,
    ResourceInput,
    ResourceResponse,
    ResourcesResponse,
    ResourceUpdateInput,
    SearchResponse,
    TaxonomyDeletion,
    TaxonomyMutation,
    TaxonomyResponse,
    TermResponse,
    TestInput,
    TestResponse,
    TestsResponse,
    TestUpdateInput,
    ThemeSearchResponse,
)

API_VERSION = "1.0.0"


class JSONLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response: Response = await call_next(request)
        process_time = time.time() - start_time
        # Parse query params into a dict (support multi-values)
        qp = {}
        for key, value in request.query_params.multi_items():
            if key in qp:
                existing = qp[key]
                if isinstance(existing, list):
                    existing.append(value)
                else:
                    qp[key] = [existing, value]
            else:
                qp[key] = value

        log_data = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "method": request.method,
            "path": request.url.path,
            "query_params": qp,
            "status_code": response.status_code,
            "duration_ms": int(process_time * 1000),
            "client_ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
        }
        logger.info(json.dumps(log_data))
        return response


# ============================================================================
# Dependencies
# ============================================================================

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db(database: Database = Depends(get_database)):
    """Dependency to get a read-only database session."""
    async with database.session() as session:
        yield session


SettingsDep = Annotated[Settings, Depends(get_settings)]
DatabaseDep = Annotated[Database, Depends(get_database)]
SessionDep = Annotated[AsyncSession, Depends(get_db)]
AdminDep = Annotated[AuthenticatedUser, Depends(require_admin)]


def _locale(settings: Settings, requested: Optional[str]) -> str:
    return resolve_locale(requested, settings.locales, settings.default_locale)


def _degraded(payload: BaseModel, error: Exception) -> JSONResponse:
    """Empty read model with an error flag, for list routes whose query failed."""
    logger.opt(exception=error).error("Read failed, returning an empty collection")
    payload.error = "Unable to load data."
    return JSONResponse(status_code=503, content=payload.model_dump(mode="json", by_alias=True))


# ============================================================================
# Application factory
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    identity_provider: Optional[IdentityProvider] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    The database handle and identity provider are created here (or injected
    by tests) and released when the app shuts down.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level, json_lines=settings.log_json)

    owns_database = database is None
    if database is None:
        database = Database(settings.database_url, echo=settings.echo_sql)
    http_client = httpx.AsyncClient(timeout=10.0)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Catalogue API starting with {database!r}")
        yield
        await http_client.aclose()
        if owns_database:
            await database.dispose()

    app = FastAPI(
        title="Clinical Assessment Catalogue API",
        description="""
REST API for the clinical assessment catalogue.

Features:
- Localized taxonomy (domains, tags, themes, resource types) with locale fallback
- Test and resource administration with label-based taxonomy relations
- Bulk archive / delete of tests
- Public search hub, theme lookup and catalogue navigation
        """,
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.identity_provider = identity_provider or build_identity_provider(settings, http_client)

    app.add_middleware(JSONLoggingMiddleware)
    _install_error_handlers(app)
    _install_routes(app)
    return app


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CatalogueError)
    async def catalogue_error_handler(request: Request, exc: CatalogueError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{where}: {first.get('msg')}" if where else str(first.get("msg"))
        else:
            message = "Invalid request."
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.opt(exception=exc).error(f"Database error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


def _install_routes(app: FastAPI) -> None:

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "message": "Clinical Assessment Catalogue API",
            "version": API_VERSION,
            "endpoints": {
                "taxonomy": "/api/taxonomy",
                "tests": "/api/tests",
                "resources": "/api/resources",
                "search": "/api/search",
                "docs": "/docs",
                "openapi": "/openapi.json",
            },
        }

    @app.get("/health")
    async def health_check(db: SessionDep):
        """Health check endpoint - verifies database connectivity."""
        try:
            await db.execute(select(1))
            return {"status": "healthy", "database": "connected"}
        except SQLAlchemyError:
            logger.exception("Health check failed")
            return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unreachable"})

    # ------------------------------------------------------------------------
    # Taxonomy
    # ------------------------------------------------------------------------

    @app.get("/api/taxonomy", response_model=TaxonomyResponse)
    async def get_taxonomy(db: SessionDep, settings: SettingsDep, locale: Optional[str] = None):
        """Localized domains, tags, themes (with their domains) and resource types."""
        locale = _locale(settings, locale)
        try:
            data = await taxonomy.list_taxonomy(db, locale, settings.default_locale)
        except SQLAlchemyError as e:
            return _degraded(TaxonomyResponse(), e)
        return TaxonomyResponse.model_validate(data)

    @app.post("/api/taxonomy", response_model=TermResponse, status_code=201)
    async def create_taxonomy_term(body: TaxonomyMutation, database: DatabaseDep, settings: SettingsDep, user: AdminDep):
        kind = get_kind(body.type)
        locale = _locale(settings, body.locale)
        async with database.transaction() as session:
            ref = await taxonomy.upsert_term(
                session,
                kind,
                body.value,
                locale,
                synonyms=parse_synonyms(body.synonyms) if body.synonyms is not None else None,
                description=body.description,
                color=body.color,
                domain_ids=body.domain_ids,
            )
        return TermResponse(id=ref.id, label=ref.label)

    @app.put("/api/taxonomy", response_model=TermResponse)
    async def update_taxonomy_term(body: TaxonomyMutation, database: DatabaseDep, settings: SettingsDep, user: AdminDep):
        if body.id is None:
            raise CatalogueError("An id is required to update a taxonomy entry.")
        kind = get_kind(body.type)
        locale = _locale(settings, body.locale)
        async with database.transaction() as session:
            ref = await taxonomy.update_term(
                session,
                kind,
                body.id,
                locale,
                body.value,
                synonyms=parse_synonyms(body.synonyms) if body.synonyms is not None else None,
                description=body.description,
                color=body.color,
                domain_ids=body.domain_ids,
            )
        return TermResponse(id=ref.id, label=ref.label)

    @app.delete("/api/taxonomy", response_model=DeletedTermResponse)
    async def delete_taxonomy_term(body: TaxonomyDeletion, database: DatabaseDep, settings: SettingsDep, user: AdminDep):
        kind = get_kind(body.type)
        locale = _locale(settings, body.locale)
        async with database.transaction() as session:
            deleted = await taxonomy.delete_translation(
                session, kind, locale, entity_id=body.id, default_locale=settings.default_locale
            )
        return DeletedTermResponse(id=deleted.id, label=deleted.label, reaped=deleted.reaped)

    # ------------------------------------------------------------------------
    # Populations & clinical profiles (static paths before /api/tests/{test_id})
    # ------------------------------------------------------------------------

    @app.get("/api/tests/populations", response_model=PopulationsResponse)
    async def get_populations(db: SessionDep, settings: SettingsDep, user: AdminDep, locale: Optional[str] = None):
        locale = _locale(settings, locale)
        try:
            items = await populations.list_populations(db, locale, settings.default_locale)
        except SQLAlchemyError as e:
            return _degraded(PopulationsResponse(), e)
        return PopulationsResponse.model_validate({"populations": items})

    @app.post("/api/tests/populations", response_model=CharacteristicsResponse, status_code=201)
    async def add_population_characteristic(
        body: CharacteristicInput, database: DatabaseDep, settings: SettingsDep, user: AdminDep
    ):
        locale = _locale(settings, body.locale)
        async with database.transaction() as session:
            characteristics = await populations.add_characteristic(
                session, body.population_id, locale, body.value, settings.default_locale
            )
        return CharacteristicsResponse(population_id=body.population_id, characteristics=characteristics)

    @app.put("/api/tests/populations", response_model=CharacteristicsResponse)
    async def rename_population_characteristic(
        body: CharacteristicRename, database: DatabaseDep, settings: SettingsDep, user: AdminDep
    ):
        locale = _locale(settings, body.locale)
        async with database.transaction() as session:
            characteristics = await populations.rename_characteristic(
                session, body.population_id, locale, body.previous_value, body.value
            )
        return CharacteristicsResponse(population_id=body.population_id, characteristics=characteristics)

    @app.delete("/api/tests/populations", response_model=CharacteristicsResponse)
    async def remove_population_characteristic(
        body: CharacteristicInput, database: DatabaseDep, settings: SettingsDep, user: AdminDep
    ):
        locale = _locale(settings, body.locale)
        async with database.transaction() as session:
            characteristics = await populations.remove_characteristic(session, body.population_id, locale, body.value)
        return CharacteristicsResponse(population_id=body.population_id, characteristics=characteristics)

    async def _profiles(database: Database, settings: Settings, locale: str) -> ClinicalProfilesResponse:
        async with database.session() as session:
            profiles = await clinical_profiles.list_clinical_profiles(session, locale, settings.default_locale)
        return ClinicalProfilesResponse(profiles=profiles)

    @app.get("/api/tests/clinical-profiles", response_model=ClinicalProfilesResponse)
    async def get_clinical_profiles(database: DatabaseDep, settings: SettingsDep, user: AdminDep, locale: Optional[str] = None):
        try:
            return await _profiles(database, settings, _locale(settings, locale))
        except SQLAlchemyError as e:
            return _degraded(ClinicalProfilesResponse(), e)

    @app.post("/api/tests/clinical-profiles", response_model=ClinicalProfilesResponse, status_code=201)
    async def create_clinical_profile(
        body: ClinicalProfileInput, database: DatabaseDep, settings: SettingsDep, user: AdminDep
    ):
        locale = _locale(settings, body.locale)
        async with database.transaction() as session:
            await clinical_profiles.create_clinical_profile(session, locale, body.value)
        return await _profiles(database, settings, locale)

    @app.put("/api/tests/clinical-profiles", response_model=ClinicalProfilesResponse)
    async def rename_clinical_profile(
        body: ClinicalProfileRename, database: DatabaseDep, settings: SettingsDep, user: AdminDep
    ):
        locale = _locale(settings, body.locale)
        async with database.transaction() as session:
            await clinical_profiles.rename_clinical_profile(session, locale, body.previous_value, body.value)
        return await _profiles(database, settings, locale)

    @app.delete("/api/tests/clinical-profiles", response_model=ClinicalProfilesResponse)
    async def delete_clinical_profile(
        body: ClinicalProfileInput, database: DatabaseDep, settings: SettingsDep, user: AdminDep
    ):
        locale = _locale(settings, body.locale)
        async with database.transaction() as session:
            await clinical_profiles.delete_clinical_profile(session, locale, body.value, settings.default_locale)
        return await _profiles(database, settings, locale)

    # ------------------------------------------------------------------------
    # Tests
    # ------------------------------------------------------------------------

    @app.post("/api/tests/bulk")
    async def bulk_tests(body: BulkRequest, database: DatabaseDep, user: AdminDep) -> Dict[str, Any]:
        """
        Apply one action to several tests.

        - `status`: set `status` on every test -> `{updated, status}`
        - `tags:add` / `tags:remove`: add or remove `tagIds` -> `{updated}`
        - `archive`: force the archived status -> `{archived}`
        - no action / `delete`: delete unused tests, archive the ones used by a
          patient assessment -> `{archived, deleted}`
        """
        async with database.transaction() as session:
            result = await run_bulk(session, body.ids, body.action, status=body.status, tag_ids=body.tag_ids)
        return result.to_payload()

    @app.get("/api/tests", response_model=TestsResponse)
    async def list_tests(
        db: SessionDep,
        settings: SettingsDep,
        user: AdminDep,
        locale: Optional[str] = None,
        status: Optional[ValidationStatus] = None,
    ):
        locale = _locale(settings, locale)
        try:
            tests = await assessments.get_tests_with_metadata(
                db, locale, default_locale=settings.default_locale, status=status
            )
        except SQLAlchemyError as e:
            return _degraded(TestsResponse(), e)
        return TestsResponse(tests=tests)

    @app.post("/api/tests", response_model=TestResponse, status_code=201)
    async def create_test(body: TestInput, database: DatabaseDep, settings: SettingsDep, user: AdminDep):
        locale = _locale(settings, body.locale)
        body = body.model_copy(update={"locale": locale})
        async with database.transaction() as session:
            test_id = await assessments.create_test(
                session, body, default_locale=settings.default_locale, created_by=user.uuid
            )
            test = await assessments.get_test_with_metadata(
                session, test_id, locale, default_locale=settings.default_locale
            )
        return TestResponse(test=test)

    @app.patch("/api/tests", response_model=TestResponse)
    async def update_test(body: TestUpdateInput, database: DatabaseDep, settings: SettingsDep, user: AdminDep):
        locale = _locale(settings, body.locale)
        body = body.model_copy(update={"locale": locale})
        async with database.transaction() as session:
            test_id = await assessments.update_test_admin_fields(
                session, body, default_locale=settings.default_locale
            )
            test = await assessments.get_test_with_metadata(
                session, test_id, locale, default_locale=settings.default_locale
            )
        return TestResponse(test=test)

    @app.get("/api/tests/{test_id}", response_model=TestResponse)
    async def get_test(test_id: uuid.UUID, db: SessionDep, settings: SettingsDep, user: AdminDep, locale: Optional[str] = None):
        test = await assessments.get_test_with_metadata(
            db, test_id, _locale(settings, locale), default_locale=settings.default_locale
        )
        return TestResponse(test=test)

    # ------------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------------

    @app.get("/api/resources", response_model=ResourcesResponse)
    async def list_resources(db: SessionDep, settings: SettingsDep, user: AdminDep, locale: Optional[str] = None):
        locale = _locale(settings, locale)
        try:
            items = await resources.get_resources_with_metadata(db, locale, default_locale=settings.default_locale)
        except SQLAlchemyError as e:
            return _degraded(ResourcesResponse(), e)
        return ResourcesResponse(resources=items)

    async def _resource_response(session: AsyncSession, resource_id: uuid.UUID, locale: str, settings: Settings):
        items = await resources.get_resources_with_metadata(
            session, locale, default_locale=settings.default_locale, ids=[resource_id]
        )
        return ResourceResponse(resource=items[0])

    @app.post("/api/resources", response_model=ResourceResponse, status_code=201)
    async def create_resource(body: ResourceInput, database: DatabaseDep, settings: SettingsDep, user: AdminDep):
        locale = _locale(settings, body.locale)
        body = body.model_copy(update={"locale": locale})
        async with database.transaction() as session:
            resource_id = await resources.create_resource(session, body, default_locale=settings.default_locale)
            return await _resource_response(session, resource_id, locale, settings)

    @app.patch("/api/resources", response_model=ResourceResponse)
    async def update_resource(body: ResourceUpdateInput, database: DatabaseDep, settings: SettingsDep, user: AdminDep):
        locale = _locale(settings, body.locale)
        body = body.model_copy(update={"locale": locale})
        async with database.transaction() as session:
            resource_id = await resources.update_resource(session, body, default_locale=settings.default_locale)
            return await _resource_response(session, resource_id, locale, settings)

    # ------------------------------------------------------------------------
    # Public search & catalogue
    # ------------------------------------------------------------------------

    @app.get("/api/search", response_model=SearchResponse)
    async def search_catalogue(
        db: SessionDep,
        settings: SettingsDep,
        q: Annotated[Optional[str], Query(max_length=200)] = None,
        locale: Optional[str] = None,
        limit: Annotated[int, Query(ge=1, le=50)] = 20,
        page: Annotated[int, Query(ge=1)] = 1,
    ):
        """Published tests (assessments / self-reports) and resources matching `q`."""
        locale = _locale(settings, locale)
        try:
            data = await search.search_hub(
                db, q, locale, default_locale=settings.default_locale, limit=limit, page=page
            )
        except SQLAlchemyError as e:
            return _degraded(SearchResponse(), e)
        return SearchResponse.model_validate(data)

    @app.get("/api/themes", response_model=ThemeSearchResponse)
    async def search_themes(
        db: SessionDep,
        settings: SettingsDep,
        q: Optional[str] = None,
        locale: Optional[str] = None,
        limit: Annotated[int, Query(ge=1, le=100)] = 20,
    ):
        locale = _locale(settings, locale)
        try:
            items = await search.search_themes(db, q, locale, default_locale=settings.default_locale, limit=limit)
        except SQLAlchemyError as e:
            return _degraded(ThemeSearchResponse(), e)
        return ThemeSearchResponse.model_validate({"items": items})

    @app.get("/api/catalogue", response_model=CatalogueResponse)
    async def get_catalogue(db: SessionDep, settings: SettingsDep, locale: Optional[str] = None):
        locale = _locale(settings, locale)
        try:
            domains = await search.get_catalogue_taxonomy(db, locale, default_locale=settings.default_locale)
        except SQLAlchemyError as e:
            return _degraded(CatalogueResponse(), e)
        return CatalogueResponse.model_validate({"domains": domains})


__all__ = ["create_app", "JSONLoggingMiddleware"]
