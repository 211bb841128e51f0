"""
FastAPI Service Bus
-------------------
Internal API exposing tool visibility, resolution, authorization and the
permission settings behind them.

This is NOT the agent wire transport. Resolution and permission failures are
ordinary results and return HTTP 200 with their payload; only invalid input
(400/422) and an unavailable settings store (503) are HTTP errors.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import sqlite3

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from core.errors import ErrorHandler, GateError
from core.gateway import ToolGateway
from infra.database import DatabaseError
from infra.logging import RequestContext


# Request/Response Models

class ToolNameRequest(BaseModel):
    """A tool name as issued by the agent."""
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., description="provider:short_name or a bare short name")


class TierUpdate(BaseModel):
    tier: int = Field(..., ge=0, le=3)


class VacationUpdate(BaseModel):
    until: Optional[datetime] = Field(None, description="End of vacation mode; null clears it")


class ConnectorTier(BaseModel):
    connector: str
    tier: int
    source: str


class HealthResponse(BaseModel):
    status: str
    version: str = "0.1.0"
    tools_loaded: int = 0
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class ServiceBus:
    """Internal service bus for the tool gateway."""

    def __init__(self, gateway: ToolGateway, error_handler: Optional[ErrorHandler] = None):
        self._gateway = gateway
        self._errors = error_handler or ErrorHandler()
        self._logger = logging.getLogger("toolgate.infra.service_bus")

    def create_app(self) -> FastAPI:
        """Create and configure the FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            self._logger.info("Service bus starting...")
            yield
            self._logger.info("Service bus shutting down...")

        app = FastAPI(
            title="toolgate Internal API",
            description="Tool visibility, resolution and permission checks",
            version="0.1.0",
            lifespan=lifespan
        )

        @app.exception_handler(DatabaseError)
        @app.exception_handler(sqlite3.Error)
        async def store_unavailable(request: Request, exc: Exception):
            message = self._errors.handle(GateError.from_exception(exc))
            return JSONResponse(status_code=503, content={"detail": message})

        self._register_routes(app)
        return app

    def _record(self, error: Optional[GateError]) -> None:
        if error is not None:
            self._errors.handle(error)

    def _register_routes(self, app: FastAPI) -> None:
        gateway = self._gateway
        authority = gateway.authority

        @app.get("/health", response_model=HealthResponse, tags=["System"])
        async def health_check():
            return HealthResponse(status="healthy", tools_loaded=len(gateway.catalog))

        @app.get("/users/{user_id}/tools", tags=["Tools"])
        async def list_visible_tools(user_id: str, format: str = "summary"):
            """Tools the agent may see this turn."""
            with RequestContext():
                tools = gateway.prepare_turn(user_id)
            if format == "llm":
                return [t.to_llm_function() for t in tools]
            return [t.to_dict() for t in tools]

        @app.get("/users/{user_id}/categories", tags=["Tools"])
        async def list_categories(user_id: str):
            with RequestContext():
                return gateway.list_categories(user_id)

        @app.post("/tools/resolve", tags=["Tools"])
        async def resolve_tool(body: ToolNameRequest):
            with RequestContext():
                resolution = gateway.resolve(body.user_id, body.name)
                self._record(resolution.to_error())
            return resolution.to_payload()

        @app.post("/tools/authorize", tags=["Tools"])
        async def authorize_tool(body: ToolNameRequest):
            """Resolve and permission-check a tool before dispatch."""
            with RequestContext():
                decision = gateway.authorize(body.user_id, body.name)
                self._record(decision.error)
                self._record(decision.gap_error)
            return decision.to_payload()

        @app.get("/users/{user_id}/permissions", response_model=List[ConnectorTier], tags=["Settings"])
        async def get_permissions(user_id: str):
            permissions = authority.get_all_connector_permissions(user_id)
            return [
                ConnectorTier(connector=connector, tier=lookup.tier, source=lookup.source.value)
                for connector, lookup in permissions.items()
            ]

        @app.put("/users/{user_id}/permissions/{connector}", tags=["Settings"])
        async def set_permission(user_id: str, connector: str, body: TierUpdate):
            try:
                permission = authority.set_connector_permission(user_id, connector, body.tier)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"connector": permission.connector, "tier": permission.tier}

        @app.put("/users/{user_id}/vacation", tags=["Settings"])
        async def set_vacation(user_id: str, body: VacationUpdate):
            settings = authority.set_vacation_mode(user_id, body.until)
            until = settings.vacation_mode_until
            return {
                "vacationModeUntil": until.isoformat() if until else None,
                "active": authority.is_vacation_mode_active(settings),
            }

        @app.get("/users/{user_id}/safety-rules", tags=["Settings"])
        async def get_safety_rules(user_id: str) -> Dict[str, Any]:
            return {"rules": authority.get_safety_rules_for_prompt(user_id)}

        @app.get("/errors/stats", tags=["System"])
        async def get_error_stats():
            return self._errors.get_error_stats()


def create_app(gateway: ToolGateway, error_handler: Optional[ErrorHandler] = None) -> FastAPI:
    """Create the FastAPI application."""
    return ServiceBus(gateway, error_handler).create_app()


def run_server(app: FastAPI, host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the service bus server (blocking)."""
    import uvicorn

    uvicorn.run(app, host=host, port=port, log_level="info")
