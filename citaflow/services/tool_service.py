"""Operations exposed to the agent orchestration layer.

Every tool returns a ``Result``; domain errors become failures with the error's code and
never escape as exceptions.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from citaflow.errors import CitaflowError, TenantNotFound
from citaflow.logging_config import get_logger
from citaflow.models import Tenant
from citaflow.schemas.tools import (
    CheckAvailabilityRequest,
    ConversionEventRequest,
    CreateAppointmentRequest,
    HandoffRequest,
)
from citaflow.services.availability_service import AvailabilityService
from citaflow.services.booking_service import BookingService
from citaflow.services.conversion_service import ConversionService
from citaflow.services.result import Result
from citaflow.services.tenant_service import TenantResolver
from citaflow.services.wassenger_service import WassengerService, to_chat_wid

logger = get_logger("tool_service")


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    request_model: type[BaseModel]

    def describe(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.request_model.model_json_schema(),
        }


TOOLS: dict[str, ToolSpec] = {
    tool.name: tool
    for tool in (
        ToolSpec(
            "calendar_check_availability",
            "Check appointment availability for a specific slot or a whole day.",
            CheckAvailabilityRequest,
        ),
        ToolSpec(
            "calendar_create_appointment",
            "Book an appointment after re-checking the slot for conflicts.",
            CreateAppointmentRequest,
        ),
        ToolSpec(
            "crm_handoff_human",
            "Hand the conversation to a human operator by labelling the chat.",
            HandoffRequest,
        ),
        ToolSpec(
            "capi_send_event",
            "Send a conversion event (Lead, Purchase, Schedule) to Meta.",
            ConversionEventRequest,
        ),
    )
}


class ToolService:
    def __init__(
        self,
        tenants: TenantResolver,
        availability: AvailabilityService,
        booking: BookingService,
        messaging: WassengerService,
        conversions: ConversionService,
        humano_label: str = "humano",
    ):
        self.tenants = tenants
        self.availability = availability
        self.booking = booking
        self.messaging = messaging
        self.conversions = conversions
        self.humano_label = humano_label
        self._handlers: dict[str, Callable[[Any], Awaitable[Result]]] = {
            "calendar_check_availability": self.check_availability,
            "calendar_create_appointment": self.create_appointment,
            "crm_handoff_human": self.handoff_to_human,
            "capi_send_event": self.send_conversion_event,
        }

    async def _tenant(self, slug: str) -> Tenant:
        tenant = await self.tenants.get_tenant(slug)
        if tenant is None:
            raise TenantNotFound(slug)
        return tenant

    async def _run(self, tool: str, call: Callable[[], Awaitable[dict]]) -> Result[dict]:
        try:
            return Result.success(await call())
        except CitaflowError as exc:
            logger.warning(f"Tool {tool} failed", extra={"context": {"code": exc.code, "error": exc.message}})
            return Result.from_error(exc)
        except ValueError as exc:
            return Result.failure(str(exc), code="invalid_request")
        except Exception as exc:
            logger.error(f"Tool {tool} crashed", extra={"context": {"error": str(exc)}}, exc_info=True)
            return Result.failure("Internal error", code="internal_error")

    async def check_availability(self, request: CheckAvailabilityRequest) -> Result[dict]:
        async def call() -> dict:
            tenant = await self._tenant(request.tenant)
            report = await self.availability.check_availability(
                tenant,
                start=request.start,
                end=request.end,
                query_date=request.date,
                location=request.location,
            )
            return report.to_payload()

        return await self._run("calendar_check_availability", call)

    async def create_appointment(self, request: CreateAppointmentRequest) -> Result[dict]:
        async def call() -> dict:
            tenant = await self._tenant(request.tenant)
            booking = await self.booking.create_appointment(
                tenant,
                request.patient.to_patient(),
                request.start,
                request.end,
                description=request.description,
                location=request.location,
            )
            return booking.to_payload()

        return await self._run("calendar_create_appointment", call)

    async def handoff_to_human(self, request: HandoffRequest) -> Result[dict]:
        async def call() -> dict:
            tenant = await self._tenant(request.tenant)
            jid = to_chat_wid(request.conversation_key)
            await self.messaging.patch_chat_labels(tenant, jid, [self.humano_label])
            return {"message": "Conversation handed off to a human", "chat": jid}

        return await self._run("crm_handoff_human", call)

    async def send_conversion_event(self, request: ConversionEventRequest) -> Result[dict]:
        async def call() -> dict:
            tenant = await self._tenant(request.tenant)
            response = await self.conversions.send_event(
                tenant,
                request.event_name,
                request.user_data,
                event_source_url=request.event_source_url,
                event_id=request.event_id,
                action_source=request.action_source,
            )
            return {"event_name": request.event_name, "response": response}

        return await self._run("capi_send_event", call)

    async def invoke(self, name: str, arguments: dict) -> Result[dict]:
        """Validate ``arguments`` for tool ``name`` and run it. ``name`` must be in TOOLS."""
        tool = TOOLS[name]
        try:
            request = tool.request_model.model_validate(arguments)
        except ValidationError as exc:
            errors = [
                {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                for error in exc.errors()
            ]
            return Result.failure("Invalid tool arguments", code="invalid_request", errors=errors)
        return await self._handlers[name](request)
