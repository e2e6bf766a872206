from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from citaflow.models import PatientData


class ToolRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tenant: str = Field(min_length=1, validation_alias=AliasChoices("tenant", "client_id"))


class PatientPayload(BaseModel):
    name: str = Field(min_length=1, validation_alias=AliasChoices("name", "nombre"))
    phone: str = Field(min_length=1, validation_alias=AliasChoices("phone", "telefono"))
    email: Optional[str] = None
    reason: Optional[str] = Field(default=None, validation_alias=AliasChoices("reason", "motivo"))

    def to_patient(self) -> PatientData:
        return PatientData(name=self.name, phone=self.phone, email=self.email, reason=self.reason)


class CheckAvailabilityRequest(ToolRequest):
    start: Optional[str] = Field(default=None, validation_alias=AliasChoices("start", "start_time"))
    end: Optional[str] = Field(default=None, validation_alias=AliasChoices("end", "end_time"))
    date: Optional[str] = Field(default=None, validation_alias=AliasChoices("date", "query_date"))
    location: Optional[str] = Field(default=None, validation_alias=AliasChoices("location", "sede"))


class CreateAppointmentRequest(ToolRequest):
    patient: PatientPayload = Field(validation_alias=AliasChoices("patient", "patient_data"))
    start: str = Field(validation_alias=AliasChoices("start", "start_time"))
    end: str = Field(validation_alias=AliasChoices("end", "end_time"))
    description: str = ""
    location: Optional[str] = Field(default=None, validation_alias=AliasChoices("location", "sede"))


class HandoffRequest(ToolRequest):
    conversation_key: str = Field(
        min_length=1, validation_alias=AliasChoices("conversation_key", "phone_number", "phone")
    )


class ConversionEventRequest(ToolRequest):
    event_name: Literal["Lead", "Purchase", "Schedule"]
    user_data: dict[str, Any] = Field(default_factory=dict)
    event_source_url: Optional[str] = None
    event_id: Optional[str] = None
    action_source: str = "website"
