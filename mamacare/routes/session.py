from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..deps import get_controller, http_error
from ..errors import AuthError, StorageError, ValidationError
from ..onboarding import OnboardingForm
from ..schemas import DEFAULT_COUNTRY, EmergencyContact, StorageMode, UserProfile, UserType
from ..session import SessionController, SessionSnapshot

router = APIRouter(prefix="/api/v1/session", tags=["session"])
logger = logging.getLogger(__name__)


class LoginPayload(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class OnboardingPayload(BaseModel):
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str
    country: str = DEFAULT_COUNTRY
    mobile_number: str = Field(default="", alias="mobileNumber")
    user_type: UserType = Field(..., alias="userType")
    expected_delivery_date: Optional[date] = Field(default=None, alias="expectedDeliveryDate")
    birth_date: Optional[date] = Field(default=None, alias="birthDate")
    emergency_contacts: List[EmergencyContact] = Field(default_factory=list, alias="emergencyContacts")
    password: str
    confirm_password: str = Field(..., alias="confirmPassword")
    accepted_terms: bool = Field(default=False, alias="acceptedTerms")
    accepted_privacy: bool = Field(default=False, alias="acceptedPrivacy")
    storage_mode: Optional[StorageMode] = Field(default=None, alias="storageMode")
    wants_reminders: bool = Field(default=True, alias="wantsReminders")

    model_config = ConfigDict(populate_by_name=True)

    def to_form(self) -> OnboardingForm:
        profile = UserProfile(
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            country=self.country,
            mobile_number=self.mobile_number,
            user_type=self.user_type,
            expected_delivery_date=self.expected_delivery_date,
            birth_date=self.birth_date,
            emergency_contacts=self.emergency_contacts,
        )
        return OnboardingForm(
            profile=profile,
            password=self.password,
            confirm_password=self.confirm_password,
            accepted_terms=self.accepted_terms,
            accepted_privacy=self.accepted_privacy,
            storage_mode=self.storage_mode,
            wants_reminders=self.wants_reminders,
        )


@router.get("", response_model=SessionSnapshot)
async def get_session_endpoint(
    controller: SessionController = Depends(get_controller),
) -> SessionSnapshot:
    return controller.snapshot()


@router.post("/login", response_model=SessionSnapshot)
async def login_endpoint(
    payload: LoginPayload,
    controller: SessionController = Depends(get_controller),
) -> SessionSnapshot:
    try:
        await controller.login(payload.email.strip(), payload.password)
    except AuthError as exc:
        logger.info("login rejected", extra={"error": exc.code.value})
        raise http_error(exc) from exc
    return controller.snapshot()


@router.post("/logout", response_model=SessionSnapshot)
async def logout_endpoint(
    controller: SessionController = Depends(get_controller),
) -> SessionSnapshot:
    await controller.logout()
    return controller.snapshot()


@router.post("/onboarding", response_model=SessionSnapshot)
async def onboarding_endpoint(
    payload: OnboardingPayload,
    controller: SessionController = Depends(get_controller),
) -> SessionSnapshot:
    form = payload.to_form()
    try:
        form.validate_all(date.today())
        await controller.complete_onboarding(
            form.profile,
            form.password,
            form.storage_mode,
            form.wants_reminders,
        )
    except (ValidationError, AuthError, StorageError) as exc:
        raise http_error(exc) from exc
    return controller.snapshot()


@router.delete("/account", response_model=SessionSnapshot)
async def delete_account_endpoint(
    controller: SessionController = Depends(get_controller),
) -> SessionSnapshot:
    try:
        await controller.delete_account()
    except (AuthError, StorageError) as exc:
        logger.warning("account deletion halted", extra={"error": str(exc)})
        raise http_error(exc) from exc
    return controller.snapshot()
