"""Onboarding form validation."""
from __future__ import annotations

from datetime import date
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field

from .auth import MIN_PASSWORD_LENGTH
from .errors import ValidationError
from .schemas import StorageMode, UserProfile, UserType

MAX_PREGNANCY_MONTHS_AHEAD = 9
MAX_CHILD_AGE_YEARS = 5


class OnboardingForm(BaseModel):
    profile: UserProfile
    password: str = ""
    confirm_password: str = ""
    accepted_terms: bool = False
    accepted_privacy: bool = False
    storage_mode: Optional[StorageMode] = None
    wants_reminders: bool = Field(default=True)

    def valid_date_range(self, today: date) -> Tuple[date, date]:
        if self.profile.user_type == UserType.PREGNANT:
            return today, today + relativedelta(months=MAX_PREGNANCY_MONTHS_AHEAD)
        if self.profile.user_type == UserType.HAS_CHILD:
            return today - relativedelta(years=MAX_CHILD_AGE_YEARS), today
        return today, today

    def validate_personal_info(self) -> None:
        if not self.profile.first_name.strip() or not self.profile.last_name.strip():
            raise ValidationError("personal_info", "First and last name are required.")

    def validate_account_info(self) -> None:
        validate_credentials(self.profile.email, self.password, self.confirm_password)

    def validate_consent(self) -> None:
        if not (self.accepted_terms and self.accepted_privacy):
            raise ValidationError("consent", "Terms and privacy policy must be accepted.")
        if self.storage_mode is None:
            raise ValidationError("consent", "Choose where your data is stored.")

    def validate_dates(self, today: date) -> None:
        reference = self.profile.reference_date
        if reference is None:
            raise ValidationError("dates", "A due date or birth date is required.")
        start, end = self.valid_date_range(today)
        if not start <= reference <= end:
            raise ValidationError(
                "dates", f"Date must be between {start.isoformat()} and {end.isoformat()}."
            )

    def validate_all(self, today: date) -> None:
        self.validate_personal_info()
        self.validate_account_info()
        self.validate_dates(today)
        self.validate_consent()


def validate_credentials(email: str, password: str, confirm_password: Optional[str] = None) -> None:
    if not email.strip():
        raise ValidationError("account_info", "Email is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "account_info", f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
        )
    if confirm_password is not None and password != confirm_password:
        raise ValidationError("account_info", "Passwords do not match.")
