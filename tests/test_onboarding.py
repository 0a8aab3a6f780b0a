import unittest
from datetime import date

from mamacare.errors import ValidationError
from mamacare.onboarding import OnboardingForm, validate_credentials
from mamacare.schemas import StorageMode, UserProfile, UserType

TODAY = date(2024, 3, 10)


def _form(**overrides) -> OnboardingForm:
    profile_fields = {
        "first_name": "Ada",
        "last_name": "Okafor",
        "email": "ada@example.com",
        "user_type": UserType.PREGNANT,
        "expected_delivery_date": date(2024, 9, 1),
    }
    profile_fields.update(overrides.pop("profile", {}))
    fields = {
        "profile": UserProfile(**profile_fields),
        "password": "secret1",
        "confirm_password": "secret1",
        "accepted_terms": True,
        "accepted_privacy": True,
        "storage_mode": StorageMode.DEVICE_ONLY,
    }
    fields.update(overrides)
    return OnboardingForm(**fields)


class OnboardingValidationTests(unittest.TestCase):
    def assertFailsAt(self, form: OnboardingForm, step: str) -> None:
        with self.assertRaises(ValidationError) as ctx:
            form.validate_all(TODAY)
        self.assertEqual(ctx.exception.step, step)

    def test_complete_form_passes(self):
        _form().validate_all(TODAY)

    def test_names_required(self):
        self.assertFailsAt(_form(profile={"first_name": "  "}), "personal_info")

    def test_password_rules(self):
        self.assertFailsAt(_form(password="12345", confirm_password="12345"), "account_info")
        self.assertFailsAt(_form(confirm_password="secret2"), "account_info")

    def test_due_date_window(self):
        _form(profile={"expected_delivery_date": date(2024, 12, 10)}).validate_all(TODAY)
        self.assertFailsAt(_form(profile={"expected_delivery_date": date(2024, 12, 11)}), "dates")
        self.assertFailsAt(_form(profile={"expected_delivery_date": date(2024, 3, 9)}), "dates")

    def test_birth_date_window(self):
        child = {"user_type": UserType.HAS_CHILD, "expected_delivery_date": None}
        _form(profile={**child, "birth_date": date(2019, 3, 10)}).validate_all(TODAY)
        self.assertFailsAt(_form(profile={**child, "birth_date": date(2019, 3, 9)}), "dates")
        self.assertFailsAt(_form(profile={**child, "birth_date": date(2024, 3, 11)}), "dates")
        self.assertFailsAt(_form(profile=child), "dates")

    def test_consent_and_storage_choice(self):
        self.assertFailsAt(_form(accepted_privacy=False), "consent")
        self.assertFailsAt(_form(storage_mode=None), "consent")

    def test_validate_credentials_without_confirmation(self):
        validate_credentials("ada@example.com", "secret1")
        with self.assertRaises(ValidationError):
            validate_credentials(" ", "secret1")


if __name__ == "__main__":
    unittest.main()
