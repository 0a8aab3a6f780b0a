import unittest
from datetime import date

from mamacare.config import CONFIG
from mamacare.migration import LegacyUserRecord
from mamacare.schemas import EmergencyContact, MoodType, UserProfile, UserType


class ProfileHelperTests(unittest.TestCase):
    def test_reference_date_follows_user_type(self):
        profile = UserProfile(
            user_type=UserType.PREGNANT,
            expected_delivery_date=date(2024, 9, 1),
            birth_date=date(2024, 1, 1),
        )
        self.assertEqual(profile.reference_date, date(2024, 9, 1))
        self.assertFalse(profile.needs_onboarding)

        child = profile.model_copy(update={"user_type": UserType.HAS_CHILD})
        self.assertEqual(child.reference_date, date(2024, 1, 1))

        self.assertIsNone(UserProfile().reference_date)
        self.assertTrue(UserProfile().needs_onboarding)

    def test_pregnancy_week(self):
        profile = UserProfile(user_type=UserType.PREGNANT, expected_delivery_date=date(2024, 9, 1))
        self.assertEqual(profile.pregnancy_week(date(2024, 9, 1)), 40)
        self.assertEqual(profile.pregnancy_week(date(2024, 8, 25)), 39)
        # six days out still counts as zero whole weeks remaining
        self.assertEqual(profile.pregnancy_week(date(2024, 8, 26)), 40)
        self.assertEqual(profile.pregnancy_week(date(2023, 1, 1)), 0)
        self.assertAlmostEqual(profile.pregnancy_progress(date(2024, 6, 9)), 28 / 40)
        self.assertEqual(UserProfile().pregnancy_week(date(2024, 1, 1)), 0)

    def test_days_postpartum(self):
        profile = UserProfile(user_type=UserType.HAS_CHILD, birth_date=date(2024, 1, 1))
        self.assertEqual(profile.days_postpartum(date(2024, 1, 31)), 30)
        self.assertEqual(profile.days_postpartum(date(2023, 12, 1)), 0)
        pregnant = UserProfile(user_type=UserType.PREGNANT, expected_delivery_date=date(2024, 9, 1))
        self.assertIsNone(pregnant.days_postpartum(date(2024, 1, 31)))

    def test_emergency_contact_and_mood_helpers(self):
        self.assertTrue(EmergencyContact(name="Grace", email="g@example.com").has_contact_info)
        self.assertFalse(EmergencyContact(name="Grace").has_contact_info)
        self.assertEqual(
            [mood.chart_value for mood in MoodType],
            [3, 2, 1],
        )

    def test_default_country_comes_from_config(self):
        self.assertEqual(UserProfile().country, CONFIG.default_country)
        self.assertEqual(LegacyUserRecord().to_profile().country, CONFIG.default_country)


if __name__ == "__main__":
    unittest.main()
