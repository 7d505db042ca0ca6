from types import SimpleNamespace

from migration.dump.records import Buyer, Stylist
from migration.pipeline.user_validation import (
    SEVERITY_ERROR,
    check_profiles,
    check_source_user,
    is_valid_email,
    is_valid_phone,
    is_valid_timestamp,
    is_valid_uuid,
    normalise_facebook_url,
    normalise_instagram_url,
    summarise,
)

VALID_ID = "3f2b8c1e-4d5a-4b6c-8d7e-9f0a1b2c3d4e"


def _profile(legacy_id: str, email: str, role: str, **overrides):
    fields = {
        "legacy_id": legacy_id,
        "email": email,
        "role": role,
        "created_at": "2024-01-01T10:00:00.000+00:00",
        "updated_at": "2024-01-02T10:00:00.000+00:00",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_format_checks():
    assert is_valid_uuid(VALID_ID)
    assert not is_valid_uuid("b-1")
    assert is_valid_email("kari@example.no")
    assert not is_valid_email("kari at example.no")
    assert not is_valid_email("kari@localhost")
    assert is_valid_phone("+47 999 99 999")
    assert not is_valid_phone("call me")
    assert is_valid_timestamp("2024-02-01 08:00:00")
    assert not is_valid_timestamp("0000-00-00 00:00:00")
    assert not is_valid_timestamp("1970-01-01 00:00:00")


def test_social_urls_normalise_handles_and_links():
    assert normalise_instagram_url("@stine.hair") == "https://www.instagram.com/stine.hair/"
    assert normalise_instagram_url("instagram.com/stine.hair?hl=no") == "https://www.instagram.com/stine.hair/"
    assert normalise_facebook_url("https://fb.com/stinehair") == "https://www.facebook.com/stinehair/"


def test_clean_buyer_row_has_no_issues():
    buyer = Buyer.from_row({"id": VALID_ID, "email": "kari@example.no", "phone_number": "+4799999999"})

    assert check_source_user(buyer, "buyer") == []


def test_malformed_email_is_the_only_error():
    buyer = Buyer.from_row(
        {"id": "b-1", "email": "not-an-email", "phone_number": "abc", "created_at": "0000-00-00 00:00:00"}
    )

    issues = check_source_user(buyer, "buyer")

    assert [issue.field for issue in issues] == ["id", "email", "phone_number", "created_at"]
    assert [issue.field for issue in issues if issue.severity == SEVERITY_ERROR] == ["email"]


def test_stylist_specific_checks():
    stylist = Stylist.from_row(
        {
            "id": VALID_ID,
            "email": "stine@example.no",
            "travel_distance": "5000",
            "instagram_profile": "stine hair",
            "facebook_profile": "stinehair",
        }
    )

    issues = check_source_user(stylist, "stylist")

    assert [issue.field for issue in issues] == ["travel_distance", "instagram_profile"]


def test_profile_consistency_checks():
    profiles = [
        _profile("s-1", "stine@example.no", "stylist"),
        _profile("b-1", "Stine@Example.no", "customer"),
        _profile("b-2", "kari@example.no", "admin", created_at="2024-01-01 10:00:00"),
        _profile("s-2", "dup@example.no", "stylist"),
    ]

    issues = check_profiles(profiles, stylist_detail_ids={"s-1"})

    assert [(issue.legacy_id, issue.field) for issue in issues] == [
        ("b-1", "email"),
        ("b-2", "role"),
        ("b-2", "created_at"),
        ("s-2", "stylist_details"),
    ]
    assert summarise(issues) == {"profiles": 4}
