"""Tests for mapping extraction service fields and merging them into drafts."""

from datetime import date

import pytest

from app.schemas.policy import ExtractedField, ExtractionResult, PolicyCategory, PolicyDraft
from app.services.extraction.result_mapper import (
    map_service_fields,
    merge_into_draft,
    parse_number,
)

DATE_FORMAT = "%Y-%m-%d"


def map_fields(raw):
    return map_service_fields(raw, DATE_FORMAT, 364)


class TestMapServiceFields:
    """Coercion of raw service values."""

    def test_text_fields_follow_entry_conventions(self, service_fields):
        result = map_fields(service_fields)

        assert result.value("policy_number") == "POL-2002"
        assert result.value("client_name") == "Ravi Kumar"
        assert result.value("vehicle_number") == "MH02CD5678"
        assert result.value("contact_number") == "9876543210"
        assert result.value("insurer_name") == "ICICI Lombard"
        assert result.fields["insurer_name"].best_effort is True

    def test_numbers_and_dates_are_parsed(self, service_fields):
        result = map_fields(service_fields)

        assert result.value("net_premium") == "8450"
        assert result.value("category") is PolicyCategory.VEHICLE
        assert result.value("active_date") == date(2025, 3, 1)

    def test_missing_expiry_falls_back_to_default_term(self, service_fields):
        result = map_fields(service_fields)

        assert result.value("expiry_date") == date(2026, 2, 28)
        assert result.fields["expiry_date"].best_effort is True

    def test_expiry_before_active_is_replaced(self):
        result = map_fields({"activeDate": "2025-03-01", "expiryDate": "2024-03-01"})

        assert result.value("expiry_date") == date(2026, 2, 28)

    def test_expiry_without_active_is_dropped(self):
        result = map_fields({"policyNumber": "P-1", "expiryDate": "2025-12-31"})

        assert "expiry_date" not in result.fields

    def test_snake_case_store_keys_are_accepted(self):
        result = map_fields(
            {
                "policy_number": "abc-1",
                "company_name": "Tata AIG General Insurance",
                "policy_active_date": "2025-01-01",
                "policy_expiry_date": "2025-12-31",
                "sum_insured": 500000,
            }
        )

        assert result.value("policy_number") == "ABC-1"
        assert result.value("insurer_name") == "Tata AIG"
        assert result.value("expiry_date") == date(2025, 12, 31)
        assert result.value("sum_insured") == "500000"

    def test_unknown_category_is_dropped(self):
        result = map_fields({"insuranceType": "Pet Insurance", "policyNumber": "P-1"})

        assert "category" not in result.fields

    def test_unparseable_values_are_dropped(self):
        result = map_fields(
            {"netPremium": "N/A", "activeDate": "01/03/2025", "clientName": "1234"}
        )

        assert result.is_empty

    def test_empty_response_maps_to_empty_result(self):
        assert map_fields({}).is_empty
        assert map_fields(None).is_empty

    @pytest.mark.parametrize(
        "raw,expected",
        [("Rs. 12,345.50", 12345.5), ("0", None), (-5, None), (True, None), ("", None), (7, 7.0)],
    )
    def test_parse_number(self, raw, expected):
        assert parse_number(raw) == expected


class TestMergeIntoDraft:
    """Fill-empty-fields-only merge."""

    def test_fills_empty_fields(self, service_fields):
        merged, merged_fields = merge_into_draft(PolicyDraft(), map_fields(service_fields))

        assert merged.policy_number == "POL-2002"
        assert merged.active_date == date(2025, 3, 1)
        assert merged.expiry_date == date(2026, 2, 28)
        assert "expiry_date" in merged_fields

    def test_never_overwrites_user_values(self, service_fields):
        draft = PolicyDraft(
            policy_number="MINE-1",
            client_name="Meera Shah",
            net_premium="9000",
            category=PolicyCategory.HEALTH,
            touched_fields=["category"],
        )

        merged, merged_fields = merge_into_draft(draft, map_fields(service_fields))

        assert merged.policy_number == "MINE-1"
        assert merged.client_name == "Meera Shah"
        assert merged.net_premium == "9000"
        assert merged.category is PolicyCategory.HEALTH
        assert "policy_number" not in merged_fields
        assert merged.vehicle_number == "MH02CD5678"

    def test_default_category_can_be_replaced(self):
        result = ExtractionResult(fields={"category": ExtractedField(value=PolicyCategory.LIFE)})

        merged, _ = merge_into_draft(PolicyDraft(), result)

        assert merged.category is PolicyCategory.LIFE

    def test_blank_user_value_counts_as_empty(self, service_fields):
        merged, _ = merge_into_draft(PolicyDraft(policy_number="  "), map_fields(service_fields))

        assert merged.policy_number == "POL-2002"

    def test_user_dates_keep_their_expiry(self, service_fields):
        draft = PolicyDraft(active_date=date(2025, 4, 1), expiry_date=date(2026, 3, 31))

        merged, merged_fields = merge_into_draft(draft, map_fields(service_fields))

        assert merged.active_date == date(2025, 4, 1)
        assert merged.expiry_date == date(2026, 3, 31)
        assert "expiry_date" not in merged_fields

    def test_original_draft_is_not_mutated(self, service_fields):
        draft = PolicyDraft()

        merge_into_draft(draft, map_fields(service_fields))

        assert draft.policy_number is None
