"""
Unit tests for EligibilityService: sandbox answers and the clearinghouse
request with a mocked requests session.
"""

import pytest
import requests
from unittest.mock import MagicMock

from isynera.errors import ISyneraError, ValidationError
from isynera.services.eligibility_service import EligibilityService, subscriber_name


PATIENT = {
    "first_name": "Jane",
    "last_name": "Doe",
    "date_of_birth": "1940-01-01",
    "insurance_info": {"member_id": "1EG4-TE5-MK72"},
}


class TestSandbox:

    def test_sandbox_results_per_type(self):
        service = EligibilityService(api_key="")

        medicare = service.verify_eligibility(PATIENT, "Medicare")

        assert service.sandbox is True
        assert medicare["is_eligible"] is True
        assert medicare["deductible"] == 240
        assert medicare["sandbox"] is True
        assert service.verify_eligibility(PATIENT, "mco")["copay"] == 15

    def test_sandbox_result_is_not_shared(self):
        service = EligibilityService(api_key="")

        service.verify_eligibility(PATIENT, "medicaid")["coverage"]["type"] = "changed"

        assert service.verify_eligibility(PATIENT, "medicaid")["coverage"]["type"] == "full"

    def test_unsupported_type(self):
        with pytest.raises(ValidationError, match="Unsupported insurance type"):
            EligibilityService(api_key="").verify_eligibility(PATIENT, "tricare")


class TestClearinghouse:

    def test_active_coverage_is_eligible(self):
        http = MagicMock()
        http.post.return_value.json.return_value = {
            "coverages": [{
                "status": "Active",
                "payerName": "Medicare Part A",
                "plans": {"home_health_covered": True},
                "effectiveDate": "2026-01-01",
                "copay": 0,
            }]
        }

        result = EligibilityService(api_key="key", http=http).verify_eligibility(PATIENT, "medicare")

        assert result["is_eligible"] is True
        assert result["provider"] == "Medicare Part A"
        assert result["sandbox"] is False
        kwargs = http.post.call_args.kwargs
        assert kwargs["json"]["subscriber"]["memberId"] == "1EG4-TE5-MK72"
        assert kwargs["headers"] == {"Authorization": "Bearer key"}

    def test_missing_coverage_is_inactive(self):
        result = EligibilityService.parse_clearinghouse_response({}, "mco")

        assert result["is_eligible"] is False
        assert result["status"] == "inactive"
        assert result["provider"] == "Unknown"

    def test_http_error_becomes_502(self):
        http = MagicMock()
        http.post.return_value.raise_for_status.side_effect = requests.HTTPError("503 Server Error")

        with pytest.raises(ISyneraError) as excinfo:
            EligibilityService(api_key="key", http=http).verify_eligibility(PATIENT, "medicaid")

        assert excinfo.value.status_code == 502

    def test_subscriber_name_comes_from_patient_name(self):
        http = MagicMock()
        http.post.return_value.json.return_value = {"coverages": [{"status": "active"}]}
        patient = {
            "patient_name": "Mary Ann van Doe",
            "date_of_birth": "1950-01-01",
            "insurance_info": {"member_id": "M1"},
        }

        EligibilityService(api_key="key", http=http).verify_eligibility(patient, "medicare")

        assert http.post.call_args.kwargs["json"]["subscriber"] == {
            "firstName": "Mary",
            "lastName": "Ann van Doe",
            "dateOfBirth": "1950-01-01",
            "memberId": "M1",
        }


def test_subscriber_name_defaults():
    assert subscriber_name({"first_name": "Jane", "last_name": "Doe", "patient_name": "J D"}) == ("Jane", "Doe")
    assert subscriber_name({"patient_name": "Cher"}) == ("Cher", "Unknown")
    assert subscriber_name({}) == ("Unknown", "Unknown")
