"""
EligibilityService: insurance eligibility checks for Medicaid, Medicare
and managed care (MCO) plans.

Without AVAILITY_API_KEY the service answers with deterministic sandbox
results so intake can be exercised end to end.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import requests

from isynera.config import config
from isynera.errors import ValidationError, ISyneraError

logger = logging.getLogger("isynera.eligibility")

INSURANCE_TYPES = ("medicaid", "medicare", "mco")

SANDBOX_RESULTS = {
    "medicaid": {
        "is_eligible": True,
        "insurance_type": "medicaid",
        "coverage": {"type": "full", "home_health_covered": True},
        "copay": 0,
        "deductible": 0,
        "provider": "State Medicaid",
        "status": "active",
    },
    "medicare": {
        "is_eligible": True,
        "insurance_type": "medicare",
        "coverage": {"part_a": True, "part_b": True, "home_health_covered": True},
        "copay": 20,
        "deductible": 240,
        "provider": "Medicare",
        "status": "active",
    },
    "mco": {
        "is_eligible": True,
        "insurance_type": "mco",
        "coverage": {"type": "managed_care", "home_health_covered": True},
        "copay": 15,
        "deductible": 500,
        "provider": "Managed Care Organization",
        "status": "active",
    },
}


def subscriber_name(patient_info: Dict[str, Any]) -> Tuple[str, str]:
    """First and last name, split from patient_name when not given separately."""
    first = (patient_info.get("first_name") or "").strip()
    last = (patient_info.get("last_name") or "").strip()
    if not (first and last):
        parts = (patient_info.get("patient_name") or "").split()
        if parts:
            first = first or parts[0]
            last = last or (" ".join(parts[1:]) if len(parts) > 1 else "")
    return first or "Unknown", last or "Unknown"


class EligibilityService:

    def __init__(self, api_key: Optional[str] = None, http: Optional[requests.Session] = None):
        self.api_key = api_key if api_key is not None else config.AVAILITY_API_KEY
        self.http = http or requests.Session()

    @property
    def sandbox(self) -> bool:
        return not self.api_key

    def verify_eligibility(self, patient_info: Dict[str, Any], insurance_type: str) -> Dict[str, Any]:
        insurance_type = (insurance_type or "").lower()
        if insurance_type not in INSURANCE_TYPES:
            raise ValidationError(f"Unsupported insurance type: {insurance_type}")

        if self.sandbox:
            logger.info("Eligibility sandbox result for %s", insurance_type)
            return {**SANDBOX_RESULTS[insurance_type], "coverage": dict(SANDBOX_RESULTS[insurance_type]["coverage"]), "sandbox": True}

        return self._query_clearinghouse(patient_info, insurance_type)

    def _query_clearinghouse(self, patient_info: Dict[str, Any], insurance_type: str) -> Dict[str, Any]:
        insurance = patient_info.get("insurance_info") or {}
        first_name, last_name = subscriber_name(patient_info)
        body = {
            "payerType": insurance_type,
            "subscriber": {
                "firstName": first_name,
                "lastName": last_name,
                "dateOfBirth": patient_info.get("date_of_birth"),
                "memberId": insurance.get("member_id") or insurance.get("policy_number"),
            },
            "serviceType": "home_health",
        }
        try:
            response = self.http.post(
                f"{config.AVAILITY_API_URL.rstrip('/')}/coverages",
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=config.ELIGIBILITY_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Eligibility verification failed for %s: %s", insurance_type, e)
            raise ISyneraError(f"Eligibility verification failed: {e}", status_code=502) from e

        return self.parse_clearinghouse_response(data, insurance_type)

    @staticmethod
    def parse_clearinghouse_response(data: Dict[str, Any], insurance_type: str) -> Dict[str, Any]:
        coverage = (data.get("coverages") or [{}])[0]
        status = (coverage.get("status") or "inactive").lower()
        return {
            "is_eligible": status == "active",
            "insurance_type": insurance_type,
            "coverage": coverage.get("plans") or {},
            "effective_date": coverage.get("effectiveDate"),
            "expiration_date": coverage.get("expirationDate"),
            "copay": coverage.get("copay"),
            "deductible": coverage.get("deductible"),
            "provider": coverage.get("payerName") or "Unknown",
            "status": status,
            "sandbox": False,
        }
