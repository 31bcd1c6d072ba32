"""
agent_pulse/services/trust_checks.py
Trust-layer checks: business identity, return terms and the combined
HTTPS + return-policy signal.
"""
import logging
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from ..models import Check, CheckStatus, ExtractedSchema, ValidationResult
from ..rubric import CHECKS, build_check, fraction
from .schema_extract import find_organization_schema, find_return_policy_schema
from .schema_validate import validate_organization_schema, validate_return_policy_schema

logger = logging.getLogger(__name__)


def check_organization(
    schemas: List[ExtractedSchema],
    from_homepage: bool = False,
    log: Optional[logging.Logger] = None,
) -> Tuple[Check, ValidationResult]:
    """R1: Organization (or Store / LocalBusiness) identity."""
    log = log or logger
    max_score = CHECKS["R1"].max_score
    org = find_organization_schema(schemas)
    validation = validate_organization_schema(org)

    if not validation.found:
        status, score = CheckStatus.FAIL, 0
        details = "No Organization schema, agents can't verify your business identity"
    elif validation.valid and len(validation.warnings) <= 1:
        status, score = CheckStatus.PASS, max_score
        details = f'Complete Organization schema for "{org.get("name")}"'
    elif validation.valid:
        status, score = CheckStatus.PASS, fraction(max_score, 0.8)
        details = f"Organization schema found. Missing: {', '.join(validation.warnings[:2])}"
    else:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.5)
        details = f"Incomplete Organization schema. Missing: {', '.join(validation.missing_fields)}"

    if validation.found and from_homepage:
        details += " (found on homepage)"

    log.info(f"[R1] organization found={validation.found} homepage={from_homepage}, score {score}/{max_score}")
    check = build_check("R1", status, score, details, {
        "found": validation.found,
        "name": org.get("name") if org else None,
        "type": org.get("@type") if org else None,
        "has_contact": bool(org and (org.get("contactPoint") or org.get("telephone") or org.get("email"))),
        "warnings": validation.warnings,
        "source": "homepage" if from_homepage else "page",
    })
    return check, validation


def check_return_policy(schemas: List[ExtractedSchema]) -> Tuple[Check, ValidationResult]:
    max_score = CHECKS["R2"].max_score
    policy = find_return_policy_schema(schemas)
    validation = validate_return_policy_schema(policy)
    days = policy.get("merchantReturnDays") if policy else None

    if not validation.found:
        status, score = CheckStatus.FAIL, 0
        details = "No MerchantReturnPolicy schema, agents can't verify return terms"
    elif not validation.warnings:
        status, score = CheckStatus.PASS, max_score
        details = f"Complete return policy ({days} days)" if days else "Complete return policy schema"
    elif len(validation.warnings) <= 2:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.6)
        details = f"Return policy found but incomplete: {validation.warnings[0]}"
    else:
        status, score = CheckStatus.PARTIAL, fraction(max_score, 0.4)
        details = "Return policy schema has multiple missing fields"

    check = build_check("R2", status, score, details, {
        "found": validation.found,
        "return_days": days,
        "return_method": policy.get("returnMethod") if policy else None,
        "warnings": validation.warnings,
    })
    return check, validation


def check_trust_signals(url: str, schemas: List[ExtractedSchema]) -> Check:
    """R3: HTTPS (3) plus a machine-readable return policy (up to 4)."""
    max_score = CHECKS["R3"].max_score
    is_https = urlparse(url).scheme.lower() == "https"
    https_score = 3 if is_https else 0

    policy = find_return_policy_schema(schemas)
    validation = validate_return_policy_schema(policy)
    days = policy.get("merchantReturnDays") if policy else None

    if not validation.found:
        policy_score, policy_detail = 0, "no return policy schema"
    elif not validation.warnings:
        policy_score = 4
        policy_detail = f"complete return policy ({days} days)" if days else "complete return policy"
    elif len(validation.warnings) <= 2:
        policy_score, policy_detail = 2, f"return policy incomplete: {validation.warnings[0]}"
    else:
        policy_score, policy_detail = 1, "return policy has multiple missing fields"

    score = https_score + policy_score
    if score == max_score:
        status = CheckStatus.PASS
        details = f"HTTPS enabled + {policy_detail}"
    elif score > 0:
        status = CheckStatus.PARTIAL
        details = f"{'HTTPS enabled' if is_https else 'no HTTPS'}, {policy_detail}"
    else:
        status = CheckStatus.FAIL
        details = "No HTTPS and no return policy, agents won't trust this site"

    return build_check("R3", status, score, details, {
        "is_https": is_https,
        "https_score": https_score,
        "return_policy_found": validation.found,
        "return_policy_score": policy_score,
        "return_days": days,
        "applicable_country": policy.get("applicableCountry") if policy else None,
        "warnings": validation.warnings,
    })
