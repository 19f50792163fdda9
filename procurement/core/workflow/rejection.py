from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RejectionCategory:
    """One supplier rejection reason with its allowed subcategories."""

    code: str
    label: str
    priority: str
    """Triage priority shown to buyers: critical, high, medium, low or variable."""

    subcategories: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RetryAssessment:
    is_retryable: bool
    recommendation: str
    confidence: float
    """Rough likelihood (0-1) that a retry with adjusted terms succeeds."""


REJECTION_CATEGORIES: dict[str, RejectionCategory] = {
    category.code: category
    for category in (
        RejectionCategory(
            code="price_too_high",
            label="Price too high",
            priority="high",
            subcategories={
                "market_rates_higher": "Market rates are higher",
                "material_costs_increased": "Material costs have increased",
                "labor_costs_high": "Labor costs are too high",
                "overhead_costs": "Overhead costs not covered",
                "insufficient_profit_margin": "Insufficient profit margin",
                "currency_fluctuation": "Currency fluctuation",
            },
        ),
        RejectionCategory(
            code="unavailable",
            label="Material unavailable",
            priority="critical",
            subcategories={
                "out_of_stock": "Out of stock",
                "material_discontinued": "Material discontinued",
                "seasonal_unavailable": "Seasonally unavailable",
                "supplier_shortage": "Supplier shortage",
                "manufacturing_delay": "Manufacturing delay",
                "shipping_constraints": "Shipping constraints",
            },
        ),
        RejectionCategory(
            code="timeline",
            label="Timeline issues",
            priority="medium",
            subcategories={
                "delivery_date_too_soon": "Delivery date too soon",
                "insufficient_production_time": "Insufficient production time",
                "logistics_delay": "Logistics delay",
                "weather_related_delays": "Weather related delays",
                "current_workload_too_high": "Current workload too high",
                "staff_shortage": "Staff shortage",
            },
        ),
        RejectionCategory(
            code="specifications",
            label="Specification issues",
            priority="high",
            subcategories={
                "cannot_meet_quality_standards": "Cannot meet quality standards",
                "technical_specifications_unmet": "Technical specifications cannot be met",
                "material_grade_unavailable": "Material grade unavailable",
                "custom_requirements_impossible": "Custom requirements not possible",
                "certification_requirements": "Certification requirements not met",
                "testing_requirements": "Testing requirements not met",
            },
        ),
        RejectionCategory(
            code="quantity",
            label="Quantity issues",
            priority="medium",
            subcategories={
                "below_minimum_order_quantity": "Below minimum order quantity",
                "exceeds_production_capacity": "Exceeds production capacity",
                "batch_size_constraints": "Batch size constraints",
                "storage_limitations": "Storage limitations",
                "can_only_partial_fulfill": "Can only partially fulfil",
            },
        ),
        RejectionCategory(
            code="business_policy",
            label="Business policy",
            priority="low",
            subcategories={
                "unacceptable_payment_terms": "Unacceptable payment terms",
                "contract_terms_unacceptable": "Contract terms unacceptable",
                "insurance_requirements": "Insurance requirements",
                "licensing_restrictions": "Licensing restrictions",
                "geographic_service_limits": "Outside service area",
                "client_specific_restrictions": "Client specific restrictions",
            },
        ),
        RejectionCategory(
            code="external_factors",
            label="External factors",
            priority="variable",
            subcategories={
                "regulatory_changes": "Regulatory changes",
                "market_volatility": "Market volatility",
                "force_majeure": "Force majeure",
                "transportation_issues": "Transportation issues",
                "supply_chain_disruption": "Supply chain disruption",
                "economic_conditions": "Economic conditions",
            },
        ),
        RejectionCategory(
            code="other",
            label="Other",
            priority="low",
            subcategories={
                "custom_reason": "Custom reason",
                "not_specified": "Not specified",
                "supplier_preference": "Supplier preference",
                "business_relationship_issues": "Business relationship issues",
            },
        ),
    )
}

_RETRY_RULES: dict[str, RetryAssessment] = {
    "price_too_high": RetryAssessment(True, "Consider price negotiation or alternative specifications", 0.7),
    "unavailable": RetryAssessment(False, "Find alternative supplier or material", 0.9),
    "timeline": RetryAssessment(True, "Adjust delivery date or split order", 0.6),
    "specifications": RetryAssessment(True, "Review specifications or find specialized supplier", 0.5),
    "quantity": RetryAssessment(True, "Adjust quantity or split into multiple orders", 0.8),
    "business_policy": RetryAssessment(False, "Respect supplier policies or find alternative", 0.8),
    "external_factors": RetryAssessment(True, "Monitor conditions and retry when resolved", 0.4),
    "other": RetryAssessment(True, "Contact supplier for clarification", 0.3),
}

MANUAL_REVIEW = RetryAssessment(False, "Manual review required", 0.0)


def is_valid_reason(reason: str | None, subcategory: str | None = None) -> bool:
    if reason is None:
        return subcategory is None
    category = REJECTION_CATEGORIES.get(reason)
    if category is None:
        return False
    return subcategory is None or subcategory in category.subcategories


def assess_retryability(reason: str | None, subcategory: str | None = None) -> RetryAssessment:
    """Pure lookup of whether a rejection can be resolved by retrying with adjusted terms."""
    if reason is None:
        return MANUAL_REVIEW
    return _RETRY_RULES.get(reason, MANUAL_REVIEW)


def format_rejection_reason(reason: str | None, subcategory: str | None = None) -> str:
    if reason is None:
        return "Not specified"
    category = REJECTION_CATEGORIES.get(reason)
    if category is None:
        return reason
    if subcategory and subcategory in category.subcategories:
        return f"{category.label}: {category.subcategories[subcategory]}"
    return category.label


def taxonomy() -> list[dict]:
    """Serializable view of the taxonomy for supplier-facing forms."""
    result = []
    for category in REJECTION_CATEGORIES.values():
        assessment = assess_retryability(category.code)
        result.append(
            {
                "code": category.code,
                "label": category.label,
                "priority": category.priority,
                "is_retryable": assessment.is_retryable,
                "recommendation": assessment.recommendation,
                "subcategories": [
                    {"code": code, "label": label} for code, label in category.subcategories.items()
                ],
            }
        )
    return result
