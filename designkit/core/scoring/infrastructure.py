"""Technical infrastructure scoring.

Each category lists its options from the strongest setup to the weakest.
Computing and connectivity weigh more, and an "unknown" answer there is
scored more cautiously than for storage or deployment.
"""

from dataclasses import dataclass

from designkit.core.scoring.types import ScoreResult
from designkit.core.scoring.weighted import ScoreInput, compute_weighted_score, ordinal_normalizer


@dataclass(frozen=True)
class InfrastructureCategory:
    id: str
    label: str
    weight: float
    unknown_value: float
    options: list[str]


INFRASTRUCTURE_CATEGORIES: list[InfrastructureCategory] = [
    InfrastructureCategory(
        id="computing_resources",
        label="Computing Resources",
        weight=3.0,
        unknown_value=0.4,
        options=[
            "cloud_platforms",
            "organizational_computers",
            "partner_shared",
            "community_shared",
            "mobile_devices",
            "basic_hardware",
            "no_computing",
        ],
    ),
    InfrastructureCategory(
        id="storage_data",
        label="Data Storage & Management",
        weight=2.0,
        unknown_value=0.7,
        options=[
            "secure_cloud",
            "organizational_servers",
            "partner_systems",
            "government_systems",
            "basic_digital",
            "local_storage",
            "paper_based",
        ],
    ),
    InfrastructureCategory(
        id="internet_connectivity",
        label="Internet Connectivity",
        weight=3.0,
        unknown_value=0.4,
        options=[
            "stable_broadband",
            "satellite_internet",
            "intermittent_connection",
            "mobile_data_primary",
            "shared_community",
            "limited_connectivity",
            "no_internet",
        ],
    ),
    InfrastructureCategory(
        id="deployment_environment",
        label="Deployment Environment",
        weight=2.0,
        unknown_value=0.7,
        options=[
            "cloud_deployment",
            "hybrid_approach",
            "organizational_infrastructure",
            "partner_infrastructure",
            "field_mobile",
            "offline_systems",
            "no_deployment",
        ],
    ),
]

CATEGORIES_BY_ID: dict[str, InfrastructureCategory] = {c.id: c for c in INFRASTRUCTURE_CATEGORIES}


def is_valid_answer(category_id: str, option: str) -> bool:
    category = CATEGORIES_BY_ID.get(category_id)
    return category is not None and (option == "unknown" or option in category.options)


def score_infrastructure(answers: dict[str, str]) -> ScoreResult:
    """Score the technical infrastructure answers. Unanswered categories are left out."""
    inputs = [
        ScoreInput(
            id=category.id,
            weight=category.weight,
            normalize=ordinal_normalizer(category.options, best_first=True, unknown=category.unknown_value),
        )
        for category in INFRASTRUCTURE_CATEGORIES
    ]
    return compute_weighted_score(inputs, answers)
