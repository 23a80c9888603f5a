from decimal import Decimal
from typing import Dict

UNLIMITED = -1

PLAN_TYPES = ("free", "professional", "enterprise")
BILLING_CYCLES = ("monthly", "yearly")

# Per-resource caps: -1 means unlimited, 0 means the feature is blocked on the plan
PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    "free": {
        "produtos": 30,
        "receitas": 5,
        "markups": 1,
        "movimentacoes": -1,  # Stock movements are open on every plan
        "pdf_exports": 0,
    },
    "professional": {
        "produtos": 200,
        "receitas": 60,
        "markups": 3,
        "movimentacoes": -1,
        "pdf_exports": 80,  # Monthly
    },
    "enterprise": {
        "produtos": -1,
        "receitas": -1,
        "markups": -1,
        "movimentacoes": -1,
        "pdf_exports": -1,
    },
}

RESOURCE_TYPES = tuple(PLAN_LIMITS["free"].keys())

# Display prices in BRL
PLAN_PRICES: Dict[str, Dict[str, Decimal]] = {
    "free": {"monthly": Decimal("0"), "yearly": Decimal("0")},
    "professional": {"monthly": Decimal("49.90"), "yearly": Decimal("478.80")},
    "enterprise": {"monthly": Decimal("89.90"), "yearly": Decimal("838.80")},
}

PLAN_NAMES = {
    "free": "Free",
    "professional": "Profissional",
    "enterprise": "Empresarial",
}

PLAN_HIERARCHY = {"free": 0, "professional": 1, "enterprise": 2}


def normalize_plan(plan_tier: str | None) -> str:
    """Unknown or missing tiers fall back to free. Accepts the legacy 'profissional' spelling."""
    if not plan_tier:
        return "free"
    plan = plan_tier.strip().lower()
    if plan == "profissional":
        plan = "professional"
    elif plan == "empresarial":
        plan = "enterprise"
    return plan if plan in PLAN_LIMITS else "free"


def get_plan_limit(plan_tier: str, resource: str) -> int:
    """Get the cap for a specific plan and resource type."""
    return PLAN_LIMITS[normalize_plan(plan_tier)].get(resource, 0)


def get_plan_price(plan_tier: str, billing: str = "monthly") -> Decimal:
    return PLAN_PRICES[normalize_plan(plan_tier)].get(billing, PLAN_PRICES[normalize_plan(plan_tier)]["monthly"])


def has_access(current_plan: str, required_plan: str) -> bool:
    return PLAN_HIERARCHY[normalize_plan(current_plan)] >= PLAN_HIERARCHY[normalize_plan(required_plan)]
