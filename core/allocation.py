"""
Pay term allocation.

Splits an estimate total into installments. Percentage policies round each
term half-up to the cent and then give the last term whatever is left, so
the terms always add back up to the estimate total exactly.
"""

from decimal import Decimal

from core import money
from core.models.pay_term import (
    CustomTerms,
    FullOnAcceptance,
    PayTermDraft,
    PayTermKind,
    SplitOnPermit,
)


def allocate(total_cents: int, policy: FullOnAcceptance | SplitOnPermit | CustomTerms) -> list[PayTermDraft]:
    """
    Derive pay terms for an estimate total.

    Args:
        total_cents: Estimate total in cents
        policy: Allocation policy

    Returns:
        Term drafts in due order

    Raises:
        ValueError: If total is negative
        TypeError: If policy is not a known allocation policy
    """
    if total_cents < 0:
        raise ValueError(f"Cannot allocate a negative total ({total_cents} cents)")

    if isinstance(policy, FullOnAcceptance):
        return _split(total_cents, [
            (Decimal(100), "Due now", "Due Now", "100% of estimate total due now"),
        ])

    if isinstance(policy, SplitOnPermit):
        return _split(total_cents, [
            (
                policy.first_pct,
                "Due now",
                "Due Now",
                f"{policy.first_pct.normalize():f}% of estimate total due now",
            ),
            (
                policy.second_pct,
                "Due prior to permit submittal",
                "Permit Submittal",
                f"{policy.second_pct.normalize():f}% of estimate total (remaining balance) "
                "due prior to permit submittal or submittal to engineer",
            ),
        ])

    if isinstance(policy, CustomTerms):
        return [
            PayTermDraft(
                kind=PayTermKind.FIXED_AMOUNT,
                label=term.label,
                percentage=None,
                amount_cents=term.amount_cents,
                due_trigger=term.due_trigger,
                description=term.description or term.label,
            )
            for term in policy.terms
        ]

    raise TypeError(f"Unknown allocation policy: {type(policy).__name__}")


def _split(total_cents: int, shares: list[tuple[Decimal, str, str, str]]) -> list[PayTermDraft]:
    drafts = []
    allocated = 0
    last = len(shares) - 1

    for index, (pct, label, trigger, description) in enumerate(shares):
        if index == last:
            amount = money.subtract(total_cents, allocated)
        else:
            amount = money.percentage_of(total_cents, pct)
            allocated = money.add(allocated, amount)

        drafts.append(PayTermDraft(
            kind=PayTermKind.PERCENTAGE,
            label=label,
            percentage=pct,
            amount_cents=amount,
            due_trigger=trigger,
            description=description,
        ))

    return drafts
