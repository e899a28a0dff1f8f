"""Contribution ledger and amount policy."""

from presale.ledger.amounts import (
    MINIMUM_CONTRIBUTION,
    coerce_amount_input,
    finalize_amount,
)
from presale.ledger.submission_ledger import (
    HANDLE_FIELD,
    MIN_PROOF_LENGTH,
    SUBMISSIONS_COLLECTION,
    SubmissionLedger,
)

__all__ = [
    "MINIMUM_CONTRIBUTION",
    "coerce_amount_input",
    "finalize_amount",
    "HANDLE_FIELD",
    "MIN_PROOF_LENGTH",
    "SUBMISSIONS_COLLECTION",
    "SubmissionLedger",
]
