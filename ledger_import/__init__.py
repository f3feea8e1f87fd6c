"""Public interface for the ``ledger_import`` package.

This module exposes the package's API functions, collaborator protocols and
public models as the stable import surface. There is no runtime logic here,
only symbol re-exports.
"""

from .api import confirm_reconciliation, import_file, reconcile
from .categorize import CategoryLearner, CategorySuggestion
from .config import ImportOptions
from .errors import (
    AmountError,
    DateError,
    ImportPipelineError,
    InvalidStatementBalance,
    MappingError,
    NormalizationWarning,
    ParseError,
    ProfileNotFoundError,
    ReconciliationError,
    ReconciliationStateError,
)
from .ledger import InMemoryLedger, Ledger
from .models import (
    AdjustmentTransaction,
    BankCatalogEntry,
    CandidateTransaction,
    DuplicateMatch,
    FailedRow,
    FieldSelector,
    ImportProfile,
    ImportResult,
    ImportStatistics,
    LedgerTransaction,
    RawRecord,
    ReconciliationSnapshot,
    SignConvention,
    SourceFormat,
    TransactionType,
)
from .profiles import BankCatalog, InMemoryProfileStore, ProfileStore, infer_profile
from .reconciliation import ReconciliationSession, ReconciliationState
from .rules import ImportRule, RuleAction, RuleCondition

__all__ = [
    # API
    "confirm_reconciliation",
    "import_file",
    "reconcile",
    # Collaborators
    "BankCatalog",
    "CategoryLearner",
    "InMemoryLedger",
    "InMemoryProfileStore",
    "Ledger",
    "ProfileStore",
    "ReconciliationSession",
    "ReconciliationState",
    "infer_profile",
    # Configuration and rules
    "ImportOptions",
    "ImportRule",
    "RuleAction",
    "RuleCondition",
    # Models / types
    "AdjustmentTransaction",
    "BankCatalogEntry",
    "CandidateTransaction",
    "CategorySuggestion",
    "DuplicateMatch",
    "FailedRow",
    "FieldSelector",
    "ImportProfile",
    "ImportResult",
    "ImportStatistics",
    "LedgerTransaction",
    "RawRecord",
    "ReconciliationSnapshot",
    "SignConvention",
    "SourceFormat",
    "TransactionType",
    # Errors
    "AmountError",
    "DateError",
    "ImportPipelineError",
    "InvalidStatementBalance",
    "MappingError",
    "NormalizationWarning",
    "ParseError",
    "ProfileNotFoundError",
    "ReconciliationError",
    "ReconciliationStateError",
]
