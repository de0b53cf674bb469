"""
Sample corpora and projects for testing Trust Debt.

This module contains Intent/Reality corpora with known outcomes, used
across the test suite.
"""

from pathlib import Path

from trustdebt.models import Corpus, CorpusSource


# =============================================================================
# Minimal corpus
# =============================================================================

# Token counts (intent / reality):
#   trust 1/0, debt 1/1, measurement 1/0, calculation 0/1, function 0/2
# Five roots: A=debt, B=function, C=calculation, D=measurement, E=trust,
# with units [2, 2, 1, 1, 1].
INTENT_TEXTS = ["trust debt measurement"]
REALITY_TEXTS = ["debt calculation function function"]

EXPECTED_ROOT_KEYWORDS = {
    "A": {"debt"},
    "B": {"function"},
    "C": {"calculation"},
    "D": {"measurement"},
    "E": {"trust"},
}

EXPECTED_COUNTS = {
    "trust": (1, 0),
    "debt": (1, 1),
    "measurement": (1, 0),
    "calculation": (0, 1),
    "function": (0, 2),
}


def minimal_corpus() -> Corpus:
    """The minimal corpus as CorpusSource lists."""
    return Corpus(
        intent=[CorpusSource("intent-0", INTENT_TEXTS[0])],
        reality=[CorpusSource("reality-0", REALITY_TEXTS[0])],
    )


# =============================================================================
# A corpus with several sources per side
# =============================================================================

README_TEXT = '''
# Ledger

The ledger records every payment and computes the outstanding balance.
Payments are validated before they are posted to the ledger.
Reports summarize the balance per account.
'''

GUIDE_TEXT = '''
Accounts hold payments. Each account has a balance and a payment history.
'''

LEDGER_CODE = '''
def post_payment(ledger, payment):
    validate_payment(payment)
    ledger.entries.append(payment)
    ledger.balance += payment.amount


def validate_payment(payment):
    if payment.amount <= 0:
        raise ValueError("payment amount must be positive")
'''

REPORT_CODE = '''
def account_report(account):
    rows = [entry for entry in account.entries]
    return format_rows(rows, account.balance)
'''

LEDGER_CORPUS = Corpus(
    intent=[
        CorpusSource("README.md", README_TEXT),
        CorpusSource("docs/guide.md", GUIDE_TEXT),
    ],
    reality=[
        CorpusSource("ledger.py", LEDGER_CODE),
        CorpusSource("report.py", REPORT_CODE),
        CorpusSource("commit:0a1b2c3d4e5f", "Validate payment amounts before posting"),
    ],
)


# =============================================================================
# Python sources for the corpus collector
# =============================================================================

DOCUMENTED_MODULE = '''"""Ledger helpers."""


def post_payment(ledger, payment):
    """Post a payment to the ledger."""
    # keep the running balance current
    ledger.balance += payment.amount
    return ledger


class Account:
    """An account holding payments."""

    def balance(self):
        """Return the current balance."""
        return sum(self.payments)
'''

DOCSTRING_ONLY_FUNCTION = '''
def placeholder():
    """Nothing here yet."""
'''

INVALID_SYNTAX = '''
def broken(
    return 1
'''


def write_minimal_project(root: Path) -> Path:
    """
    Write a project whose collected corpus is the minimal corpus.

    README.md gives the Intent text and ledger.py gives the Reality text
    (after noise filtering: "debt calculation function function").
    """
    root.mkdir(parents=True, exist_ok=True)
    (root / "README.md").write_text("trust debt measurement\n", encoding="utf-8")
    (root / "ledger.py").write_text(
        "def debt_calculation(function):\n    return function\n",
        encoding="utf-8",
    )
    return root
