"""Terminal prompts for interactive reconciliation (prompt_toolkit-based).

Kept apart from the reconciliation engine so the engine never blocks on a
terminal and the prompts can be tested in isolation with pipe input.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.styles import Style
from prompt_toolkit.validation import ValidationError, Validator

from .models import ReconciliationSnapshot, TransactionType
from .normalizers import format_amount
from .reconciliation import ADJUSTMENT_CATEGORY

DEFAULT_ADJUSTMENT_CATEGORIES: tuple[str, ...] = (
    ADJUSTMENT_CATEGORY,
    "Bank Fees",
    "Interest",
    "Cash",
    "Uncategorized",
)

_YES = frozenset({"y", "yes"})
_NO = frozenset({"n", "no"})


def _session(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


def describe_snapshot(snapshot: ReconciliationSnapshot) -> str:
    """Multi-line human summary used as the confirmation preamble."""

    cur = snapshot.currency
    lines = [
        f"Account:           {snapshot.account_id}",
        f"As of:             {snapshot.as_of.isoformat()}",
        f"Transactions:      {snapshot.transaction_count}",
        f"Opening balance:   {cur} {format_amount(snapshot.opening_balance)}",
        f"System balance:    {cur} {format_amount(snapshot.system_balance)}",
        f"Statement balance: {cur} {format_amount(snapshot.statement_balance)}",
        f"Difference:        {cur} {format_amount(snapshot.difference)}",
    ]
    if snapshot.balanced:
        lines.append("Balanced; no adjustment needed.")
    else:
        kind = TransactionType.INCOME if snapshot.difference > 0 else TransactionType.EXPENSE
        lines.append(
            f"Proposed adjustment: {kind.value} of {cur} {format_amount(abs(snapshot.difference))}"
        )
    return "\n".join(lines)


class _YesNoValidator(Validator):
    def validate(self, document) -> None:
        text = document.text.strip().lower()
        if text and text not in _YES | _NO:
            raise ValidationError(message="Answer y or n.")


def confirm_adjustment(
    snapshot: ReconciliationSnapshot,
    *,
    session: PromptSession | None = None,
    message: str = "Create this adjustment? [y/N]: ",
) -> bool:
    """Show the snapshot and ask for a yes/no answer.

    Enter on an empty answer means no; Esc cancels (also no). A balanced
    snapshot returns ``False`` without prompting.
    """

    if snapshot.balanced:
        return False

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result="n")

    sess = _session(session, kb)
    answer = sess.prompt(
        f"{describe_snapshot(snapshot)}\n{message}",
        validator=_YesNoValidator(),
        validate_while_typing=False,
    )
    return (answer or "").strip().lower() in _YES


class _PrefixSuggest(AutoSuggest):
    """Grey inline completion of a typed prefix against known categories."""

    def __init__(self, vocab: Sequence[str]) -> None:
        self._vocab = list(vocab)

    def get_suggestion(self, buffer, document):
        return _suggest(self._vocab, document.text)


def _suggest(vocab: Sequence[str], text: str) -> Suggestion | None:
    if not text:
        return None
    lower = text.lower()
    if any(w.lower() == lower for w in vocab):
        return None
    for w in vocab:
        if w.lower().startswith(lower):
            return Suggestion(w[len(text) :])
    return None


def select_adjustment_category(
    categories: Iterable[str] = DEFAULT_ADJUSTMENT_CATEGORIES,
    *,
    default: str = ADJUSTMENT_CATEGORY,
    session: PromptSession | None = None,
    message: str = "Adjustment category (Enter to accept): ",
) -> str:
    """Choose the adjustment's category with completion.

    The default is pre-filled; Enter accepts it. A typed prefix of a known
    category is completed by Tab or Enter. Any other non-empty text is
    accepted as a new category name, matched case-insensitively to a known
    one when possible.
    """

    words = list(dict.fromkeys(categories))
    canonical = {w.lower(): w for w in words}
    completer = WordCompleter(words, ignore_case=True, match_middle=True, sentence=False)

    kb = KeyBindings()

    @kb.add("tab", eager=True)
    def _(event) -> None:  # pragma: no cover - integration path
        b = event.app.current_buffer
        suggestion = _suggest(words, b.document.text)
        if suggestion is not None:
            b.insert_text(suggestion.text)
        elif b.complete_state is None:
            b.start_completion(select_first=True)
        else:
            b.complete_next()

    @kb.add("enter", eager=True)
    def _(event) -> None:  # pragma: no cover - integration path
        b = event.app.current_buffer
        cs = b.complete_state
        if cs is not None and cs.current_completion is not None:
            b.apply_completion(cs.current_completion)
        else:
            suggestion = _suggest(words, b.document.text)
            if suggestion is not None:
                b.insert_text(suggestion.text)
        b.validate_and_handle()

    class _NonEmpty(Validator):
        def validate(self, document) -> None:
            if not document.text.strip():
                raise ValidationError(message="Category cannot be empty.")

    sess = _session(session, kb)
    value = sess.prompt(
        message,
        default=default,
        completer=completer,
        auto_suggest=_PrefixSuggest(words),
        validator=_NonEmpty(),
        validate_while_typing=False,
        style=Style.from_dict({"auto-suggestion": "fg:#888888"}),
    )
    value = value.strip()
    return canonical.get(value.lower(), value)


__all__ = [
    "DEFAULT_ADJUSTMENT_CATEGORIES",
    "confirm_adjustment",
    "describe_snapshot",
    "select_adjustment_category",
]
