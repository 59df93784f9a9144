"""
Card selection: scopes, due ordering and quiz sessions.
"""

from recall.session_builders.scope import ResolvedScope, Scope, resolve_scope
from recall.session_builders.due_selector import due_order_key, order_cards, select_due
from recall.session_builders.quiz_builder import QuizSession, build_session


__all__ = [
    "ResolvedScope",
    "Scope",
    "resolve_scope",
    "due_order_key",
    "order_cards",
    "select_due",
    "QuizSession",
    "build_session",
]
