"""Declarative constraint engine (rules as data, predicates as code)."""

from .load import load_core_ruleset, load_ruleset
from .engine import run_constraints

__all__ = ["load_core_ruleset", "load_ruleset", "run_constraints"]
