"""Rule-based nudge generation.

This module provides:
- NudgeGenerator: ranked, explainable nudges for a (member, job) pair
- NudgeRule / DEFAULT_RULES: the declarative rule table
- TemplateRenderer: Jinja2 rendering of static text and prompts
"""

from .generator import NudgeGenerator
from .rules import DEFAULT_RULES, NudgeRule, RuleContext, get_rule
from .templates import TemplateRenderer, TemplateRenderError

__all__ = [
    "NudgeGenerator",
    "NudgeRule",
    "RuleContext",
    "DEFAULT_RULES",
    "get_rule",
    "TemplateRenderer",
    "TemplateRenderError",
]
