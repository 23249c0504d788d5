"""Template rendering for nudge text and inference prompts using Jinja2.

Static nudge messages, explanations, prompts and fallback referral messages
all live as ``.txt.j2`` files in the ``nudge_engine.nudges`` package.
StrictUndefined turns a missing variable into an error instead of blank text.
"""

import logging
from typing import Any, Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape

from nudge_engine.domain.exceptions import NudgeEngineError

logger = logging.getLogger(__name__)


class TemplateRenderError(NudgeEngineError):
    """Raised when a template is missing or fails to render."""

    pass


class TemplateRenderer:
    """Renders plain-text templates from the nudge_engine.nudges package.

    Templates are compiled once and cached by the Jinja2 environment.
    """

    def __init__(self, package: str = "nudge_engine.nudges", template_dir: str = "templates"):
        """Initialize template renderer with Jinja2 environment.

        Args:
            package: Package holding the template directory
            template_dir: Directory name within the package
        """
        self.env = Environment(
            loader=PackageLoader(package, template_dir),
            # Output is plain text; only escape if an HTML template is ever added
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )

        logger.debug(f"Initialized TemplateRenderer with templates from {package}/{template_dir}")

    def render(self, name: str, context: Dict[str, Any]) -> str:
        """Render one template and collapse it to trimmed text.

        Args:
            name: Template path relative to the template directory
            context: Template variables

        Returns:
            Rendered text with surrounding whitespace removed

        Raises:
            TemplateRenderError: If the template is missing or rendering fails
        """
        try:
            template = self.env.get_template(name)
            return template.render(context).strip()
        except TemplateError as e:
            error_msg = f"Template rendering failed for {name}: {e}"
            logger.error(error_msg, exc_info=True)
            raise TemplateRenderError(error_msg) from e

    def render_message(self, rule_id: str, context: Dict[str, Any]) -> str:
        """Render the static message for a nudge rule."""
        return self._single_line(self.render(f"messages/{rule_id}.txt.j2", context))

    def render_explanation(self, rule_id: str, context: Dict[str, Any]) -> str:
        """Render the explanation for a nudge rule."""
        return self._single_line(self.render(f"explanations/{rule_id}.txt.j2", context))

    def render_prompt(self, name: str, context: Dict[str, Any]) -> str:
        """Render an inference prompt (multi-line text kept as is)."""
        return self.render(f"prompts/{name}.txt.j2", context)

    def render_fallback(self, name: str, context: Dict[str, Any]) -> str:
        """Render a static fallback used when enrichment is unavailable."""
        return self.render(f"fallbacks/{name}.txt.j2", context)

    @staticmethod
    def _single_line(text: str) -> str:
        return " ".join(text.split())
