"""Markdown + LaTeX rendering of questions handed to exam terminals.

Question text and option text are stored as markdown with ``$...$`` math. The
server turns them into HTML fragments and leaves the math to MathJax on the
terminal, so the stored text stays engine-agnostic.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt

from exam_hall.core.models import PresentedQuestion, QuestionRecord


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math into HTML fragments."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        """Render a markdown string into an HTML fragment."""
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        return self._markdown.render(sanitized)

    def render_inline(self, markdown_text: str) -> str:
        """Render option text without the surrounding paragraph."""
        return self._markdown.renderInline((markdown_text or "").strip())

    def present(self, question: QuestionRecord) -> PresentedQuestion:
        """Build the student-facing view of a question, without correct answers."""
        return PresentedQuestion(
            id=question.id,
            text_html=self.render_fragment(question.text),
            options_html=tuple(self.render_inline(option) for option in question.options),
            weight=question.weight,
            negative_marking=question.negative_marking,
        )


# MarkdownIt is safe for concurrent read-only renders.
renderer = MarkdownMathRenderer()
