"""
PDF Renderer

Renders a titled markdown-ish text report (headings, bullets, bold lines)
into PDF bytes with reportlab.
"""

from io import BytesIO
from xml.sax.saxutils import escape
import logging
import re

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer

logger = logging.getLogger(__name__)

_BOLD = re.compile(r"\*\*(.+?)\*\*")
_SEPARATOR = re.compile(r"^={10,}$")


def _inline(text: str) -> str:
    return _BOLD.sub(r"<b>\1</b>", escape(text))


class PdfRenderer:
    """Turns report text into a simple paginated PDF"""

    def __init__(self, page_size=A4):
        self.page_size = page_size
        self.styles = getSampleStyleSheet()

    def generate_pdf(self, title: str, text: str) -> bytes:
        """
        Render a report.

        Args:
            title: Document title (first heading and PDF metadata)
            text: Report body; '#' headings, bullets and '=' separators are styled

        Returns:
            PDF file bytes
        """
        buffer = BytesIO()
        document = SimpleDocTemplate(
            buffer,
            pagesize=self.page_size,
            title=title,
            leftMargin=2 * cm,
            rightMargin=2 * cm,
            topMargin=2 * cm,
            bottomMargin=2 * cm
        )

        story = [Paragraph(escape(title), self.styles["Title"]), Spacer(1, 0.4 * cm)]
        for line in (text or "").splitlines():
            stripped = line.strip()
            if not stripped:
                story.append(Spacer(1, 0.2 * cm))
            elif _SEPARATOR.match(stripped):
                story.append(HRFlowable(width="100%"))
            elif stripped.startswith("### "):
                story.append(Paragraph(_inline(stripped[4:]), self.styles["Heading3"]))
            elif stripped.startswith("## "):
                story.append(Paragraph(_inline(stripped[3:]), self.styles["Heading2"]))
            elif stripped.startswith("# "):
                story.append(Paragraph(_inline(stripped[2:]), self.styles["Heading1"]))
            elif stripped[0] in "•-→*" and len(stripped) > 1:
                story.append(Paragraph(_inline(stripped), self.styles["Bullet"]))
            else:
                story.append(Paragraph(_inline(stripped), self.styles["BodyText"]))

        document.build(story)
        pdf_bytes = buffer.getvalue()
        logger.info(f"Generated PDF '{title}' ({len(pdf_bytes)} bytes)")
        return pdf_bytes
