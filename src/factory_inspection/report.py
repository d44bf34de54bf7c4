"""
PDF report generation for inspection records.

ReportRenderer turns one Inspection into PDF bytes with reportlab. The
build is synchronous, so it runs in a worker thread and callers await it.

ReportViewer is the preview/download surface. A preview is exposed through
an ArtifactHandle (a temporary file) that the viewer owns: it is released
when the viewer is closed or when a new preview replaces it. Preview and
download each generate their own PDF; nothing is cached between them.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import List, Optional
from xml.sax.saxutils import escape

from omegaconf import DictConfig
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .configuration import get_config
from .errors import GenerationError
from .models import Inspection
from .notifications import NotificationCenter
from .utils import ensure_directory, report_filename

logger = logging.getLogger(__name__)

PAGE_SIZES = {"A4": A4, "letter": letter}
BODY_FONT_NAME = "ReportBody"


def filename_for(inspection: Inspection) -> str:
    return report_filename(inspection.factory_name, inspection.gregorian_date)


class ReportRenderer:
    """Generates the PDF report for a single inspection."""

    def __init__(self, config: Optional[DictConfig] = None) -> None:
        self.config = config if config is not None else get_config()
        self.title = self.config.report.title
        self.page_size = PAGE_SIZES.get(self.config.report.page_size, A4)
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles(self._register_font(self.config.report.font_path))

    def _register_font(self, font_path: Optional[str]) -> str:
        if not font_path:
            return "Helvetica"
        if BODY_FONT_NAME not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont(BODY_FONT_NAME, font_path))
        return BODY_FONT_NAME

    def _setup_custom_styles(self, font_name: str) -> None:
        self.styles.add(
            ParagraphStyle(
                name="ReportTitle",
                parent=self.styles["Heading1"],
                fontSize=20,
                textColor=colors.HexColor("#1e3a5f"),
                spaceAfter=12,
            )
        )
        self.styles.add(
            ParagraphStyle(
                name="SectionHeading",
                parent=self.styles["Heading2"],
                fontSize=13,
                textColor=colors.HexColor("#1e3a5f"),
                spaceBefore=12,
                spaceAfter=6,
            )
        )
        self.styles.add(ParagraphStyle(name="Cell", parent=self.styles["Normal"], fontName=font_name))

    async def generate(self, inspection: Inspection) -> bytes:
        """
        Render the report PDF.

        Raises:
            GenerationError: If reportlab fails to build the document
        """
        try:
            return await asyncio.to_thread(self.build, inspection)
        except Exception as exc:
            logger.error(f"PDF generation failed for inspection {inspection.id}: {exc}")
            raise GenerationError(f"Failed to generate report: {exc}") from exc

    def build(self, inspection: Inspection) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=self.page_size,
            title=f"{self.title} - {inspection.factory_name}",
            author=inspection.inspector,
        )

        story: List = [
            Paragraph(escape(self.title), self.styles["ReportTitle"]),
            Paragraph(
                f"Generated on: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}",
                self.styles["Normal"],
            ),
            Spacer(1, 0.2 * inch),
        ]

        story.extend(
            self._section(
                "Factory",
                [
                    ("Factory name", inspection.factory_name),
                    ("Address", inspection.factory_address),
                    ("Map link", inspection.map_link),
                ],
            )
        )
        story.extend(
            self._section(
                "Inspection",
                [
                    ("Inspector", inspection.inspector),
                    ("Date (Gregorian)", inspection.gregorian_date),
                    ("Date (Hebrew)", inspection.hebrew_date),
                ],
            )
        )
        story.extend(
            self._section(
                "Contact",
                [
                    ("Name", inspection.contact_name),
                    ("Phone", inspection.contact_phone),
                    ("Email", inspection.contact_email),
                ],
            )
        )
        story.extend(self._text_section("Findings", inspection.findings))
        story.extend(self._text_section("Recommendations", inspection.recommendations))

        doc.build(story)
        return buffer.getvalue()

    def _cell(self, value: Optional[str]) -> Paragraph:
        return Paragraph(escape(value or "-"), self.styles["Cell"])

    def _section(self, heading: str, rows: List[tuple]) -> List:
        table = Table(
            [[self._cell(label), self._cell(value)] for label, value in rows],
            colWidths=[1.8 * inch, 4.6 * inch],
        )
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#e8eef5")),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ]
            )
        )
        return [Paragraph(heading, self.styles["SectionHeading"]), table]

    def _text_section(self, heading: str, text: Optional[str]) -> List:
        if not text:
            return []
        paragraphs = [Paragraph(escape(line), self.styles["Cell"]) for line in text.splitlines() if line.strip()]
        return [Paragraph(heading, self.styles["SectionHeading"]), *paragraphs]


@dataclass
class ArtifactHandle:
    """A generated PDF exposed to the display surface as a temporary file."""

    path: Path
    released: bool = False

    @classmethod
    def create(cls, content: bytes) -> "ArtifactHandle":
        fd, name = tempfile.mkstemp(prefix="inspection-preview-", suffix=".pdf")
        with os.fdopen(fd, "wb") as buffer:
            buffer.write(content)
        return cls(path=Path(name))

    def release(self) -> None:
        if self.released:
            return
        self.path.unlink(missing_ok=True)
        self.released = True


class ReportViewer:
    """
    Preview and download surface for one inspection's report.

    Failures never escape the viewer: they are logged and posted to the
    notification center with a retry action.
    """

    def __init__(
        self,
        renderer: ReportRenderer,
        inspection: Inspection,
        notifications: Optional[NotificationCenter] = None,
    ) -> None:
        self.renderer = renderer
        self.inspection = inspection
        self.notifications = notifications or NotificationCenter()
        self.is_open = False
        self.is_generating = False
        self._handle: Optional[ArtifactHandle] = None

    @property
    def handle(self) -> Optional[ArtifactHandle]:
        return self._handle

    @property
    def preview_path(self) -> Optional[Path]:
        return self._handle.path if self._handle else None

    async def open(self) -> Optional[Path]:
        """Open the viewer, generating a preview unless one is already held."""
        self.is_open = True
        if self._handle is None:
            await self._generate_preview()
        return self.preview_path

    async def retry(self) -> Optional[Path]:
        self.is_open = True
        await self._generate_preview()
        return self.preview_path

    async def _generate_preview(self) -> None:
        self.is_generating = True
        try:
            content = await self.renderer.generate(self.inspection)
        except GenerationError as exc:
            logger.error(f"PDF generation error: {exc}")
            self.notifications.error("Failed to generate PDF preview. Please try again.", retry=self.retry)
            return
        finally:
            self.is_generating = False

        if not self.is_open:
            # Closed while generating; there is no surface to hand the artifact to
            logger.debug("Viewer closed before preview finished; discarding artifact")
            return

        previous, self._handle = self._handle, ArtifactHandle.create(content)
        if previous is not None:
            previous.release()

    async def download(self, directory: Optional[Path] = None) -> Optional[Path]:
        """
        Generate the report and save it under its download name.

        Returns:
            Path of the written file, or None if generation or writing failed
        """
        target_dir = Path(directory) if directory is not None else Path(self.renderer.config.report.output_dir)

        async def again() -> Optional[Path]:
            return await self.download(target_dir)

        try:
            content = await self.renderer.generate(self.inspection)
            destination = ensure_directory(target_dir) / filename_for(self.inspection)
            destination.write_bytes(content)
        except (GenerationError, OSError) as exc:
            logger.error(f"PDF download error: {exc}")
            self.notifications.error("Failed to download PDF report. Please try again.", retry=again)
            return None

        logger.info(f"Report written to {destination}")
        self.notifications.success("PDF report downloaded successfully")
        return destination

    def close(self) -> None:
        """Release the preview artifact, if any, and close the viewer."""
        if self._handle is not None:
            self._handle.release()
            self._handle = None
        self.is_open = False

    async def __aenter__(self) -> "ReportViewer":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
