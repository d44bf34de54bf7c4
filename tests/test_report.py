"""
Tests for report generation and the report viewer.
"""

from datetime import datetime

import pytest

from factory_inspection.errors import GenerationError
from factory_inspection.models import Inspection
from factory_inspection.notifications import NotificationCenter, NotificationVariant
from factory_inspection.report import ReportViewer, filename_for
from factory_inspection.utils import safe_filename_part


@pytest.fixture
def inspection(inspection_payload):
    now = datetime(2024, 1, 1, 12, 0)
    return Inspection.model_validate({**inspection_payload, "id": 1, "createdAt": now, "updatedAt": now})


class FlakyRenderer:
    """Wraps a renderer and fails the first ``failures`` generate calls."""

    def __init__(self, renderer, failures=1):
        self.inner = renderer
        self.config = renderer.config
        self.failures = failures
        self.calls = 0

    async def generate(self, inspection):
        self.calls += 1
        if self.calls <= self.failures:
            raise GenerationError("renderer unavailable")
        return await self.inner.generate(inspection)


class TestReportRenderer:
    @pytest.mark.asyncio
    async def test_generates_pdf(self, renderer, inspection):
        content = await renderer.generate(inspection)
        assert content.startswith(b"%PDF")
        assert content.rstrip().endswith(b"%%EOF")

    @pytest.mark.asyncio
    async def test_sparse_record(self, renderer, inspection):
        sparse = inspection.model_copy(
            update={"contact_name": "", "contact_email": None, "findings": "", "recommendations": None}
        )
        assert (await renderer.generate(sparse)).startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_markup_in_text_is_escaped(self, renderer, inspection):
        tricky = inspection.model_copy(update={"findings": "<b>unclosed & risky"})
        assert (await renderer.generate(tricky)).startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_failures_become_generation_error(self, renderer, inspection, monkeypatch):
        def explode(_inspection):
            raise RuntimeError("layout failed")

        monkeypatch.setattr(renderer, "build", explode)
        with pytest.raises(GenerationError, match="layout failed"):
            await renderer.generate(inspection)

    def test_filename(self, inspection):
        assert filename_for(inspection) == "inspection-report-Negev Textiles-2024-01-01.pdf"

    def test_filename_strips_path_separators(self, inspection):
        odd = inspection.model_copy(update={"factory_name": "North/South Works"})
        assert filename_for(odd) == "inspection-report-North-South Works-2024-01-01.pdf"

    @pytest.mark.parametrize(
        "value, expected",
        [("Acme / North", "Acme - North"), ("  ", "factory"), ("Beit Shemesh", "Beit Shemesh")],
    )
    def test_safe_filename_part(self, value, expected):
        assert safe_filename_part(value, "factory") == expected


class TestReportViewer:
    @pytest.mark.asyncio
    async def test_open_creates_preview_handle(self, renderer, inspection):
        viewer = ReportViewer(renderer, inspection)
        path = await viewer.open()

        assert path is not None and path.exists()
        assert path.read_bytes().startswith(b"%PDF")
        viewer.close()

    @pytest.mark.asyncio
    async def test_close_releases_handle(self, renderer, inspection):
        viewer = ReportViewer(renderer, inspection)
        path = await viewer.open()
        handle = viewer.handle

        viewer.close()

        assert not path.exists()
        assert handle.released
        assert viewer.handle is None
        assert viewer.is_open is False

    def test_close_without_artifact_is_noop(self, renderer, inspection):
        viewer = ReportViewer(renderer, inspection)
        viewer.close()
        viewer.close()
        assert viewer.handle is None
        assert viewer.notifications.items == []

    @pytest.mark.asyncio
    async def test_reopen_reuses_handle(self, renderer, inspection):
        flaky = FlakyRenderer(renderer, failures=0)
        viewer = ReportViewer(flaky, inspection)
        first = await viewer.open()
        second = await viewer.open()

        assert first == second
        assert flaky.calls == 1
        viewer.close()

    @pytest.mark.asyncio
    async def test_repeated_cycles_do_not_leak(self, renderer, inspection):
        viewer = ReportViewer(renderer, inspection)
        paths = []
        for _ in range(3):
            paths.append(await viewer.open())
            viewer.close()

        assert len(set(paths)) == 3
        assert not any(path.exists() for path in paths)

    @pytest.mark.asyncio
    async def test_retry_replaces_and_releases_previous(self, renderer, inspection):
        viewer = ReportViewer(renderer, inspection)
        first = await viewer.open()
        second = await viewer.retry()

        assert first != second
        assert not first.exists()
        assert second.exists()
        viewer.close()

    @pytest.mark.asyncio
    async def test_failed_preview_notifies_with_retry(self, renderer, inspection):
        notifications = NotificationCenter()
        viewer = ReportViewer(FlakyRenderer(renderer), inspection, notifications)

        assert await viewer.open() is None
        assert viewer.handle is None
        assert viewer.is_generating is False

        [notification] = notifications.items
        assert notification.variant == NotificationVariant.DESTRUCTIVE
        assert notification.retryable

        path = await notifications.retry(notification.id)
        assert path is not None and path.exists()
        assert notifications.items == []
        viewer.close()

    @pytest.mark.asyncio
    async def test_close_during_generation_discards_artifact(self, renderer, inspection):
        viewer = ReportViewer(renderer, inspection)

        class ClosingRenderer:
            config = renderer.config

            async def generate(self, inspection):
                content = await renderer.generate(inspection)
                viewer.close()
                return content

        viewer.renderer = ClosingRenderer()
        assert await viewer.open() is None
        assert viewer.handle is None

    @pytest.mark.asyncio
    async def test_async_context_manager(self, renderer, inspection):
        async with ReportViewer(renderer, inspection) as viewer:
            path = viewer.preview_path
            assert path.exists()
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_download_writes_named_file(self, renderer, inspection, tmp_path):
        flaky = FlakyRenderer(renderer, failures=0)
        viewer = ReportViewer(flaky, inspection)
        await viewer.open()

        path = await viewer.download(tmp_path)

        assert path == tmp_path / "inspection-report-Negev Textiles-2024-01-01.pdf"
        assert path.read_bytes().startswith(b"%PDF")
        # Preview and download each generate their own document
        assert flaky.calls == 2
        assert viewer.notifications.items[-1].description == "PDF report downloaded successfully"
        viewer.close()

    @pytest.mark.asyncio
    async def test_download_defaults_to_configured_directory(self, renderer, inspection, config, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = await ReportViewer(renderer, inspection).download()
        assert str(path.parent) == config.report.output_dir
        assert path.exists()

    @pytest.mark.asyncio
    async def test_download_failure_notifies_with_retry(self, renderer, inspection, tmp_path):
        viewer = ReportViewer(FlakyRenderer(renderer), inspection)

        assert await viewer.download(tmp_path) is None
        [notification] = viewer.notifications.items
        assert notification.description == "Failed to download PDF report. Please try again."

        path = await viewer.notifications.retry(notification.id)
        assert path.exists()
