"""Integration tests for the staged screenplay pipeline."""

import zipfile

import pytest

from guion.config import GuionSettings
from guion.exceptions import CancellationError, ExportError, GuionFileNotFoundError
from guion.parser import BundleResolver
from guion.pipeline import STAGE_UNITS, PipelineStage, ScreenplayPipeline
from guion.progress import OperationProgress
from guion.storage import ElementStore

pytestmark = pytest.mark.integration


@pytest.fixture
def fountain_path(tmp_path, sample_fountain):
    path = tmp_path / "coffee_shop.fountain"
    path.write_text(sample_fountain, encoding="utf-8")
    return path


@pytest.fixture
def fdx_path(tmp_path, sample_fdx):
    path = tmp_path / "coffee_shop.fdx"
    path.write_bytes(sample_fdx)
    return path


@pytest.fixture
def store(tmp_path):
    with ElementStore(tmp_path / "pipeline.db") as element_store:
        yield element_store


class TestPipelineStages:
    """Stage selection and results."""

    def test_parse_and_order_only(self, fountain_path):
        result = ScreenplayPipeline().run(fountain_path)

        assert result.stages == [PipelineStage.PARSE, PipelineStage.ORDER]
        assert result.script_id is None
        assert result.export_path is None
        assert len(result.screenplay.elements) == 24

    def test_all_stages(self, fountain_path, store, tmp_path):
        destination = tmp_path / "out.textbundle"

        result = ScreenplayPipeline().run(fountain_path, store=store, export_to=destination)

        assert result.stages == list(PipelineStage)
        assert result.export_path == destination
        assert (destination / "screenplay.fountain").is_file()
        stored = store.fetch_elements(result.script_id)
        assert [e.sort_key for e in stored] == [
            e.sort_key for e in result.screenplay.elements
        ]
        assert result.to_dict()["stages"] == ["parse", "order", "convert", "export"]

    def test_fdx_to_highland(self, fdx_path, tmp_path):
        destination = tmp_path / "coffee.highland"

        result = ScreenplayPipeline().run(
            fdx_path, export_to=destination, export_format="highland"
        )

        assert zipfile.is_zipfile(destination)
        again = BundleResolver().load(destination)
        assert len(again.elements) == len(result.screenplay.elements)

    def test_unknown_format(self, fountain_path, tmp_path):
        with pytest.raises(ExportError, match="Unknown export format"):
            ScreenplayPipeline().run(
                fountain_path, export_to=tmp_path / "x", export_format="pdf"
            )

    def test_missing_source(self, tmp_path):
        with pytest.raises(GuionFileNotFoundError):
            ScreenplayPipeline().run(tmp_path / "absent.fountain")

    def test_chapter_level_from_settings(self, tmp_path, chaptered_fountain):
        path = tmp_path / "chapters.fountain"
        path.write_text(chaptered_fountain, encoding="utf-8")
        settings = GuionSettings(database_path=tmp_path / "x.db", chapter_heading_level=3)

        result = ScreenplayPipeline(settings).run(path)

        chapters = {e.chapter_index for e in result.screenplay.elements}
        assert chapters == {0, 1}


class TestPipelineProgress:
    """Progress of the whole run."""

    def test_monotonic_progress(self, fountain_path, store, tmp_path):
        updates = []
        progress = OperationProgress(update_interval=0.0, handler=updates.append)

        ScreenplayPipeline().run(
            fountain_path,
            store=store,
            export_to=tmp_path / "out.textbundle",
            progress=progress,
        )

        completed = [u.completed_units for u in updates]
        assert completed == sorted(completed)
        assert progress.total_unit_count == 4 * STAGE_UNITS
        assert completed[-1] == 4 * STAGE_UNITS
        assert updates[-1].description == "Pipeline complete"

    def test_cancel_before_start(self, fountain_path):
        progress = OperationProgress()
        progress.cancel()

        with pytest.raises(CancellationError) as exc_info:
            ScreenplayPipeline().run(fountain_path, progress=progress)
        assert exc_info.value.details == {"stage": "parse"}

    def test_cancel_during_export_removes_output(self, fountain_path, store, tmp_path):
        destination = tmp_path / "cancelled.textbundle"
        export_start = 3 * STAGE_UNITS
        holder = {}

        def cancel_while_exporting(update):
            if update.completed_units > export_start:
                holder["progress"].cancel()

        progress = OperationProgress(update_interval=0.0, handler=cancel_while_exporting)
        holder["progress"] = progress
        settings = GuionSettings(database_path=tmp_path / "x.db", export_chunk_size=64)

        with pytest.raises(CancellationError):
            ScreenplayPipeline(settings).run(
                fountain_path, store=store, export_to=destination, progress=progress
            )

        assert not destination.exists()
        # The store stage finished before cancellation
        assert len(store.list_scripts()) == 1

    def test_cancel_during_store_rolls_back(self, fountain_path, tmp_path):
        convert_start = 2 * STAGE_UNITS
        holder = {}

        def cancel_while_storing(update):
            if update.completed_units > convert_start:
                holder["progress"].cancel()

        progress = OperationProgress(update_interval=0.0, handler=cancel_while_storing)
        holder["progress"] = progress
        settings = GuionSettings(database_path=tmp_path / "x.db", store_batch_size=2)

        with ElementStore(settings=settings) as store:
            with pytest.raises(CancellationError) as exc_info:
                ScreenplayPipeline(settings).run(
                    fountain_path, store=store, progress=progress
                )

            assert exc_info.value.details == {"stage": "storage"}
            assert store.list_scripts() == []
