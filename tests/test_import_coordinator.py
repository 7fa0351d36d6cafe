"""
tests/test_import_coordinator.py

Import job lifecycle against an in-memory database: validation, per-item
outcomes, persisted counters, streamed frames, the optional phases and
resumption of interrupted jobs.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import update
from sqlalchemy.orm import sessionmaker

from app.clients.text_completion import MockTextCompletionAdapter
from app.config import ImportSettings, TextCompletionSettings
from app.domain.game_records import CanonicalGameRecord
from app.domain.import_result import ImportTally
from app.services.description_rewriter import DescriptionRewriter
from app.services.enhancement import EnhancementOutcome
from app.services.import_coordinator import (
    INTERRUPTED_JOB_REASON,
    ImportJobCoordinator,
    ImportOptions,
    ImportValidationError,
    PreparedImport,
)
from app.services.progress_broker import ProgressBroker, ProgressChannel
from db.models.import_job import ImportJob, ImportJobStatus, ImportJobType
from db.repositories.game_repository import GameRepository
from db.repositories.import_job_repository import ImportJobRepository


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class InlineExecutor:
    """Runs the submitted job before `submit` returns."""

    def __init__(self) -> None:
        self.calls = 0

    def submit(self, task, *args, **kwargs) -> None:
        self.calls += 1
        task(*args, **kwargs)


class RejectingExecutor:
    def submit(self, task, *args, **kwargs) -> None:
        raise RuntimeError("pool is shut down")


class FakeEnhancer:
    """Knows a fixed set of external ids; titles resolve through `titles`."""

    def __init__(self, known: dict[str, str], titles: dict[str, str] | None = None) -> None:
        self._known = known
        self._titles = titles or {}
        self.calls: list[str] = []

    def enhance(self, record: CanonicalGameRecord) -> EnhancementOutcome:
        self.calls.append(record.label)
        external_id = record.external_id or self._titles.get(record.title or "")
        if external_id and external_id in self._known:
            return EnhancementOutcome(
                record=record.with_updates(
                    title=record.title or self._known[external_id],
                    external_id=external_id,
                    min_players=record.min_players or 1,
                ),
                found=True,
            )
        return EnhancementOutcome(record=record, found=False)


def _drain(channel: ProgressChannel) -> list[dict[str, Any]]:
    return [frame for frame in channel.frames(keepalive_seconds=0.01) if frame is not None]


def _run(
    coordinator: ImportJobCoordinator,
    session_factory: sessionmaker,
    prepared: PreparedImport,
) -> tuple[uuid.UUID, list[dict[str, Any]]]:
    with session_factory() as db:
        started = coordinator.start(db=db, executor=InlineExecutor(), prepared=prepared, subscribe=True)
        job_id = started.job.id
    return job_id, _drain(started.channel)


def _load_job(session_factory: sessionmaker, job_id: uuid.UUID):
    with session_factory() as db:
        return ImportJobRepository(db).get_job(job_id)


@pytest.fixture()
def broker() -> ProgressBroker:
    return ProgressBroker()


@pytest.fixture()
def settings() -> ImportSettings:
    return ImportSettings(error_sample_cap=3, not_found_sample_cap=3, enhancement_delay_seconds=0)


@pytest.fixture()
def coordinator(session_factory, broker, settings) -> ImportJobCoordinator:
    return ImportJobCoordinator(session_factory=session_factory, broker=broker, settings=settings)


CSV_TWO_GAMES = "title,bgg_id\nWingspan,266192\nCatan,13\n"


# ---------------------------------------------------------------------------
# Pre-flight validation
# ---------------------------------------------------------------------------


class TestPrepareUpload:
    def test_empty_content(self, coordinator, library_id) -> None:
        with pytest.raises(ImportValidationError, match="empty"):
            coordinator.prepare_upload(library_id=library_id, content=b"", filename="g.csv", options=ImportOptions())

    def test_oversized_content(self, session_factory, broker, library_id) -> None:
        small = ImportJobCoordinator(
            session_factory=session_factory,
            broker=broker,
            settings=ImportSettings(max_upload_bytes=10),
        )
        with pytest.raises(ImportValidationError) as exc_info:
            small.prepare_upload(library_id=library_id, content=CSV_TWO_GAMES, filename="g.csv", options=ImportOptions())
        assert exc_info.value.details["size_bytes"] == len(CSV_TWO_GAMES)

    def test_unknown_default_fields(self, coordinator, library_id) -> None:
        with pytest.raises(ImportValidationError) as exc_info:
            coordinator.prepare_upload(
                library_id=library_id,
                content=CSV_TWO_GAMES,
                filename="g.csv",
                options=ImportOptions(defaults={"title": "x"}),
            )
        assert exc_info.value.details["unknown_fields"] == ["title"]

    def test_unsupported_content_is_a_validation_error(self, coordinator, library_id) -> None:
        with pytest.raises(ImportValidationError) as exc_info:
            coordinator.prepare_upload(
                library_id=library_id,
                content=json.dumps({"items": []}),
                filename="g.json",
                options=ImportOptions(),
            )
        assert exc_info.value.to_dict()["error"] == "unsupported_format"

    def test_no_games(self, coordinator, library_id) -> None:
        with pytest.raises(ImportValidationError, match="No games"):
            coordinator.prepare_upload(
                library_id=library_id,
                content="title,notes\n,only a note\n",
                filename="g.csv",
                options=ImportOptions(),
            )

    def test_links_force_reference_lookup(self, coordinator, library_id) -> None:
        prepared = coordinator.prepare_links(
            library_id=library_id,
            links=["https://boardgamegeek.com/boardgame/13/catan", "not a link"],
            options=ImportOptions(import_plays=True),
        )
        assert prepared.options.enhance_with_reference is True
        assert prepared.options.import_plays is False
        assert prepared.invalid_links == ("not a link",)
        assert prepared.total_items == 1

    def test_links_without_ids(self, coordinator, library_id) -> None:
        with pytest.raises(ImportValidationError):
            coordinator.prepare_links(library_id=library_id, links=["nope"], options=ImportOptions())


# ---------------------------------------------------------------------------
# Job execution
# ---------------------------------------------------------------------------


class TestRunJob:
    def test_imports_and_streams_frames(self, coordinator, session_factory, library_id) -> None:
        prepared = coordinator.prepare_upload(
            library_id=library_id, content=CSV_TWO_GAMES, filename="g.csv", options=ImportOptions()
        )
        job_id, frames = _run(coordinator, session_factory, prepared)

        assert frames[0] == {"type": "start", "jobId": str(job_id), "total": 2}
        progress = [frame for frame in frames if frame["type"] == "progress"]
        assert [frame["current"] for frame in progress] == [1, 2]
        assert [frame["phase"] for frame in progress] == ["imported", "imported"]
        complete = frames[-1]
        assert complete["type"] == "complete"
        assert complete["success"] is True
        assert (complete["imported"], complete["failed"], complete["total"]) == (2, 0, 2)

        job = _load_job(session_factory, job_id)
        assert job.status == ImportJobStatus.COMPLETED
        assert job.processed_items == job.total_items == 2
        assert job.successful_items == 2
        assert job.result_payload["imported"] == 2
        assert job.request_payload["format"] == "generic_csv"

    def test_request_payload_keeps_records_for_resumption(self, coordinator, session_factory, library_id) -> None:
        options = ImportOptions(defaults={"sleeved": True, "sale_price": Decimal("12.50")})
        prepared = coordinator.prepare_upload(
            library_id=library_id,
            content="title,is_expansion,parent_game,mechanics\nWingspan,,,Engine Building\nEuropean Expansion,true,Wingspan,\n",
            filename="g.csv",
            options=options,
        )
        job_id, _ = _run(coordinator, session_factory, prepared)

        payload = _load_job(session_factory, job_id).request_payload
        rebuilt = PreparedImport.from_request_payload(library_id=library_id, payload=payload)

        assert len(payload["records"]) == 2
        assert rebuilt.parse_result.games == prepared.parse_result.games
        assert rebuilt.parse_result.format_tag == prepared.parse_result.format_tag
        assert rebuilt.options == options
        assert rebuilt.filename == "g.csv"

    def test_reimport_is_idempotent(self, coordinator, session_factory, library_id) -> None:
        for _ in range(2):
            prepared = coordinator.prepare_upload(
                library_id=library_id, content=CSV_TWO_GAMES, filename="g.csv", options=ImportOptions()
            )
            job_id, frames = _run(coordinator, session_factory, prepared)

        complete = frames[-1]
        assert complete["imported"] == 0
        assert complete["failed"] == 2
        assert complete["failureBreakdown"]["already_exists"] == 2
        assert [frame["phase"] for frame in frames if frame["type"] == "progress"] == ["skipped", "skipped"]
        with session_factory() as db:
            assert GameRepository(db).count_games(library_id=library_id) == 2

    def test_title_identity_ignores_case_and_spacing(self, coordinator, session_factory, library_id) -> None:
        first = coordinator.prepare_upload(
            library_id=library_id, content="title\nTicket to Ride\n", filename="a.csv", options=ImportOptions()
        )
        _run(coordinator, session_factory, first)
        second = coordinator.prepare_upload(
            library_id=library_id, content="title\n  ticket   TO ride \n", filename="b.csv", options=ImportOptions()
        )
        _, frames = _run(coordinator, session_factory, second)
        assert frames[-1]["failureBreakdown"]["already_exists"] == 1

    def test_libraries_are_isolated(self, coordinator, session_factory) -> None:
        for library in (uuid.uuid4(), uuid.uuid4()):
            prepared = coordinator.prepare_upload(
                library_id=library, content=CSV_TWO_GAMES, filename="g.csv", options=ImportOptions()
            )
            _, frames = _run(coordinator, session_factory, prepared)
            assert frames[-1]["imported"] == 2

    def test_missing_title_without_lookup(self, coordinator, session_factory, library_id) -> None:
        prepared = coordinator.prepare_upload(
            library_id=library_id, content="title,bgg_id\nAzul,\n,13\n", filename="g.csv", options=ImportOptions()
        )
        job_id, frames = _run(coordinator, session_factory, prepared)

        complete = frames[-1]
        assert complete["imported"] == 1
        assert complete["failureBreakdown"]["missing_title"] == 1
        job = _load_job(session_factory, job_id)
        assert (job.processed_items, job.successful_items, job.failed_items) == (2, 1, 1)

    def test_error_samples_are_capped(self, coordinator, session_factory, library_id) -> None:
        rows = "\n".join(f"Game {index}" for index in range(5))
        content = f"title\n{rows}\n"
        for _ in range(2):
            prepared = coordinator.prepare_upload(
                library_id=library_id, content=content, filename="g.csv", options=ImportOptions()
            )
            _, frames = _run(coordinator, session_factory, prepared)

        complete = frames[-1]
        assert complete["failed"] == 5
        assert len(complete["errors"]) == 3
        assert complete["errorsOverflow"] == 2

    def test_defaults_apply_to_created_games(self, coordinator, session_factory, library_id) -> None:
        prepared = coordinator.prepare_upload(
            library_id=library_id,
            content="title,invlocation\nAzul,Shelf B\nCatan,\n",
            filename="g.csv",
            options=ImportOptions(defaults={"location_room": "Den", "location_shelf": "Shelf A", "sleeved": True}),
        )
        _run(coordinator, session_factory, prepared)

        with session_factory() as db:
            games = {game.title: game for game in GameRepository(db).list_games(library_id=library_id)}
        assert games["Azul"].location_shelf == "Shelf B"
        assert games["Catan"].location_shelf == "Shelf A"
        assert games["Catan"].location_room == "Den"
        assert games["Catan"].sleeved is True
        assert games["Catan"].difficulty == "3 - Medium"

    def test_expansions_link_to_parents(self, coordinator, session_factory, library_id) -> None:
        base = coordinator.prepare_upload(
            library_id=library_id, content="title\nCatan\n", filename="a.csv", options=ImportOptions()
        )
        _run(coordinator, session_factory, base)

        content = "title,is_expansion,parent_game\nWingspan,,\nEuropean Expansion,true,Wingspan\nSeafarers,true,CATAN\n"
        prepared = coordinator.prepare_upload(
            library_id=library_id, content=content, filename="b.csv", options=ImportOptions()
        )
        _run(coordinator, session_factory, prepared)

        with session_factory() as db:
            games = {game.title: game for game in GameRepository(db).list_games(library_id=library_id)}
        assert games["European Expansion"].parent_game_id == games["Wingspan"].id
        assert games["Seafarers"].parent_game_id == games["Catan"].id
        assert games["Wingspan"].parent_game_id is None


class TestReferenceLookup:
    def test_found_not_found_and_missing_title(self, session_factory, broker, settings, library_id) -> None:
        enhancer = FakeEnhancer({"13": "Catan"})
        coordinator = ImportJobCoordinator(
            session_factory=session_factory,
            broker=broker,
            settings=settings,
            enhancer_factory=lambda: enhancer,
        )
        content = "title,bgg_id\n,13\n,404\nObscure Game,\n"
        prepared = coordinator.prepare_upload(
            library_id=library_id,
            content=content,
            filename="g.csv",
            options=ImportOptions(enhance_with_reference=True),
        )
        _, frames = _run(coordinator, session_factory, prepared)

        complete = frames[-1]
        assert complete["imported"] == 2
        assert complete["failureBreakdown"]["not_found"] == 1
        assert complete["notFound"] == ["#404", "Obscure Game"]
        phases = [frame["phase"] for frame in frames if frame["type"] == "progress"]
        assert phases[0] == "enhancing"
        assert phases.count("enhancing") == 3

        with session_factory() as db:
            titles = sorted(game.title for game in GameRepository(db).list_games(library_id=library_id))
        assert titles == ["Catan", "Obscure Game"]

    def test_lookup_result_is_checked_for_duplicates(self, session_factory, broker, settings, library_id) -> None:
        coordinator = ImportJobCoordinator(
            session_factory=session_factory,
            broker=broker,
            settings=settings,
            enhancer_factory=lambda: FakeEnhancer({"13": "Catan"}, titles={"Settlers": "13"}),
        )
        first = coordinator.prepare_upload(
            library_id=library_id, content="bgg_id\n13\n", filename="a.csv", options=ImportOptions(enhance_with_reference=True)
        )
        _run(coordinator, session_factory, first)

        second = coordinator.prepare_upload(
            library_id=library_id,
            content="title\nSettlers\n",
            filename="b.csv",
            options=ImportOptions(enhance_with_reference=True),
        )
        _, frames = _run(coordinator, session_factory, second)
        assert frames[-1]["failureBreakdown"]["already_exists"] == 1

    def test_existing_games_skip_lookup(self, session_factory, broker, settings, library_id) -> None:
        enhancer = FakeEnhancer({})
        coordinator = ImportJobCoordinator(
            session_factory=session_factory,
            broker=broker,
            settings=settings,
            enhancer_factory=lambda: enhancer,
        )
        for options in (ImportOptions(), ImportOptions(enhance_with_reference=True)):
            prepared = coordinator.prepare_upload(
                library_id=library_id, content="title\nAzul\n", filename="g.csv", options=options
            )
            _run(coordinator, session_factory, prepared)
        assert enhancer.calls == []


class TestOptionalPhases:
    @staticmethod
    def _export() -> str:
        games = [{"id": index, "name": f"Game {index}"} for index in range(1, 11)]
        plays = [
            {"uuid": f"p{index}", "gameRefId": index, "playDate": f"2024-01-0{index} 20:00:00", "playerScores": []}
            for index in range(1, 5)
        ]
        return json.dumps({"games": games, "plays": plays, "players": []})

    def test_plays_are_reported_as_pending_when_not_imported(self, coordinator, session_factory, library_id) -> None:
        prepared = coordinator.prepare_upload(
            library_id=library_id, content=self._export(), filename="backup.json", options=ImportOptions()
        )
        _, frames = _run(coordinator, session_factory, prepared)

        complete = frames[-1]
        assert complete["imported"] == 10
        assert complete["pendingPlays"] == 4
        assert "plays" not in complete

    def test_plays_imported_after_games(self, coordinator, session_factory, library_id) -> None:
        prepared = coordinator.prepare_upload(
            library_id=library_id,
            content=self._export(),
            filename="backup.json",
            options=ImportOptions(import_plays=True),
        )
        _, frames = _run(coordinator, session_factory, prepared)

        complete = frames[-1]
        assert complete["plays"]["imported"] == 4
        assert complete["plays"]["unmatched"] == []
        assert any(frame.get("phase") == "plays" for frame in frames)

    def test_descriptions_rewritten_for_created_games(self, session_factory, broker, settings, library_id) -> None:
        coordinator = ImportJobCoordinator(
            session_factory=session_factory,
            broker=broker,
            settings=settings,
            rewriter_factory=lambda: DescriptionRewriter(
                adapter=MockTextCompletionAdapter("Azul"),
                settings=TextCompletionSettings(request_delay_seconds=0),
            ),
        )
        prepared = coordinator.prepare_upload(
            library_id=library_id,
            content="title,description\nAzul,Tile drafting\n",
            filename="g.csv",
            options=ImportOptions(rewrite_descriptions=True),
        )
        _, frames = _run(coordinator, session_factory, prepared)

        assert frames[-1]["descriptions"]["rewritten"] == 1
        with session_factory() as db:
            game = GameRepository(db).list_games(library_id=library_id)[0]
        assert "Quick Gameplay Overview" in game.description

    def test_description_step_failure_keeps_import_successful(
        self, session_factory, broker, settings, library_id
    ) -> None:
        def broken_rewriter():
            raise RuntimeError("completion service not configured")

        coordinator = ImportJobCoordinator(
            session_factory=session_factory,
            broker=broker,
            settings=settings,
            rewriter_factory=broken_rewriter,
        )
        prepared = coordinator.prepare_upload(
            library_id=library_id,
            content="title\nAzul\n",
            filename="g.csv",
            options=ImportOptions(rewrite_descriptions=True),
        )
        _, frames = _run(coordinator, session_factory, prepared)

        complete = frames[-1]
        assert complete["success"] is True
        assert "not configured" in complete["descriptions"]["error"]


class TestFailures:
    def test_job_failure_is_persisted_and_streamed(self, session_factory, broker, settings, library_id) -> None:
        def broken_enhancer():
            raise RuntimeError("reference client misconfigured")

        coordinator = ImportJobCoordinator(
            session_factory=session_factory,
            broker=broker,
            settings=settings,
            enhancer_factory=broken_enhancer,
        )
        prepared = coordinator.prepare_upload(
            library_id=library_id,
            content="title\nAzul\n",
            filename="g.csv",
            options=ImportOptions(enhance_with_reference=True),
        )
        job_id, frames = _run(coordinator, session_factory, prepared)

        complete = frames[-1]
        assert complete["type"] == "complete"
        assert complete["success"] is False
        assert "misconfigured" in complete["error"]
        job = _load_job(session_factory, job_id)
        assert job.status == ImportJobStatus.FAILED
        assert "misconfigured" in job.error_message
        assert job.result_payload["success"] is False

    def test_schedule_failure_marks_job_failed(self, coordinator, session_factory, broker, library_id) -> None:
        prepared = coordinator.prepare_upload(
            library_id=library_id, content="title\nAzul\n", filename="g.csv", options=ImportOptions()
        )
        with session_factory() as db:
            with pytest.raises(RuntimeError, match="shut down"):
                coordinator.start(db=db, executor=RejectingExecutor(), prepared=prepared, subscribe=True)

        with session_factory() as db:
            jobs = ImportJobRepository(db).list_jobs(library_id=library_id)
        assert len(jobs) == 1
        assert jobs[0].status == ImportJobStatus.FAILED
        assert not broker.has_subscriber(jobs[0].id)

    def test_run_job_for_unknown_job(self, coordinator, library_id) -> None:
        prepared = coordinator.prepare_upload(
            library_id=library_id, content="title\nAzul\n", filename="g.csv", options=ImportOptions()
        )
        assert coordinator.run_job(uuid.uuid4(), prepared) is None


class TestProgressDelivery:
    def test_job_continues_after_subscriber_leaves(self, coordinator, session_factory, broker, library_id) -> None:
        prepared = coordinator.prepare_upload(
            library_id=library_id, content=CSV_TWO_GAMES, filename="g.csv", options=ImportOptions()
        )

        class LeaveThenRun:
            def submit(self, task, *args, **kwargs) -> None:
                broker.close(args[0])
                task(*args, **kwargs)

        with session_factory() as db:
            started = coordinator.start(db=db, executor=LeaveThenRun(), prepared=prepared, subscribe=True)

        assert started.channel.detached
        job = _load_job(session_factory, started.job.id)
        assert job.status == ImportJobStatus.COMPLETED
        assert job.successful_items == 2

    def test_background_start_without_subscriber(self, coordinator, session_factory, library_id) -> None:
        prepared = coordinator.prepare_upload(
            library_id=library_id, content=CSV_TWO_GAMES, filename="g.csv", options=ImportOptions()
        )
        executor = InlineExecutor()
        with session_factory() as db:
            started = coordinator.start(db=db, executor=executor, prepared=prepared)

        assert started.channel is None
        assert executor.calls == 1
        assert _load_job(session_factory, started.job.id).status == ImportJobStatus.COMPLETED


class TestStandalonePlayImport:
    def test_records_a_play_import_job(self, coordinator, session_factory, library_id) -> None:
        games = coordinator.prepare_upload(
            library_id=library_id, content="title\nGame 1\nGame 2\n", filename="g.csv", options=ImportOptions()
        )
        _run(coordinator, session_factory, games)

        content = TestOptionalPhases._export()
        with session_factory() as db:
            job_id, summary = coordinator.import_plays(
                db=db, library_id=library_id, content=content, filename="backup.json", update_existing=False
            )

        assert summary.imported == 2
        assert summary.unmatched == ["Game 3", "Game 4"]
        assert summary.failed == 0
        job = _load_job(session_factory, job_id)
        assert job.job_type == ImportJobType.PLAY_IMPORT
        assert job.status == ImportJobStatus.COMPLETED
        assert job.processed_items == 4
        assert job.successful_items == 2

    def test_content_without_plays(self, coordinator, session_factory, library_id) -> None:
        with session_factory() as db, pytest.raises(ImportValidationError, match="No play records"):
            coordinator.import_plays(
                db=db, library_id=library_id, content="title\nAzul\n", filename="g.csv", update_existing=False
            )


class TestMidRunPolling:
    def test_polled_counters_never_go_backwards(self, session_factory, settings, library_id) -> None:
        class PollingBroker(ProgressBroker):
            """Reads the job row through its own session on every frame."""

            def __init__(self) -> None:
                super().__init__()
                self.observed: list[tuple[int, int]] = []

            def publish(self, job_id, frame) -> None:
                with session_factory() as db:
                    job = ImportJobRepository(db).get_job(job_id)
                    self.observed.append((job.processed_items, job.total_items))
                super().publish(job_id, frame)

        broker = PollingBroker()
        coordinator = ImportJobCoordinator(session_factory=session_factory, broker=broker, settings=settings)
        _run(
            coordinator,
            session_factory,
            coordinator.prepare_upload(library_id=library_id, content="title\nAzul\n", filename="a.csv", options=ImportOptions()),
        )
        broker.observed.clear()

        prepared = coordinator.prepare_upload(
            library_id=library_id,
            content="title\nCatan\nAzul\n\nWingspan\nAzul\n",
            filename="b.csv",
            options=ImportOptions(),
        )
        job_id, frames = _run(coordinator, session_factory, prepared)

        processed = [value for value, _ in broker.observed]
        assert processed == sorted(processed)
        assert processed[0] == 0
        assert processed[-1] == broker.observed[-1][1] == prepared.total_items
        assert len(broker.observed) == len(frames)
        assert _load_job(session_factory, job_id).processed_items == prepared.total_items


# ---------------------------------------------------------------------------
# Interrupted jobs
# ---------------------------------------------------------------------------


class RecordingExecutor:
    """Accepts submissions without running them."""

    def __init__(self) -> None:
        self.submitted: list[tuple[tuple, dict]] = []

    def submit(self, task, *args, **kwargs) -> None:
        self.submitted.append((args, kwargs))


def _age(session_factory: sessionmaker, job_id: uuid.UUID, *, minutes: float) -> None:
    with session_factory() as db:
        db.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id)
            .values(updated_at=datetime.now(timezone.utc) - timedelta(minutes=minutes))
        )
        db.commit()


def _interrupted_job(
    session_factory: sessionmaker,
    prepared: PreparedImport,
    *,
    created: int,
    processed: int,
    age_minutes: float = 30,
) -> uuid.UUID:
    """
    A running job whose worker created the first `created` games and
    persisted progress for the first `processed` of them, then went away.
    """

    tally = ImportTally(error_cap=3, not_found_cap=3)
    with session_factory() as db:
        jobs = ImportJobRepository(db)
        games = GameRepository(db)
        job = jobs.create_job(
            library_id=prepared.library_id,
            total_items=prepared.total_items,
            request_payload=prepared.request_payload(),
        )
        job_id = job.id
        jobs.mark_running(job_id=job_id)
        for index, record in enumerate(prepared.parse_result.games[:created], start=1):
            games.create_game(library_id=prepared.library_id, record=record, defaults={})
            if index <= processed:
                tally.record_success()
                jobs.update_progress(
                    job_id=job_id,
                    processed_items=index,
                    successful_items=tally.imported,
                    failed_items=tally.failed,
                    phase="imported",
                    current_item=record.label,
                    checkpoint=tally.to_checkpoint(),
                )
        db.commit()
    _age(session_factory, job_id, minutes=age_minutes)
    return job_id


class TestResumeStaleJobs:
    CONTENT = "title\nAzul\nCatan\nWingspan\n"

    def _prepared(self, coordinator, library_id) -> PreparedImport:
        return coordinator.prepare_upload(
            library_id=library_id, content=self.CONTENT, filename="g.csv", options=ImportOptions()
        )

    def test_continues_after_last_persisted_item(self, coordinator, session_factory, library_id) -> None:
        job_id = _interrupted_job(session_factory, self._prepared(coordinator, library_id), created=1, processed=1)
        executor = InlineExecutor()

        assert coordinator.resume_stale_jobs(executor=executor, stale_after_seconds=60) == [job_id]

        job = _load_job(session_factory, job_id)
        assert executor.calls == 1
        assert job.status == ImportJobStatus.COMPLETED
        assert (job.processed_items, job.successful_items, job.failed_items) == (3, 3, 0)
        assert job.result_payload["imported"] == 3
        assert job.result_payload["failed"] == 0
        with session_factory() as db:
            assert GameRepository(db).count_games(library_id=library_id) == 3

    def test_in_flight_item_is_not_created_twice(self, coordinator, session_factory, library_id) -> None:
        job_id = _interrupted_job(session_factory, self._prepared(coordinator, library_id), created=2, processed=1)

        coordinator.resume_stale_jobs(executor=InlineExecutor(), stale_after_seconds=60)

        job = _load_job(session_factory, job_id)
        assert job.status == ImportJobStatus.COMPLETED
        assert (job.processed_items, job.successful_items, job.failed_items) == (3, 2, 1)
        assert job.result_payload["failureBreakdown"]["already_exists"] == 1
        with session_factory() as db:
            assert GameRepository(db).count_games(library_id=library_id) == 3

    def test_recently_written_jobs_are_left_alone(self, coordinator, session_factory, library_id) -> None:
        job_id = _interrupted_job(
            session_factory, self._prepared(coordinator, library_id), created=1, processed=1, age_minutes=0
        )
        executor = InlineExecutor()

        assert coordinator.resume_stale_jobs(executor=executor, stale_after_seconds=600) == []

        job = _load_job(session_factory, job_id)
        assert executor.calls == 0
        assert job.status == ImportJobStatus.RUNNING
        assert job.processed_items == 1

    def test_claimed_job_is_not_resubmitted_by_a_second_sweep(self, coordinator, session_factory, library_id) -> None:
        job_id = _interrupted_job(session_factory, self._prepared(coordinator, library_id), created=0, processed=0)
        first, second = RecordingExecutor(), RecordingExecutor()

        assert coordinator.resume_stale_jobs(executor=first, stale_after_seconds=60) == [job_id]
        assert coordinator.resume_stale_jobs(executor=second, stale_after_seconds=60) == []

        assert len(first.submitted) == 1
        assert first.submitted[0][1] == {"resume": True}
        assert second.submitted == []
        assert _load_job(session_factory, job_id).phase == "resuming"

    def test_play_import_jobs_are_failed(self, coordinator, session_factory, library_id) -> None:
        with session_factory() as db:
            jobs = ImportJobRepository(db)
            job = jobs.create_job(
                library_id=library_id,
                total_items=4,
                job_type=ImportJobType.PLAY_IMPORT,
                request_payload={"filename": "backup.json", "update_existing": False},
            )
            jobs.mark_running(job_id=job.id)
            db.commit()
            job_id = job.id
        _age(session_factory, job_id, minutes=30)

        assert coordinator.resume_stale_jobs(executor=InlineExecutor(), stale_after_seconds=60) == []

        job = _load_job(session_factory, job_id)
        assert job.status == ImportJobStatus.FAILED
        assert job.error_message == INTERRUPTED_JOB_REASON
        assert job.completed_at is not None

    def test_jobs_without_stored_records_are_failed(self, coordinator, session_factory, library_id) -> None:
        with session_factory() as db:
            job = ImportJobRepository(db).create_job(
                library_id=library_id,
                total_items=2,
                request_payload={"filename": "g.csv", "format": "generic_csv"},
            )
            db.commit()
            job_id = job.id
        _age(session_factory, job_id, minutes=30)

        assert coordinator.resume_stale_jobs(executor=InlineExecutor(), stale_after_seconds=60) == []

        job = _load_job(session_factory, job_id)
        assert job.status == ImportJobStatus.FAILED
        assert job.error_message.startswith(INTERRUPTED_JOB_REASON)
        assert "no records" in job.error_message

    def test_late_worker_cannot_reopen_a_failed_job(self, coordinator, session_factory, library_id) -> None:
        prepared = self._prepared(coordinator, library_id)
        with session_factory() as db:
            jobs = ImportJobRepository(db)
            job = jobs.create_job(
                library_id=library_id, total_items=prepared.total_items, request_payload=prepared.request_payload()
            )
            jobs.mark_failed(job_id=job.id, error_message="Cancelled by operator.")
            db.commit()
            job_id = job.id

        assert coordinator.run_job(job_id, prepared) is None

        job = _load_job(session_factory, job_id)
        assert job.status == ImportJobStatus.FAILED
        assert job.error_message == "Cancelled by operator."
        assert job.processed_items == 0
        with session_factory() as db:
            assert GameRepository(db).count_games(library_id=library_id) == 0
