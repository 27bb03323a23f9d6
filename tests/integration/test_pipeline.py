"""End-to-end tests for ThreadProcessor with fake external services."""

import asyncio

import pytest

from api.job_store import InMemoryJobStore
from models.job import JobStatus
from models.match import RetrievalResult
from models.transcript import AcquisitionFailure
from services.matching_engine import MatchingEngine
from thread_processor import JobOptions, ThreadProcessor, normalize_video_references
from utils.errors import InputError, JobNotFoundError

pytestmark = pytest.mark.integration

VIDEO_A = "https://www.youtube.com/watch?v=aaaaaaaaaaa"
VIDEO_B = "https://www.youtube.com/watch?v=bbbbbbbbbbb"

THREAD = "Hook\n---\nTweet one about glymphatic clearance\n---\nTweet two about circadian rhythm"


class FakeTranscriptService:
    """Returns canned outcomes per reference."""

    def __init__(self, outcomes: dict, delay: float = 0.0):
        self.outcomes = outcomes
        self.delay = delay
        self.calls = []
        self.active = 0
        self.peak = 0

    async def acquire(self, reference, session_id=None):
        self.calls.append((reference, session_id))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        outcome = self.outcomes.get(reference)
        if outcome is None:
            return AcquisitionFailure(reference, "No transcript source succeeded", ("stub: nothing",))
        return outcome


class FakeRetrieval:
    def __init__(self, fail_positions=()):
        self.fail_positions = set(fail_positions)
        self.calls = []

    async def retrieve(self, matches, job_id=None, session_id=None):
        self.calls.append((len(matches), job_id, session_id))
        return [
            RetrievalResult(success=False, error="cut failed")
            if i in self.fail_positions
            else RetrievalResult(success=True, local_file_path=f"/clips/{m.text_segment_id}.mp4")
            for i, m in enumerate(matches)
        ]


class RecordingJobStore(InMemoryJobStore):
    """Job store that records every progress value it reports."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.progress_history = []

    async def update_job(self, job_id, **kwargs):
        job = await super().update_job(job_id, **kwargs)
        if job is not None:
            self.progress_history.append(job.progress_percent)
        return job


def _rule(segment, candidate):
    if "glymphatic" in segment.text and "glymphatic" in candidate.text:
        return 0.95
    if "circadian" in segment.text and "circadian" in candidate.text:
        return 0.9
    return 0.1


def _processor(sample_config, transcripts, scorer, retrieval=None, store=None):
    return ThreadProcessor(
        sample_config,
        job_store=store or RecordingJobStore(),
        transcript_service=transcripts,
        matching_engine=MatchingEngine(scorer, min_confidence=0.75),
        retrieval=retrieval or FakeRetrieval(),
    )


async def _run(processor, thread=THREAD, videos=(VIDEO_A,), options=None):
    job_id = await processor.submit(thread, list(videos), options)
    await processor.wait_for_background_tasks()
    return await processor.get_status(job_id)


class TestThreadProcessor:
    """End-to-end job scenarios."""

    @pytest.mark.asyncio
    async def test_hook_excluded_and_matches_bounded(self, sample_config, transcript_factory, fake_scorer_factory):
        transcript = transcript_factory(
            VIDEO_A,
            ["intro", "glymphatic clearance at night", "filler", "more filler", "circadian rhythm shift", "end"],
        )
        processor = _processor(
            sample_config, FakeTranscriptService({VIDEO_A: transcript}), fake_scorer_factory(_rule)
        )

        job = await _run(processor)

        assert job.status == JobStatus.COMPLETED
        assert job.progress_percent == 100.0
        summary = job.result.summary
        assert summary.segments_total == 2
        assert summary.videos_successful == 1
        assert len(job.result.matches) <= 2
        assert [m.segment_text for m in job.result.matches] == [
            "Tweet one about glymphatic clearance",
            "Tweet two about circadian rhythm",
        ]
        assert job.status_message == "Completed with 2/2 matches"

    @pytest.mark.asyncio
    async def test_unusable_video_degrades_instead_of_failing(
        self, sample_config, transcript_factory, fake_scorer_factory
    ):
        transcript = transcript_factory(VIDEO_A, ["glymphatic clearance explained"])
        processor = _processor(
            sample_config, FakeTranscriptService({VIDEO_A: transcript}), fake_scorer_factory(_rule)
        )

        job = await _run(processor, videos=[VIDEO_A, VIDEO_B])

        assert job.status == JobStatus.COMPLETED
        summary = job.result.summary
        assert summary.videos_processed == 2
        assert summary.videos_unusable == 1
        assert summary.unusable_videos[0]["video_reference"] == VIDEO_B
        assert [m.segment_ordinal for m in job.result.matches] == [1]
        assert "1/2 videos unusable" in job.status_message

    @pytest.mark.asyncio
    async def test_all_videos_unusable_completes_with_no_matches(self, sample_config, fake_scorer_factory):
        scorer = fake_scorer_factory(_rule)
        processor = _processor(sample_config, FakeTranscriptService({}), scorer)

        job = await _run(processor, videos=[VIDEO_B])

        assert job.status == JobStatus.COMPLETED
        assert job.result.matches == []
        assert job.result.summary.videos_unusable == 1
        assert scorer.calls == 0

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, sample_config, transcript_factory, fake_scorer_factory):
        store = RecordingJobStore()
        transcripts = {
            VIDEO_A: transcript_factory(VIDEO_A, ["glymphatic clearance"]),
            VIDEO_B: transcript_factory(VIDEO_B, ["circadian rhythm"]),
        }
        processor = _processor(
            sample_config, FakeTranscriptService(transcripts), fake_scorer_factory(_rule), store=store
        )

        await _run(processor, videos=[VIDEO_A, VIDEO_B])

        history = store.progress_history
        assert history == sorted(history)
        assert history[-1] == 100.0

    @pytest.mark.asyncio
    async def test_clip_download_attaches_results(self, sample_config, transcript_factory, fake_scorer_factory):
        transcript = transcript_factory(VIDEO_A, ["glymphatic clearance", "circadian rhythm"])
        retrieval = FakeRetrieval(fail_positions={1})
        processor = _processor(
            sample_config, FakeTranscriptService({VIDEO_A: transcript}), fake_scorer_factory(_rule), retrieval
        )

        job = await _run(processor, options=JobOptions(download_clips=True, session_id="sess-12345"))

        assert retrieval.calls == [(2, job.id, "sess-12345")]
        first, second = job.result.matches
        assert first.retrieval_succeeded is True
        assert first.local_file_path == "/clips/segment-1.mp4"
        assert second.retrieval_succeeded is False
        assert job.result.summary.clips_downloaded == 1

    @pytest.mark.asyncio
    async def test_clips_not_downloaded_by_default(self, sample_config, transcript_factory, fake_scorer_factory):
        transcript = transcript_factory(VIDEO_A, ["glymphatic clearance"])
        retrieval = FakeRetrieval()
        processor = _processor(
            sample_config, FakeTranscriptService({VIDEO_A: transcript}), fake_scorer_factory(_rule), retrieval
        )

        job = await _run(processor)

        assert retrieval.calls == []
        assert job.result.matches[0].retrieval_succeeded is None

    @pytest.mark.asyncio
    async def test_timeout_fails_job(self, sample_config, fake_scorer_factory):
        sample_config["job_timeout_seconds"] = 0.05
        processor = _processor(sample_config, FakeTranscriptService({}, delay=1.0), fake_scorer_factory(_rule))

        job = await _run(processor)

        assert job.status == JobStatus.FAILED
        assert job.error_kind == "timeout"

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(self, sample_config, transcript_factory):
        class BrokenScorer:
            def score_candidates(self, segments, candidates):
                raise RuntimeError("scorer crashed")

        transcript = transcript_factory(VIDEO_A, ["glymphatic clearance"])
        processor = _processor(sample_config, FakeTranscriptService({VIDEO_A: transcript}), BrokenScorer())

        job = await _run(processor)

        assert job.status == JobStatus.FAILED
        assert job.error_kind == "internal_error"
        assert "scorer crashed" in job.error

    @pytest.mark.asyncio
    async def test_invalid_input_creates_no_job(self, sample_config, fake_scorer_factory):
        store = RecordingJobStore()
        processor = _processor(sample_config, FakeTranscriptService({}), fake_scorer_factory(_rule), store=store)

        with pytest.raises(InputError):
            await processor.submit("   ", [VIDEO_A])
        with pytest.raises(InputError):
            await processor.submit(THREAD, [])
        with pytest.raises(InputError):
            await processor.submit(THREAD, ["not a url"])
        assert store.job_count() == 0

    @pytest.mark.asyncio
    async def test_unknown_job(self, sample_config, fake_scorer_factory):
        processor = _processor(sample_config, FakeTranscriptService({}), fake_scorer_factory(_rule))
        with pytest.raises(JobNotFoundError):
            await processor.get_status("nope")

    @pytest.mark.asyncio
    async def test_session_id_forwarded_to_transcripts(self, sample_config, fake_scorer_factory):
        transcripts = FakeTranscriptService({})
        processor = _processor(sample_config, transcripts, fake_scorer_factory(_rule))

        await _run(processor, options=JobOptions(session_id="sess-12345"))

        assert transcripts.calls == [(VIDEO_A, "sess-12345")]

    @pytest.mark.asyncio
    async def test_transcript_fan_out_is_capped(self, sample_config, transcript_factory, fake_scorer_factory):
        videos = [f"https://www.youtube.com/watch?v={letter * 11}" for letter in "cdefghij"]
        transcripts = FakeTranscriptService(
            {v: transcript_factory(v, ["circadian rhythm"]) for v in videos}, delay=0.05
        )
        processor = _processor(sample_config, transcripts, fake_scorer_factory(_rule))

        job = await _run(processor, videos=videos)

        assert job.status == JobStatus.COMPLETED
        assert len(transcripts.calls) == len(videos)
        assert transcripts.peak == sample_config["max_concurrent_transcripts"] == 3

    @pytest.mark.asyncio
    async def test_purge_removes_job_scratch_files(self, sample_config, transcript_factory, fake_scorer_factory):
        store = RecordingJobStore(retention_seconds=0.05)
        transcript = transcript_factory(VIDEO_A, ["glymphatic clearance"])
        processor = _processor(
            sample_config, FakeTranscriptService({VIDEO_A: transcript}), fake_scorer_factory(_rule), store=store
        )

        job = await _run(processor)
        job_dir = processor.scratch_dir / job.id
        (job_dir / "clips").mkdir(parents=True)
        (job_dir / "clips" / "clip_001.mp4").write_bytes(b"clip")
        (job_dir / f"{job.id}_clips.zip").write_bytes(b"zip")
        other_dir = processor.scratch_dir / "other-job"
        other_dir.mkdir(parents=True)

        await asyncio.sleep(0.2)

        with pytest.raises(JobNotFoundError):
            await processor.get_status(job.id)
        assert not job_dir.exists()
        assert other_dir.exists()


def test_normalize_video_references_dedupes_in_order():
    refs = normalize_video_references([f" {VIDEO_B} ", VIDEO_A, VIDEO_B, ""])
    assert refs == [VIDEO_B, VIDEO_A]
