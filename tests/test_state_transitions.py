"""State transition tests for GenerationTask and GenerationJob.

Tests focus on validating the lifecycle state machines:
- Valid transitions between states
- Invalid transitions are rejected with clear error messages
- Failed state is reachable from any non-terminal state
"""

from datetime import datetime, timezone

import pytest

from portraitly.models.generation_task import (
    GenerationTask,
    GenerationTaskStatus,
    InvalidStateTransition,
)
from portraitly.services.generation.job import GenerationJob, JobStatus

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_task(status=GenerationTaskStatus.PROCESSING) -> GenerationTask:
    return GenerationTask(
        task_id="task-1",
        user_id="owner",
        provider_id="nanobanana",
        style_id="studio_professional",
        status=status,
    )


def test_task_complete_requires_publishing_claim():
    task = make_task()

    with pytest.raises(InvalidStateTransition) as exc_info:
        task.mark_complete("https://storage.example.com/a.png", NOW)

    assert "publishing" in str(exc_info.value)
    assert task.status == GenerationTaskStatus.PROCESSING


def test_task_publishing_to_complete():
    task = make_task(GenerationTaskStatus.PUBLISHING)

    task.mark_complete("https://storage.example.com/a.png", NOW)

    assert task.status == GenerationTaskStatus.COMPLETE
    assert task.image_url == "https://storage.example.com/a.png"
    assert task.completed_at == NOW
    assert task.is_terminal


def test_task_complete_requires_image_url():
    task = make_task(GenerationTaskStatus.PUBLISHING)

    with pytest.raises(ValueError):
        task.mark_complete("", NOW)


@pytest.mark.parametrize(
    "status", [GenerationTaskStatus.PROCESSING, GenerationTaskStatus.PUBLISHING]
)
def test_task_failed_from_non_terminal(status):
    task = make_task(status)

    task.mark_failed("Generation failed", NOW)

    assert task.status == GenerationTaskStatus.FAILED
    assert task.error == "Generation failed"


@pytest.mark.parametrize("status", [GenerationTaskStatus.COMPLETE, GenerationTaskStatus.FAILED])
def test_task_terminal_states_are_final(status):
    task = make_task(status)

    with pytest.raises(InvalidStateTransition):
        task.mark_failed("late failure", NOW)


def make_job() -> GenerationJob:
    return GenerationJob(
        user_id="owner",
        source_image_url="https://uploads.example.com/me.png",
        style_id="studio_professional",
        filter_ids=frozenset({"smooth_skin"}),
    )


def test_job_happy_path():
    job = make_job()

    job.start_composing()
    job.start_attempting()
    job.succeed()

    assert job.status == JobStatus.SUCCEEDED
    assert job.is_terminal


@pytest.mark.parametrize("steps", [0, 1, 2])
def test_job_fails_from_any_non_terminal_state(steps):
    job = make_job()
    for advance in [job.start_composing, job.start_attempting][:steps]:
        advance()

    job.fail()

    assert job.status == JobStatus.FAILED


def test_job_cannot_skip_composing():
    job = make_job()

    with pytest.raises(InvalidStateTransition):
        job.start_attempting()


def test_job_terminal_is_final():
    job = make_job()
    job.fail()

    with pytest.raises(InvalidStateTransition):
        job.succeed()
    with pytest.raises(InvalidStateTransition):
        job.fail()
