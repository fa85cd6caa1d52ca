"""Tests for the portraitly-generate command."""

import pytest

from portraitly.cli import generate as generate_cli
from portraitly.services.exceptions import AllProvidersExhaustedError, QuotaExceededError
from portraitly.services.generation.engine import GenerationResult


class StubEngine:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.requests = []

    async def generate(self, request, cancel_event=None):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def stub_engine(monkeypatch):
    engine = StubEngine(
        result=GenerationResult(
            image_url="https://storage.example.com/gen-u-1.png",
            style_id="classic_bw",
            provider_id="replicate:stability-ai/sdxl",
            remaining_credits=4,
        )
    )
    monkeypatch.setattr(generate_cli, "build_engine", lambda *args: engine)
    return engine


ARGS = ["--user-id", "u", "--image-url", "https://uploads.example.com/me.png"]


def test_parse_args_collects_repeated_filters():
    args = generate_cli.parse_args(
        ARGS + ["--style", "classic_bw", "--filter", "smooth_skin", "--filter", "Direct Gaze"]
    )

    assert args.style == "classic_bw"
    assert args.filters == ["smooth_skin", "Direct Gaze"]
    assert args.unbounded is False


@pytest.mark.asyncio
async def test_success_prints_summary(stub_engine, capsys):
    exit_code = await generate_cli.async_main(ARGS + ["--style", "classic_bw"])

    assert exit_code == 0
    assert stub_engine.requests[0].user_id == "u"
    assert stub_engine.requests[0].style_id == "classic_bw"
    out = capsys.readouterr().out
    assert "https://storage.example.com/gen-u-1.png" in out
    assert "Remaining credits: 4" in out


@pytest.mark.asyncio
async def test_quota_exhausted_exit_code(stub_engine):
    stub_engine.error = QuotaExceededError(0)

    assert await generate_cli.async_main(ARGS) == 2


@pytest.mark.asyncio
async def test_exhausted_chain_exit_code(stub_engine, capsys):
    stub_engine.error = AllProvidersExhaustedError([], None)

    assert await generate_cli.async_main(ARGS) == 1
    assert "Error" in capsys.readouterr().err
