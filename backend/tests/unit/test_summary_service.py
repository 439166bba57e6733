import httpx
import pytest

from factories import (
    TOP_TIER_SUMMARY,
    make_evaluation,
    make_stage_info,
    summary_client_factory,
    summary_reply,
)
from stage_eval.models.evaluation import PerformanceLevel
from stage_eval.services import summary_service
from stage_eval.services.fallback import generate_fallback_evaluation
from stage_eval.services.dispatcher import build_request


@pytest.fixture
def summary_key(monkeypatch):
    monkeypatch.setenv("SUMMARY_API_KEY", "secret")


def _levels(*levels):
    return [make_evaluation(level) for level in levels]


def test_prompt_lists_every_evaluation_in_order():
    evaluations = [
        make_evaluation(PerformanceLevel.DIRECTOR, summary="first answer"),
        make_evaluation(PerformanceLevel.ASSISTANT, summary="second answer"),
    ]

    prompt = summary_service.build_overall_summary_prompt(evaluations, make_stage_info(2))

    assert prompt.index("--- Question 1 ---") < prompt.index("--- Question 2 ---")
    assert prompt.index("first answer") < prompt.index("second answer")
    assert "Performance level: 导演级" in prompt
    assert "Professional skills (professional)" in prompt
    assert "Number of evaluation reports: 2" in prompt


def test_prompt_caps_long_fields_without_dropping_evaluations():
    evaluations = [make_evaluation(summary="x" * 2000) for _ in range(4)]

    prompt = summary_service.build_overall_summary_prompt(
        evaluations, make_stage_info(4), field_limit=50
    )

    assert prompt.count("--- Question") == 4
    assert "x" * 51 not in prompt
    assert "x" * 49 + "…" in prompt


def test_prompt_notes_empty_lists():
    evaluation = make_evaluation()
    bare = type(evaluation)(
        performance_level=evaluation.performance_level,
        summary=evaluation.summary,
        strengths=(),
        improvements=(),
        preliminary_analysis=evaluation.preliminary_analysis,
    )

    prompt = summary_service.build_overall_summary_prompt([bare], make_stage_info(1))

    assert "Strengths: None noted" in prompt
    assert "Improvements: None noted" in prompt


@pytest.mark.parametrize(
    ("levels", "expected", "average"),
    [
        ([PerformanceLevel.DIRECTOR] * 3, PerformanceLevel.DIRECTOR, 4.0),
        ([PerformanceLevel.DIRECTOR, PerformanceLevel.PRODUCER], PerformanceLevel.DIRECTOR, 3.5),
        ([PerformanceLevel.PRODUCER, PerformanceLevel.SCREENWRITER], PerformanceLevel.PRODUCER, 2.5),
        ([PerformanceLevel.SCREENWRITER, PerformanceLevel.ASSISTANT], PerformanceLevel.SCREENWRITER, 1.5),
        ([PerformanceLevel.ASSISTANT], PerformanceLevel.ASSISTANT, 1.0),
        ([PerformanceLevel.UNASSESSABLE, PerformanceLevel.PRODUCER], PerformanceLevel.PRODUCER, 3.0),
    ],
)
def test_score_levels(levels, expected, average):
    assert summary_service.score_levels(levels) == (expected, average)


def test_score_levels_without_ordinals_is_bottom_tier():
    assert summary_service.score_levels([]) == (PerformanceLevel.ASSISTANT, None)
    assert summary_service.score_levels([PerformanceLevel.UNASSESSABLE]) == (
        PerformanceLevel.ASSISTANT,
        None,
    )


def test_fallback_summary_ignores_invalid_and_synthetic_entries():
    request = build_request("q", "a", stage_type="professional")
    evaluations = [
        make_evaluation(PerformanceLevel.DIRECTOR),
        make_evaluation(PerformanceLevel.ASSISTANT, is_valid=False),
        generate_fallback_evaluation(request, RuntimeError("down")),
        make_evaluation(PerformanceLevel.UNASSESSABLE),
    ]

    summary = summary_service.generate_fallback_summary(evaluations, make_stage_info(4))

    assert summary.overall_level is PerformanceLevel.DIRECTOR
    assert summary.source == "fallback"
    assert summary.strengths == ()
    assert summary.improvements == ()
    assert "4 questions of Professional skills" in summary.summary
    assert "导演级" in summary.summary


def test_fallback_summary_with_no_valid_entries_is_bottom_tier():
    request = build_request("q", "a", stage_type="professional")
    evaluations = [generate_fallback_evaluation(request) for _ in range(3)]

    summary = summary_service.generate_fallback_summary(evaluations, make_stage_info(3))

    assert summary.overall_level is PerformanceLevel.ASSISTANT


@pytest.mark.asyncio
async def test_missing_credential_uses_fallback_without_request(monkeypatch):
    def unexpected_client(**kwargs):
        raise AssertionError("summary model must not be called")

    monkeypatch.setattr(summary_service, "SummaryClient", unexpected_client)

    summary = await summary_service.generate_overall_summary(
        _levels(PerformanceLevel.PRODUCER), make_stage_info(1)
    )

    assert summary.source == "fallback"
    assert summary.overall_level is PerformanceLevel.PRODUCER


@pytest.mark.asyncio
async def test_empty_evaluations_skip_model(monkeypatch, summary_key):
    def unexpected_client(**kwargs):
        raise AssertionError("summary model must not be called")

    monkeypatch.setattr(summary_service, "SummaryClient", unexpected_client)

    summary = await summary_service.generate_overall_summary([], make_stage_info(0))

    assert summary.source == "fallback"
    assert summary.overall_level is PerformanceLevel.ASSISTANT


@pytest.mark.asyncio
async def test_model_summary_is_returned(monkeypatch, summary_key):
    captured = {}

    async def handler(request):
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json=summary_reply(TOP_TIER_SUMMARY))

    monkeypatch.setattr(summary_service, "SummaryClient", summary_client_factory(handler))

    summary = await summary_service.generate_overall_summary(
        _levels(PerformanceLevel.DIRECTOR, PerformanceLevel.DIRECTOR), make_stage_info(2)
    )

    assert captured["url"] == "https://api.siliconflow.cn/v1/chat/completions"
    assert captured["auth"] == "Bearer secret"
    assert summary.source == "model"
    assert summary.overall_level is PerformanceLevel.DIRECTOR
    assert summary.summary == TOP_TIER_SUMMARY["summary"]
    assert len(summary.strengths) == 2
    assert len(summary.improvements) == 2


@pytest.mark.asyncio
async def test_model_lists_are_trimmed_to_three(monkeypatch, summary_key):
    content = dict(TOP_TIER_SUMMARY)
    content["strengths"] = TOP_TIER_SUMMARY["strengths"] * 3

    async def handler(request):
        return httpx.Response(200, json=summary_reply(content))

    monkeypatch.setattr(summary_service, "SummaryClient", summary_client_factory(handler))

    summary = await summary_service.generate_overall_summary(
        _levels(PerformanceLevel.DIRECTOR), make_stage_info(1)
    )

    assert len(summary.strengths) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "body"),
    [
        (500, {"error": "boom"}),
        (401, {"error": "unauthorized"}),
        (200, {"choices": []}),
        (200, {"choices": [{"message": {"content": "not json"}}]}),
        (200, summary_reply({"overallLevel": "legendary", "summary": "x"})),
        (200, summary_reply({**TOP_TIER_SUMMARY, "overallLevel": "无法评估"})),
        (200, summary_reply({**TOP_TIER_SUMMARY, "summary": ""})),
        (200, {"choices": [None]}),
        (200, {"choices": [{"message": "plain text"}]}),
        (200, {"choices": {"0": {}}}),
        (200, {"choices": [{"message": {"tool_calls": ["x"]}}]}),
        (200, {"choices": [{"message": {"content": ["not", "text"]}}]}),
        (200, summary_reply({**TOP_TIER_SUMMARY, "strengths": [], "improvements": []})),
        (200, summary_reply({**TOP_TIER_SUMMARY, "improvements": TOP_TIER_SUMMARY["improvements"][:1]})),
    ],
)
async def test_model_failures_fall_back(monkeypatch, summary_key, status_code, body):
    events = []

    async def handler(request):
        return httpx.Response(status_code, json=body)

    monkeypatch.setattr(summary_service, "SummaryClient", summary_client_factory(handler))
    monkeypatch.setattr(
        summary_service, "emit_event", lambda name, **kwargs: events.append((name, kwargs))
    )

    summary = await summary_service.generate_overall_summary(
        _levels(PerformanceLevel.PRODUCER, PerformanceLevel.PRODUCER), make_stage_info(2)
    )

    assert summary.source == "fallback"
    assert summary.overall_level is PerformanceLevel.PRODUCER
    assert [name for name, _ in events] == ["summary.fallback"]
    assert events[0][1]["attributes"]["reason"] in {"transport_error", "invalid_response"}


@pytest.mark.asyncio
async def test_network_error_falls_back(monkeypatch, summary_key):
    async def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    monkeypatch.setattr(summary_service, "SummaryClient", summary_client_factory(handler))

    summary = await summary_service.generate_overall_summary(
        _levels(PerformanceLevel.SCREENWRITER), make_stage_info(1)
    )

    assert summary.source == "fallback"
    assert summary.overall_level is PerformanceLevel.SCREENWRITER


@pytest.mark.asyncio
async def test_summary_does_not_mutate_inputs(monkeypatch, summary_key):
    async def handler(request):
        return httpx.Response(200, json=summary_reply(TOP_TIER_SUMMARY))

    monkeypatch.setattr(summary_service, "SummaryClient", summary_client_factory(handler))
    evaluations = _levels(PerformanceLevel.DIRECTOR, PerformanceLevel.ASSISTANT)
    before = list(evaluations)

    await summary_service.generate_overall_summary(evaluations, make_stage_info(2))

    assert evaluations == before


@pytest.mark.asyncio
async def test_sparse_model_lists_are_reported_as_invalid(monkeypatch, summary_key):
    events = []

    async def handler(request):
        return httpx.Response(
            200, json=summary_reply({**TOP_TIER_SUMMARY, "strengths": [], "improvements": []})
        )

    monkeypatch.setattr(summary_service, "SummaryClient", summary_client_factory(handler))
    monkeypatch.setattr(
        summary_service, "emit_event", lambda name, **kwargs: events.append(kwargs["attributes"])
    )

    summary = await summary_service.generate_overall_summary(
        _levels(PerformanceLevel.DIRECTOR), make_stage_info(1)
    )

    assert summary.source == "fallback"
    assert events == [{"reason": "invalid_response"}]


@pytest.mark.asyncio
async def test_invalid_summary_settings_fall_back(monkeypatch, summary_key):
    events = []

    def unexpected_client(**kwargs):
        raise AssertionError("summary model must not be called")

    monkeypatch.setenv("SUMMARY_TEMPERATURE", "hot")
    monkeypatch.setattr(summary_service, "SummaryClient", unexpected_client)
    monkeypatch.setattr(
        summary_service, "emit_event", lambda name, **kwargs: events.append(kwargs["attributes"])
    )

    summary = await summary_service.generate_overall_summary(
        _levels(PerformanceLevel.PRODUCER), make_stage_info(1)
    )

    assert summary.source == "fallback"
    assert summary.overall_level is PerformanceLevel.PRODUCER
    assert events == [{"reason": "misconfigured"}]
