import httpx
import pytest

from stage_eval.clients.llm import EvaluatorClient, SummaryClient
from stage_eval.repositories.evaluation_job_repository import job_repository

_ENV_NAMES = [
    "SUMMARY_API_BASE",
    "SUMMARY_API_KEY",
    "SILICONFLOW_API_KEY",
    "SUMMARY_MODEL",
    "SUMMARY_TEMPERATURE",
    "SUMMARY_MAX_TOKENS",
    "SUMMARY_PROMPT_FIELD_LIMIT",
    "SUMMARY_TIMEOUT_SECONDS",
    "EVALUATOR_API_BASE",
    "EVALUATOR_API_KEY",
    "EVALUATOR_MODEL",
    "EVALUATOR_TIMEOUT_SECONDS",
    "EVALUATION_MAX_CONCURRENCY",
    "EVALUATION_JOB_LIMIT",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_jobs():
    job_repository._jobs.clear()
    yield
    job_repository._jobs.clear()


@pytest.fixture
async def evaluator_client():
    async def handler(request):
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    client = EvaluatorClient(
        base_url="https://api.siliconflow.cn/v1",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )
    yield client
    await client.close()


@pytest.fixture
async def summary_client():
    async def handler(request):
        return httpx.Response(200, json={"choices": [{"message": {"content": "{}"}}]})

    client = SummaryClient(
        base_url="https://api.siliconflow.cn/v1",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )
    yield client
    await client.close()
