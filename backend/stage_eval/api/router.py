from fastapi import APIRouter

from stage_eval.api.routes.question_sets import router as question_sets_router

api_router = APIRouter()
api_router.include_router(question_sets_router)


@api_router.get("/healthz")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
