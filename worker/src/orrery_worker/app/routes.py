from __future__ import annotations

from typing import cast

from fastapi import APIRouter, HTTPException, Request

from ..services.engine import CompositionEngine
from ..services.exceptions import InvalidFeatureVector
from ..services.planner import PLAN_VERSION
from .models import ComposeRequest, ComposeResponse, Plan, PlanRequest
from .settings import Settings

router = APIRouter()


def get_engine(request: Request) -> CompositionEngine:
    return cast(CompositionEngine, request.app.state.engine)


@router.get("/health")
async def health(request: Request) -> dict[str, object]:
    settings = cast(Settings, request.app.state.settings)
    engine = get_engine(request)
    return {
        "status": "ok",
        "planner_version": PLAN_VERSION,
        "quality_env": settings.quality_env.value,
        "calibrated_thresholds": engine.gate.calibrated,
        "strict_thresholds": engine.gate.strict,
    }


@router.post("/plan", response_model=Plan)
async def plan(payload: PlanRequest, request: Request) -> Plan:
    engine = get_engine(request)
    try:
        return engine.plan(payload.vector, payload.guidance)
    except InvalidFeatureVector as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.post("/compose", response_model=ComposeResponse)
async def compose(payload: ComposeRequest, request: Request) -> ComposeResponse:
    engine = get_engine(request)
    try:
        return engine.compose(
            payload.vector,
            guidance=payload.guidance,
            chart=payload.chart,
            controls=payload.controls,
        )
    except InvalidFeatureVector as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
