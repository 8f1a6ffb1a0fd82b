from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from .config import Config, load_config
from .errors import BatchEnvelopeError
from .logs import setup_logging
from .pipeline import Pipeline


class FailureResp(BaseModel):
    key: Optional[Dict[str, Any]] = None
    kind: str
    message: str
    index: Optional[int] = None


class BatchResp(BaseModel):
    ok: bool
    total_groups: int
    succeeded_groups: int
    decoded_records: int
    alerts_raised: int
    failures: List[FailureResp]


def create_app(cfg: Config, pipeline: Optional[Pipeline] = None) -> FastAPI:
    app = FastAPI(title="water-anomaly-pipeline")
    pipe = pipeline if pipeline is not None else Pipeline(cfg)
    app.state.pipeline = pipe

    @app.on_event("startup")
    async def _startup() -> None:
        setup_logging(cfg.log_level)
        await pipe.open()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await pipe.close()

    @app.post("/batches", response_model=BatchResp)
    async def ingest_batch(request: Request) -> Dict[str, Any]:
        body = await request.body()
        try:
            outcome = await pipe.coordinator.process_body(body)
        except BatchEnvelopeError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return outcome.to_dict()

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "scoring_url": cfg.scoring_url,
            "relay_enabled": cfg.relay_enabled,
            "store": "sqlite" if cfg.db_path else "memory",
            "alert_cooldown_s": cfg.alert_cooldown_s,
            "max_concurrency": cfg.max_concurrency,
            **pipe.metrics.snapshot(),
        }

    @app.get("/metrics")
    async def metrics() -> Dict[str, Any]:
        snap = pipe.metrics.snapshot()
        return {"anomalies": snap["anomalies"], "batches": snap["batches"]}

    return app


def app_from_env() -> FastAPI:
    """Factory for `uvicorn --factory anomaly_pipeline.app:app_from_env`; nothing is built at import."""
    return create_app(load_config())
