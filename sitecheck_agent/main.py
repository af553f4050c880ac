from __future__ import annotations

import logging

from fastapi import Depends, FastAPI
from fastapi import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from . import config
from .analyzer import SafetyChecker, build_checker, format_result_summary, run_demo
from .models import CheckRequest, CheckResult, DemoResult
from .urls import is_valid_url


logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Site Safety Checker", version="0.1.0")

_checker = build_checker()


def get_checker() -> SafetyChecker:
    return _checker


# For local dev, this defaults to allowing http://localhost:3000.
# In production, set SITECHECK_CORS_ORIGINS to your deployed frontend origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _checked(req: CheckRequest, checker: SafetyChecker) -> CheckResult:
    if not is_valid_url(req.url):
        raise HTTPException(status_code=400, detail="Please enter a valid website URL.")
    if req.caller is not None:
        logger.info("Check requested by %s", req.caller.email or req.caller.name or "anonymous")
    return await checker.assess(req.url, include_external_lookups=req.include_external_lookups)


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.post("/check", response_model=CheckResult)
async def check_endpoint(req: CheckRequest, checker: SafetyChecker = Depends(get_checker)):
    return await _checked(req, checker)


@app.post("/check/summary", response_class=PlainTextResponse)
async def check_summary_endpoint(req: CheckRequest, checker: SafetyChecker = Depends(get_checker)):
    result = await _checked(req, checker)
    return format_result_summary(result)


@app.get("/demo", response_model=list[DemoResult])
async def demo_endpoint(include_external_lookups: bool = False, checker: SafetyChecker = Depends(get_checker)):
    return await run_demo(checker, include_external_lookups=include_external_lookups)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("sitecheck_agent.main:app", host="0.0.0.0", port=8000, reload=False)
