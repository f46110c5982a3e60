"""REST API for policy management."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from knotcap.policy.evaluator import PolicyEvaluator, RequestContext
from knotcap.policy.parser import load_policy_from_string

router = APIRouter(tags=["policies"])


class PolicyBody(BaseModel):
    content: str


class MatchRequest(BaseModel):
    host: str
    uri: str = ""
    client_identifier: str = ""


def _summary(name: str, policy) -> dict:
    return {
        "name": name,
        "default_strategy": policy.default_strategy.value,
        "denylist_enabled": policy.denylist_enabled,
        "rule_count": policy.rule_count,
        "author": policy.author,
        "created_at": policy.created_at,
    }


def _verdict(evaluator: PolicyEvaluator, body: MatchRequest) -> dict:
    verdict = evaluator.evaluate(
        RequestContext(
            host=body.host,
            uri=body.uri,
            client_identifier=body.client_identifier,
        )
    )
    return {
        "matched": verdict.matched,
        "source": verdict.source.value,
        "rule": verdict.matched_rule.render() if verdict.matched_rule else None,
        "strategy": verdict.strategy.value if verdict.strategy else None,
    }


@router.get("/policies")
async def list_policies(request: Request):
    store = request.app.state.policy_store
    return [_summary(name, store.get(name)) for name in store.names()]


@router.get("/policies/{name}")
async def get_policy(name: str, request: Request):
    policy = request.app.state.policy_store.get(name)
    if policy is None:
        return JSONResponse(
            status_code=404,
            content={"detail": "Policy not found"},
        )
    return {**_summary(name, policy), "content": policy.text}


@router.put("/policies/{name}")
async def put_policy(name: str, body: PolicyBody, request: Request):
    policy = load_policy_from_string(body.content)
    await request.app.state.policy_store.save(policy, name)
    return {"status": "saved", "name": name, "rule_count": policy.rule_count}


@router.post("/policies/{name}/match")
async def match_policy(name: str, body: MatchRequest, request: Request):
    policy = request.app.state.policy_store.get(name)
    if policy is None:
        return JSONResponse(
            status_code=404,
            content={"detail": "Policy not found"},
        )
    return _verdict(PolicyEvaluator(policy), body)


@router.post("/match")
async def match_active(body: MatchRequest, request: Request):
    """Match against the configured current policy, or the built-in default."""
    store = request.app.state.policy_store
    evaluator = store.evaluator(request.app.state.config.current_policy)
    return {"policy": evaluator.policy.name, **_verdict(evaluator, body)}
