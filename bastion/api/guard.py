"""
Decision endpoints for host applications.

Each route wraps one invocation point of the security engine. The host
forwards its end user's address in ``ip``; when omitted, the caller's own
address is used. Rejections always come back as the generic E6000 denial.
Every route requires the shared host token in ``X-Guard-Token``.
"""

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from bastion.api.deps import ClientIP, EngineDep, RequireHost
from bastion.core import NotFoundError, RequestRejectedError, get_logger
from bastion.security.types import FormDescriptor, Verdict

logger = get_logger(__name__)

router = APIRouter(prefix="/guard", tags=["guard"], dependencies=[RequireHost])


# Request schemas
class LoginCheckRequest(BaseModel):
    """
    Pre-authentication check.

    Bot screening runs when the host forwards its end user's ``user_agent``;
    ``headers`` are that user's request headers.
    """

    ip: str | None = None
    user_agent: str | None = None
    headers: dict[str, str] | None = None
    action: str = Field(default="", max_length=64)
    password_reset: bool = False


class LoginEventRequest(BaseModel):
    """Authentication outcome reported by the host."""

    identifier: str = Field(..., min_length=1, max_length=255)
    ip: str | None = None


class FormValidateRequest(BaseModel):
    """A form submission to screen."""

    form_id: str = Field(default="default", max_length=128)
    fields: dict[str, Any] = Field(default_factory=dict)
    honeypot_field: str | None = Field(default=None, max_length=128)
    rendered_at: float | None = None
    submitted_at: float | None = None
    ip: str | None = None
    user_agent: str | None = None
    query_string: str = ""


class FormRenderRequest(BaseModel):
    html: str
    form_id: str = Field(default="default", max_length=128)
    honeypot_field: str | None = Field(default=None, max_length=128)
    include_honeypot: bool = False


class CaptchaRequest(BaseModel):
    difficulty: str | None = Field(default=None, pattern=r"^(easy|medium|hard)$")
    ip: str | None = None


class GraphQLAdmitRequest(BaseModel):
    ip: str | None = None
    user_agent: str | None = None


def _descriptor(form_id: str, honeypot_field: str | None, rendered_at: float | None = None) -> FormDescriptor:
    if honeypot_field:
        return FormDescriptor(form_id=form_id, honeypot_field=honeypot_field, rendered_at=rendered_at)
    return FormDescriptor(form_id=form_id, rendered_at=rendered_at)


def _enforce(verdict: Verdict) -> dict[str, bool]:
    if not verdict.allowed:
        raise RequestRejectedError(retry_after=verdict.retry_after)
    return {"allowed": True}


# Login
@router.post("/login/check")
def login_check(body: LoginCheckRequest, engine: EngineDep, client_ip: ClientIP) -> dict[str, bool]:
    """Pre-authentication gate: bot screening, then lockout."""
    ip = body.ip or client_ip
    if body.user_agent is not None:
        _enforce(engine.bots.check(ip, body.user_agent, body.headers, body.action, body.password_reset))
    return _enforce(engine.lockout.check_lockout(ip))


@router.post("/login/failure")
def login_failure(body: LoginEventRequest, engine: EngineDep, client_ip: ClientIP) -> dict[str, bool]:
    locked = engine.lockout.handle_failed_attempt(body.identifier, body.ip or client_ip)
    return {"recorded": True, "locked": locked}


@router.post("/login/success")
def login_success(body: LoginEventRequest, engine: EngineDep, client_ip: ClientIP) -> dict[str, bool]:
    engine.lockout.handle_successful_login(body.identifier, body.ip or client_ip)
    return {"cleared": True}


@router.post("/login/password-changed")
def password_changed(body: LoginEventRequest, engine: EngineDep, client_ip: ClientIP) -> dict[str, bool]:
    engine.lockout.clear_on_password_change(body.identifier, body.ip or client_ip)
    return {"cleared": True}


# Forms
@router.post("/forms/validate")
def validate_form(
    body: FormValidateRequest,
    request: Request,
    engine: EngineDep,
    client_ip: ClientIP,
) -> dict[str, bool]:
    """Screen a form submission."""
    user_agent = body.user_agent if body.user_agent is not None else request.headers.get("user-agent", "")
    verdict = engine.submissions.validate(
        _descriptor(body.form_id, body.honeypot_field, body.rendered_at),
        body.fields,
        body.ip or client_ip,
        submitted_at=body.submitted_at,
        user_agent=user_agent,
        query_string=body.query_string,
    )
    return _enforce(verdict)


@router.post("/forms/render")
def render_form(body: FormRenderRequest, engine: EngineDep) -> dict[str, Any]:
    """Inject protection fields into a rendered form."""
    html = engine.submissions.render_form(
        body.html,
        include_honeypot=body.include_honeypot,
        form=_descriptor(body.form_id, body.honeypot_field),
    )
    return {"html": html, "under_attack": engine.under_attack.is_under_attack()}


@router.post("/captcha")
def new_captcha(body: CaptchaRequest, engine: EngineDep, client_ip: ClientIP) -> dict[str, Any]:
    """Issue a fresh challenge (e.g. for a refresh button) while under attack."""
    verdict, challenge = engine.submissions.issue_challenge(body.ip or client_ip, body.difficulty)
    _enforce(verdict)
    if challenge is None:
        raise NotFoundError("No challenge is required")
    return {
        "token": challenge.token,
        "question": challenge.question,
        "expires_in": challenge.ttl,
    }


# GraphQL
@router.get("/graphql/policy")
def graphql_policy(engine: EngineDep) -> dict[str, Any]:
    """Limits the GraphQL engine must enforce for the next request."""
    return {
        "policy": engine.graphql.current_policy().to_dict(),
        "rate_limits": engine.graphql.rate_limit_config(),
    }


@router.post("/graphql/admit")
def graphql_admit(
    body: GraphQLAdmitRequest,
    request: Request,
    engine: EngineDep,
    client_ip: ClientIP,
) -> dict[str, Any]:
    user_agent = body.user_agent if body.user_agent is not None else request.headers.get("user-agent", "")
    _enforce(engine.graphql.admit(body.ip or client_ip, user_agent))
    return {"allowed": True, "policy": engine.graphql.current_policy().to_dict()}
