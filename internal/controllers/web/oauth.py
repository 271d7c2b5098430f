"""第三方登录 / 绑定接口"""

from typing import Annotated
from urllib.parse import urlencode, urlsplit

from fastapi import APIRouter, Depends, Query, Request

from internal.config import settings
from internal.core.exception import AppException, errors
from internal.schemas.oauth import (
    AuthorizeReqSchema,
    AuthorizeRespSchema,
    BindingItemSchema,
    BindingListRespSchema,
    CallbackRespSchema,
    ProviderItemSchema,
    ProviderListRespSchema,
    RefreshReqSchema,
    RefreshRespSchema,
    UnbindReqSchema,
    UnbindRespSchema,
)
from internal.services.login_session import new_login_session_issuer
from internal.services.oauth import OAuthOutcome, OAuthService, new_oauth_service
from pkg.logger import logger
from pkg.toolkit.response import redirect_response, success_response

router = APIRouter(prefix="/oauth", tags=["web v1 oauth"])


def get_oauth_service() -> OAuthService:
    return new_oauth_service(login_issuer=new_login_session_issuer())


def get_optional_user_id(request: Request) -> int | None:
    return getattr(request.state, "user_id", None)


def get_current_user_id(request: Request) -> int:
    user_id = get_optional_user_id(request)
    if user_id is None:
        raise AppException(errors.Unauthorized)
    return user_id


OAuthServiceDep = Annotated[OAuthService, Depends(get_oauth_service)]
OptionalUserIdDep = Annotated[int | None, Depends(get_optional_user_id)]
CurrentUserIdDep = Annotated[int, Depends(get_current_user_id)]


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _is_allowed_redirect(redirect_uri: str) -> bool:
    """只允许跳回 OAUTH_FRONTEND_REDIRECT_URL 所在站点；未配置时一律拒绝"""
    if not settings.OAUTH_FRONTEND_REDIRECT_URL:
        return False

    allowed = urlsplit(settings.OAUTH_FRONTEND_REDIRECT_URL)
    target = urlsplit(redirect_uri)
    return (target.scheme, target.netloc) == (allowed.scheme, allowed.netloc)


def _check_redirect_uri(redirect_uri: str | None) -> str | None:
    if redirect_uri and not _is_allowed_redirect(redirect_uri):
        raise AppException(errors.BadRequest, message="redirect_uri is not allowed")
    return redirect_uri


def _outcome_redirect_url(outcome: OAuthOutcome) -> str | None:
    target = settings.OAUTH_FRONTEND_REDIRECT_URL
    if outcome.redirect_uri:
        if _is_allowed_redirect(outcome.redirect_uri):
            target = outcome.redirect_uri
        else:
            logger.warning(
                f"OAuth redirect_uri dropped, provider={outcome.provider}, redirect_uri={outcome.redirect_uri}"
            )
    if not target:
        return None

    query = urlencode({"provider": outcome.provider, "action": outcome.action, "created": int(outcome.created)})
    url = f"{target}{'&' if urlsplit(target).query else '?'}{query}"
    # 登录令牌放在 fragment 中，不会随请求发送到前端服务器
    if outcome.login is not None:
        url = f"{url}#{urlencode({'token': outcome.login.token})}"
    return url


@router.get("/providers", summary="可用的第三方登录方式")
async def list_providers(service: OAuthServiceDep, user_id: OptionalUserIdDep):
    providers = await service.list_available_providers(user_id=user_id)
    items = [
        ProviderItemSchema(name=p.name, display_name=p.display_name, sort=p.sort, is_bound=p.is_bound)
        for p in providers
    ]
    return success_response(data=ProviderListRespSchema(items=items))


@router.get("/{provider}/authorize", summary="发起第三方授权")
async def authorize(
    provider: str,
    request: Request,
    service: OAuthServiceDep,
    user_id: OptionalUserIdDep,
    req: Annotated[AuthorizeReqSchema, Query()],
):
    """
    已登录时为绑定，否则为登录。

    Accept 包含 application/json 时返回授权地址，否则直接 302 跳转到第三方授权页。
    """
    redirect_uri = _check_redirect_uri(str(req.redirect_uri) if req.redirect_uri else None)
    auth_req = await service.begin_auth(
        provider,
        user_id=user_id,
        redirect_uri=redirect_uri,
        client_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    if "application/json" in request.headers.get("accept", ""):
        return success_response(
            data=AuthorizeRespSchema(
                auth_url=auth_req.auth_url,
                state=auth_req.state,
                provider=auth_req.provider,
                intent=auth_req.intent,
            )
        )
    return redirect_response(auth_req.auth_url)


@router.get("/{provider}/callback", summary="第三方授权回调")
async def callback(
    provider: str,
    request: Request,
    service: OAuthServiceDep,
    state: Annotated[str, Query(max_length=128)] = "",
    code: Annotated[str | None, Query(max_length=512)] = None,
    error: Annotated[str | None, Query(max_length=256)] = None,
    error_description: Annotated[str | None, Query(max_length=1024)] = None,
):
    outcome = await service.handle_callback(
        provider,
        state=state,
        code=code,
        error=error,
        error_description=error_description,
        client_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    if redirect_url := _outcome_redirect_url(outcome):
        return redirect_response(redirect_url)

    return success_response(
        data=CallbackRespSchema(
            action=outcome.action,
            provider=outcome.provider,
            user_id=outcome.user_id,
            binding_id=outcome.binding.id,
            created=outcome.created,
            token=outcome.login.token if outcome.login else None,
            token_expires_at=outcome.login.expires_at if outcome.login else None,
        )
    )


@router.post("/{provider}/refresh", summary="刷新第三方访问令牌")
async def refresh(provider: str, service: OAuthServiceDep, user_id: CurrentUserIdDep, req: RefreshReqSchema | None = None):
    result = await service.refresh_tokens(user_id, provider, force=req.force if req else False)
    return success_response(
        data=RefreshRespSchema(provider=provider.lower(), refreshed=result.refreshed, expires_at=result.expires_at)
    )


@router.delete("/{provider}/binding", summary="解绑第三方账号")
async def unbind(provider: str, service: OAuthServiceDep, user_id: CurrentUserIdDep, req: UnbindReqSchema | None = None):
    receipt = await service.unbind(user_id, provider, confirm=req.confirm if req else False)
    return success_response(data=UnbindRespSchema(provider=receipt.provider, unbound_at=receipt.unbound_at))


@router.get("/bindings", summary="当前用户的第三方绑定")
async def list_bindings(service: OAuthServiceDep, user_id: CurrentUserIdDep):
    bindings = await service.list_bindings(user_id)
    items = [BindingItemSchema.model_validate(b, from_attributes=True) for b in bindings]
    return success_response(data=BindingListRespSchema(items=items))
