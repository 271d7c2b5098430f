from fastapi import APIRouter

from internal.controllers.web import oauth

router = APIRouter(prefix="/v1")

routers = [
    oauth.router,
]

for r in routers:
    router.include_router(r)
