from fastapi import APIRouter

from footytrail_push.api import dispatch

router = APIRouter()
router.include_router(dispatch.router)
