from fastapi import APIRouter, Depends, Request

from budgy.deps import get_current_user
from budgy.models import User
from budgy.ratelimit import API_RATE_LIMIT, API_SCOPE, limiter
from budgy.serializers import serialize_user

router = APIRouter()


@router.get("/me")
@limiter.shared_limit(API_RATE_LIMIT, scope=API_SCOPE)
def get_me(request: Request, user: User = Depends(get_current_user)):
    return serialize_user(user)
