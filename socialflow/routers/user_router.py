# socialflow/routers/user_router.py
from fastapi import APIRouter, Depends
from socialflow.dependencies.auth import get_current_user
from socialflow.UAA.schemas import UserRead

router = APIRouter(prefix="/users", tags=["users"])

@router.get("/me", response_model=UserRead)
async def me(current_user = Depends(get_current_user)):
    return UserRead.model_validate(current_user, from_attributes=True)
