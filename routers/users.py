"""
Router for user profiles
"""
import logging

from fastapi import APIRouter, HTTPException, status

from core.exceptions import WalletError
from dependencies import CurrentUserDepends, DbDepends
from routers.utils import http_error
from schemas.users import CreateProfileRequest, UserProfile
from services.ledger import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/users",
    tags=["users"]
)


@router.post("/profile", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
async def create_profile(
    request: CreateProfileRequest,
    user_id: CurrentUserDepends,
    db: DbDepends
):
    """
    Create the profile of the authenticated user

    Args:
        request: Email and display name
        user_id: Authenticated user ID
        db: Database session

    Returns:
        Created profile with zero balances
    """
    try:
        user = await LedgerService.create_user_profile(user_id, request.email, request.name, db)
        return UserProfile.model_validate(user)
    except ValueError as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        await db.rollback()
        logger.exception("Error creating profile")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating profile: {str(e)}"
        )


@router.get("/me", response_model=UserProfile)
async def get_profile(
    user_id: CurrentUserDepends,
    db: DbDepends
):
    """Profile and balances of the authenticated user"""
    user = await LedgerService.get_user(user_id, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return UserProfile.model_validate(user)


@router.delete("/me")
async def delete_profile(
    user_id: CurrentUserDepends,
    db: DbDepends
):
    """Delete the authenticated user's profile and transaction history"""
    try:
        await LedgerService.delete_user_data(user_id, db)
        return {"success": True}
    except WalletError as e:
        raise http_error(e)
    except Exception as e:
        await db.rollback()
        logger.exception("Error deleting user data")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error deleting user data: {str(e)}"
        )
