from typing import Dict, List, Optional

from database import now_utc
from errors import ValidationError
from gateway import DataGateway
from schemas import LeaderboardEntry, UserProfile


class ProfileService:
    def __init__(self, gateway: DataGateway):
        self.gateway = gateway

    def get_profile(self, user_id: str) -> UserProfile:
        return UserProfile(**self.gateway.select_one("userprofile", {"user_id": user_id}))

    def refresh(self, user_id: str) -> UserProfile:
        """Polled by the home screen every 30 seconds while it is open."""
        self.get_profile(user_id)
        row = self.gateway.update("userprofile", {"user_id": user_id}, {"last_active_at": now_utc()})
        return UserProfile(**row)

    def select_batch(self, user_id: str, institute_id: Optional[str], batch_id: Optional[str]) -> UserProfile:
        self.get_profile(user_id)
        row = self.gateway.update("userprofile", {"user_id": user_id}, {
            "selected_institute_id": institute_id,
            "selected_batch_id": batch_id,
        })
        return UserProfile(**row)

    def award_xp(self, user_id: str, xp: int) -> UserProfile:
        if xp <= 0:
            raise ValidationError("XP award must be positive")
        return UserProfile(**self.gateway.rpc("update_user_xp", user_id=user_id, xp=xp))

    def leaderboard(self, limit: int = 100) -> List[LeaderboardEntry]:
        return self.gateway.rpc("get_global_leaderboard", limit=limit)

    def user_rank(self, user_id: str) -> Dict[str, Optional[int]]:
        board = self.leaderboard(1000)
        entry = next((e for e in board if e.user_id == user_id), None)
        return {
            "rank": entry.rank if entry else None,
            "total": len(board),
            "xp": entry.total_xp if entry else 0,
        }
