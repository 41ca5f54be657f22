"""Domain Entities - Auth"""
from pydantic import BaseModel
from typing import List, Optional

from domain.value_objects import Caller

ADMIN_ROLE = "admin"


class User(BaseModel):
    """User Entity"""
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    roles: List[str] = []
    disabled: bool = False

    class Config:
        from_attributes = True

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in {r.lower() for r in self.roles}

    def as_caller(self) -> Caller:
        """The identity handed to the booking core for this request"""
        return Caller(identity=self.username, is_admin=self.is_admin)


class UserInDB(User):
    """User with hashed password for DB storage"""
    hashed_password: str
