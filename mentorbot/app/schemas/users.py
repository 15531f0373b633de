# mentorbot/app/schemas/users.py

from typing import Optional

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    id: str = Field(alias="_id")
    name: str = ""
    email: Optional[str] = None
    avatar: Optional[str] = None
    role: str = "USER"  # USER / MENTOR / SUPERADMIN

    model_config = {"populate_by_name": True}

    @property
    def is_mentor(self) -> bool:
        return self.role == "MENTOR"
