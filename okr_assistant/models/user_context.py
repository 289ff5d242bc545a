"""User context passed through to permission-sensitive operations."""
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class UserContext:
    """Caller identity, role and organization for one request"""
    user_id: str = ""
    user_name: Optional[str] = None
    email: Optional[str] = None
    organization_id: Optional[str] = None
    role: Optional[str] = None
    selected_llm_provider: Optional[str] = None
    access_token: Optional[str] = None  # Forwarded to the OKR API, never serialized

    @property
    def display_name(self) -> str:
        """Name shown as message author"""
        if self.user_name:
            return self.user_name
        if self.user_id:
            return f"User-{self.user_id[:8]}"
        return "Anonymous"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "email": self.email,
            "organization_id": self.organization_id,
            "role": self.role,
            "selected_llm_provider": self.selected_llm_provider,
        }
