"""SQLAlchemy ORM models.

Models represent database tables:
- users: Users referenced as store authors (owned by the auth subsystem)
- stores: Directory entries with location, tags and full-text document
- user_hearts: Favorite stores per user
"""

from app.models.store import Store
from app.models.user import Heart, User

__all__ = ["Heart", "Store", "User"]
