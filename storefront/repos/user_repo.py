from sqlalchemy.orm import Session
from storefront.data.models.user import UserModel

class UserRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int | None) -> UserModel | None:
        if user_id is None:
            return None
        return self.db.get(UserModel, user_id)
