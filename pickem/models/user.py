import hashlib
import secrets
from datetime import datetime, timezone

from flask_login import UserMixin

from pickem import db


def _hash_token(token):
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(100))

    # API token (only the hash is stored)
    api_token_hash = db.Column(db.String(64), unique=True, index=True)

    # Account status
    is_active = db.Column(db.Boolean, default=True)
    is_admin = db.Column(db.Boolean, default=False)  # May run operator endpoints

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    picks = db.relationship("Pick", backref="user", lazy="dynamic")

    def __repr__(self):
        return f"<User {self.username}>"

    def issue_api_token(self):
        """Generate a new API token, store its hash and return the plain token"""
        token = secrets.token_urlsafe(32)
        self.api_token_hash = _hash_token(token)
        return token

    @staticmethod
    def get_by_api_token(token):
        user = User.query.filter_by(api_token_hash=_hash_token(token)).first()
        if user and user.is_active:
            return user
        return None

    @staticmethod
    def create_user(username, email, display_name=None, is_admin=False):
        """Create a user and return (user, plain api token)"""
        user = User(
            username=username,
            email=email,
            display_name=display_name or username,
            is_admin=is_admin,
        )
        token = user.issue_api_token()
        db.session.add(user)
        return user, token

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name or self.username,
            "is_admin": self.is_admin,
        }
