"""
Blog engagement for authenticated readers: likes, comments, saves and
guestbook messages.

Each user may like, save and comment on a post at most once. Comments can
only be edited or removed by their author.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from auth import AuthenticatedUser
from exceptions import EntityExists, NotFound, UserNotFound
from models import Comment, GuestbookMessage, Like, Post, SavedPost, User

logger = logging.getLogger(__name__)


class BlogService:
    def __init__(self, db: DBSession):
        self.db = db

    def _get_post(self, blog_id: int) -> Post:
        post = self.db.query(Post).filter(Post.id == blog_id).first()
        if not post:
            raise NotFound("Blog")
        return post

    def _add_unique(self, record, entity: str):
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise EntityExists(entity)

    # ==================== LIKES ====================

    def like(self, identity: AuthenticatedUser, blog_id: int):
        self._get_post(blog_id)
        if self._find(Like, identity.user_id, blog_id):
            raise EntityExists("Like")
        self._add_unique(Like(user_id=identity.user_id, post_id=blog_id), "Like")
        logger.debug("User %s liked blog %s", identity.user_id, blog_id)

    def unlike(self, identity: AuthenticatedUser, blog_id: int):
        self._get_post(blog_id)
        like = self._find(Like, identity.user_id, blog_id)
        if not like:
            raise NotFound("Like")
        self.db.delete(like)
        self.db.commit()

    def total_likes(self, blog_id: int) -> int:
        self._get_post(blog_id)
        return self.db.query(Like).filter(Like.post_id == blog_id).count()

    # ==================== COMMENTS ====================

    def comment(self, identity: AuthenticatedUser, blog_id: int, text: str) -> dict:
        self._get_post(blog_id)
        if self._find(Comment, identity.user_id, blog_id):
            raise EntityExists("Comment")
        comment = Comment(user_id=identity.user_id, post_id=blog_id, text=text)
        self._add_unique(comment, "Comment")
        return comment.to_dict()

    def edit_comment(self, identity: AuthenticatedUser, comment_id: int, text: str) -> dict:
        comment = self._own_comment(identity, comment_id)
        comment.text = text
        self.db.commit()
        return comment.to_dict()

    def uncomment(self, identity: AuthenticatedUser, comment_id: int):
        comment = self._own_comment(identity, comment_id)
        self.db.delete(comment)
        self.db.commit()

    def list_comments(self, blog_id: int) -> list:
        self._get_post(blog_id)
        comments = (
            self.db.query(Comment)
            .filter(Comment.post_id == blog_id)
            .order_by(Comment.id)
            .all()
        )
        return [c.to_dict() for c in comments]

    def total_comments(self, blog_id: int) -> int:
        self._get_post(blog_id)
        return self.db.query(Comment).filter(Comment.post_id == blog_id).count()

    def _own_comment(self, identity: AuthenticatedUser, comment_id: int) -> Comment:
        comment = self.db.query(Comment).filter(
            Comment.id == comment_id,
            Comment.user_id == identity.user_id
        ).first()
        if not comment:
            raise NotFound("Comment")
        return comment

    # ==================== SAVES ====================

    def save(self, identity: AuthenticatedUser, blog_id: int):
        self._get_post(blog_id)
        if self._find(SavedPost, identity.user_id, blog_id):
            raise EntityExists("Save")
        self._add_unique(SavedPost(user_id=identity.user_id, post_id=blog_id), "Save")

    def unsave(self, identity: AuthenticatedUser, blog_id: int):
        self._get_post(blog_id)
        saved = self._find(SavedPost, identity.user_id, blog_id)
        if not saved:
            raise NotFound("Save")
        self.db.delete(saved)
        self.db.commit()

    def total_saves(self, blog_id: int) -> int:
        self._get_post(blog_id)
        return self.db.query(SavedPost).filter(SavedPost.post_id == blog_id).count()

    # ==================== GUESTBOOK ====================

    def sign_guestbook(self, identity: AuthenticatedUser, message: str) -> dict:
        if not self.db.query(User).filter(User.id == identity.user_id).first():
            raise UserNotFound()
        entry = GuestbookMessage(user_id=identity.user_id, message=message)
        self.db.add(entry)
        self.db.commit()
        logger.debug("User %s signed the guestbook", identity.user_id)
        return entry.to_dict()

    def _find(self, model, user_id: str, blog_id: int) -> Optional[object]:
        return self.db.query(model).filter(
            model.user_id == user_id,
            model.post_id == blog_id
        ).first()
