import logging
import time
from datetime import datetime
from typing import Callable, Optional

from flask import Flask, g, jsonify, make_response, request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from werkzeug.exceptions import HTTPException

from auth import AuthenticatedUser, Authenticator
from blog import BlogService
from config import SecurityConfig, get_config
from crypto import TokenCipher, PasswordHasher
from email_service import EmailNotifier
from exceptions import AuthError, UserNotFound
from models import Base
from session import SessionManager
from store import AccountStore
from tokens import TokenCodec
from utils import Validator, utcnow

logger = logging.getLogger(__name__)

API_PREFIX = '/api/v1'


def http_response(status_code: int, message: str, data=None):
    body = {'success': True, 'statusCode': status_code, 'message': message, 'data': data}
    return make_response(jsonify(body), status_code)


def http_error(status_code: int, message: str):
    body = {'success': False, 'statusCode': status_code, 'message': message, 'data': None}
    return make_response(jsonify(body), status_code)


def create_app(
    config: SecurityConfig = None,
    engine: Engine = None,
    notifier: EmailNotifier = None,
    clock: Callable[[], datetime] = utcnow
) -> Flask:
    """
    Build the HTTP boundary.

    The config, hasher, codec and notifier are created once here and shared
    by every request; the database session and the store are per request.
    """
    config = config or get_config()
    config.validate()

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    app = Flask(__name__)
    engine = engine or create_engine(config.DATABASE_URL)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)

    hasher = PasswordHasher(config)
    codec = TokenCodec(config.JWT_ALGORITHM)
    cipher = TokenCipher(config.DATA_ENCRYPTION_KEY)
    notifier = notifier or EmailNotifier(config)
    validator = Validator(config)
    started_at = time.time()

    # --- MIDDLEWARE / HELPERS ---

    def get_db():
        if 'db' not in g:
            g.db = SessionLocal()
        return g.db

    def get_store() -> AccountStore:
        return AccountStore(get_db(), cipher)

    def get_session_manager() -> SessionManager:
        return SessionManager(get_store(), notifier, codec, hasher, config, clock)

    def request_body() -> dict:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}

    def access_token_from_request() -> Optional[str]:
        token = request.cookies.get(config.ACCESS_TOKEN_COOKIE)
        if token:
            return token
        header = request.headers.get('Authorization', '')
        if header.startswith('Bearer '):
            return header[len('Bearer '):].strip() or None
        return None

    def current_identity() -> AuthenticatedUser:
        return Authenticator(get_store(), codec, config).authenticate(access_token_from_request())

    def set_auth_cookie(response, name: str, value: str, ttl):
        response.set_cookie(
            name, value,
            max_age=int(ttl.total_seconds()),
            **config.cookie_options()
        )

    def clear_auth_cookies(response):
        options = config.cookie_options()
        for name in (config.ACCESS_TOKEN_COOKIE, config.REFRESH_TOKEN_COOKIE):
            response.delete_cookie(
                name,
                path=options['path'],
                domain=options['domain'],
                secure=options['secure'],
                httponly=options['httponly'],
                samesite=options['samesite']
            )

    @app.teardown_appcontext
    def close_db(exception=None):
        db = g.pop('db', None)
        if db is not None:
            db.close()

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Content-Security-Policy'] = "default-src 'self'"
        return response

    @app.errorhandler(AuthError)
    def handle_auth_error(error: AuthError):
        return http_error(error.status_code, error.message)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return http_error(error.code, error.description)

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return http_error(500, "Something went wrong")

    # --- ROUTES ---

    @app.route(f'{API_PREFIX}/health', methods=['GET'])
    def health():
        return http_response(200, "Health Check", {
            'application': {
                'environment': config.ENV,
                'uptime': f"{time.time() - started_at:.2f} seconds"
            },
            'time': clock().isoformat()
        })

    @app.route(f'{API_PREFIX}/user/register', methods=['POST'])
    def register():
        data = request_body()
        user = get_session_manager().register(
            data.get('name'), data.get('email'), data.get('username'), data.get('password')
        )
        return http_response(201, "User registered successfully", user)

    @app.route(f'{API_PREFIX}/user/confirmation/<token>', methods=['PUT'])
    def confirmation(token):
        user = get_session_manager().confirm(token, request.args.get('code', ''))
        return http_response(200, "Account confirmed successfully", {'user': user})

    @app.route(f'{API_PREFIX}/user/login', methods=['POST'])
    def login():
        data = request_body()
        result = get_session_manager().login(data.get('email'), data.get('password'))

        resp = http_response(200, "Login successful", {'user': result.user})
        set_auth_cookie(resp, config.ACCESS_TOKEN_COOKIE, result.access_token,
                        config.ACCESS_TOKEN_EXPIRES)
        set_auth_cookie(resp, config.REFRESH_TOKEN_COOKIE, result.refresh_token,
                        config.REFRESH_TOKEN_EXPIRES)
        return resp

    @app.route(f'{API_PREFIX}/user/self-identification', methods=['GET'])
    def self_identification():
        identity = current_identity()
        user = get_store().find_by_id(identity.user_id)
        if not user:
            raise UserNotFound()
        return http_response(200, "User found", {'user': user.to_dict()})

    @app.route(f'{API_PREFIX}/user/logout', methods=['PUT'])
    def logout():
        identity = current_identity()
        get_session_manager().logout(identity)

        resp = http_response(200, "Logout successful", {})
        clear_auth_cookies(resp)
        return resp

    @app.route(f'{API_PREFIX}/user/refresh-token', methods=['POST'])
    def refresh_token():
        result = get_session_manager().refresh(
            request.cookies.get(config.REFRESH_TOKEN_COOKIE),
            has_access_token=bool(request.cookies.get(config.ACCESS_TOKEN_COOKIE))
        )

        resp = http_response(200, "Token refreshed", {})
        set_auth_cookie(resp, config.ACCESS_TOKEN_COOKIE, result.access_token,
                        config.ACCESS_TOKEN_EXPIRES)
        if result.refresh_token:
            set_auth_cookie(resp, config.REFRESH_TOKEN_COOKIE, result.refresh_token,
                            config.REFRESH_TOKEN_EXPIRES)
        return resp

    @app.route(f'{API_PREFIX}/user/forgot-password', methods=['PUT'])
    def forgot_password():
        get_session_manager().forgot_password(request_body().get('email'))
        return http_response(200, "Password reset link sent", {})

    @app.route(f'{API_PREFIX}/user/reset-password/<token>', methods=['PUT'])
    def reset_password(token):
        data = request_body()
        get_session_manager().reset_password(
            token, data.get('newPassword'), data.get('confirmNewPassword')
        )
        return http_response(200, "Password reset successfully", {})

    @app.route(f'{API_PREFIX}/user/change-password', methods=['PUT'])
    def change_password():
        identity = current_identity()
        data = request_body()
        get_session_manager().change_password(
            identity, data.get('oldPassword'), data.get('newPassword'), data.get('confirmNewPassword')
        )
        return http_response(202, "Password changed", {})

    # --- BLOG ENGAGEMENT ---

    @app.route(f'{API_PREFIX}/blog/<int:blog_id>/like', methods=['POST', 'DELETE'])
    def like(blog_id):
        identity = current_identity()
        blog = BlogService(get_db())
        if request.method == 'DELETE':
            blog.unlike(identity, blog_id)
            return http_response(200, "Blog unliked", {})
        blog.like(identity, blog_id)
        return http_response(200, "Blog liked", {})

    @app.route(f'{API_PREFIX}/blog/<int:blog_id>/likes', methods=['GET'])
    def total_likes(blog_id):
        total = BlogService(get_db()).total_likes(blog_id)
        return http_response(200, f"Total likes: {total}", {'likes': total})

    @app.route(f'{API_PREFIX}/blog/<int:blog_id>/comment', methods=['POST'])
    def comment(blog_id):
        identity = current_identity()
        text = validator.validate_comment(request_body())
        created = BlogService(get_db()).comment(identity, blog_id, text)
        return http_response(200, "Blog commented", {'comment': created})

    @app.route(f'{API_PREFIX}/blog/<int:blog_id>/comments', methods=['GET'])
    def fetch_comments(blog_id):
        comments = BlogService(get_db()).list_comments(blog_id)
        return http_response(200, "Comments fetched", {'comments': comments, 'total': len(comments)})

    @app.route(f'{API_PREFIX}/blog/<int:blog_id>/total-comments', methods=['GET'])
    def total_comments(blog_id):
        total = BlogService(get_db()).total_comments(blog_id)
        return http_response(200, f"Total comments: {total}", {'comments': total})

    @app.route(f'{API_PREFIX}/blog/comment/<int:comment_id>', methods=['PUT', 'DELETE'])
    def edit_comment(comment_id):
        identity = current_identity()
        blog = BlogService(get_db())
        if request.method == 'DELETE':
            blog.uncomment(identity, comment_id)
            return http_response(200, "Blog uncommented", {})
        text = validator.validate_comment(request_body())
        edited = blog.edit_comment(identity, comment_id, text)
        return http_response(200, "Comment edited", {'comment': edited})

    @app.route(f'{API_PREFIX}/blog/<int:blog_id>/save', methods=['POST', 'DELETE'])
    def save(blog_id):
        identity = current_identity()
        blog = BlogService(get_db())
        if request.method == 'DELETE':
            blog.unsave(identity, blog_id)
            return http_response(200, "Blog unsaved", {})
        blog.save(identity, blog_id)
        return http_response(200, "Blog saved", {})

    @app.route(f'{API_PREFIX}/blog/<int:blog_id>/saves', methods=['GET'])
    def total_saves(blog_id):
        total = BlogService(get_db()).total_saves(blog_id)
        return http_response(200, f"Total saves: {total}", {'saves': total})

    @app.route(f'{API_PREFIX}/user/guestbook', methods=['POST'])
    def guestbook():
        identity = current_identity()
        message = validator.validate_guestbook_message(request_body())
        entry = BlogService(get_db()).sign_guestbook(identity, message)
        return http_response(200, "Message saved", {'message': entry})

    return app


if __name__ == "__main__":
    # In production, run with Gunicorn behind TLS
    app = create_app()
    app.run(debug=False)
