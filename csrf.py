import time

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.csrf_secret, salt="finance-csrf")


def generate_csrf_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id, "ts": int(time.time())})


def validate_csrf_token(token: str, user_id: int, max_age_hours: int = 2) -> bool:
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        return False
    return isinstance(data, dict) and data.get("u") == user_id
