import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeSerializer

from config import get_settings


def _serializer() -> URLSafeSerializer:
    settings = get_settings()
    return URLSafeSerializer(settings.auth_secret, salt="owner-token")


def issue_owner_token(user_id: str, max_age_hours: int = 24) -> str:
    timestamp = int(time.time())
    expiry = timestamp + (max_age_hours * 3600)
    return _serializer().dumps({"u": user_id, "ts": timestamp, "exp": expiry})


def read_owner_token(token: str) -> Optional[str]:
    """Owner id carried by ``token``, or None when it is forged or expired."""
    try:
        data = _serializer().loads(token)
    except BadSignature:
        return None

    user_id = data.get("u")
    if not isinstance(user_id, str) or not user_id:
        return None
    if int(time.time()) > int(data.get("exp", 0)):
        return None
    return user_id
