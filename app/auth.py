"""Décodage des jetons d'authentification en claims typés."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, HTTPException, status

from app.config import settings
from app.exceptions import InvalidToken
from app.logger import logger


@dataclass(frozen=True)
class TokenClaims:
    """Claims d'un jeton de session."""
    subject: str
    provider: str
    issued_at: datetime


def _parse_issued_at(value: Any) -> datetime:
    if isinstance(value, bool):
        raise InvalidToken("claim 'createdAt' has an invalid type")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidToken(f"claim 'createdAt' is not a date: {value}") from e
    raise InvalidToken("claim 'createdAt' is missing")


def _require_str(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidToken(f"claim '{key}' is missing or not a string")
    return value


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> TokenClaims:
    """
    Vérifie la signature puis la forme des claims.

    Args:
        token: le jeton brut (sans le préfixe "Bearer ")
        secret: clé de signature
        algorithm: algorithme attendu

    Returns:
        TokenClaims

    Raises:
        InvalidToken: signature invalide, jeton expiré ou claims mal formés
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as e:
        raise InvalidToken(f"token rejected: {e}") from e

    return TokenClaims(
        subject=_require_str(payload, "uuid"),
        provider=_require_str(payload, "provider"),
        issued_at=_parse_issued_at(payload.get("createdAt")),
    )


async def require_claims(authorization: Optional[str] = Header(default=None)) -> Optional[TokenClaims]:
    """Dépendance FastAPI : exige un Bearer valide quand AUTH_ENABLED est actif."""
    if not settings.AUTH_ENABLED:
        return None

    if not authorization or not authorization.startswith("Bearer ") or not authorization[7:].strip():
        logger.error("Failed to validate token: no bearer token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        return decode_token(authorization[7:].strip(), settings.JWT_SECRET, settings.JWT_ALGORITHM)
    except InvalidToken as e:
        logger.error("Failed to validate token: {error}", error=e)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden") from e
