import hashlib
import logging
import time
import httpx
from jose import jwt, JWTError
from app.config.settings import settings
from fastapi import HTTPException
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)

# In-memory cache for get_current_user to avoid re-verifying the same session token on parallel requests
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500

# JWKS fetched from Clerk, refreshed when a token references an unknown kid
_JWKS_CACHE: Dict[str, Any] = {"keys": None, "fetched_at": 0.0}
_JWKS_TTL_SEC = 3600


class ClerkAuthService:
    """Verifies Clerk session tokens (RS256 JWTs) issued to the frontend."""

    def __init__(
        self,
        jwt_key: Optional[str] = None,
        jwks_url: Optional[str] = None,
        authorized_parties: Optional[List[str]] = None,
    ):
        self.jwt_key = jwt_key if jwt_key is not None else settings.clerk_jwt_key
        self.jwks_url = jwks_url if jwks_url is not None else settings.clerk_jwks_url
        self.authorized_parties = (
            authorized_parties if authorized_parties is not None
            else settings.get_authorized_parties_list()
        )

    def _fetch_jwks(self, force: bool = False) -> List[Dict[str, Any]]:
        now = time.monotonic()
        if (
            not force
            and _JWKS_CACHE["keys"] is not None
            and now - _JWKS_CACHE["fetched_at"] < _JWKS_TTL_SEC
        ):
            return _JWKS_CACHE["keys"]
        if not self.jwks_url:
            raise HTTPException(status_code=500, detail="Clerk JWKS URL not configured")
        response = httpx.get(self.jwks_url, timeout=10.0)
        response.raise_for_status()
        keys = response.json().get("keys", [])
        _JWKS_CACHE["keys"] = keys
        _JWKS_CACHE["fetched_at"] = now
        return keys

    def _get_signing_key(self, token: str) -> Any:
        if self.jwt_key:
            return self.jwt_key
        kid = jwt.get_unverified_header(token).get("kid")
        for force in (False, True):
            for key in self._fetch_jwks(force=force):
                if key.get("kid") == kid:
                    return key
        raise JWTError(f"No signing key found for kid {kid}")

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify signature and registered claims; return the token claims."""
        key = self._get_signing_key(token)
        claims = jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            options={"verify_aud": False},
        )
        if not claims.get("sub"):
            raise JWTError("Token has no subject")
        azp = claims.get("azp")
        if self.authorized_parties and azp and azp not in self.authorized_parties:
            raise JWTError(f"Unauthorized party: {azp}")
        return claims

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from a Clerk session token. Uses short TTL cache to reduce verification work."""
        try:
            cache_key = hashlib.sha256(token.encode()).hexdigest()
            now = time.monotonic()
            if cache_key in _AUTH_USER_CACHE:
                user_data, expiry = _AUTH_USER_CACHE[cache_key]
                if now < expiry and not _token_expired(user_data["claims"]):
                    return user_data
                del _AUTH_USER_CACHE[cache_key]
            claims = self.verify_token(token)
            user_data = {
                "id": claims["sub"],
                "sub": claims["sub"],
                "email": claims.get("email"),
                "session_id": claims.get("sid"),
                "claims": claims,
            }
            _cache_user(cache_key, user_data, now)
            return user_data
        except HTTPException:
            raise
        except JWTError as e:
            logger.info("Token verification failed: %s", e)
            raise HTTPException(status_code=401, detail="Invalid or expired authentication token")
        except Exception as e:
            logger.warning("Authentication failed: %s", e)
            raise HTTPException(status_code=401, detail="Authentication failed")


def _token_expired(claims: Dict[str, Any]) -> bool:
    exp = claims.get("exp")
    return exp is not None and time.time() >= exp


def _cache_user(cache_key: str, user_data: Dict[str, Any], now: float) -> None:
    # Never outlive the token itself
    ttl = float(_AUTH_CACHE_TTL_SEC)
    exp = user_data["claims"].get("exp")
    if exp is not None:
        ttl = min(ttl, exp - time.time())
    if ttl <= 0:
        return
    if len(_AUTH_USER_CACHE) >= _AUTH_CACHE_MAX_SIZE:
        for key, (_, expiry) in list(_AUTH_USER_CACHE.items()):
            if expiry <= now:
                del _AUTH_USER_CACHE[key]
    if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
        _AUTH_USER_CACHE[cache_key] = (user_data, now + ttl)


def clear_auth_cache():
    _AUTH_USER_CACHE.clear()
    _JWKS_CACHE["keys"] = None
    _JWKS_CACHE["fetched_at"] = 0.0
