"""
QR token service for office-scoped attendance tokens.

Tokens are self-contained signed claims: nothing is stored server side, so a
token cannot be revoked before its expiry.
"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

log = logging.getLogger(__name__)

MIN_EXPIRES_MINUTES = 1
MAX_EXPIRES_MINUTES = 1440
DEFAULT_EXPIRES_MINUTES = 60

REQUIRED_CLAIMS = ("office_id", "created_by", "expires_at")


def _epoch(now: Optional[datetime]) -> float:
    if now is None:
        return time.time()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.timestamp()


class QrTokenService:
    def __init__(self, secret: str, algorithm: str = "HS256", issuer: str = "presence-api") -> None:
        if not secret:
            raise ValueError("QR token secret is required")
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer

    def issue(
        self,
        office_id,
        created_by,
        expires_in_minutes: int = DEFAULT_EXPIRES_MINUTES,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Sign a token for an office.

        Returns:
            dict: {token: str, office_id: str, expires_at: int (epoch ms)}
        """
        if not MIN_EXPIRES_MINUTES <= int(expires_in_minutes) <= MAX_EXPIRES_MINUTES:
            raise ValueError(
                f"expires_in_minutes must be between {MIN_EXPIRES_MINUTES} and {MAX_EXPIRES_MINUTES}"
            )

        issued = _epoch(now)
        expires_at_ms = int((issued + int(expires_in_minutes) * 60) * 1000)

        payload = {
            "iss": self.issuer,
            "iat": int(issued),
            "office_id": str(office_id),
            "created_by": str(created_by),
            "expires_at": expires_at_ms,
        }
        token = jwt.encode(payload, self.secret, algorithm=self.algorithm)

        return {
            "token": token,
            "office_id": str(office_id),
            "expires_at": expires_at_ms,
        }

    def verify(self, token, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """
        Verify and decode a QR token.

        Returns the decoded claims, or None when the token is malformed, the
        signature does not check out, a required claim is missing, or the
        current time is at or past the embedded `expires_at` instant.
        """
        if not isinstance(token, str) or not token.strip():
            return None

        try:
            payload = jwt.decode(
                token.strip(),
                self.secret,
                algorithms=[self.algorithm],
                # expiry lives in our own claim; "exp" is not part of the envelope
                options={"verify_exp": False, "verify_iat": False, "verify_aud": False},
            )
        except jwt.PyJWTError as e:
            log.debug("QR token rejected: %s", e)
            return None

        if not isinstance(payload, dict) or any(payload.get(c) in (None, "") for c in REQUIRED_CLAIMS):
            log.debug("QR token rejected: missing claims")
            return None

        try:
            expires_at_ms = float(payload["expires_at"])
        except (TypeError, ValueError):
            return None

        if _epoch(now) * 1000 >= expires_at_ms:
            log.debug("QR token rejected: expired at %s", payload["expires_at"])
            return None

        return payload

    def matches_office(self, token, office_id, now: Optional[datetime] = None) -> bool:
        claims = self.verify(token, now=now)
        if not claims:
            return False
        return str(claims["office_id"]).strip() == str(office_id).strip()

    @staticmethod
    def minutes_until_end_of_day(now: datetime, tz, cutoff_hour: int = 17) -> int:
        """
        Minutes from `now` until the next `cutoff_hour`:00 in `tz`
        (today if it is still ahead, tomorrow otherwise), rounded up.
        """
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local_now = now.astimezone(tz)
        target = tz.localize(datetime(local_now.year, local_now.month, local_now.day, cutoff_hour))
        if local_now >= target:
            next_day = (local_now + timedelta(days=1)).date()
            target = tz.localize(datetime(next_day.year, next_day.month, next_day.day, cutoff_hour))
        seconds = (target - local_now).total_seconds()
        return max(MIN_EXPIRES_MINUTES, int(-(-seconds // 60)))
