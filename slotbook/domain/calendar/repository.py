"""Calendar token repository - one stored Google connection per user"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models_google_calendar import GoogleCalendarToken
from ...security_utils import decrypt_token, encrypt_token
from .providers import TokenSet

logger = logging.getLogger(__name__)


class CalendarTokenRepository:
    """Repository for stored calendar credentials"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[GoogleCalendarToken]:
        return (
            self.db.query(GoogleCalendarToken)
            .filter(GoogleCalendarToken.user_id == user_id)
            .first()
        )

    def upsert(self, user_id: int, tokens: TokenSet, email: Optional[str]) -> GoogleCalendarToken:
        """Insert or overwrite the user's token record"""
        record = self.get(user_id)
        if record is None:
            record = GoogleCalendarToken(user_id=user_id)
            self.db.add(record)
        self._apply(record, tokens)
        record.email = email

        try:
            self.db.commit()
        except IntegrityError:
            # Another request inserted the row first; overwrite it instead
            self.db.rollback()
            record = self.get(user_id)
            if record is None:
                raise
            self._apply(record, tokens)
            record.email = email
            self.db.commit()

        self.db.refresh(record)
        return record

    def update_tokens(self, record: GoogleCalendarToken, tokens: TokenSet) -> GoogleCalendarToken:
        self._apply(record, tokens)
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, record: GoogleCalendarToken) -> None:
        self.db.delete(record)
        self.db.commit()

    @staticmethod
    def decrypted(record: GoogleCalendarToken) -> TokenSet:
        return TokenSet(
            access_token=decrypt_token(record.access_token),
            refresh_token=decrypt_token(record.refresh_token),
            expires_at=record.token_expires_at,
        )

    @staticmethod
    def _apply(record: GoogleCalendarToken, tokens: TokenSet) -> None:
        record.access_token = encrypt_token(tokens.access_token)
        # Keep the previous refresh token when the provider did not send a new one
        if tokens.refresh_token:
            record.refresh_token = encrypt_token(tokens.refresh_token)
        record.token_expires_at = tokens.expires_at
        record.updated_at = datetime.utcnow()
