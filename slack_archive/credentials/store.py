"""
Durable credential store.

One credential row per workspace, keyed by ("oauth#<workspace_id>", "1").
Every write is committed before returning so a subsequent read from any
caller sees it (single-key read-after-write). No cross-key consistency is
provided or needed.

SECURITY REQUIREMENTS:
- Tokens are encrypted before storage and decrypted only in memory
- Plaintext tokens are never logged

Usage:
    store = CredentialStore(db_session, TokenCipher.from_env())

    await store.put(record)
    record = await store.get_latest("T0123")
    await store.delete("T0123")
"""

import logging
from typing import Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from slack_archive.config.settings import TOKEN_SORT_KEY
from slack_archive.credentials.encryption import TokenCipher
from slack_archive.credentials.models import CredentialRecord, token_item_id
from slack_archive.credentials.redaction import CredentialAuditLogger, AuditEventType
from slack_archive.models.oauth_credential import OAuthCredential

logger = logging.getLogger(__name__)


class _Unconditional:
    def __repr__(self) -> str:
        return "UNCONDITIONAL"


# Passed as expected_expires_at to delete regardless of the stored expiry
UNCONDITIONAL = _Unconditional()


class CredentialStore:
    """
    SQLAlchemy-backed durable store for CredentialRecords.

    Methods are async to match the rest of the credential lifecycle; the
    underlying session is synchronous.
    """

    def __init__(self, db_session: Session, cipher: TokenCipher):
        """
        Initialize credential store.

        Args:
            db_session: Database session
            cipher: Token cipher used for encryption at rest
        """
        self.db = db_session
        self.cipher = cipher
        self.audit = CredentialAuditLogger()

    async def get_latest(self, workspace_id: str) -> Optional[CredentialRecord]:
        """
        Get the current credential for a workspace.

        Returns:
            CredentialRecord with decrypted tokens, or None if absent

        Raises:
            CredentialEncryptionError: If stored tokens cannot be decrypted
        """
        row = self.db.execute(
            select(OAuthCredential).where(
                OAuthCredential.item_id == token_item_id(workspace_id),
                OAuthCredential.sort_key == TOKEN_SORT_KEY,
            )
        ).scalar_one_or_none()

        if row is None:
            return None

        return CredentialRecord(
            workspace_id=row.workspace_id,
            access_token=self.cipher.decrypt(row.access_token_encrypted),
            refresh_token=self.cipher.decrypt_optional(row.refresh_token_encrypted),
            expires_at=row.expires_at,
            scope=row.scope,
            bot_user_id=row.bot_user_id,
            workspace_name=row.workspace_name,
            cache_ttl_hint=row.cache_ttl_hint,
        )

    async def put(self, record: CredentialRecord) -> None:
        """
        Write a record, fully overwriting any existing one for the workspace.

        Two steps: an UPDATE keyed on the record's key, then, when no row
        was updated, a merge that inserts the row or overwrites one written
        concurrently in between.
        """
        values = {
            "workspace_id": record.workspace_id,
            "access_token_encrypted": self.cipher.encrypt(record.access_token),
            "refresh_token_encrypted": self.cipher.encrypt_optional(record.refresh_token),
            "expires_at": record.expires_at,
            "cache_ttl_hint": record.cache_ttl_hint,
            "scope": record.scope,
            "bot_user_id": record.bot_user_id,
            "workspace_name": record.workspace_name,
        }

        try:
            result = self.db.execute(
                update(OAuthCredential)
                .where(
                    OAuthCredential.item_id == record.item_id,
                    OAuthCredential.sort_key == record.sort_key,
                )
                .values(**values)
            )
            action = "updated"
            if result.rowcount == 0:
                # The row may have been written by another caller since the
                # UPDATE; merge re-reads by primary key and overwrites it.
                merged = self.db.merge(OAuthCredential(
                    item_id=record.item_id,
                    sort_key=record.sort_key,
                    **values,
                ))
                if merged in self.db.new:
                    action = "created"
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.audit.log(
            event_type=AuditEventType.CREDENTIAL_STORED,
            workspace_id=record.workspace_id,
            workspace_name=record.workspace_name,
            metadata={"action": action, "expires_at": record.expires_at},
        )

    async def delete(
        self,
        workspace_id: str,
        *,
        expected_expires_at: Union[int, None, _Unconditional] = UNCONDITIONAL,
    ) -> bool:
        """
        Delete a workspace's credential.

        Args:
            workspace_id: Workspace to delete
            expected_expires_at: Only delete if the stored expiry still equals
                this value (None matches a never-expiring row). Defaults to
                an unconditional delete.

        Returns:
            True if a row was deleted
        """
        stmt = delete(OAuthCredential).where(
            OAuthCredential.item_id == token_item_id(workspace_id),
            OAuthCredential.sort_key == TOKEN_SORT_KEY,
        )
        if expected_expires_at is None:
            stmt = stmt.where(OAuthCredential.expires_at.is_(None))
        elif not isinstance(expected_expires_at, _Unconditional):
            stmt = stmt.where(OAuthCredential.expires_at == expected_expires_at)

        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        deleted = result.rowcount > 0
        if deleted:
            self.audit.log(
                event_type=AuditEventType.CREDENTIAL_PURGED,
                workspace_id=workspace_id,
            )
        else:
            logger.debug(
                "No credential deleted",
                extra={"workspace_id": workspace_id, "conditional": expected_expires_at is not UNCONDITIONAL}
            )
        return deleted
