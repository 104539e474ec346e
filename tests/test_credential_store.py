"""
Durable credential store tests.

Covers:
- put/get_latest with encryption at rest
- put overwrites (one row per workspace), including a row written concurrently
- unconditional and conditional delete
- decryption failure propagates
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from slack_archive.credentials.encryption import CredentialEncryptionError, TokenCipher
from slack_archive.credentials.store import CredentialStore
from slack_archive.models.oauth_credential import OAuthCredential
from tests.helpers import NOW, WORKSPACE_ID, make_record


class TestPutAndGet:

    @pytest.mark.asyncio
    async def test_get_latest_returns_stored_record(self, credential_store):
        record = make_record()
        await credential_store.put(record)

        assert await credential_store.get_latest(WORKSPACE_ID) == record

    @pytest.mark.asyncio
    async def test_get_latest_missing_returns_none(self, credential_store):
        assert await credential_store.get_latest("T0MISSING") is None

    @pytest.mark.asyncio
    async def test_tokens_are_encrypted_at_rest(self, credential_store, db_session):
        record = make_record()
        await credential_store.put(record)

        row = db_session.execute(select(OAuthCredential)).scalar_one()
        assert row.item_id == f"oauth#{WORKSPACE_ID}"
        assert row.sort_key == "1"
        assert record.access_token not in row.access_token_encrypted
        assert record.refresh_token not in row.refresh_token_encrypted
        assert "test_access_token" not in repr(row)

    @pytest.mark.asyncio
    async def test_put_overwrites_existing_record(self, credential_store, db_session):
        await credential_store.put(make_record())
        replacement = make_record(
            access_token="test_access_token_not_real_777",
            refresh_token=None,
            expires_at=None,
            workspace_name="Renamed Workspace",
            cache_ttl_hint=None,
        )

        await credential_store.put(replacement)

        assert await credential_store.get_latest(WORKSPACE_ID) == replacement
        count = db_session.execute(select(func.count()).select_from(OAuthCredential)).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_put_overwrites_row_inserted_after_update(
        self, credential_store, db_session, cipher, monkeypatch
    ):
        """Another writer inserting between the UPDATE and the insert step must not fail the put."""
        other_session = sessionmaker(bind=db_session.get_bind())()
        original_execute = db_session.execute
        interleaved = []

        def execute_with_concurrent_insert(statement, *args, **kwargs):
            result = original_execute(statement, *args, **kwargs)
            if getattr(statement, "is_update", False) and result.rowcount == 0 and not interleaved:
                interleaved.append(True)
                other_session.add(OAuthCredential(
                    item_id=f"oauth#{WORKSPACE_ID}",
                    sort_key="1",
                    workspace_id=WORKSPACE_ID,
                    access_token_encrypted=cipher.encrypt("test_access_token_not_real_from_a"),
                    refresh_token_encrypted=None,
                    expires_at=NOW,
                ))
                other_session.commit()
            return result

        monkeypatch.setattr(db_session, "execute", execute_with_concurrent_insert)
        record = make_record(access_token="test_access_token_not_real_from_b")

        await credential_store.put(record)

        assert interleaved
        assert await credential_store.get_latest(WORKSPACE_ID) == record
        count = db_session.execute(select(func.count()).select_from(OAuthCredential)).scalar_one()
        assert count == 1
        other_session.close()

    @pytest.mark.asyncio
    async def test_workspaces_are_isolated(self, credential_store):
        await credential_store.put(make_record())
        other = make_record(workspace_id="T0OTHER", access_token="test_access_token_not_real_888")
        await credential_store.put(other)

        assert (await credential_store.get_latest(WORKSPACE_ID)).access_token == "test_access_token_not_real_001"
        assert await credential_store.get_latest("T0OTHER") == other

    @pytest.mark.asyncio
    async def test_wrong_key_raises_encryption_error(self, credential_store, db_session):
        await credential_store.put(make_record())
        other_store = CredentialStore(db_session, TokenCipher("a-completely-different-key"))

        with pytest.raises(CredentialEncryptionError):
            await other_store.get_latest(WORKSPACE_ID)


class TestDelete:

    @pytest.mark.asyncio
    async def test_unconditional_delete(self, credential_store):
        await credential_store.put(make_record())

        assert await credential_store.delete(WORKSPACE_ID) is True
        assert await credential_store.get_latest(WORKSPACE_ID) is None

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, credential_store):
        assert await credential_store.delete(WORKSPACE_ID) is False

    @pytest.mark.asyncio
    async def test_conditional_delete_matching_expiry(self, credential_store):
        await credential_store.put(make_record(expires_at=NOW - 10))

        assert await credential_store.delete(WORKSPACE_ID, expected_expires_at=NOW - 10) is True
        assert await credential_store.get_latest(WORKSPACE_ID) is None

    @pytest.mark.asyncio
    async def test_conditional_delete_skips_rewritten_record(self, credential_store):
        """A record refreshed since it was read must survive a stale delete."""
        await credential_store.put(make_record(expires_at=NOW + 43200))

        assert await credential_store.delete(WORKSPACE_ID, expected_expires_at=NOW - 10) is False
        assert await credential_store.get_latest(WORKSPACE_ID) is not None

    @pytest.mark.asyncio
    async def test_conditional_delete_none_matches_never_expiring(self, credential_store):
        await credential_store.put(make_record(expires_at=None))

        assert await credential_store.delete(WORKSPACE_ID, expected_expires_at=NOW) is False
        assert await credential_store.delete(WORKSPACE_ID, expected_expires_at=None) is True
