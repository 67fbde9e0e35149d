"""
Tests for the credential and job stores.
"""

from datetime import timedelta

import pytest
from sqlalchemy import DateTime

from app.models.common import as_utc, utcnow
from app.models.credential import OAuthCredential
from app.models.job import Job, JobStatus


class TestCredentialStore:
    def test_upsert_creates_then_updates_single_row(self, credential_store):
        created = credential_store.upsert_credential("u1", "tiktok", access_token="a1", refresh_token="r1")
        updated = credential_store.upsert_credential("u1", "tiktok", access_token="a2")

        assert updated.id == created.id
        assert updated.access_token == "a2"
        assert updated.refresh_token == "r1"
        assert updated.updated_at >= created.updated_at

    def test_credentials_are_per_user_and_provider(self, credential_store):
        credential_store.upsert_credential("u1", "tiktok", access_token="a")
        credential_store.upsert_credential("u2", "tiktok", access_token="b")

        assert credential_store.find_credential("u1", "tiktok").access_token == "a"
        assert credential_store.find_credential("u2", "tiktok").access_token == "b"
        assert credential_store.find_credential("u1", "youtube") is None

    def test_create_requires_access_token(self, credential_store):
        with pytest.raises(ValueError):
            credential_store.upsert_credential("u1", "tiktok", refresh_token="r")

    def test_rejects_unknown_fields(self, credential_store):
        with pytest.raises(ValueError):
            credential_store.upsert_credential("u1", "tiktok", access_token="a", scope="video.upload")

    def test_expiry_round_trip(self, credential_store):
        expires_at = (utcnow() + timedelta(hours=1)).replace(microsecond=0)
        credential_store.upsert_credential("u1", "tiktok", access_token="a", expires_at=expires_at)

        assert as_utc(credential_store.find_credential("u1", "tiktok").expires_at) == expires_at

    def test_naive_expiry_is_stored_as_utc(self, credential_store):
        aware = (utcnow() + timedelta(hours=1)).replace(microsecond=0)
        credential_store.upsert_credential("u1", "tiktok", access_token="a", expires_at=aware.replace(tzinfo=None))

        assert as_utc(credential_store.find_credential("u1", "tiktok").expires_at) == aware

    def test_delete(self, credential_store):
        credential_store.upsert_credential("u1", "tiktok", access_token="a")

        assert credential_store.delete_credential("u1", "tiktok") is True
        assert credential_store.delete_credential("u1", "tiktok") is False
        assert credential_store.has_credential("u1", "tiktok") is False


class TestJobStore:
    def test_mark_finished(self, job_store):
        job = job_store.create_job("u1", status=JobStatus.PROCESSING)

        done = job_store.mark_job_finished(job.id, JobStatus.DONE, output_url="https://cdn.example.com/x.mp4")

        assert done.status == JobStatus.DONE
        assert job_store.find_job(job.id).output_url == "https://cdn.example.com/x.mp4"

    def test_mark_finished_unknown_job(self, job_store):
        assert job_store.mark_job_finished("missing", JobStatus.FAILED, error_message="x") is None

    def test_mark_finished_requires_terminal_status(self, job_store):
        job = job_store.create_job("u1")
        with pytest.raises(ValueError):
            job_store.mark_job_finished(job.id, JobStatus.PROCESSING)


class TestTimestamps:
    """Timestamps are written as aware UTC into timezone-aware columns."""

    @pytest.mark.parametrize(
        "model, column",
        [
            (OAuthCredential, "expires_at"),
            (OAuthCredential, "created_at"),
            (OAuthCredential, "updated_at"),
            (Job, "created_at"),
            (Job, "updated_at"),
        ],
    )
    def test_columns_are_timezone_aware(self, model, column):
        column_type = model.__table__.c[column].type

        assert isinstance(column_type, DateTime)
        assert column_type.timezone is True

    def test_new_rows_carry_aware_utc_defaults(self):
        job = Job(user_id="u1")
        credential = OAuthCredential(user_id="u1", provider="tiktok", access_token="a")

        for value in (job.created_at, job.updated_at, credential.created_at, credential.updated_at):
            assert value.tzinfo is not None
            assert value.utcoffset() == timedelta(0)

    def test_writes_and_updates_persist(self, credential_store, job_store):
        created = credential_store.upsert_credential(
            "u1", "tiktok", access_token="a", expires_at=utcnow() + timedelta(hours=1)
        )
        updated = credential_store.upsert_credential("u1", "tiktok", access_token="b")
        job = job_store.create_job("u1", status=JobStatus.PROCESSING)
        finished = job_store.mark_job_finished(job.id, JobStatus.FAILED, error_message="boom")

        assert as_utc(updated.updated_at) >= as_utc(created.created_at)
        assert as_utc(finished.updated_at) >= as_utc(job.created_at)
        assert as_utc(finished.updated_at) <= utcnow()
