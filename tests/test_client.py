"""Tests for the store call wrapper and the aiobotocore client factory."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import client_error
from s3overwrite.client import create_client, store_call
from s3overwrite.config import StoreConfig
from s3overwrite.errors import FetchError, WriteError


class TestStoreCall:
    """Tests for store_call()."""

    async def test_sends_bucket_and_key(self):
        method = AsyncMock(return_value={"ETag": '"abc"'})
        resp = await store_call(
            method,
            operation="PutObject",
            error_cls=WriteError,
            bucket="b",
            key="k",
            ContentType="text/plain",
        )
        assert resp == {"ETag": '"abc"'}
        method.assert_awaited_once_with(Bucket="b", Key="k", ContentType="text/plain")

    async def test_client_error_mapped(self):
        method = AsyncMock(side_effect=client_error("AccessDenied", "Access Denied"))
        with pytest.raises(FetchError) as exc_info:
            await store_call(
                method, operation="GetObjectAcl", error_cls=FetchError, bucket="b", key="k"
            )
        err = exc_info.value
        assert err.code == "AccessDenied"
        assert err.operation == "GetObjectAcl"
        assert err.bucket == "b"
        assert err.key == "k"
        assert err.__cause__ is method.side_effect

    async def test_other_exception_mapped_without_code(self):
        method = AsyncMock(side_effect=ConnectionError("reset"))
        with pytest.raises(WriteError, match="reset") as exc_info:
            await store_call(
                method, operation="PutObject", error_cls=WriteError, bucket="b", key="k"
            )
        assert exc_info.value.code == ""

    async def test_timeout(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        with pytest.raises(WriteError) as exc_info:
            await store_call(
                slow,
                operation="PutObject",
                error_cls=WriteError,
                bucket="b",
                key="k",
                timeout=0.01,
            )
        assert exc_info.value.code == "RequestTimeout"
        assert "timed out" in str(exc_info.value)

    async def test_cancellation_not_wrapped(self):
        method = AsyncMock(side_effect=asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await store_call(
                method, operation="GetObject", error_cls=FetchError, bucket="b", key="k"
            )


class TestCreateClient:
    """Tests for create_client()."""

    @staticmethod
    def _mock_session():
        session = MagicMock()
        s3 = MagicMock()
        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(return_value=s3)
        ctx.__aexit__ = AsyncMock(return_value=False)
        session.create_client.return_value = ctx
        return session, s3, ctx

    async def test_defaults(self):
        session, s3, ctx = self._mock_session()
        with patch("s3overwrite.client.AioSession", return_value=session):
            async with create_client(StoreConfig()) as client:
                assert client is s3

        session.create_client.assert_called_once_with("s3", region_name="us-east-1")
        session.set_credentials.assert_not_called()
        ctx.__aexit__.assert_awaited_once()

    async def test_endpoint_path_style_and_credentials(self):
        session, _, _ = self._mock_session()
        config = StoreConfig(
            region="eu-west-1",
            endpoint_url="http://localhost:9000",
            use_path_style=True,
            access_key_id="AKID",
            secret_access_key="secret",
        )
        with patch("s3overwrite.client.AioSession", return_value=session):
            async with create_client(config):
                pass

        session.set_credentials.assert_called_once_with("AKID", "secret")
        args, kwargs = session.create_client.call_args
        assert args == ("s3",)
        assert kwargs["region_name"] == "eu-west-1"
        assert kwargs["endpoint_url"] == "http://localhost:9000"
        assert kwargs["config"].s3 == {"addressing_style": "path"}

    async def test_partial_credentials_ignored(self):
        session, _, _ = self._mock_session()
        with patch("s3overwrite.client.AioSession", return_value=session):
            async with create_client(StoreConfig(access_key_id="AKID")):
                pass
        session.set_credentials.assert_not_called()
