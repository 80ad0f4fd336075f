"""Tests for package installation with a fake feed client."""

import asyncio
import io
import json
import os
import zipfile

import pytest

from common.errors import ConfigurationError, InstallError, TransferError
from constants import Constants, LocalRegistryScope
from feeds.context import CredentialContext
from feeds.models import FeedConfiguration, PackageSource, ProGetServiceCredentials, ProGetServiceRef
from upack.archive import UniversalPackageBuilder
from upack.installer import PackageInstallRequest, install_package, installed_feed_url
from upack.local_registry import PackageRegistry


class _KeepOpen(io.BytesIO):
    """BytesIO that survives the builder closing it."""

    def close(self):
        pass


def _package_bytes(tmp_path, files, metadata=None):
    src = tmp_path / "pkg-src"
    src.mkdir(exist_ok=True)
    for rel, data in files.items():
        path = src / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    buf = _KeepOpen()
    meta = metadata or {"group": "demo", "name": "pkg", "version": "1.0.0"}
    with UniversalPackageBuilder(buf, meta) as builder:
        builder.add_contents(str(src), "", True, lambda _p: True)
    return buf.getvalue()


class FakeFeedClient:
    """Stands in for FeedClient; serves a fixed archive."""

    def __init__(self, payload=b"", versions=None, error=None):
        self.payload = payload
        self.versions = versions or []
        self.error = error
        self.requested = []
        self.stopped = False

    async def download_to(self, dest, name, version, group=None):
        self.requested.append((group, name, version))
        if self.error:
            raise self.error
        dest.write(self.payload)
        return len(self.payload)

    def latest_version(self, name, group=None):
        return self.versions[-1] if self.versions else None

    async def stop(self):
        self.stopped = True


def _request(version="1.0.0"):
    feed = FeedConfiguration(api_url="https://proget.local/", feed_name="My Feed")
    return PackageInstallRequest(feed=feed, name="pkg", version=version, group="demo")


class TestInstalledFeedUrl:
    """Recorded feed URL format."""

    def test_escapes_feed_name_and_trims_slash(self):
        config = FeedConfiguration(api_url="https://proget.local/", feed_name="My Feed")
        assert installed_feed_url(config) == "https://proget.local/upack/My%20Feed"


class TestInstallPackage:
    """End-to-end installation."""

    def test_extracts_files_and_returns_record(self, tmp_path):
        payload = _package_bytes(tmp_path, {"a.txt": b"alpha", "sub/b.txt": b"bravo"})
        client = FakeFeedClient(payload)
        target = tmp_path / "target"

        record = asyncio.run(install_package(_request(), str(target), client=client))

        assert (target / "a.txt").read_bytes() == b"alpha"
        assert (target / "sub" / "b.txt").read_bytes() == b"bravo"
        assert client.requested == [("demo", "pkg", "1.0.0")]
        assert not client.stopped
        assert record.group == "demo"
        assert record.name == "pkg"
        assert record.version == "1.0.0"
        assert record.install_path == os.path.abspath(str(target))
        assert record.feed_url == "https://proget.local/upack/My%20Feed"
        assert record.installed_using == Constants.INSTALLED_USING
        assert "T" in record.installation_date

    def test_installs_file_with_colon_in_name(self, tmp_path):
        payload = _package_bytes(tmp_path, {"12:00-report.txt": b"noon"})
        target = tmp_path / "target"
        asyncio.run(install_package(_request(), str(target), client=FakeFeedClient(payload)))
        assert (target / "12:00-report.txt").read_bytes() == b"noon"

    def test_no_registry_scope_writes_no_registry(self, tmp_path):
        payload = _package_bytes(tmp_path, {"a.txt": b"a"})
        registry = PackageRegistry(str(tmp_path / "reg"))
        asyncio.run(install_package(
            _request(), str(tmp_path / "t"), LocalRegistryScope.NONE,
            client=FakeFeedClient(payload), registry=registry,
        ))
        assert not os.path.exists(registry.registry_file)

    def test_registry_receives_record(self, tmp_path):
        payload = _package_bytes(tmp_path, {"a.txt": b"a"})
        registry = PackageRegistry(str(tmp_path / "reg"))
        asyncio.run(install_package(
            _request(), str(tmp_path / "t"), LocalRegistryScope.USER,
            client=FakeFeedClient(payload), registry=registry,
        ))
        assert not registry.is_locked
        with open(registry.registry_file, encoding="utf-8") as fh:
            data = json.load(fh)
        assert len(data) == 1
        assert data[0]["Group"] == "demo"
        assert data[0]["Name"] == "pkg"
        assert data[0]["FeedUrl"] == "https://proget.local/upack/My%20Feed"
        assert data[0]["InstalledUsing"] == Constants.INSTALLED_USING

    def test_latest_resolves_highest_version(self, tmp_path):
        payload = _package_bytes(
            tmp_path, {"a.txt": b"a"}, {"group": "demo", "name": "pkg", "version": "2.1.0"}
        )
        client = FakeFeedClient(payload, versions=["1.0.0", "2.1.0"])
        request = _request("latest")
        record = asyncio.run(install_package(request, str(tmp_path / "t"), client=client))
        assert client.requested == [("demo", "pkg", "2.1.0")]
        assert record.version == "2.1.0"

    def test_latest_without_versions_fails(self, tmp_path):
        with pytest.raises(InstallError, match="No stable version"):
            asyncio.run(install_package(_request("latest"), str(tmp_path / "t"), client=FakeFeedClient()))

    def test_download_failure_becomes_install_error(self, tmp_path):
        client = FakeFeedClient(error=TransferError("Feed returned HTTP 500"))
        with pytest.raises(InstallError) as excinfo:
            asyncio.run(install_package(_request(), str(tmp_path / "t"), client=client))
        assert "HTTP 500" in str(excinfo.value)
        assert excinfo.value.package == "demo/pkg 1.0.0"

    def test_corrupt_archive_becomes_install_error(self, tmp_path):
        client = FakeFeedClient(b"not a zip")
        target = str(tmp_path / "t")
        with pytest.raises(InstallError) as excinfo:
            asyncio.run(install_package(_request(), target, client=client))
        assert excinfo.value.path == target

    def test_extraction_failure_keeps_earlier_entries(self, tmp_path):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("upack.json", json.dumps({"name": "pkg", "version": "1.0.0"}))
            zf.writestr("package/first.txt", b"1")
            zf.writestr("package/../escape.txt", b"x")
        target = tmp_path / "t"
        registry = PackageRegistry(str(tmp_path / "reg"))
        with pytest.raises(InstallError):
            asyncio.run(install_package(
                _request(), str(target), LocalRegistryScope.USER,
                client=FakeFeedClient(buf.getvalue()), registry=registry,
            ))
        assert (target / "first.txt").read_bytes() == b"1"
        assert not os.path.exists(registry.registry_file)

    def test_missing_feed_raises_configuration_error(self, tmp_path):
        request = PackageInstallRequest(feed=FeedConfiguration(), name="pkg", version="1.0.0")
        with pytest.raises(ConfigurationError):
            asyncio.run(install_package(request, str(tmp_path / "t"), client=FakeFeedClient()))

    def test_context_resolves_named_source(self, tmp_path):
        payload = _package_bytes(tmp_path, {"a.txt": b"a"})
        context = CredentialContext(
            {"approved": PackageSource("approved", ProGetServiceRef("svc", "Approved"))},
            {},
            {"svc": ProGetServiceCredentials(service_url="https://svc.local", api_key="k")},
        )
        request = PackageInstallRequest(
            feed=FeedConfiguration(package_source_name="approved"), name="pkg", version="1.0.0", group="demo"
        )
        record = asyncio.run(install_package(
            request, str(tmp_path / "t"), context=context, client=FakeFeedClient(payload)
        ))
        assert record.feed_url == "https://svc.local/upack/Approved"
        assert request.feed.api_key == "k"
