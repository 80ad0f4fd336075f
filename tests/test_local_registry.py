"""Tests for the local installed-package registry."""

import asyncio
import json
import os

import pytest

from common.errors import RegistryError
from constants import LocalRegistryScope
from upack.local_registry import InstalledPackageRecord, PackageRegistry, registry_root


def _record(name="pkg", version="1.0.0", group=None, feed_url="https://h/upack/F"):
    return InstalledPackageRecord(
        name=name,
        version=version,
        install_path="/opt/" + name,
        feed_url=feed_url,
        installation_date="2024-01-01T00:00:00+00:00",
        installed_using="upackctl/1.0.0",
        group=group,
    )


class TestInstalledPackageRecord:
    """Persisted field names."""

    def test_json_field_names(self):
        data = _record(group="tools").to_json()
        assert list(data) == [
            "Group", "Name", "Version", "InstallPath", "FeedUrl", "InstallationDate", "InstalledUsing",
        ]

    def test_optional_fields_are_omitted(self):
        data = _record(feed_url=None).to_json()
        assert "Group" not in data
        assert "FeedUrl" not in data

    def test_round_trip(self):
        record = _record(group="tools")
        assert InstalledPackageRecord.from_json(record.to_json()) == record


class TestRegistryRoot:
    """Scope to directory mapping."""

    def test_user_scope_is_under_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert registry_root(LocalRegistryScope.USER) == os.path.join(str(tmp_path), ".upack")

    def test_none_scope_has_no_root(self):
        with pytest.raises(RegistryError):
            registry_root(LocalRegistryScope.NONE)


class TestPackageRegistry:
    """Locking and persistence."""

    def test_missing_registry_is_empty(self, tmp_path):
        assert PackageRegistry(str(tmp_path)).get_installed_packages() == []

    def test_register_requires_lock(self, tmp_path):
        registry = PackageRegistry(str(tmp_path))
        with pytest.raises(RegistryError, match="must be locked"):
            registry.register(_record())
        assert not os.path.exists(registry.registry_file)

    def test_register_and_read_back(self, tmp_path):
        registry = PackageRegistry(str(tmp_path / "reg"))

        async def scenario():
            async with registry.locked():
                registry.register(_record("a"))
                registry.register(_record("b", group="g"))

        asyncio.run(scenario())
        assert not registry.is_locked
        names = [r.name for r in registry.get_installed_packages()]
        assert names == ["a", "b"]
        with open(registry.registry_file, encoding="utf-8") as fh:
            raw = json.load(fh)
        assert raw[1]["Group"] == "g"
        assert [n for n in os.listdir(registry.root) if n.startswith(".installedPackages-")] == []

    def test_release_is_idempotent(self, tmp_path):
        registry = PackageRegistry(str(tmp_path))

        async def scenario():
            await registry.acquire()
            assert registry.is_locked
            registry.release()
            registry.release()

        asyncio.run(scenario())
        assert not registry.is_locked
        registry.release()

    def test_lock_released_when_block_raises(self, tmp_path):
        registry = PackageRegistry(str(tmp_path))
        other = PackageRegistry(str(tmp_path))

        async def scenario():
            with pytest.raises(ValueError):
                async with registry.locked():
                    raise ValueError("boom")
            await asyncio.wait_for(other.acquire(poll_interval=0.01), timeout=2)
            other.release()

        asyncio.run(scenario())
        assert not registry.is_locked

    def test_concurrent_registrations_are_recorded_in_completion_order(self, tmp_path):
        root = str(tmp_path)
        completed = []

        async def install(name, hold, acquired=None):
            registry = PackageRegistry(root)
            await registry.acquire(poll_interval=0.01)
            if acquired is not None:
                acquired.set()
            try:
                await asyncio.sleep(hold)
                registry.register(_record(name))
                completed.append(name)
            finally:
                registry.release()

        async def scenario():
            holder_ready = asyncio.Event()
            # "slow" takes the lock first and holds it; "fast" must wait for it
            slow = asyncio.ensure_future(install("slow", 0.1, holder_ready))
            await holder_ready.wait()
            fast = asyncio.ensure_future(install("fast", 0))
            await asyncio.gather(slow, fast)

        asyncio.run(scenario())
        names = [r.name for r in PackageRegistry(root).get_installed_packages()]
        assert completed == ["slow", "fast"]
        assert names == completed

    def test_waiting_for_lock_can_be_cancelled(self, tmp_path):
        holder = PackageRegistry(str(tmp_path))
        waiter = PackageRegistry(str(tmp_path))

        async def scenario():
            await holder.acquire()
            try:
                with pytest.raises(asyncio.TimeoutError):
                    await asyncio.wait_for(waiter.acquire(poll_interval=0.01), timeout=0.1)
            finally:
                holder.release()

        asyncio.run(scenario())
        assert not waiter.is_locked

    def test_find_installed_returns_latest_match(self, tmp_path):
        registry = PackageRegistry(str(tmp_path))

        async def scenario():
            async with registry.locked():
                registry.register(_record("pkg", "1.0.0"))
                registry.register(_record("pkg", "2.0.0", group="g"))
                registry.register(_record("pkg", "1.1.0"))

        asyncio.run(scenario())
        assert registry.find_installed("PKG").version == "1.1.0"
        assert registry.find_installed("pkg", "G").version == "2.0.0"
        assert registry.find_installed("other") is None

    def test_corrupt_registry_raises(self, tmp_path):
        (tmp_path / "installedPackages.json").write_text("{not json")
        with pytest.raises(RegistryError):
            PackageRegistry(str(tmp_path)).get_installed_packages()

    def test_non_array_registry_raises(self, tmp_path):
        (tmp_path / "installedPackages.json").write_text('{"Name": "x"}')
        with pytest.raises(RegistryError, match="not a JSON array"):
            PackageRegistry(str(tmp_path)).get_installed_packages()
