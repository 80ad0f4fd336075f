"""Machine- and user-scoped registry of installed packages.

Records live in ``installedPackages.json`` under the registry root. Writers
take an exclusive ``fcntl.flock`` on the root's ``.lock`` file; the kernel
drops the lock if the holder dies, and writes go through a temp file plus
atomic rename so readers never see a truncated registry.
"""
from __future__ import annotations

import asyncio
import fcntl
import json
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, IO, List, Optional

from constants import Constants, LocalRegistryScope
from common.errors import RegistryError
from common.logging_utils import extra_context, is_debug_enabled, Timer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstalledPackageRecord:
    """One installation, as persisted in the registry."""
    name: str
    version: str
    install_path: str
    feed_url: Optional[str]
    installation_date: str
    installed_using: str
    group: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.group:
            data["Group"] = self.group
        data["Name"] = self.name
        data["Version"] = self.version
        data["InstallPath"] = self.install_path
        if self.feed_url:
            data["FeedUrl"] = self.feed_url
        data["InstallationDate"] = self.installation_date
        data["InstalledUsing"] = self.installed_using
        return data

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "InstalledPackageRecord":
        return cls(
            group=data.get("Group") or None,
            name=data.get("Name", ""),
            version=data.get("Version", ""),
            install_path=data.get("InstallPath", ""),
            feed_url=data.get("FeedUrl"),
            installation_date=data.get("InstallationDate", ""),
            installed_using=data.get("InstalledUsing", ""),
        )


def registry_root(scope: LocalRegistryScope) -> str:
    """Directory holding the registry for ``scope``."""
    if scope == LocalRegistryScope.USER:
        return os.path.expanduser(Constants.USER_REGISTRY_ROOT)
    if scope == LocalRegistryScope.MACHINE:
        return Constants.MACHINE_REGISTRY_ROOT
    raise RegistryError(f"Registry scope {scope.value} has no registry.")


class PackageRegistry:
    """Handle on one registry root.

    ``acquire`` must succeed before ``register``; ``release`` is idempotent.
    Use ``locked()`` to get release on every exit path.
    """

    def __init__(self, root: str):
        self.root = root
        self.registry_file = os.path.join(root, Constants.REGISTRY_FILE)
        self.lock_file = os.path.join(root, Constants.REGISTRY_LOCK_FILE)
        self._lock_handle: Optional[IO[str]] = None

    @classmethod
    def for_scope(cls, scope: LocalRegistryScope) -> "PackageRegistry":
        return cls(registry_root(scope))

    @property
    def is_locked(self) -> bool:
        return self._lock_handle is not None

    async def acquire(self, poll_interval: float = Constants.REGISTRY_LOCK_POLL_SEC) -> None:
        """Take the exclusive registry lock, waiting for other holders.

        The wait polls without blocking the event loop, so cancelling the
        calling task abandons it cleanly.
        """
        if self._lock_handle is not None:
            return
        try:
            os.makedirs(self.root, exist_ok=True)
            handle = open(self.lock_file, "a+", encoding="utf-8")  # pylint: disable=consider-using-with
        except OSError as exc:
            raise RegistryError(f"Could not open registry lock {self.lock_file}: {exc}") from exc

        waited = False
        with Timer() as t:
            try:
                while True:
                    try:
                        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                        break
                    except BlockingIOError:
                        if not waited:
                            logger.info("Waiting for lock on package registry %s...", self.root)
                            waited = True
                        await asyncio.sleep(poll_interval)
            except BaseException as exc:
                handle.close()
                if isinstance(exc, OSError):
                    raise RegistryError(f"Could not lock registry {self.root}: {exc}") from exc
                raise
        self._lock_handle = handle
        if is_debug_enabled(logger):
            logger.debug(
                "Registry lock acquired",
                extra=extra_context(
                    event="lock",
                    component="local_registry",
                    action="acquire",
                    outcome="success",
                    target=self.root,
                    duration_ms=t.duration_ms(),
                ),
            )

    def release(self) -> None:
        """Drop the lock if held. Safe to call any number of times."""
        handle, self._lock_handle = self._lock_handle, None
        if handle is None:
            return
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
        logger.debug("Registry lock released: %s", self.root)

    @asynccontextmanager
    async def locked(self) -> AsyncIterator["PackageRegistry"]:
        """Hold the registry lock for the duration of the block."""
        await self.acquire()
        try:
            yield self
        finally:
            self.release()

    def get_installed_packages(self) -> List[InstalledPackageRecord]:
        """Read every record; a missing registry file means no records."""
        try:
            with open(self.registry_file, "r", encoding="utf-8-sig") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as exc:
            raise RegistryError(f"Could not read registry {self.registry_file}: {exc}") from exc
        if not isinstance(data, list):
            raise RegistryError(f"Registry {self.registry_file} is not a JSON array.")
        return [InstalledPackageRecord.from_json(item) for item in data if isinstance(item, dict)]

    def find_installed(self, name: str, group: Optional[str] = None) -> Optional[InstalledPackageRecord]:
        """Most recently registered record for the package, if any."""
        for record in reversed(self.get_installed_packages()):
            if record.name.lower() == name.lower() and (record.group or "").lower() == (group or "").lower():
                return record
        return None

    def register(self, record: InstalledPackageRecord) -> None:
        """Append ``record`` to the registry. The lock must be held.

        Raises:
            RegistryError: lock not held, or the registry cannot be written.
        """
        if self._lock_handle is None:
            raise RegistryError("The package registry must be locked before registering a package.")
        records = [r.to_json() for r in self.get_installed_packages()]
        records.append(record.to_json())
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".installedPackages-", dir=self.root)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(records, fh, indent=2)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.chmod(tmp_path, 0o644)
                os.replace(tmp_path, self.registry_file)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise RegistryError(f"Could not write registry {self.registry_file}: {exc}") from exc
        logger.debug("Registered %s %s in %s", record.name, record.version, self.registry_file)
