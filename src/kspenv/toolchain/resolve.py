"""Toolchain resolution: pinned manifests by hash, floating by latest match."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path

from kspenv.errors import (
    UnavailableError,
    UnsupportedComponentError,
    UnsupportedTargetError,
)
from kspenv.fetch import fetch, fetch_unpinned, normalize_sha256
from kspenv.models import ResolvedComponent, SystemIdentifier, Toolchain, ToolchainSpec, host_triple
from kspenv.observability import StructuredLogger
from kspenv.policy import Policy
from kspenv.toolchain.manifest import STD_PACKAGE, ChannelManifest, read_manifest

DEFAULT_DIST_ROOT = "https://static.rust-lang.org/dist"


def manifest_url(dist_root: str, channel: str, day: str | None = None) -> str:
    root = dist_root.rstrip("/")
    if day:
        return f"{root}/{day}/channel-rust-{channel}.toml"
    return f"{root}/channel-rust-{channel}.toml"


@dataclass(slots=True)
class ToolchainSelector:
    """Resolve a :class:`ToolchainSpec` to a concrete :class:`Toolchain` per system."""

    cache_dir: Path
    dist_root: str = DEFAULT_DIST_ROOT
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    today: Callable[[], date] = date.today

    def resolve(self, spec: ToolchainSpec, system: SystemIdentifier) -> Toolchain:
        host = host_triple(system)
        if spec.strategy == "pinned":
            toolchain = self._resolve_pinned(spec, host=host)
        else:
            toolchain = self._resolve_floating(spec, host=host, system=system)
        self.logger.log(
            operation="resolve_toolchain",
            system=system,
            output=None,
            component="toolchain",
            message="Resolved toolchain.",
            extra={"strategy": spec.strategy, "identity": toolchain.identity},
        )
        return toolchain

    def _resolve_pinned(self, spec: ToolchainSpec, *, host: str) -> Toolchain:
        assert spec.sha256 is not None
        url = manifest_url(self.dist_root, spec.channel, spec.date)
        path = fetch(url, sha256=spec.sha256, cache_dir=self._manifest_cache, policy=self.policy)
        manifest = read_manifest(path)
        return select_components(
            manifest,
            spec,
            host=host,
            manifest_sha256=normalize_sha256(spec.sha256),
        )

    def _resolve_floating(self, spec: ToolchainSpec, *, host: str, system: str) -> Toolchain:
        checked: list[str] = []
        seen_manifest = False
        for day in self._candidate_days():
            url = manifest_url(self.dist_root, spec.channel, day)
            try:
                result = fetch_unpinned(url, cache_dir=self._manifest_cache, policy=self.policy)
            except UnavailableError:
                checked.append(day or "latest")
                continue
            manifest = read_manifest(result.path)
            if not seen_manifest:
                seen_manifest = True
                _reject_unknown(manifest, spec)
            checked.append(manifest.date)
            missing = manifest.missing_components(spec.components, host)
            missing += manifest.missing_targets(spec.targets)
            self.logger.log(
                operation="probe_manifest",
                system=system,
                output=None,
                component="toolchain",
                message="Probed channel manifest.",
                extra={"date": manifest.date, "missing": list(missing)},
            )
            if not missing:
                return select_components(manifest, spec, host=host, manifest_sha256=result.sha256)

        raise UnavailableError(
            "No upstream toolchain matches the floating query.",
            hint="Widen policy.floating_search_days or drop unavailable components.",
            context={
                "channel": spec.channel,
                "host": host,
                "components": ", ".join(spec.components),
                "targets": ", ".join(spec.targets),
                "checked": ", ".join(checked),
            },
        )

    def _candidate_days(self) -> list[str | None]:
        start = self.today()
        days: list[str | None] = [None]
        for offset in range(self.policy.floating_search_days):
            days.append((start - timedelta(days=offset)).isoformat())
        return days

    @property
    def _manifest_cache(self) -> Path:
        return Path(self.cache_dir) / "manifests"


def select_components(
    manifest: ChannelManifest,
    spec: ToolchainSpec,
    *,
    host: str,
    manifest_sha256: str,
) -> Toolchain:
    """Pick the requested components and targets from a manifest, failing fast."""
    _reject_unknown(manifest, spec)
    missing = manifest.missing_components(spec.components, host)
    if missing:
        raise UnsupportedComponentError(
            "Requested components are not offered by this channel for the host.",
            hint="Pick a different channel/date or drop the components.",
            context={"channel": spec.channel, "date": manifest.date, "host": host, "missing": ", ".join(missing)},
        )
    missing_targets = manifest.missing_targets(spec.targets)
    if missing_targets:
        raise UnsupportedTargetError(
            "Requested targets are not published for this channel.",
            context={"channel": spec.channel, "date": manifest.date, "missing": ", ".join(missing_targets)},
        )

    resolved: list[ResolvedComponent] = []
    for name in spec.components:
        entry = manifest.component_entry(name, host)
        assert entry is not None
        resolved.append(
            ResolvedComponent(
                name=name,
                package=manifest.package_name(name),
                target=host,
                url=entry.url,
                sha256=entry.sha256,
            ),
        )
    for target in spec.targets:
        entry = manifest.target_entry(target)
        assert entry is not None
        resolved.append(
            ResolvedComponent(
                name=f"{STD_PACKAGE}-{target}",
                package=STD_PACKAGE,
                target=target,
                url=entry.url,
                sha256=entry.sha256,
            ),
        )
    return Toolchain(
        channel=spec.channel,
        date=manifest.date,
        manifest_sha256=manifest_sha256,
        host=host,
        components=tuple(resolved),
        targets=spec.targets,
    )


def _reject_unknown(manifest: ChannelManifest, spec: ToolchainSpec) -> None:
    unknown = tuple(item for item in spec.components if not manifest.knows_component(item))
    if unknown:
        raise UnsupportedComponentError(
            "Requested components do not exist on this channel.",
            hint="Check component names such as cargo, rustc, clippy, rustfmt, rust-src.",
            context={"channel": spec.channel, "unknown": ", ".join(unknown)},
        )
    published = set(manifest.published_targets())
    unpublished = tuple(item for item in spec.targets if item not in published)
    if unpublished:
        raise UnsupportedTargetError(
            "Requested targets are not in the channel's published target list.",
            context={"channel": spec.channel, "unpublished": ", ".join(unpublished)},
        )
