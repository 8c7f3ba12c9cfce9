"""Typed configuration for the nightly pipeline.

The optional ``nightly.toml`` at the source root overrides any of the
defaults below. Defaults reproduce the upstream nightly release of the
desktop player, so a checkout without a config file behaves like CI.

Secrets never live in the file: ``[secrets]`` only names the environment
variables that hold them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_str, get_str_tuple, get_table

__all__ = [
    "Config",
    "ConfigError",
    "ProjectConfig",
    "BuildConfig",
    "WebConfig",
    "MirrorConfig",
    "PackageIndexConfig",
    "IdentityConfig",
    "SecretsConfig",
    "CONFIG_FILENAME",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILENAME = "nightly.toml"

DEFAULT_REPO = "ruffle-rs/ruffle"
DEFAULT_PACKAGE_BASE = "ruffle-nightly"

DEFAULT_LINUX_PACKAGES = ("libasound2-dev", "libxcb-shape0-dev", "libxcb-xfixes0-dev")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    """Upstream repository and release naming."""

    repo: str = DEFAULT_REPO  # owner/name
    package_base: str = DEFAULT_PACKAGE_BASE


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Native build settings shared by every platform row."""

    cargo_package: str = "ruffle_desktop"
    binary_name: str = "ruffle_desktop"
    shipped_name: str = "ruffle"
    extra_files: tuple[str, ...] = ("README.md", "LICENSE.md")
    linux_packages: tuple[str, ...] = DEFAULT_LINUX_PACKAGES


@dataclass(frozen=True, slots=True)
class WebConfig:
    """Web build outputs consumed by the mirror channels."""

    directory: str = "web"
    demo_dist: str = "packages/demo/dist"
    docs_dir: str = "packages/core/docs"


@dataclass(frozen=True, slots=True)
class MirrorConfig:
    """One external repository refreshed by the amend-style updater."""

    repo: str
    branch: str = "master"
    clean_patterns: tuple[str, ...] = ()
    # None copies the payload into the repository root.
    target_subdir: str | None = None


def _default_demo() -> MirrorConfig:
    return MirrorConfig(
        repo="ruffle-rs/demo",
        clean_patterns=("*.js", "*.wasm", "*.html"),
    )


def _default_docs() -> MirrorConfig:
    return MirrorConfig(
        repo="ruffle-rs/js-docs",
        clean_patterns=("master",),
        target_subdir="master",
    )


@dataclass(frozen=True, slots=True)
class PackageIndexConfig:
    """Third-party package index (AUR) submission."""

    package_name: str = "ruffle-nightly-bin"
    template: str = "PKGBUILD"
    placeholder: str = "@VERSION@"
    remote_base: str = "ssh://aur@aur.archlinux.org"

    @property
    def remote(self) -> str:
        return f"{self.remote_base}/{self.package_name}.git"


@dataclass(frozen=True, slots=True)
class IdentityConfig:
    """Author used for automated commits."""

    name: str = "RuffleBuild"
    email: str = "ruffle@ruffle.rs"


@dataclass(frozen=True, slots=True)
class SecretsConfig:
    """Environment variable names holding credentials."""

    github_token: str = "GITHUB_TOKEN"
    mirror_token: str = "RUFFLE_BUILD_TOKEN"
    package_index_key: str = "AUR_SSH_KEY_FILE"


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    web: WebConfig = field(default_factory=WebConfig)
    demo: MirrorConfig = field(default_factory=_default_demo)
    docs: MirrorConfig = field(default_factory=_default_docs)
    package_index: PackageIndexConfig = field(default_factory=PackageIndexConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    secrets: SecretsConfig = field(default_factory=SecretsConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a mapping (parsed TOML)."""
        project: StrDict = get_table(data, "project") or {}
        build: StrDict = get_table(data, "build") or {}
        web: StrDict = get_table(data, "web") or {}
        mirrors: StrDict = get_table(data, "mirrors") or {}
        index: StrDict = get_table(data, "package_index") or {}
        identity: StrDict = get_table(data, "identity") or {}
        secrets: StrDict = get_table(data, "secrets") or {}

        defaults = cls()
        return cls(
            project=ProjectConfig(
                repo=get_str(project, "repo") or DEFAULT_REPO,
                package_base=get_str(project, "package_base") or DEFAULT_PACKAGE_BASE,
            ),
            build=BuildConfig(
                cargo_package=get_str(build, "cargo_package") or defaults.build.cargo_package,
                binary_name=get_str(build, "binary_name") or defaults.build.binary_name,
                shipped_name=get_str(build, "shipped_name") or defaults.build.shipped_name,
                extra_files=_tuple_or(build, "extra_files", defaults.build.extra_files),
                linux_packages=_tuple_or(build, "linux_packages", DEFAULT_LINUX_PACKAGES),
            ),
            web=WebConfig(
                directory=get_str(web, "directory") or defaults.web.directory,
                demo_dist=get_str(web, "demo_dist") or defaults.web.demo_dist,
                docs_dir=get_str(web, "docs_dir") or defaults.web.docs_dir,
            ),
            demo=_mirror_from(get_table(mirrors, "demo"), defaults.demo),
            docs=_mirror_from(get_table(mirrors, "docs"), defaults.docs),
            package_index=PackageIndexConfig(
                package_name=get_str(index, "package_name")
                or defaults.package_index.package_name,
                template=get_str(index, "template") or defaults.package_index.template,
                placeholder=get_str(index, "placeholder") or defaults.package_index.placeholder,
                remote_base=get_str(index, "remote_base") or defaults.package_index.remote_base,
            ),
            identity=IdentityConfig(
                name=get_str(identity, "name") or defaults.identity.name,
                email=get_str(identity, "email") or defaults.identity.email,
            ),
            secrets=SecretsConfig(
                github_token=get_str(secrets, "github_token") or defaults.secrets.github_token,
                mirror_token=get_str(secrets, "mirror_token") or defaults.secrets.mirror_token,
                package_index_key=get_str(secrets, "package_index_key")
                or defaults.secrets.package_index_key,
            ),
        )


def _tuple_or(table: Mapping[str, object], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = get_str_tuple(table, key)
    if value is None:
        if key in table:
            raise ValueError(f"{key} must be a list of strings")
        return default
    return value


def _mirror_from(table: StrDict | None, default: MirrorConfig) -> MirrorConfig:
    if table is None:
        return default
    subdir = get_str(table, "target_subdir")
    if "target_subdir" not in table:
        subdir = default.target_subdir
    return MirrorConfig(
        repo=get_str(table, "repo") or default.repo,
        branch=get_str(table, "branch") or default.branch,
        clean_patterns=_tuple_or(table, "clean_patterns", default.clean_patterns),
        target_subdir=subdir,
    )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to nightly.toml

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path) -> Result[Config, ConfigError]:
    """Load config when the file exists, otherwise return defaults.

    A file that exists but does not parse is still an error.
    """
    if not path.exists():
        return Ok(Config())
    return load_config(path)
