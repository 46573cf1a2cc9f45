"""Bundle transport: ship a build output directory into a sandbox.

The directory is packed into a gzip tarball without its dependency
directories (they are reinstalled inside the sandbox so native modules match
the sandbox platform), uploaded, extracted, and its dependencies installed.
"""

import asyncio
import shlex
import tarfile
import tempfile
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from sandbox_runner.core.logging import get_logger, log_timing
from sandbox_runner.runner.commands import run_command
from sandbox_runner.runner.errors import BundleTransportError
from sandbox_runner.sandbox.runtime import SandboxRuntime

logger = get_logger(__name__)

BUNDLE_ARCHIVE_NAME = "bundle.tar.gz"
DEFAULT_EXCLUDES = ("node_modules",)


def create_bundle_archive(
    output_directory: str | Path,
    archive_path: str | Path,
    exclude: Iterable[str] = DEFAULT_EXCLUDES,
) -> Path:
    """Pack ``output_directory`` into a gzip tarball at ``archive_path``.

    Entries are stored relative to the directory root (``./...``). Any
    directory or file whose name appears in ``exclude``, at any depth, is
    skipped together with its contents.

    Raises:
        BundleTransportError: If ``output_directory`` is not a directory
    """
    source = Path(output_directory)
    if not source.is_dir():
        raise BundleTransportError(
            stage="archive",
            exit_code=None,
            output="",
            message=f"Output directory does not exist: {source}",
        )

    excluded = frozenset(exclude)

    def _filter(tarinfo: tarfile.TarInfo) -> tarfile.TarInfo | None:
        if excluded.intersection(PurePosixPath(tarinfo.name).parts):
            return None
        return tarinfo

    archive = Path(archive_path)
    with tarfile.open(archive, mode="w:gz") as tar:
        tar.add(str(source), arcname=".", filter=_filter)
    return archive


async def transport_bundle(
    runtime: SandboxRuntime,
    output_directory: str | Path,
    root_dir: str,
    *,
    exclude: Iterable[str] = DEFAULT_EXCLUDES,
    extract_timeout: int = 60,
    install_command: str | None = "npm install --omit=dev",
    install_timeout: int = 120,
) -> None:
    """Upload, extract and install a bundle in ``root_dir`` inside the sandbox.

    Args:
        runtime: Target sandbox
        output_directory: Local build output to ship
        root_dir: Sandbox directory the bundle is extracted into
        exclude: Directory names left out of the archive
        extract_timeout: Timeout for remote extraction in seconds
        install_command: Dependency install command run in ``root_dir``;
            empty or None skips installation
        install_timeout: Timeout for the install command in seconds

    Raises:
        BundleTransportError: If any stage fails. Remote stages carry the
            command's exit code and output.
    """
    sandbox_id = runtime.sandbox_id
    remote_archive = f"{root_dir.rstrip('/')}/{BUNDLE_ARCHIVE_NAME}"
    quoted_root = shlex.quote(root_dir)

    with tempfile.TemporaryDirectory(prefix="sandbox-bundle-") as tmp_dir:
        local_archive = Path(tmp_dir) / f"bundle-{sandbox_id}.tar.gz"
        try:
            with log_timing(logger, "bundle_upload", sandbox_id=sandbox_id):
                await asyncio.to_thread(
                    create_bundle_archive, output_directory, local_archive, tuple(exclude)
                )
                await runtime.upload_file(str(local_archive), remote_archive)
        except BundleTransportError:
            raise
        except Exception as e:
            raise BundleTransportError(
                stage="upload",
                exit_code=None,
                output=str(e),
                message=f"Bundle upload failed: {e}",
            ) from e
        finally:
            local_archive.unlink(missing_ok=True)

    logger.info("bundle_extracting", sandbox_id=sandbox_id, root_dir=root_dir)
    extract = await run_command(
        runtime,
        f"cd {quoted_root} && tar -xzf {BUNDLE_ARCHIVE_NAME} && rm {BUNDLE_ARCHIVE_NAME}",
        timeout=extract_timeout,
    )
    if extract.exit_code != 0:
        logger.error(
            "bundle_extraction_failed",
            sandbox_id=sandbox_id,
            exit_code=extract.exit_code,
            output=extract.output,
        )
        raise BundleTransportError("extraction", extract.exit_code, extract.output)

    if not install_command:
        return

    logger.info("bundle_installing_dependencies", sandbox_id=sandbox_id, command=install_command)
    install = await run_command(
        runtime,
        f"cd {quoted_root} && {install_command}",
        timeout=install_timeout,
    )
    if install.exit_code != 0:
        logger.error(
            "bundle_install_failed",
            sandbox_id=sandbox_id,
            exit_code=install.exit_code,
            output=install.output,
        )
        raise BundleTransportError("install", install.exit_code, install.output)
