"""Execution engine that runs the rendered build script in a subprocess.

The script is written into the work directory and executed with the source
tree as working directory. Files installed into the host prefix are packed
into a ``.tar.bz2`` archive; ``.conda`` archives are not produced here.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
import tarfile
from dataclasses import dataclass, field
from pathlib import Path

from buildbackend.config import ToolConfiguration
from buildbackend.engines.base import artifact_path, render_index_json
from buildbackend.errors import BuildError
from buildbackend.metadata import ArchiveType, Output

UNIX_SCRIPT_HEADER = ("#!/usr/bin/env bash", "set -euo pipefail", "")
WINDOWS_SCRIPT_HEADER = ("@echo on", "")


@dataclass(slots=True)
class ScriptEngine:
    name: str = "script"
    shell: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    async def run(self, output: Output, tool_config: ToolConfiguration) -> tuple[Output, Path]:
        return await asyncio.to_thread(self._execute, output, tool_config)

    def _execute(self, output: Output, tool_config: ToolConfiguration) -> tuple[Output, Path]:
        configuration = output.build_configuration
        archive_type = configuration.packaging_settings.archive_type
        if archive_type is not ArchiveType.TAR_BZ2:
            raise BuildError(
                f"The script engine cannot produce '{archive_type}' archives.",
                hint='Set `archive-type = "tar.bz2"` in [package.build.configuration].',
                context={"engine": self.name, "archive_type": archive_type.value},
            )

        directories = configuration.directories
        windows = configuration.build_platform.platform.is_windows
        shell = self._resolve_shell(windows)
        # Directories are reused across builds of the same package.
        shutil.rmtree(directories.host_prefix, ignore_errors=True)
        shutil.rmtree(directories.work_dir / "info", ignore_errors=True)
        artifact_path(output).unlink(missing_ok=True)
        directories.host_prefix.mkdir(parents=True, exist_ok=True)
        directories.work_dir.mkdir(parents=True, exist_ok=True)

        script_path = directories.work_dir / ("conda_build.bat" if windows else "conda_build.sh")
        header = WINDOWS_SCRIPT_HEADER if windows else UNIX_SCRIPT_HEADER
        script_path.write_text(
            "\n".join((*header, *output.recipe.build.script, "")),
            encoding="utf-8",
        )

        command = [shell, "/d", "/c", str(script_path)] if windows else [shell, str(script_path)]
        source_dir = output.recipe.source[0].path
        try:
            result = subprocess.run(
                command,
                cwd=str(source_dir),
                env=self._script_env(output, source_dir, windows),
                capture_output=True,
                text=True,
                check=False,
            )
            if result.returncode != 0:
                raise BuildError(
                    "Build script failed.",
                    hint="Check the build script output for details.",
                    context={
                        "engine": self.name,
                        "package": output.name,
                        "returncode": str(result.returncode),
                        "stderr": result.stderr[:2000] if result.stderr else "",
                        "script": str(script_path),
                    },
                )
            path = self._package(output)
        finally:
            if not tool_config.keep_build:
                shutil.rmtree(directories.host_prefix, ignore_errors=True)

        summary = output.with_build_summary(
            artifact=str(path),
            engine=self.name,
            script=str(script_path),
        )
        return summary, path

    def _resolve_shell(self, windows: bool) -> str:
        shell = self.shell or ("cmd.exe" if windows else "bash")
        resolved = shutil.which(shell)
        if resolved is None:
            raise BuildError(
                f"The script engine requires `{shell}` in PATH.",
                context={"engine": self.name, "shell": shell},
            )
        return resolved

    def _script_env(self, output: Output, source_dir: Path, windows: bool) -> dict[str, str]:
        configuration = output.build_configuration
        directories = configuration.directories
        python = (
            directories.host_prefix / "python.exe"
            if windows
            else directories.host_prefix / "bin" / "python"
        )
        env = dict(os.environ)
        env.update(
            {
                "SRC_DIR": str(source_dir),
                "PREFIX": str(directories.host_prefix),
                "LIBRARY_PREFIX": str(directories.host_prefix / "Library"),
                "BUILD_PREFIX": str(directories.build_prefix),
                "PYTHON": str(python),
                "CMAKE_ARGS": "",
                "CPU_COUNT": str(os.cpu_count() or 1),
                "PKG_NAME": output.name,
                "PKG_VERSION": output.version,
                "PKG_BUILDNUM": str(output.recipe.build.number),
                "SUBDIR": configuration.subdir,
                "target_platform": configuration.target_platform.value,
                "build_platform": configuration.build_platform.platform.value,
            }
        )
        env.update(self.env)
        return env

    def _package(self, output: Output) -> Path:
        configuration = output.build_configuration
        host_prefix = configuration.directories.host_prefix
        path = artifact_path(output)
        path.parent.mkdir(parents=True, exist_ok=True)

        info_dir = configuration.directories.work_dir / "info"
        info_dir.mkdir(parents=True, exist_ok=True)
        files = sorted(
            item.relative_to(host_prefix).as_posix()
            for item in host_prefix.rglob("*")
            if item.is_file()
        )
        (info_dir / "index.json").write_text(render_index_json(output), encoding="utf-8")
        (info_dir / "files").write_text("".join(f"{name}\n" for name in files), encoding="utf-8")

        try:
            with tarfile.open(
                path,
                "w:bz2",
                compresslevel=configuration.packaging_settings.compression_level,
            ) as archive:
                archive.add(info_dir, arcname="info")
                for name in files:
                    archive.add(host_prefix / name, arcname=name)
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise BuildError(
                f"Failed to write package archive {path}",
                context={"engine": self.name, "path": str(path)},
            ) from exc
        return path
