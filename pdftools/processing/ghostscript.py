"""Ghostscript compression: typed options, argument builder, async runner."""

import asyncio
import os
from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from pdftools.errors import ProcessingFailed
from pdftools.logging_config import logger


class Quality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Compression level -> Ghostscript PDFSETTINGS preset.
# "high" compression means the smallest output.
QUALITY_PRESETS = {
    Quality.LOW: "prepress",
    Quality.MEDIUM: "printer",
    Quality.HIGH: "screen",
}


class CompressOptions(BaseModel):
    quality: Quality = Quality.MEDIUM
    downsample_dpi: int = Field(default=150, ge=36, le=600)
    remove_metadata: bool = False


def build_ghostscript_args(
    binary: str,
    input_path: str,
    output_path: str,
    options: CompressOptions,
) -> List[str]:
    """Full argv for one compression run. No shell is involved."""
    preset = QUALITY_PRESETS[options.quality]
    dpi = int(options.downsample_dpi)
    args = [
        binary,
        "-q",
        "-dSAFER",
        "-sDEVICE=pdfwrite",
        f"-dPDFSETTINGS=/{preset}",
        "-dDetectDuplicateImages=true",
        "-dCompressFonts=true",
        "-dDownsampleColorImages=true",
        f"-dColorImageResolution={dpi}",
        "-dDownsampleGrayImages=true",
        f"-dGrayImageResolution={dpi}",
        "-dDownsampleMonoImages=true",
        f"-dMonoImageResolution={dpi}",
        "-dNOPAUSE",
        "-dBATCH",
    ]
    if options.remove_metadata:
        args.append("-dDiscardDocInfo=true")
    args.append(f"-sOutputFile={output_path}")
    args.append(input_path)
    return args


class GhostscriptCompressor:
    """Runs Ghostscript as an isolated subprocess with a wall-clock limit."""

    def __init__(self, binary: str = "gs", timeout_seconds: float = 180):
        self.binary = binary
        self.timeout_seconds = timeout_seconds

    async def compress(self, input_path: str, output_path: str, options: CompressOptions) -> None:
        """Produce output_path from input_path or raise ProcessingFailed."""
        argv = build_ghostscript_args(self.binary, input_path, output_path, options)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as exc:
            logger.error(f"[Ghostscript] Cannot start {self.binary}: {exc}")
            raise ProcessingFailed("Compression engine unavailable")

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            await self._kill(proc)
            logger.warning(f"[Ghostscript] Timed out after {self.timeout_seconds}s on {input_path}")
            raise ProcessingFailed("Compression timed out")
        except asyncio.CancelledError:
            # Client went away; don't leave gs running.
            await self._kill(proc)
            raise

        if stderr:
            logger.warning(f"[Ghostscript] stderr: {stderr.decode('utf-8', 'replace').strip()}")

        if proc.returncode != 0:
            logger.error(f"[Ghostscript] Exited with code {proc.returncode} on {input_path}")
            raise ProcessingFailed("Ghostscript failed")

        if not os.path.isfile(output_path) or os.path.getsize(output_path) == 0:
            logger.error(f"[Ghostscript] No output produced for {input_path}")
            raise ProcessingFailed("Ghostscript produced no output")

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
