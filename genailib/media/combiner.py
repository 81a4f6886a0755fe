"""
Media Combiner
==============

Merges video clips and overlays audio tracks by running ``ffmpeg``.

Buffers are written to a temporary directory, processed by an ffmpeg
subprocess in a worker thread and read back into memory; the temporary
directory is always removed.
"""

import asyncio
import json
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from ..core.config import MediaConfig
from ..core.exceptions import MediaError

logger = logging.getLogger(__name__)


class MediaCombiner:
    """
    ffmpeg-backed video operations.

    Args:
        config: Media settings (binary paths, codecs, subprocess timeout)
    """

    def __init__(self, config: Optional[MediaConfig] = None):
        self.config = config or MediaConfig()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def combine_videos(self, videos: Sequence[bytes]) -> bytes:
        """
        Concatenate clips in order.

        Audio is kept only when every clip carries an audio stream;
        otherwise the video streams alone are concatenated.

        Args:
            videos: Encoded clips, in playback order

        Returns:
            The merged clip

        Raises:
            MediaError: If there is nothing to merge or ffmpeg fails
        """
        if not videos:
            raise MediaError("no videos to combine")
        if len(videos) == 1:
            return bytes(videos[0])

        logger.info(f"Combining {len(videos)} videos")
        return await asyncio.to_thread(self._combine_sync, list(videos))

    async def append_videos(self, first: bytes, second: bytes) -> bytes:
        """Append ``second`` to the end of ``first``."""
        return await self.combine_videos([first, second])

    async def overlay_audio(self, video: bytes, audio: bytes) -> bytes:
        """
        Replace a clip's soundtrack.

        The audio loops when shorter than the video and is cut when longer;
        the video stream is copied without re-encoding.
        """
        logger.info("Overlaying audio onto video")
        return await asyncio.to_thread(self._overlay_sync, video, audio)

    # -------------------------------------------------------------------------
    # Subprocess Work
    # -------------------------------------------------------------------------

    def _combine_sync(self, videos: List[bytes]) -> bytes:
        with tempfile.TemporaryDirectory(prefix="genailib-combine-") as tmp:
            tmp_dir = Path(tmp)
            inputs = []
            for i, data in enumerate(videos):
                path = tmp_dir / f"input{i}.mp4"
                path.write_bytes(data)
                inputs.append(path)

            with_audio = all(self._has_audio(p) for p in inputs)
            output = tmp_dir / "output.mp4"
            self._run(self.build_concat_command(inputs, output, with_audio))
            return output.read_bytes()

    def _overlay_sync(self, video: bytes, audio: bytes) -> bytes:
        with tempfile.TemporaryDirectory(prefix="genailib-overlay-") as tmp:
            tmp_dir = Path(tmp)
            video_path = tmp_dir / "video.mp4"
            audio_path = tmp_dir / "audio"
            output = tmp_dir / "output.mp4"
            video_path.write_bytes(video)
            audio_path.write_bytes(audio)

            self._run(self.build_overlay_command(video_path, audio_path, output))
            return output.read_bytes()

    def build_concat_command(self, inputs: Sequence[Path], output: Path, with_audio: bool) -> List[str]:
        """Build the ffmpeg argv for an N-way concat filter."""
        cmd = [self.config.ffmpeg_path, "-y"]
        for path in inputs:
            cmd.extend(["-i", str(path)])

        n = len(inputs)
        if with_audio:
            streams = "".join(f"[{i}:v][{i}:a]" for i in range(n))
            cmd.extend([
                "-filter_complex", f"{streams}concat=n={n}:v=1:a=1[v][a]",
                "-map", "[v]", "-map", "[a]",
                "-c:v", self.config.video_codec,
                "-c:a", self.config.audio_codec,
            ])
        else:
            streams = "".join(f"[{i}:v]" for i in range(n))
            cmd.extend([
                "-filter_complex", f"{streams}concat=n={n}:v=1:a=0[v]",
                "-map", "[v]",
                "-c:v", self.config.video_codec,
            ])

        cmd.append(str(output))
        return cmd

    def build_overlay_command(self, video: Path, audio: Path, output: Path) -> List[str]:
        """Build the ffmpeg argv that loops or truncates audio to the video length."""
        return [
            self.config.ffmpeg_path, "-y",
            "-i", str(video),
            "-stream_loop", "-1", "-i", str(audio),
            "-map", "0:v:0", "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", self.config.audio_codec,
            "-shortest",
            str(output),
        ]

    def _has_audio(self, path: Path) -> bool:
        """Check whether a file carries at least one audio stream."""
        result = self._run([
            self.config.ffprobe_path, "-v", "error",
            "-select_streams", "a",
            "-show_entries", "stream=index",
            "-of", "json",
            str(path),
        ])
        try:
            info = json.loads(result.stdout or "{}")
        except ValueError:
            return False
        return bool(info.get("streams"))

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        binary = cmd[0]
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.subprocess_timeout,
            )
        except FileNotFoundError as e:
            raise MediaError(f"{binary} not found. Please install ffmpeg.", command=binary) from e
        except subprocess.TimeoutExpired as e:
            raise MediaError(
                f"{binary} timed out after {self.config.subprocess_timeout} seconds",
                command=binary,
            ) from e

        if result.returncode != 0:
            logger.error(f"{binary} failed: {result.stderr[-500:]}")
            raise MediaError(
                f"{binary} exited with status {result.returncode}",
                command=" ".join(cmd),
                stderr=result.stderr,
            )
        return result
