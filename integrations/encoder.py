"""FFmpeg encoder with a private scratch filesystem, shared per process."""

import collections
import logging
import os
import re
import shutil
import subprocess
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from processing.config import get_ffmpeg_binary, get_max_processing_time
from processing.errors import EncoderUnavailableError, TranscodeError

ProgressHook = Callable[[Dict[str, float]], None]

DURATION_PATTERN = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")


@dataclass
class EncoderConfig:
    binary: str = field(default_factory=get_ffmpeg_binary)
    max_processing_time: int = field(default_factory=get_max_processing_time)
    scratch_prefix: str = "vidshrink-"


def _parse_duration(line: str) -> Optional[float]:
    match = DURATION_PATTERN.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def _parse_progress_seconds(line: str) -> Optional[float]:
    """Read the encoded position from a `-progress` key=value line.

    Both out_time_us and out_time_ms are reported in microseconds.
    """
    key, sep, value = line.partition("=")
    if not sep or key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        micros = int(value)
    except ValueError:
        return None
    return max(0, micros) / 1_000_000


class FFmpegEncoder:
    """Runs ffmpeg against files staged in an isolated scratch directory.

    Entry names are bare file names; the scratch directory is the working
    directory of every run.
    """

    def __init__(self) -> None:
        self.config: Optional[EncoderConfig] = None
        self.workspace: Optional[str] = None
        self._progress_hook: Optional[ProgressHook] = None

    def initialize(self, config: Optional[EncoderConfig] = None) -> None:
        config = config or EncoderConfig()

        binary = shutil.which(config.binary)
        if not binary:
            raise EncoderUnavailableError(f"FFmpeg binary not found: {config.binary}")

        try:
            result = subprocess.run([binary, "-version"], capture_output=True, text=True, timeout=10)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise EncoderUnavailableError(f"FFmpeg could not be started: {exc}") from exc
        if result.returncode != 0:
            raise EncoderUnavailableError(f"FFmpeg failed to report its version: {result.stderr}")

        version = result.stdout.splitlines()[0] if result.stdout else "unknown version"
        logging.info("FFmpeg ready: %s", version)

        self.config = EncoderConfig(binary, config.max_processing_time, config.scratch_prefix)
        self.workspace = tempfile.mkdtemp(prefix=config.scratch_prefix)

    def _path(self, name: str) -> str:
        if self.workspace is None:
            raise EncoderUnavailableError("Encoder is not initialized")
        if not name or os.path.basename(name) != name or name in (".", ".."):
            raise ValueError(f"Invalid scratch entry name: {name!r}")
        return os.path.join(self.workspace, name)

    def stage_file(self, name: str, data: bytes) -> None:
        with open(self._path(name), "wb") as fh:
            fh.write(data)

    def read_file(self, name: str) -> bytes:
        with open(self._path(name), "rb") as fh:
            return fh.read()

    def remove_file(self, name: str) -> None:
        os.unlink(self._path(name))

    def exists(self, name: str) -> bool:
        return os.path.exists(self._path(name))

    def set_progress(self, hook: Optional[ProgressHook]) -> None:
        self._progress_hook = hook

    def _report(self, ratio: float) -> None:
        if self._progress_hook is not None:
            self._progress_hook({"ratio": min(1.0, max(0.0, ratio))})

    def run(self, argv: List[str]) -> None:
        """Execute one ffmpeg invocation, streaming progress to the hook."""
        if self.config is None or self.workspace is None:
            raise EncoderUnavailableError("Encoder is not initialized")

        cmd = [self.config.binary, "-hide_banner", "-y", "-nostats", "-progress", "pipe:1", *argv]
        logging.info("Running FFmpeg: %s", " ".join(cmd))

        process = subprocess.Popen(
            cmd,
            cwd=self.workspace,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        timed_out = threading.Event()

        def _kill() -> None:
            timed_out.set()
            process.kill()

        timer = threading.Timer(self.config.max_processing_time, _kill)
        timer.start()

        log_tail: collections.deque = collections.deque(maxlen=20)
        duration = None
        try:
            for raw_line in process.stdout:
                line = raw_line.strip()
                if not line:
                    continue
                if duration is None:
                    duration = _parse_duration(line)
                    if duration is not None:
                        logging.debug("Input duration: %.2fs", duration)
                        continue

                position = _parse_progress_seconds(line)
                if position is not None:
                    if duration:
                        self._report(position / duration)
                elif line == "progress=end":
                    self._report(1.0)
                elif "=" not in line or " " in line:
                    log_tail.append(line)
            return_code = process.wait()
        finally:
            timer.cancel()
            if process.poll() is None:
                process.kill()
                process.wait()
            process.stdout.close()

        logging.info("FFmpeg return code: %s", return_code)
        if timed_out.is_set():
            raise TranscodeError(
                f"FFmpeg exceeded the {self.config.max_processing_time}s processing limit"
            )
        if return_code != 0:
            raise TranscodeError(f"FFmpeg failed: {' | '.join(log_tail)}")

    def close(self) -> None:
        if self.workspace:
            shutil.rmtree(self.workspace, ignore_errors=True)
            self.workspace = None


class EncoderSession:
    """Session-scoped owner of the single shared encoder.

    The encoder is initialized at most once, behind a lock; later calls only
    check the already initialized instance. Runs are serialized with
    `exclusive()`.
    """

    def __init__(self, factory: Callable[[], object] = FFmpegEncoder, config: Optional[EncoderConfig] = None):
        self._factory = factory
        self._config = config
        self._encoder = None
        self._init_lock = threading.Lock()
        self._run_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._encoder is not None

    def acquire(self):
        encoder = self._encoder
        if encoder is not None:
            return encoder

        with self._init_lock:
            if self._encoder is None:
                logging.info("Initializing encoder")
                encoder = self._factory()
                encoder.initialize(self._config)
                self._encoder = encoder
            return self._encoder

    @contextmanager
    def exclusive(self) -> Iterator[object]:
        encoder = self.acquire()
        with self._run_lock:
            yield encoder

    def close(self) -> None:
        with self._init_lock:
            if self._encoder is not None:
                close = getattr(self._encoder, "close", None)
                if close is not None:
                    close()
                self._encoder = None


_default_session: Optional[EncoderSession] = None
_default_session_lock = threading.Lock()


def get_default_session() -> EncoderSession:
    global _default_session
    with _default_session_lock:
        if _default_session is None:
            _default_session = EncoderSession()
        return _default_session
