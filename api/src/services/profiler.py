"""
Runtime introspection for the diagnostics endpoints.

Provides:
- Process command line
- Stack dumps of every live thread
- Heap allocation summaries via tracemalloc
- A statistical CPU profiler that samples thread stacks and renders them
  as folded stacks for flame-graph tooling
"""

import os
import sys
import threading
import time
import traceback
import tracemalloc
from collections import Counter
from types import FrameType
from typing import Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


def command_line() -> bytes:
    """Process arguments separated by NUL bytes."""
    return "\x00".join(sys.argv).encode("utf-8", errors="replace")


def thread_dump() -> str:
    """
    Format the current stack of every live thread.

    Returns:
        One block per thread, headed by its name, ident and daemon flag
    """
    frames = sys._current_frames()
    blocks = []
    for thread in threading.enumerate():
        frame = frames.get(thread.ident)
        header = f"Thread {thread.name} (ident={thread.ident}, daemon={thread.daemon}):\n"
        stack = "".join(traceback.format_stack(frame)) if frame is not None else "  <no frame>\n"
        blocks.append(header + stack)
    return f"threads: {len(blocks)}\n\n" + "\n".join(blocks)


def heap_summary(limit: int = 25) -> str:
    """
    Summarize live allocations by source line.

    Allocation tracing is started on first use; allocations made before
    that point are not attributed.

    Args:
        limit: Number of allocation sites to report

    Returns:
        Plain-text report, largest sites first
    """
    if not tracemalloc.is_tracing():
        tracemalloc.start()
        logger.info("tracemalloc_started")

    snapshot = tracemalloc.take_snapshot()
    stats = snapshot.statistics("lineno")
    current, peak = tracemalloc.get_traced_memory()

    lines = [
        f"traced: {current} bytes (peak {peak} bytes)",
        f"sites: {len(stats)}",
        "",
    ]
    for stat in stats[:limit]:
        frame = stat.traceback[0]
        lines.append(f"{stat.size} bytes in {stat.count} blocks @ {frame.filename}:{frame.lineno}")
    return "\n".join(lines) + "\n"


def frame_label(frame: FrameType) -> str:
    code = frame.f_code
    return f"{code.co_name} ({os.path.basename(code.co_filename)}:{frame.f_lineno})"


def fold_stack(frame: Optional[FrameType], root: str) -> str:
    """
    Render a stack as a single folded line, outermost frame first.

    Args:
        frame: Innermost frame of the stack
        root: Label placed before the outermost frame (e.g. the thread name)

    Returns:
        Frame labels joined by ``;``
    """
    labels = []
    while frame is not None:
        labels.append(frame_label(frame))
        frame = frame.f_back
    labels.append(root)
    labels.reverse()
    return ";".join(label.replace(";", ":") for label in labels)


class StackSampler:
    """
    Statistical profiler sampling every thread except the calling one.

    Each sample records the current stack of each thread; identical stacks
    are counted together.
    """

    def __init__(self, interval: float = 0.01) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got: {interval}")
        self.interval = interval
        self.samples = 0
        self.stacks: Counter = Counter()

    def sample_once(self) -> None:
        own_ident = threading.get_ident()
        names: Dict[int, str] = {t.ident: t.name for t in threading.enumerate()}
        for ident, frame in sys._current_frames().items():
            if ident == own_ident:
                continue
            self.stacks[fold_stack(frame, names.get(ident, f"thread-{ident}"))] += 1
        self.samples += 1

    def run(self, seconds: float) -> "StackSampler":
        """
        Sample for ``seconds`` wall-clock seconds, blocking the caller.

        Returns:
            self, for chaining into ``render``
        """
        deadline = time.monotonic() + seconds
        while time.monotonic() < deadline:
            self.sample_once()
            time.sleep(self.interval)
        logger.info("cpu_profile_collected", samples=self.samples, stacks=len(self.stacks))
        return self

    def render(self) -> str:
        """Folded-stack text, most frequent stacks first."""
        return "".join(
            f"{stack} {count}\n" for stack, count in self.stacks.most_common()
        )
