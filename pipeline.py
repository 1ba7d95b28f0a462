# pipeline.py
import enum
import queue
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from PIL import Image

from logging_config import get_logger
from maplib import (
    ImageRecord, Scene,
    parse_rect_row, parse_image_row,
    rect_marker_from_record, image_marker_from_record,
)

logger = get_logger("pipeline")

FetchRows = Callable[[str], List[Dict[str, str]]]
LoadImage = Callable[[str], Image.Image]


class JobKind(enum.Enum):
    RECT_FEED = "rects"
    IMAGE_FEED = "images"
    IMAGE = "image"


@dataclass
class LoadStats:
    rects_placed: int = 0
    rects_skipped: int = 0
    images_placed: int = 0
    images_skipped: int = 0
    images_failed: int = 0


class MarkerPipeline:
    """
    Loads both marker feeds and places markers into a Scene.

      - Feed fetches and image loads run on the executor (blocking I/O)
      - Each finished job is queued; drain() handles them on the caller's
        thread, which is the only place the Scene is touched
      - start() opens a new generation; jobs from older generations are
        dropped when they finish (in-flight I/O is not cancelled)
    """

    def __init__(
        self,
        executor: Executor,
        fetch_rows: FetchRows,
        load_image: LoadImage,
        rect_url: str,
        image_url: str,
    ):
        self._executor = executor
        self._fetch_rows = fetch_rows
        self._load_image = load_image
        self.rect_url = rect_url
        self.image_url = image_url

        self._done: "queue.Queue[tuple]" = queue.Queue()
        self._generation = 0
        self._pending = 0

        self.scene: Optional[Scene] = None
        self.stats = LoadStats()
        self.failed_feeds: Set[JobKind] = set()

    # -----------------------------
    # Public API
    # -----------------------------
    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def busy(self) -> bool:
        return self._pending > 0

    def start(self, scene: Scene) -> int:
        self._generation += 1
        self._pending = 0
        self.scene = scene
        self.stats = LoadStats()
        self.failed_feeds = set()

        logger.info("Loading markers (generation %d)", self._generation)
        # The two feeds do not depend on each other
        self._submit(JobKind.RECT_FEED, self._fetch_rows, self.rect_url)
        self._submit(JobKind.IMAGE_FEED, self._fetch_rows, self.image_url)
        return self._generation

    def drain(self, block: bool = False, timeout: Optional[float] = None) -> int:
        """
        Handle finished jobs. Returns how many current-generation jobs were handled.

        With block=True, waits up to `timeout` for the first one.
        """
        handled = 0
        first = True
        while True:
            try:
                if block and first:
                    entry = self._done.get(timeout=timeout)
                else:
                    entry = self._done.get_nowait()
            except queue.Empty:
                break

            gen, kind, payload, fut = entry
            if gen != self._generation:
                logger.debug("Dropping %s result from stale generation %d", kind.value, gen)
                continue

            first = False
            self._pending -= 1
            handled += 1
            self._handle(kind, payload, fut)

            if self._pending == 0:
                logger.info(
                    "Marker loading finished: %d rect(s), %d image(s), %d image failure(s)",
                    self.stats.rects_placed, self.stats.images_placed, self.stats.images_failed,
                )
        return handled

    def wait(self, timeout: float = 10.0) -> None:
        """Drain until nothing is pending. Intended for scripts and tests."""
        while self._pending > 0:
            if not self.drain(block=True, timeout=timeout):
                raise TimeoutError(f"{self._pending} marker job(s) still pending")

    # -----------------------------
    # Jobs
    # -----------------------------
    def _submit(self, kind: JobKind, fn: Callable, ref: str, payload: Any = None) -> None:
        gen = self._generation
        self._pending += 1
        fut = self._executor.submit(fn, ref)
        fut.add_done_callback(lambda f: self._done.put((gen, kind, payload, f)))

    def _handle(self, kind: JobKind, payload: Any, fut: Future) -> None:
        if kind is JobKind.RECT_FEED:
            self._on_rect_feed(fut)
        elif kind is JobKind.IMAGE_FEED:
            self._on_image_feed(fut)
        else:
            self._on_image(payload, fut)

    def _feed_rows(self, kind: JobKind, url: str, fut: Future) -> Optional[List[Dict[str, str]]]:
        try:
            return fut.result()
        except Exception:
            # The other feed and the static content keep working
            self.failed_feeds.add(kind)
            logger.exception("Failed to load %s feed from %s", kind.value, url)
            return None

    def _on_rect_feed(self, fut: Future) -> None:
        rows = self._feed_rows(JobKind.RECT_FEED, self.rect_url, fut)
        if rows is None:
            return

        for i, row in enumerate(rows):
            rec = parse_rect_row(row)
            if rec is None:
                self.stats.rects_skipped += 1
                logger.debug("Skipping rectangle row %d without position: %r", i, row)
                continue
            self.scene.add(rect_marker_from_record(rec))
            self.stats.rects_placed += 1

    def _on_image_feed(self, fut: Future) -> None:
        rows = self._feed_rows(JobKind.IMAGE_FEED, self.image_url, fut)
        if rows is None:
            return

        for i, row in enumerate(rows):
            rec = parse_image_row(row)
            if rec is None:
                self.stats.images_skipped += 1
                logger.debug("Skipping image row %d without position/imageUrl: %r", i, row)
                continue
            self._submit(JobKind.IMAGE, self._load_image, rec.image_url, payload=rec)

    def _on_image(self, rec: ImageRecord, fut: Future) -> None:
        try:
            image = fut.result()
        except Exception as e:
            # corrupt images can raise anything (Pillow uses SyntaxError for broken PNGs)
            self.stats.images_failed += 1
            logger.warning("Image %s could not be loaded: %s", rec.image_url, e)
            return

        self.scene.add(image_marker_from_record(rec, image))
        self.stats.images_placed += 1
