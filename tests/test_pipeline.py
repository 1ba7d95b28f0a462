import io
import logging
import random
import struct
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests
from PIL import Image

from loader import load_image
from maplib import ImageMarker, RectMarker, Scene, build_static_scene
from pipeline import JobKind, MarkerPipeline

RECT_URL = "https://example.com/rects.csv"
IMAGE_URL = "https://example.com/images.csv"


class FakeFeeds:
    def __init__(self, rects=None, images=None):
        self.feeds = {RECT_URL: rects or [], IMAGE_URL: images or []}
        self.images = {}

    def fetch_rows(self, url):
        rows = self.feeds[url]
        if isinstance(rows, Exception):
            raise rows
        return list(rows)

    def load_image(self, url):
        img = self.images.get(url)
        if img is None:
            raise requests.ConnectionError(f"cannot reach {url}")
        if isinstance(img, Exception):
            raise img
        return img


@pytest.fixture
def executor():
    ex = ThreadPoolExecutor(max_workers=3)
    yield ex
    ex.shutdown(wait=True)


def make_pipeline(executor, feeds):
    return MarkerPipeline(
        executor=executor,
        fetch_rows=feeds.fetch_rows,
        load_image=feeds.load_image,
        rect_url=RECT_URL,
        image_url=IMAGE_URL,
    )


def markers(scene, kind):
    return [it for it in scene if isinstance(it, kind)]


def test_rectangles_placed_in_feed_order_with_defaults(executor):
    feeds = FakeFeeds(rects=[
        {"x": "200", "y": "300"},
        {"x": "", "y": "5", "name": "no x"},
        {"x": "10", "y": "20", "width": "50", "color": "red", "name": "B"},
    ])
    pipe = make_pipeline(executor, feeds)
    scene = Scene()
    pipe.start(scene)
    pipe.wait()

    rects = markers(scene, RectMarker)
    assert [(r.x, r.y) for r in rects] == [(200.0, 300.0), (10.0, 20.0)]
    assert (rects[0].width, rects[0].height, rects[0].fill, rects[0].label) == (100.0, 100.0, "skyblue", "")
    assert (rects[1].width, rects[1].height, rects[1].fill, rects[1].label) == (50.0, 100.0, "red", "B")
    assert pipe.stats.rects_placed == 2
    assert pipe.stats.rects_skipped == 1
    assert not pipe.busy


def test_markers_come_after_static_content(executor):
    feeds = FakeFeeds(rects=[{"x": "1", "y": "1"}])
    pipe = make_pipeline(executor, feeds)
    scene = build_static_scene()
    static_count = len(scene)
    pipe.start(scene)
    pipe.wait()
    assert len(scene) == static_count + 1
    assert isinstance(scene[static_count], RectMarker)


def test_image_markers_resolve_and_invalid_rows_skipped(executor):
    img_a = Image.new("RGBA", (8, 8))
    img_b = Image.new("RGBA", (4, 4))
    feeds = FakeFeeds(images=[
        {"x": "1", "y": "2", "imageUrl": "https://img/a.png"},
        {"x": "3", "y": "4"},
        {"x": "5", "y": "6", "imageUrl": "https://img/b.png", "width": "30", "height": "40"},
    ])
    feeds.images = {"https://img/a.png": img_a, "https://img/b.png": img_b}
    pipe = make_pipeline(executor, feeds)
    scene = Scene()
    pipe.start(scene)
    pipe.wait()

    images = {m.source: m for m in markers(scene, ImageMarker)}
    assert set(images) == {"https://img/a.png", "https://img/b.png"}
    assert images["https://img/a.png"].image is img_a
    assert (images["https://img/a.png"].width, images["https://img/a.png"].height) == (100.0, 100.0)
    assert (images["https://img/b.png"].x, images["https://img/b.png"].width, images["https://img/b.png"].height) == (5.0, 30.0, 40.0)
    assert pipe.stats.images_skipped == 1
    assert pipe.stats.images_placed == 2


def test_failed_image_is_never_added(executor, caplog):
    feeds = FakeFeeds(images=[
        {"x": "1", "y": "2", "imageUrl": "https://img/missing.png"},
        {"x": "3", "y": "4", "imageUrl": "https://img/broken.png"},
    ])
    feeds.images = {"https://img/broken.png": OSError("cannot identify image file")}
    pipe = make_pipeline(executor, feeds)
    scene = Scene()
    with caplog.at_level(logging.WARNING, logger="mapboard"):
        pipe.start(scene)
        pipe.wait()

    assert markers(scene, ImageMarker) == []
    assert pipe.stats.images_failed == 2
    assert not pipe.failed_feeds
    assert "could not be loaded" in caplog.text


def test_feed_failure_leaves_other_feed_working(executor, caplog):
    feeds = FakeFeeds(
        rects=requests.HTTPError("500 Server Error"),
        images=[{"x": "1", "y": "2", "imageUrl": "https://img/a.png"}],
    )
    feeds.images = {"https://img/a.png": Image.new("RGBA", (2, 2))}
    pipe = make_pipeline(executor, feeds)
    scene = build_static_scene()
    static_count = len(scene)

    with caplog.at_level(logging.ERROR, logger="mapboard"):
        pipe.start(scene)
        pipe.wait()

    assert pipe.failed_feeds == {JobKind.RECT_FEED}
    assert markers(scene, RectMarker) == []
    assert len(markers(scene, ImageMarker)) == 1
    assert len(scene) == static_count + 1
    assert "Failed to load rects feed" in caplog.text


def test_restart_drops_results_from_previous_generation(executor):
    gate = threading.Event()
    slow = Image.new("RGBA", (2, 2))

    feeds = FakeFeeds(images=[{"x": "1", "y": "2", "imageUrl": "https://img/slow.png"}])

    def slow_image(url):
        gate.wait(5)
        return slow

    pipe = MarkerPipeline(
        executor=executor,
        fetch_rows=feeds.fetch_rows,
        load_image=slow_image,
        rect_url=RECT_URL,
        image_url=IMAGE_URL,
    )

    first = Scene()
    gen1 = pipe.start(first)
    # both feeds handled, the image job is still blocked
    handled = 0
    while handled < 2:
        handled += pipe.drain(block=True, timeout=5)
    assert pipe.pending == 1

    feeds.feeds[IMAGE_URL] = []
    feeds.feeds[RECT_URL] = [{"x": "9", "y": "9"}]
    second = Scene()
    gen2 = pipe.start(second)
    assert gen2 == gen1 + 1

    gate.set()
    pipe.wait()
    executor.shutdown(wait=True)
    pipe.drain()

    assert markers(first, ImageMarker) == []
    assert markers(second, ImageMarker) == []
    assert [(r.x, r.y) for r in markers(second, RectMarker)] == [(9.0, 9.0)]


def test_wait_times_out_when_jobs_hang(executor):
    gate = threading.Event()

    def hang(url):
        gate.wait(5)
        return []

    pipe = MarkerPipeline(executor, hang, lambda url: None, RECT_URL, IMAGE_URL)
    pipe.start(Scene())
    try:
        with pytest.raises(TimeoutError):
            pipe.wait(timeout=0.05)
    finally:
        gate.set()


def test_drain_without_results_is_a_noop(executor):
    pipe = make_pipeline(executor, FakeFeeds())
    assert pipe.drain() == 0
    assert pipe.pending == 0


def _noise_png(path, seed):
    rnd = random.Random(seed)
    img = Image.frombytes("RGB", (64, 64), bytes(rnd.randrange(256) for _ in range(64 * 64 * 3)))
    img.save(path, "PNG")
    return path


def _broken_png(path, seed):
    # IDAT declares half its real length, so decoding runs into pixel data
    # where the next chunk header should be
    buf = io.BytesIO()
    _noise_png(buf, seed)
    data = bytearray(buf.getvalue())
    at = data.index(b"IDAT") - 4
    (length,) = struct.unpack(">I", bytes(data[at:at + 4]))
    data[at:at + 4] = struct.pack(">I", length // 2)
    path.write_bytes(bytes(data))
    return path


def test_corrupt_png_next_to_good_one_keeps_loading(executor, tmp_path):
    good = _noise_png(tmp_path / "good.png", 1)
    bad = _broken_png(tmp_path / "bad.png", 2)
    feeds = FakeFeeds(
        rects=[{"x": "1", "y": "1"}],
        images=[
            {"x": "1", "y": "2", "imageUrl": str(bad)},
            {"x": "3", "y": "4", "imageUrl": str(good)},
        ],
    )
    pipe = MarkerPipeline(executor, feeds.fetch_rows, load_image, RECT_URL, IMAGE_URL)
    scene = Scene()
    pipe.start(scene)
    pipe.wait()

    assert [m.source for m in markers(scene, ImageMarker)] == [str(good)]
    assert len(markers(scene, RectMarker)) == 1
    assert pipe.stats.images_failed == 1
    assert not pipe.busy


def test_any_image_error_only_drops_that_marker(executor):
    feeds = FakeFeeds(images=[
        {"x": "1", "y": "2", "imageUrl": "https://img/syntax.png"},
        {"x": "3", "y": "4", "imageUrl": "https://img/ok.png"},
    ])
    feeds.images = {
        "https://img/syntax.png": SyntaxError("broken PNG file"),
        "https://img/ok.png": Image.new("RGBA", (2, 2)),
    }
    pipe = make_pipeline(executor, feeds)
    scene = Scene()
    pipe.start(scene)
    pipe.wait()

    assert [m.source for m in markers(scene, ImageMarker)] == ["https://img/ok.png"]
    assert pipe.stats.images_failed == 1
