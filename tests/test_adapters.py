import sys
import threading
import time
from pathlib import Path

import pytest

from fixture_utils import swatch_pixels, write_png
from reftest.adapters import AdapterManager, CommandRenderAdapter, SnapshotRenderAdapter, adapter_manager
from reftest.core import CaseTimeoutError, RenderError, Viewport

PAINT_SCRIPT = (
    "import sys\n"
    "from PIL import Image\n"
    "out, width, height = sys.argv[1], int(sys.argv[2]), int(sys.argv[3])\n"
    "Image.new('RGBA', (width, height), (0, 0, 255, 255)).save(out)\n"
)


def _script(tmp_path: Path, name: str, body: str) -> Path:
    path = tmp_path / name
    path.write_text(body, encoding="utf-8")
    return path


def test_builtin_adapters_registered() -> None:
    assert "command" in adapter_manager
    assert "snapshot" in adapter_manager


def test_adapter_manager_rejects_duplicates_and_unknown_names() -> None:
    manager = AdapterManager()
    manager.register("fake", lambda options: SnapshotRenderAdapter())
    with pytest.raises(ValueError):
        manager.register("fake", lambda options: SnapshotRenderAdapter())
    with pytest.raises(KeyError):
        manager.create("missing")
    assert isinstance(manager.create("fake"), SnapshotRenderAdapter)


def test_command_adapter_renders_viewport(tmp_path: Path) -> None:
    script = _script(tmp_path, "paint.py", PAINT_SCRIPT)
    document = tmp_path / "doc.html"
    document.write_text("<html></html>", encoding="utf-8")
    adapter = CommandRenderAdapter([sys.executable, str(script), "{output}", "{width}", "{height}"])
    result = adapter.render(document, Viewport(206, 165))
    assert result.size == (206, 165)
    assert tuple(result.pixels[0, 0]) == (0, 0, 255, 255)


def test_command_adapter_from_string_options(tmp_path: Path) -> None:
    script = _script(tmp_path, "paint.py", PAINT_SCRIPT)
    adapter = adapter_manager.create(
        "command", {"command": f'"{sys.executable}" "{script}" {{output}} {{width}} {{height}}'}
    )
    result = adapter.render(tmp_path / "doc.html", Viewport(4, 3))
    assert result.size == (4, 3)


def test_command_adapter_reports_failures(tmp_path: Path) -> None:
    script = _script(tmp_path, "fail.py", "import sys\nsys.stderr.write('cannot parse document')\nsys.exit(3)\n")
    adapter = CommandRenderAdapter([sys.executable, str(script)])
    with pytest.raises(RenderError) as excinfo:
        adapter.render(tmp_path / "doc.html", Viewport(4, 3))
    assert "code 3" in str(excinfo.value)
    assert "cannot parse document" in str(excinfo.value)


def test_command_adapter_requires_output(tmp_path: Path) -> None:
    script = _script(tmp_path, "noop.py", "pass\n")
    adapter = CommandRenderAdapter([sys.executable, str(script)])
    with pytest.raises(RenderError, match="no output"):
        adapter.render(tmp_path / "doc.html", Viewport(4, 3))


def test_command_adapter_missing_executable(tmp_path: Path) -> None:
    adapter = CommandRenderAdapter([str(tmp_path / "does-not-exist")])
    with pytest.raises(RenderError, match="failed to start"):
        adapter.render(tmp_path / "doc.html", Viewport(4, 3))


def test_command_adapter_enforces_timeout(tmp_path: Path) -> None:
    script = _script(tmp_path, "slow.py", "import time\ntime.sleep(10)\n")
    adapter = CommandRenderAdapter([sys.executable, str(script)])
    started = time.monotonic()
    with pytest.raises(CaseTimeoutError):
        adapter.render(tmp_path / "doc.html", Viewport(4, 3), timeout=0.3)
    assert time.monotonic() - started < 5


def test_command_adapter_honors_cancellation(tmp_path: Path) -> None:
    script = _script(tmp_path, "slow.py", "import time\ntime.sleep(10)\n")
    adapter = CommandRenderAdapter([sys.executable, str(script)])
    cancel = threading.Event()
    timer = threading.Timer(0.2, cancel.set)
    timer.start()
    try:
        with pytest.raises(CaseTimeoutError):
            adapter.render(tmp_path / "doc.html", Viewport(4, 3), cancel=cancel)
    finally:
        timer.cancel()


def test_snapshot_adapter_reads_sibling_png(tmp_path: Path) -> None:
    document = tmp_path / "case.html"
    document.write_text("<html></html>", encoding="utf-8")
    write_png(tmp_path / "case.html.png", swatch_pixels())
    result = SnapshotRenderAdapter().render(document, Viewport(206, 165))
    assert result.size == (206, 165)


def test_snapshot_adapter_prefers_snapshot_dir(tmp_path: Path) -> None:
    root = tmp_path / "fixtures"
    document = root / "sub" / "case.html"
    document.parent.mkdir(parents=True)
    document.write_text("<html></html>", encoding="utf-8")
    write_png(tmp_path / "shots" / "sub" / "case.html.png", swatch_pixels(width=10, height=8, size=2))
    write_png(root / "sub" / "case.html.png", swatch_pixels())
    adapter = SnapshotRenderAdapter(snapshot_dir=tmp_path / "shots", root=root)
    assert adapter.render(document, Viewport(10, 8)).size == (10, 8)


def test_snapshot_adapter_missing_snapshot(tmp_path: Path) -> None:
    with pytest.raises(RenderError, match="no snapshot"):
        SnapshotRenderAdapter().render(tmp_path / "absent.html", Viewport())


def test_snapshot_adapter_rejects_size_other_than_viewport(tmp_path: Path) -> None:
    document = tmp_path / "case.html"
    write_png(tmp_path / "case.html.png", swatch_pixels())
    with pytest.raises(RenderError, match="expected viewport 800x600"):
        SnapshotRenderAdapter().render(document, Viewport())


def test_command_adapter_rejects_size_other_than_viewport(tmp_path: Path) -> None:
    script = _script(tmp_path, "paint.py", PAINT_SCRIPT)
    adapter = CommandRenderAdapter([sys.executable, str(script), "{output}", "12", "{height}"])
    with pytest.raises(RenderError, match="is 12x3, expected viewport 4x3"):
        adapter.render(tmp_path / "doc.html", Viewport(4, 3))
