import pytest

from scriptscan.core import checkpoint
from scriptscan.core.checkpoint import CheckpointTracker
from scriptscan.core.models import ScanKind


def test_load_bad_number_becomes_zero(tmp_path):
    path = tmp_path / "resume.cfg"
    path.write_text("URL_SCAN_ID=abc\nHOST_SCAN_ID=7\n")
    cursors = checkpoint.load(str(path))
    assert cursors[ScanKind.URL] == 0
    assert cursors[ScanKind.HOST] == 7


def test_load_ignores_unknown_keys_and_bad_lines(tmp_path):
    path = tmp_path / "resume.cfg"
    path.write_text("FOO=3\nPATH_SCAN_ID=1=2\nnot a pair\n\nCUSTOM_SCAN_ID = 4\n")
    cursors = checkpoint.load(str(path))
    assert cursors == {ScanKind.HOST: 0, ScanKind.URL: 0, ScanKind.PATH: 0,
                       ScanKind.CUSTOM: 4, ScanKind.HTTP: 0}


def test_save_writes_every_key_in_order(tmp_path):
    path = tmp_path / "resume.cfg"
    cursors = checkpoint.empty_cursors()
    cursors[ScanKind.URL] = 12
    checkpoint.save(str(path), cursors)
    assert path.read_text().splitlines() == [
        "HTTP_SCAN_ID=0", "URL_SCAN_ID=12", "HOST_SCAN_ID=0",
        "PATH_SCAN_ID=0", "CUSTOM_SCAN_ID=0",
    ]
    assert checkpoint.load(str(path)) == cursors
    assert not (tmp_path / "resume.cfg.tmp").exists()


def test_cursor_only_moves_over_contiguous_completions(tmp_path):
    path = tmp_path / "resume.cfg"
    tracker = CheckpointTracker(str(path))

    tracker.complete(ScanKind.URL, 1)
    assert tracker.cursors[ScanKind.URL] == 0
    assert not path.exists()

    tracker.complete(ScanKind.URL, 0)
    assert tracker.cursors[ScanKind.URL] == 1

    tracker.complete(ScanKind.URL, 3)
    assert tracker.cursors[ScanKind.URL] == 1
    tracker.complete(ScanKind.URL, 2)
    assert tracker.cursors[ScanKind.URL] == 3
    assert checkpoint.load(str(path))[ScanKind.URL] == 3


def test_kinds_are_tracked_independently():
    tracker = CheckpointTracker()
    tracker.complete(ScanKind.HOST, 0)
    tracker.complete(ScanKind.HOST, 1)
    tracker.complete(ScanKind.PATH, 1)
    assert tracker.cursors[ScanKind.HOST] == 1
    assert tracker.cursors[ScanKind.PATH] == 0


@pytest.mark.parametrize("cursor,index,skipped", [
    (5, 0, True),
    (5, 5, True),
    (5, 6, False),
    (0, 0, False),
    (0, 1, False),
])
def test_should_skip(cursor, index, skipped):
    resume = checkpoint.empty_cursors()
    resume[ScanKind.URL] = cursor
    tracker = CheckpointTracker(resume=resume)
    assert tracker.should_skip(ScanKind.URL, index) is skipped
    assert tracker.should_skip(ScanKind.HOST, index) is False


def test_resumed_cursor_continues_after_resume_point(tmp_path):
    path = tmp_path / "resume.cfg"
    resume = checkpoint.empty_cursors()
    resume[ScanKind.URL] = 5
    tracker = CheckpointTracker(str(path), resume)
    tracker.complete(ScanKind.URL, 7)
    assert tracker.cursors[ScanKind.URL] == 5
    tracker.complete(ScanKind.URL, 6)
    assert tracker.cursors[ScanKind.URL] == 7


def test_flush_without_path_is_noop():
    CheckpointTracker().flush()
