import pytest

from scriptscan.core.models import ScanKind
from scriptscan.core.scripts import PythonScriptRuntime
from scriptscan.main import main


@pytest.mark.parametrize("kind", list(ScanKind))
def test_new_writes_loadable_template(tmp_path, kind):
    out = tmp_path / f"{kind.name.lower()}.py"
    assert main(["new", "-t", str(int(kind)), "-o", str(out)]) == 0
    assert PythonScriptRuntime().load(str(out)).kind is kind


def test_new_refuses_to_overwrite(tmp_path):
    out = tmp_path / "mine.py"
    out.write_text("keep me")
    assert main(["new", "-t", "2", "-o", str(out)]) == 1
    assert out.read_text() == "keep me"


def test_scan_reports_bad_configuration(tmp_path):
    assert main(["scan", str(tmp_path), "--headers", "not json",
                 "--checkpoint", str(tmp_path / "r.cfg")]) == 2


def test_scan_reports_missing_input_file(tmp_path):
    (tmp_path / "s.py").write_text("SCAN_TYPE = 2\n\ndef main(ctx):\n    pass\n")
    assert main(["scan", str(tmp_path / "s.py"), "--urls", str(tmp_path / "none.txt"),
                 "--checkpoint", str(tmp_path / "r.cfg")]) == 2
