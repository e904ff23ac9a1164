import json

import pytest

from lance_node.__main__ import main, parse_args
from lance_node.voting_runtime.keys import KeyManager


def test_keygen_writes_keyfile(tmp_path, capsys):
    assert main(["keygen", "--project-id", "3", "--dispute-id", "9", "--out", str(tmp_path)]) == 0
    out = json.loads(capsys.readouterr().out)
    kp = KeyManager().load((tmp_path / "lance-dispute-9-keys.json").read_bytes())
    assert out["keyfile"].endswith("lance-dispute-9-keys.json")
    assert kp.project_id == 3
    assert kp.dispute_id == 9


def test_keygen_refuses_overwrite(tmp_path, capsys):
    assert main(["keygen", "--out", str(tmp_path)]) == 0
    assert main(["keygen", "--out", str(tmp_path)]) == 1
    assert "refusing to overwrite" in capsys.readouterr().err


def test_finalize_args():
    args = parse_args(["finalize", "4", "--tallies", "6,0,0", "--seeds", "1,2,3", "--dry-run"])
    assert args.tallies == [6, 0, 0]
    assert args.seeds == [1, 2, 3]
    assert args.dry_run

    with pytest.raises(SystemExit) as ei:
        parse_args(["finalize", "4"])
    assert ei.value.code == 2
    with pytest.raises(SystemExit):
        parse_args(["finalize", "4", "--tallies", "1,2", "--seeds", "1,2,3"])
