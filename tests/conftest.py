import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def base_keypair():
    from common.keys import Keypair

    return Keypair.generate()


@pytest.fixture
def keypair_file(tmp_path, base_keypair):
    import json

    path = tmp_path / "keypair.json"
    path.write_text(json.dumps(list(base_keypair.secret_key)), encoding="utf-8")
    return path


@pytest.fixture
def config(keypair_file):
    from common.config import PortalConfig

    return PortalConfig.load(keypair_path=keypair_file, confirm_poll_interval=0.0)
