import os
import tempfile

import pytest

# Redirect ~/.desktop-shell before desktop_shell.core.config is imported
# (it creates its folders at import time).
os.environ.setdefault("DESKTOP_SHELL_HOME", tempfile.mkdtemp(prefix="desktop-shell-tests-"))


@pytest.fixture
def shell_home(tmp_path):
    from desktop_shell.core import config

    saved = (config.BASE_DIR, config.BUNDLES_DIR, config.LOG_DIR,
             config.CONFIG_DIR, config.APP_ROOT, config._ALL_DIRS)
    config._reset_for_tests(tmp_path)
    yield tmp_path
    (config.BASE_DIR, config.BUNDLES_DIR, config.LOG_DIR,
     config.CONFIG_DIR, config.APP_ROOT, config._ALL_DIRS) = saved


@pytest.fixture
def make_bundle(tmp_path):
    def _make(name, files):
        root = tmp_path / name
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root
    return _make
