import pytest

from desktop_shell.core.bundles import SHIPPED_VERSION, BundleStore
from desktop_shell.core.events import EventBus, LifecycleEvent


@pytest.fixture
def store(tmp_path):
    shipped = tmp_path / "shipped"
    shipped.mkdir()
    root = tmp_path / "store"
    root.mkdir()
    events = EventBus()
    return BundleStore(shipped, events=events, root=root)


def test_shipped_bundle_until_first_update(store):
    assert store.current_version() == SHIPPED_VERSION
    assert store.get_directory() == store.shipped_dir
    assert store.get_parent_directory() is None
    assert store.get_pending_version() is None


def test_stage_announces_and_reset_promotes(store):
    (store.root / "1.1.0").mkdir()
    seen = []
    store.events.subscribe(LifecycleEvent.NEW_VERSION_READY, seen.append)

    store.stage("1.1.0", parent=SHIPPED_VERSION)
    assert seen == ["1.1.0"]
    assert store.get_pending_version() == "1.1.0"
    # nothing switches before the reset
    assert store.get_directory() == store.shipped_dir

    store.on_reset()
    assert store.get_pending_version() is None
    assert store.current_version() == "1.1.0"
    assert store.get_directory() == store.root / "1.1.0"
    assert store.get_parent_directory() == store.shipped_dir
    assert store.marker.read_text(encoding="utf-8") == "1.1.0"


def test_delta_chain(store):
    for version in ("1.1.0", "1.2.0"):
        (store.root / version).mkdir()
    store.stage("1.1.0")
    store.on_reset()
    store.stage("1.2.0", parent="1.1.0")
    store.on_reset()

    assert store.get_directory() == store.root / "1.2.0"
    assert store.get_parent_directory() == store.root / "1.1.0"


def test_missing_parent_directory_is_ignored(store):
    (store.root / "1.1.0").mkdir()
    (store.root / "1.0.0").mkdir()
    store.stage("1.1.0", parent="1.0.0")
    store.on_reset()
    (store.root / "1.0.0").rmdir()
    assert store.get_parent_directory() is None


def test_stage_requires_bundle_on_disk(store):
    with pytest.raises(FileNotFoundError):
        store.stage("9.9.9")
    (store.root / "2.0.0").mkdir()
    with pytest.raises(FileNotFoundError):
        store.stage("2.0.0", parent="1.9.9")
    assert store.get_pending_version() is None


def test_reset_without_pending_is_noop(store):
    store.on_reset()
    assert not store.marker.exists()


def test_default_layout_lives_under_bundles_dir(shell_home):
    from desktop_shell.core import config

    store = BundleStore(shell_home / "shipped")
    assert store.root == config.BUNDLES_DIR
    assert store.marker == config.BUNDLES_DIR / config.CURRENT_MARKER_NAME
    assert store.version_dir("1.1.0") == config.BUNDLES_DIR / "1.1.0"
    assert not hasattr(config, "bundle_path")
    assert not hasattr(config, "marker_path")
